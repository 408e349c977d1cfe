"""Agent log stream and LangChain tracing callbacks."""

import hashlib
import json
import logging
import time
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from langchain_core.callbacks import BaseCallbackHandler
from langchain_core.outputs import LLMResult

from .config import get_project_paths, settings
from .models import AgentLog, LogSeverity

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "critical": logging.ERROR,
}

LogSubscriber = Callable[[AgentLog], None]


class AgentLogStream:
    """Bounded, newest-first stream of agent activity.

    Each entry is also forwarded to the stdlib logger and to subscribers.
    """

    def __init__(self, capacity: int | None = None):
        self.capacity = capacity or settings.agent_log_capacity
        self._entries: deque[AgentLog] = deque(maxlen=self.capacity)
        self._subscribers: list[LogSubscriber] = []

    def emit(
        self,
        agent: str,
        message: str,
        severity: LogSeverity = "info",
        detail: str | None = None,
    ) -> AgentLog:
        entry = AgentLog(agent=agent, message=message, severity=severity, detail=detail)
        self._entries.appendleft(entry)

        text = f"[{agent}] {message}"
        if detail:
            text = f"{text} ({detail})"
        logger.log(SEVERITY_LEVELS[severity], text)

        for subscriber in list(self._subscribers):
            subscriber(entry)
        return entry

    def subscribe(self, subscriber: LogSubscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    @property
    def entries(self) -> list[AgentLog]:
        """Newest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _digest(value: Any) -> str:
    text = str(value)
    if len(text) > 1000:
        text = text[:1000] + "..."
    return hashlib.md5(text.encode()).hexdigest()[:8]


class ChainTraceCallback(BaseCallbackHandler):
    """Callback handler that logs LLM invocations to a per-book JSONL file."""

    def __init__(self, book_id: str | None, data_dir: Path | None = None):
        self.book_id = book_id or "global"
        self.paths = get_project_paths(data_dir)
        self.log_file = self.paths["traces"] / f"{self.book_id}.jsonl"
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        # Track LLM start times by run id
        self.llm_starts: Dict[str, float] = {}

    def on_llm_start(self, serialized: Dict[str, Any], prompts: List[str], **kwargs) -> None:
        run_id = str(kwargs.get("run_id", ""))
        self.llm_starts[run_id] = time.time()
        model_name = serialized.get("name", "unknown") if serialized else "unknown"

        self._write_log_entry({
            "event": "llm_start",
            "run_id": run_id,
            "model": model_name,
            "prompt_count": len(prompts),
            "total_prompt_length": sum(len(p) for p in prompts),
            "input_hash": _digest(prompts),
        })

    def on_chat_model_start(self, serialized: Dict[str, Any], messages: List[List[Any]], **kwargs) -> None:
        prompts = [
            "\n".join(str(getattr(m, "content", m)) for m in batch) for batch in messages
        ]
        self.on_llm_start(serialized, prompts, **kwargs)

    def on_llm_end(self, response: LLMResult, **kwargs) -> None:
        run_id = str(kwargs.get("run_id", ""))
        started = self.llm_starts.pop(run_id, None)

        token_usage = {}
        if response.llm_output:
            token_usage = response.llm_output.get("token_usage", {}) or {}

        self._write_log_entry({
            "event": "llm_end",
            "run_id": run_id,
            "duration_ms": int((time.time() - started) * 1000) if started else None,
            "generation_count": len(response.generations),
            "token_usage": token_usage,
        })

    def on_llm_error(self, error: BaseException, **kwargs) -> None:
        run_id = str(kwargs.get("run_id", ""))
        started = self.llm_starts.pop(run_id, None)

        self._write_log_entry({
            "event": "llm_error",
            "run_id": run_id,
            "duration_ms": int((time.time() - started) * 1000) if started else None,
            "error": str(error),
            "error_type": type(error).__name__,
        })

    def _write_log_entry(self, entry: Dict[str, Any]) -> None:
        entry = {"timestamp": _utcnow_iso(), "book_id": self.book_id, **entry}
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            # Tracing must not break production
            logger.warning(f"Failed to write chain trace: {e}")


def get_chain_traces(book_id: str, data_dir: Path | None = None) -> List[Dict[str, Any]]:
    """Load chain traces from JSONL file."""
    log_file = get_project_paths(data_dir)["traces"] / f"{book_id}.jsonl"
    if not log_file.exists():
        return []

    traces = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                traces.append(json.loads(line))
    return traces


def create_langfuse_callback(book_id: str | None) -> Optional[BaseCallbackHandler]:
    """Create Langfuse callback handler if configured."""
    if not settings.langfuse_enabled:
        return None

    if not settings.langfuse_public_key or not settings.langfuse_secret_key:
        logger.debug("Langfuse not configured: missing public_key or secret_key")
        return None

    from langfuse.callback import CallbackHandler

    callback = CallbackHandler(
        public_key=settings.langfuse_public_key,
        secret_key=settings.langfuse_secret_key,
        host=settings.langfuse_host,
        session_id=book_id,
        user_id="book-forge",
        tags=["book-production"] + ([book_id] if book_id else []),
    )
    logger.info(f"Langfuse callback initialized for book: {book_id}")
    return callback


def create_observability_callbacks(book_id: str | None, data_dir: Path | None = None) -> List[BaseCallbackHandler]:
    """Callback handlers attached to every provider call of a book."""
    callbacks: List[BaseCallbackHandler] = []

    langfuse_callback = create_langfuse_callback(book_id)
    if langfuse_callback:
        callbacks.append(langfuse_callback)

    # Always add local JSONL tracing
    callbacks.append(ChainTraceCallback(book_id, data_dir))
    return callbacks
