"""Storage and persistence utilities for book data."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import ensure_directories, get_project_paths
from .models import Book, UsageRecord

logger = logging.getLogger(__name__)


class BookStore:
    """JSON-file persistence of book aggregates.

    One file per book under ``books/<id>.json``; the last write wins. File
    I/O runs in a worker thread so callers stay on the event loop.
    """

    def __init__(self, data_dir: Path | None = None):
        self.paths = get_project_paths(data_dir)
        ensure_directories(data_dir)

    def book_path(self, book_id: str) -> Path:
        return self.paths["books"] / f"{book_id}.json"

    async def load_book(self, book_id: str) -> Book | None:
        return await asyncio.to_thread(self._load_book, book_id)

    async def save_book(self, book: Book) -> Path:
        return await asyncio.to_thread(self._save_book, book)

    async def list_books(self) -> list[Book]:
        return await asyncio.to_thread(self._list_books)

    async def delete_book(self, book_id: str) -> bool:
        return await asyncio.to_thread(self._delete_book, book_id)

    async def load_active_id(self) -> str | None:
        return await asyncio.to_thread(self._load_active_id)

    async def save_active_id(self, book_id: str | None) -> None:
        await asyncio.to_thread(self._save_active_id, book_id)

    def _load_book(self, book_id: str) -> Book | None:
        input_file = self.book_path(book_id)
        if not input_file.exists():
            return None

        try:
            with open(input_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Book.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error loading book {book_id}: {e}")
            return None

    def _save_book(self, book: Book) -> Path:
        output_file = self.book_path(book.id)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = output_file.with_suffix(".json.tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            f.write(book.model_dump_json(indent=2))
        tmp_file.replace(output_file)
        return output_file

    def _list_books(self) -> list[Book]:
        books = []
        for path in sorted(self.paths["books"].glob("*.json")):
            book = self._load_book(path.stem)
            if book is not None:
                books.append(book)
        books.sort(key=lambda b: b.updated_at, reverse=True)
        return books

    def _delete_book(self, book_id: str) -> bool:
        path = self.book_path(book_id)
        if not path.exists():
            return False
        path.unlink()
        if self._load_active_id() == book_id:
            self._save_active_id(None)
        return True

    def _load_active_id(self) -> str | None:
        active_file = self.paths["active"]
        if not active_file.exists():
            return None
        try:
            with open(active_file, "r", encoding="utf-8") as f:
                return json.load(f).get("book_id")
        except json.JSONDecodeError as e:
            logger.error(f"Error loading active book pointer: {e}")
            return None

    def _save_active_id(self, book_id: str | None) -> None:
        active_file = self.paths["active"]
        active_file.parent.mkdir(parents=True, exist_ok=True)
        with open(active_file, "w", encoding="utf-8") as f:
            json.dump({"book_id": book_id}, f)


class UsageStore:
    """Snapshot of the usage ledger in ``usage.json``."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path is not None else get_project_paths()["usage"]

    def save(self, records: list[UsageRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [r.model_dump(mode="json") for r in records]
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def load(self) -> list[UsageRecord]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data: list[dict[str, Any]] = json.load(f)
            return [UsageRecord.model_validate(item) for item in data]
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Error loading usage snapshot {self.path}: {e}")
            return []
