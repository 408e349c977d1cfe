"""Wiring of the default collaborators used by the CLI and the API."""

import logging
from dataclasses import dataclass
from functools import lru_cache

from .catalog import AIProfile, ModelAssignment, ModelCatalog, load_catalog
from .config import Settings, get_config, get_project_paths
from .credentials import CredentialStore
from .ledger import UsageLedger
from .observability import AgentLogStream, create_observability_callbacks
from .orchestrator import RequestOrchestrator
from .originality import GoogleBooksSearch, OriginalityScanner, OriginalityService
from .providers import FalImageBackend, create_chat_backends
from .resolver import ModelResolver
from .runner import ProductionRunner
from .storage import BookStore, UsageStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Settings
    catalog: ModelCatalog
    credentials: CredentialStore
    ledger: UsageLedger
    orchestrator: RequestOrchestrator
    store: BookStore
    log_stream: AgentLogStream
    runner: ProductionRunner
    originality: OriginalityService


def create_assignment(config: Settings) -> ModelAssignment:
    return ModelAssignment(
        outline=AIProfile(config.outline_profile),
        writing=AIProfile(config.writing_profile),
        auditing=AIProfile(config.auditing_profile),
    )


def create_services(config: Settings | None = None) -> Services:
    """Build every collaborator from settings."""
    config = config or get_config()
    paths = get_project_paths(config.data_dir)

    catalog = load_catalog(config.catalog_path)
    credentials = CredentialStore(config)
    ledger = UsageLedger(UsageStore(paths["usage"]))
    ledger.load()

    orchestrator = RequestOrchestrator(
        catalog,
        credentials,
        ledger,
        backends=create_chat_backends(),
        image_backends={"fal-ai": FalImageBackend()},
        resolver=ModelResolver(catalog, credentials, create_assignment(config)),
        config=config,
        callback_factory=lambda book_id: create_observability_callbacks(book_id, config.data_dir),
    )

    store = BookStore(config.data_dir)
    log_stream = AgentLogStream(config.agent_log_capacity)
    runner = ProductionRunner(orchestrator, store, log_stream=log_stream, config=config)
    originality = OriginalityService(
        OriginalityScanner(GoogleBooksSearch(config.google_books_api_key), config),
        orchestrator,
        log_stream,
    )

    logger.info(f"Services ready; credentialed providers: {credentials.providers()}")
    return Services(
        config=config,
        catalog=catalog,
        credentials=credentials,
        ledger=ledger,
        orchestrator=orchestrator,
        store=store,
        log_stream=log_stream,
        runner=runner,
        originality=originality,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Process-wide services built from the global settings."""
    return create_services()
