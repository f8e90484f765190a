"""Service container — builds and holds the objects the HTTP layer calls.

Routes never construct collaborators themselves; they receive the
:class:`Services` bundle through :func:`get_services`, and tests hand
:func:`~finsight.serving.app.create_app` a bundle built from fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from fastapi import Request
from sqlalchemy.engine import Engine

from finsight.agent.state import AgentAnswer
from finsight.config import settings
from finsight.ingestion.coordinator import IngestionCoordinator
from finsight.ingestion.service import DataLoaderService
from finsight.ingestion.sources import DataSourcesConfig
from finsight.ingestion.tabular import TabularFileLoader
from finsight.ingestion.text_loader import TextFileLoader
from finsight.retrieval.base import VectorStoreBase
from finsight.serving.guard import RateLimiter
from finsight.storage.cpi_store import CpiStore
from finsight.storage.db import create_db_engine, create_session_factory, init_db
from finsight.storage.process_locks import ProcessLockService, ServerInstanceRegistry
from finsight.storage.status_store import FileStatusRegistry

logger = logging.getLogger(__name__)


class Answerer(Protocol):
    async def answer(self, message: str, history: Any = ...) -> AgentAnswer: ...


@dataclass
class Services:
    """Everything the routes need, wired once per application."""

    registry: FileStatusRegistry
    cpi_store: CpiStore
    vector_store: VectorStoreBase
    loader: DataLoaderService
    agent: Answerer
    rate_limiter: RateLimiter
    server_instances: ServerInstanceRegistry | None = None
    engine: Engine | None = None

    def init_storage(self) -> None:
        if self.engine is not None:
            init_db(self.engine)


def build_services() -> Services:
    """Wire the production stack from :data:`~finsight.config.settings`."""
    from finsight.agent.chat import ChatAgent
    from finsight.ingestion.chunker import FixedWindowTextSplitter
    from finsight.ingestion.embedder import get_embedding_function
    from finsight.retrieval.chroma_store import ChromaVectorStore

    engine = create_db_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    registry = FileStatusRegistry(session_factory)
    cpi_store = CpiStore(session_factory)
    vector_store = ChromaVectorStore(settings.chroma_collection)
    embeddings = get_embedding_function()

    server_instances: ServerInstanceRegistry | None = None
    process_locks: ProcessLockService | None = None
    if settings.distributed_lock:
        server_instances = ServerInstanceRegistry(
            session_factory,
            settings.server_instance_id,
            heartbeat_interval=settings.server_heartbeat_interval_seconds,
        )
        process_locks = ProcessLockService(session_factory, server_instances)

    loader = DataLoaderService(
        DataSourcesConfig.from_yaml(settings.data_sources_path),
        vector_store,
        cpi_store,
        registry,
        TextFileLoader(
            embeddings,
            vector_store,
            registry,
            FixedWindowTextSplitter(chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap),
        ),
        TabularFileLoader(cpi_store, registry),
        IngestionCoordinator(process_locks=process_locks),
    )

    logger.info("Services wired (distributed_lock=%s)", settings.distributed_lock)
    return Services(
        registry=registry,
        cpi_store=cpi_store,
        vector_store=vector_store,
        loader=loader,
        agent=ChatAgent(vector_store, embeddings, cpi_store),
        rate_limiter=RateLimiter(),
        server_instances=server_instances,
        engine=engine,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the application's :class:`Services`."""
    return request.app.state.services
