"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Sequence

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding

from finsight.ingestion.coordinator import IngestionCoordinator, LoadCoordinator
from finsight.retrieval.base import VectorStoreBase
from finsight.retrieval.models import EmbeddedDocument, RetrievedDocument
from finsight.storage.cpi_store import CpiStore
from finsight.storage.db import create_db_engine, create_session_factory, init_db
from finsight.storage.status_store import FileStatusRegistry


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed vector store; search returns documents in insertion order."""

    def __init__(self, collection_name: str = "test") -> None:
        super().__init__(collection_name)
        self.documents: dict[str, EmbeddedDocument] = {}
        self.add_calls = 0
        self.reset_calls = 0

    def add_documents(self, documents: Sequence[EmbeddedDocument]) -> None:
        self.add_calls += 1
        for doc in documents:
            self.documents[doc.document_id] = doc

    def similarity_search(self, query_embedding: list[float], *, k: int = 5) -> list[RetrievedDocument]:
        return [
            RetrievedDocument(id=doc_id, content=doc.content, metadata=dict(doc.metadata), score=1.0)
            for doc_id, doc in list(self.documents.items())[:k]
        ]

    def document_count(self) -> int:
        return len(self.documents)

    def reset(self) -> None:
        self.reset_calls += 1
        self.documents.clear()


# ── Row store ──────────────────────────────────────────────────────────


@pytest.fixture()
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def registry(session_factory) -> FileStatusRegistry:
    return FileStatusRegistry(session_factory)


@pytest.fixture()
def cpi_store(session_factory) -> CpiStore:
    return CpiStore(session_factory)


# ── Retrieval ──────────────────────────────────────────────────────────


@pytest.fixture()
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def embeddings() -> DeterministicFakeEmbedding:
    return DeterministicFakeEmbedding(size=8)


# ── Coordination ───────────────────────────────────────────────────────


@pytest.fixture()
def coordinator() -> IngestionCoordinator:
    """Coordinator with its own local guard so tests never share the process-wide one."""
    return IngestionCoordinator(LoadCoordinator())
