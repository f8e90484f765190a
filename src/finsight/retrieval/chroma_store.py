"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import chromadb

from finsight.config import settings
from finsight.retrieval.base import VectorStoreBase
from finsight.retrieval.models import EmbeddedDocument, RetrievedDocument

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Chroma only stores scalar metadata; drop ``None`` and stringify the rest."""
    cleaned: dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        cleaned[key] = value if isinstance(value, _SCALAR_TYPES) else str(value)
    return cleaned


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store holding precomputed embeddings.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname (HTTP mode).
    port:
        Chroma server port (HTTP mode).
    persist_directory:
        When given, an embedded :class:`chromadb.PersistentClient` is used
        instead of the HTTP client.
    upsert_batch_size:
        Max records per upsert call.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        persist_directory: str = settings.chroma_persist_directory,
        upsert_batch_size: int = 5000,
    ) -> None:
        super().__init__(collection_name)
        if persist_directory:
            self._client = chromadb.PersistentClient(path=persist_directory)
        else:
            self._client = chromadb.HttpClient(host=host, port=port)
        self._upsert_batch_size = upsert_batch_size
        self._collection = self._get_collection()

    def _get_collection(self) -> Any:
        return self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def add_documents(self, documents: Sequence[EmbeddedDocument]) -> None:
        if not documents:
            return
        for start in range(0, len(documents), self._upsert_batch_size):
            batch = documents[start : start + self._upsert_batch_size]
            self._collection.upsert(
                ids=[doc.document_id for doc in batch],
                embeddings=[doc.embedding for doc in batch],
                documents=[doc.content for doc in batch],
                metadatas=[_clean_metadata(doc.metadata) for doc in batch],
            )
        logger.info("Indexed %d chunk(s) into %r", len(documents), self.collection_name)

    def similarity_search(self, query_embedding: list[float], *, k: int = 5) -> list[RetrievedDocument]:
        if self._collection.count() == 0:
            return []

        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=k,
            include=["documents", "metadatas", "distances"],
        )

        hits: list[RetrievedDocument] = []
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            # Cosine distance in [0, 2]; 1 - d is the cosine similarity.
            hits.append(
                RetrievedDocument(
                    id=doc_id,
                    content=content or "",
                    metadata=dict(meta or {}),
                    score=1.0 - dist,
                )
            )
        return hits

    def document_count(self) -> int:
        return self._collection.count()

    def reset(self) -> None:
        try:
            self._client.delete_collection(self.collection_name)
        except Exception:
            # Deleting a collection that was never created is not an error here.
            logger.debug("Collection %r did not exist", self.collection_name, exc_info=True)
        self._collection = self._get_collection()
        logger.info("Reset vector collection %r", self.collection_name)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
