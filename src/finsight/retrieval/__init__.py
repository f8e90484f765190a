"""
Retrieval — vector storage and similarity search over embedded chunks.

This module wraps the vector store behind a clean interface so that the
loader and the agent never need to know which DB is backing retrieval.

Public surface
--------------
- :class:`VectorStoreBase` — abstract backend.
- :class:`ChromaVectorStore` — default Chroma backend (lazy import).
- :class:`EmbeddedDocument`, :class:`RetrievedDocument`, :class:`Citation` — data models.
"""

from finsight.retrieval.base import VectorStoreBase
from finsight.retrieval.models import Citation, EmbeddedDocument, RetrievedDocument

__all__ = [
    "Citation",
    "ChromaVectorStore",
    "EmbeddedDocument",
    "RetrievedDocument",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from finsight.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
