"""Abstract base class for vector-store backends.

Adding a new backend (pgvector, Qdrant …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract methods.  The
ingestion loader and the agent only ever talk to this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from finsight.retrieval.models import EmbeddedDocument, RetrievedDocument


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def add_documents(self, documents: Sequence[EmbeddedDocument]) -> None:
        """Persist a batch of embedded chunks in one call."""
        ...

    @abstractmethod
    def similarity_search(self, query_embedding: list[float], *, k: int = 5) -> list[RetrievedDocument]:
        """Return the *k* stored chunks closest to *query_embedding*, best first."""
        ...

    @abstractmethod
    def document_count(self) -> int:
        ...

    @abstractmethod
    def reset(self) -> None:
        """Delete every stored chunk."""
        ...

    # -- optional overrides ---------------------------------------------------

    def is_empty(self) -> bool:
        return self.document_count() == 0

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
