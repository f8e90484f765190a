"""Domain models for stored chunks, retrieval hits, and citations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class EmbeddedDocument(BaseModel):
    """A chunk ready to be written to the vector store.

    Attributes
    ----------
    content:
        The chunk text.
    embedding:
        Dense vector from the embedding provider (fixed dimensionality).
    metadata:
        ``data_source_id``, ``data_source_name``, ``file_name``, ``url``,
        ``year``, ``page_number`` (1-based chunk index) and ``loaded_date``.
    """

    content: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def document_id(self) -> str:
        """Deterministic id so re-writing the same chunk overwrites it."""
        meta = self.metadata
        return f"{meta.get('data_source_id', '')}/{meta.get('file_name', '')}#{meta.get('page_number', 0)}"


class RetrievedDocument(BaseModel):
    """One similarity-search hit, ranked by ``score`` (higher = closer)."""

    id: str | None = None
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float | None = None


class Citation(BaseModel):
    """A citation the model actually used in its answer.

    Attributes
    ----------
    label:
        The citation token as it appears in the answer,
        e.g. ``"[weo_2025.pdf, p.12]"``.
    metadata:
        The cited chunk's metadata, every value stringified.
    chunk_text:
        The raw excerpt that was shown to the model.
    """

    label: str
    metadata: dict[str, str] = Field(default_factory=dict)
    chunk_text: str = ""
