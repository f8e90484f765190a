"""Chunk → embed → store for PDF and plain-text sources.

Progress is reported through the status registry as ``Loading i/N``
(see :class:`~finsight.storage.models.Progress`); polling clients parse that
string, so it is written at least every 5% of chunks and always on the last
one.  Embedding calls are not batched, so the loader yields to the event
loop after every embedding.  Status writes and the vector-store write run in
worker threads so a slow row store never blocks concurrent requests.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from langchain_core.embeddings import Embeddings

from finsight.ingestion.chunker import FixedWindowTextSplitter
from finsight.ingestion.extract import extract_pdf_text, extract_plain_text
from finsight.ingestion.sources import DataFileConfig, DataSourceConfig, FileType
from finsight.retrieval.base import VectorStoreBase
from finsight.retrieval.models import EmbeddedDocument
from finsight.storage.models import FileTarget, LoadStatus, Progress
from finsight.storage.status_store import FileStatusRegistry

logger = logging.getLogger(__name__)

_LOG_EVERY = 100


def progress_interval(total: int) -> int:
    """Chunks between progress writes: ~5% of *total*, at least every chunk."""
    return max(1, total // 20)


def chunk_metadata(
    source: DataSourceConfig,
    file: DataFileConfig,
    page_number: int,
    loaded_date: str,
) -> dict[str, Any]:
    return {
        "data_source_id": source.id,
        "data_source_name": source.name,
        "file_name": file.name,
        "url": file.url,
        "year": file.year,
        "page_number": page_number,
        "loaded_date": loaded_date,
    }


class TextFileLoader:
    """Load one PDF / text file into the vector store.

    Parameters
    ----------
    embeddings:
        Embedding provider (must be the same one the agent queries with).
    vector_store:
        Destination for the embedded chunks.
    registry:
        File status registry that receives progress and the final status.
    splitter:
        Chunking strategy; defaults to 1000-char windows with 200 overlap.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        vector_store: VectorStoreBase,
        registry: FileStatusRegistry,
        splitter: FixedWindowTextSplitter | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.registry = registry
        self.splitter = splitter or FixedWindowTextSplitter()

    async def extract(self, file: DataFileConfig, path: Path) -> str:
        if file.type is FileType.PDF:
            return await asyncio.to_thread(extract_pdf_text, path)
        return await asyncio.to_thread(extract_plain_text, path)

    async def load(self, source: DataSourceConfig, file: DataFileConfig, path: Path) -> int:
        """Extract, chunk, embed and store *file*; return the number of chunks.

        Exceptions propagate; the caller owns the ``failed`` transition.
        """
        logger.info("Loading text file: %s", path)
        text = await self.extract(file, path)
        chunks = self.splitter.split_text(text)
        total = len(chunks)

        if total:
            await self._report(source, file, Progress(0, total))
        else:
            logger.warning("No text extracted from %s", path)

        loaded_date = datetime.now(timezone.utc).isoformat()
        interval = progress_interval(total)
        documents: list[EmbeddedDocument] = []

        for i, chunk in enumerate(chunks, 1):
            embedding = await self.embeddings.aembed_query(chunk)
            documents.append(
                EmbeddedDocument(
                    content=chunk,
                    embedding=embedding,
                    metadata=chunk_metadata(source, file, i, loaded_date),
                )
            )
            await asyncio.sleep(0)

            if i % interval == 0 or i == total:
                await self._report(source, file, Progress(i, total))
            if i % _LOG_EVERY == 0:
                logger.info("Processed %d/%d chunks for %s", i, total, file.name)

        await asyncio.to_thread(self.vector_store.add_documents, documents)

        await asyncio.to_thread(
            self.registry.upsert_status,
            source.id,
            file.name,
            FileTarget.VECTOR,
            LoadStatus.LOADED,
            f"Loaded {len(documents)} chunks",
        )
        logger.info("Loaded %d chunks from %s", len(documents), file.name)
        return len(documents)

    async def _report(self, source: DataSourceConfig, file: DataFileConfig, progress: Progress) -> None:
        await asyncio.to_thread(
            self.registry.report_progress, source.id, file.name, FileTarget.VECTOR, progress
        )
