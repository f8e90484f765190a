"""Data loading service — the resumable batch job behind "Load DB".

Control flow of :meth:`DataLoaderService.load`::

    coordinator.lock()                      ← refuse if another load runs
      └─ initialise missing status rows      (not_loaded)
      └─ policy == "all" → reset vectors + statuses
      └─ for each declared file, in config order:
           skip?  (missing_only and every target loaded)
           route: pdf/text → TextFileLoader, table → TabularFileLoader
           any exception → every target "failed", batch continues

A wall-clock ceiling is imposed from outside via
:meth:`DataLoaderService.load_with_timeout`; on timeout the in-flight file
keeps whatever status it last reported (usually ``loading``) until
:meth:`~finsight.storage.status_store.FileStatusRegistry.reset_loading`
runs.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from finsight.ingestion.coordinator import IngestionCoordinator, LoadInProgressError
from finsight.ingestion.extract import SourceFileNotFoundError
from finsight.ingestion.sources import DataFileConfig, DataSourceConfig, DataSourcesConfig, FileType
from finsight.ingestion.tabular import TabularFileLoader
from finsight.ingestion.text_loader import TextFileLoader
from finsight.retrieval.base import VectorStoreBase
from finsight.storage.cpi_store import CpiStore
from finsight.storage.models import FileTarget, LoadStatus
from finsight.storage.status_store import FileStatusRegistry

logger = logging.getLogger(__name__)

NOT_YET_LOADED_MESSAGE = "Not yet loaded"


class LoadPolicy(str, Enum):
    MISSING_ONLY = "missing_only"
    ALL = "all"


class LoadTimeoutError(TimeoutError):
    """The whole load job exceeded its wall-clock time limit."""

    def __init__(self, message: str = "Load request timed out") -> None:
        super().__init__(message)


class LoadStats(BaseModel):
    """Outcome of one load job, keyed by ``<source_id>/<file_name>``."""

    loaded: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class DataLoaderService:
    """Drive ingestion of every declared file.

    Parameters
    ----------
    config:
        Declared sources and the data root directory.
    vector_store:
        Chunk store; fully reset by ``policy="all"``.
    cpi_store:
        Tabular store for CSV sources.
    registry:
        File status registry.
    text_loader / tabular_loader:
        Per-type loaders.
    coordinator:
        Single-flight guard; defaults to the process-wide one.
    """

    def __init__(
        self,
        config: DataSourcesConfig,
        vector_store: VectorStoreBase,
        cpi_store: CpiStore,
        registry: FileStatusRegistry,
        text_loader: TextFileLoader,
        tabular_loader: TabularFileLoader,
        coordinator: IngestionCoordinator | None = None,
    ) -> None:
        self.config = config
        self.vector_store = vector_store
        self.cpi_store = cpi_store
        self.registry = registry
        self.text_loader = text_loader
        self.tabular_loader = tabular_loader
        self.coordinator = coordinator or IngestionCoordinator()

    # -- public API -----------------------------------------------------------

    async def load(self, policy: LoadPolicy | str) -> LoadStats:
        """Run one load job under the coordinator lock.

        Raises
        ------
        LoadInProgressError
            Another load holds the lock; nothing was written.
        """
        policy = LoadPolicy(policy)
        async with self.coordinator.lock():
            return await self._run(policy)

    async def load_with_timeout(self, policy: LoadPolicy | str, timeout: float) -> LoadStats:
        """:meth:`load` bounded by *timeout* seconds."""
        try:
            return await asyncio.wait_for(self.load(policy), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Load (%s) timed out after %.0fs", policy, timeout)
            raise LoadTimeoutError() from exc

    async def reset_all(self) -> None:
        """Delete every chunk and CPI row and mark every file ``not_loaded``."""
        async with self.coordinator.lock():
            await asyncio.to_thread(self.vector_store.reset)
            await asyncio.to_thread(self.cpi_store.clear)
            await asyncio.to_thread(self.registry.reset_statuses, list(FileTarget))

    async def auto_load_on_boot(self, timeout: float) -> LoadStats | None:
        """Load everything once at startup when the knowledge base is empty.

        Skips when the vector store already has documents, when a status row
        says a load is running, or when the lock is taken.  Never raises.
        """
        try:
            if not await asyncio.to_thread(self.vector_store.is_empty):
                logger.info("autoLoadOnBoot skipped (vector store not empty)")
                return None
            statuses = await asyncio.to_thread(self.registry.list_statuses)
            if any(s.status is LoadStatus.LOADING for s in statuses):
                logger.info("autoLoadOnBoot skipped (status=loading present)")
                return None
            stats = await self.load_with_timeout(LoadPolicy.ALL, timeout)
        except LoadInProgressError:
            logger.info("autoLoadOnBoot skipped (load already in progress)")
            return None
        except Exception:
            logger.exception("Auto-load on boot failed")
            return None
        logger.info(
            "autoLoadOnBoot completed: %d loaded, %d failed", len(stats.loaded), len(stats.failed)
        )
        return stats

    def knowledge_status(self) -> dict[str, Any]:
        """Summary used by the UI to decide whether chat is usable."""
        count = self.vector_store.document_count()
        tabular_loaded = any(
            s.target is FileTarget.TABULAR and s.status is LoadStatus.LOADED
            for s in self.registry.list_statuses()
        )
        return {
            "is_empty": count == 0,
            "document_count": count,
            "tabular_loaded": tabular_loaded,
            "is_loaded": count > 0 or tabular_loaded,
        }

    # -- internals ------------------------------------------------------------

    async def _run(self, policy: LoadPolicy) -> LoadStats:
        stats = LoadStats()
        await asyncio.to_thread(self._initialize_statuses)

        if policy is LoadPolicy.ALL:
            await asyncio.to_thread(self.vector_store.reset)
            await asyncio.to_thread(self.registry.reset_statuses, list(FileTarget))

        for source, file in self.config.iter_files():
            file_id = f"{source.id}/{file.name}"
            try:
                if not await asyncio.to_thread(self._should_process, source, file, policy):
                    stats.skipped.append(file_id)
                    continue

                path = self.config.file_path(source, file)
                if not path.is_file():
                    raise SourceFileNotFoundError(path)

                if file.type is FileType.TABLE:
                    await self.tabular_loader.load(source, file, path)
                else:
                    await self.text_loader.load(source, file, path)
                stats.loaded.append(file_id)
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                stats.failed[file_id] = message
                logger.exception("Failed to load %s", file_id)
                await asyncio.to_thread(self._mark_failed, source, file, message)

        logger.info(
            "Load (%s) finished: %d loaded, %d skipped, %d failed",
            policy.value,
            len(stats.loaded),
            len(stats.skipped),
            len(stats.failed),
        )
        return stats

    def _initialize_statuses(self) -> None:
        for source, file in self.config.iter_files():
            for target in file.targets:
                if self.registry.get_status(source.id, file.name, target) is None:
                    self.registry.upsert_status(
                        source.id,
                        file.name,
                        target,
                        LoadStatus.NOT_LOADED,
                        NOT_YET_LOADED_MESSAGE,
                        url=file.url,
                    )

    def _should_process(self, source: DataSourceConfig, file: DataFileConfig, policy: LoadPolicy) -> bool:
        if policy is LoadPolicy.ALL:
            return True
        for target in file.targets:
            status = self.registry.get_status(source.id, file.name, target)
            if status is None or status.status is not LoadStatus.LOADED:
                return True
        return False

    def _mark_failed(self, source: DataSourceConfig, file: DataFileConfig, message: str) -> None:
        for target in file.targets:
            self.registry.upsert_status(source.id, file.name, target, LoadStatus.FAILED, message)
