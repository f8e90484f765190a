"""Ingestion coordinator — at most one load job at a time.

Two layers:

* :class:`LoadCoordinator` — process-local single-flight guard.  A second
  caller is refused immediately; there is no queueing.
* :class:`~finsight.storage.process_locks.ProcessLockService` — optional
  row-store lock that extends the guarantee across server instances
  sharing one database.

:class:`IngestionCoordinator` stacks both behind one async context
manager so the job body always runs with both held and always releases
both, whatever it raises.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import AsyncIterator, Iterator

from finsight.storage.process_locks import LockConflict, LockToken, ProcessLockService

logger = logging.getLogger(__name__)

DB_LOAD_PROCESS = "db_load"


class LoadInProgressError(RuntimeError):
    """Raised when a load is requested while another one is running.

    This is an expected condition, not a fault; HTTP callers map it to 409.
    """

    def __init__(self, message: str = "A data load is already in progress") -> None:
        super().__init__(message)


class LoadLease:
    """Handle returned by :meth:`LoadCoordinator.try_acquire`.

    :meth:`release` may be called more than once; only the first call frees
    the coordinator.
    """

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock
        self._released = False
        self._guard = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._guard:
            if self._released:
                return
            self._released = True
        self._lock.release()


class LoadCoordinator:
    """Process-local single-flight guard for load jobs.

    Construct one per process (see :data:`load_coordinator`) and share it by
    reference; tests build their own independent instances.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> LoadLease | None:
        """Return a lease, or ``None`` if a job already holds the guard."""
        if not self._lock.acquire(blocking=False):
            return None
        return LoadLease(self._lock)

    @contextlib.contextmanager
    def acquire(self) -> Iterator[LoadLease]:
        """Hold the guard for the duration of the ``with`` block.

        Raises
        ------
        LoadInProgressError
            When the guard is already held.
        """
        lease = self.try_acquire()
        if lease is None:
            raise LoadInProgressError()
        try:
            yield lease
        finally:
            lease.release()


# Process-wide instance used by the serving layer.
load_coordinator = LoadCoordinator()


class IngestionCoordinator:
    """Local guard plus (optionally) the cross-instance process lock.

    Parameters
    ----------
    local:
        The process-local guard.
    process_locks:
        Distributed lock service; ``None`` for single-process deployments.
    process_name:
        Name of the lock row in the process table.
    """

    def __init__(
        self,
        local: LoadCoordinator | None = None,
        process_locks: ProcessLockService | None = None,
        *,
        process_name: str = DB_LOAD_PROCESS,
    ) -> None:
        self.local = local if local is not None else load_coordinator
        self.process_locks = process_locks
        self.process_name = process_name

    @property
    def is_busy(self) -> bool:
        if self.local.is_busy:
            return True
        return self.process_locks is not None and self.process_locks.is_running(self.process_name)

    @contextlib.asynccontextmanager
    async def lock(self) -> AsyncIterator[None]:
        async with contextlib.AsyncExitStack() as stack:
            try:
                stack.enter_context(self.local.acquire())
            except LoadInProgressError:
                logger.info("Load refused: already running in this process")
                raise

            if self.process_locks is not None:
                result = await self.process_locks.try_acquire(self.process_name)
                if isinstance(result, LockConflict):
                    logger.info("Load refused: %r held by another instance", self.process_name)
                    raise LoadInProgressError()
                stack.push_async_callback(self._release_process_lock, result.token)
            yield

    async def _release_process_lock(self, token: LockToken) -> None:
        try:
            await asyncio.to_thread(self.process_locks.release, token)
        except Exception:
            logger.exception("Failed to release process lock %r", self.process_name)
