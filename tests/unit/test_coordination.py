"""Unit tests for single-flight load coordination and the process-lock tables."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from finsight.ingestion.coordinator import IngestionCoordinator, LoadCoordinator, LoadInProgressError
from finsight.storage.process_locks import (
    LockAcquired,
    LockConflict,
    ProcessLockService,
    ServerInstanceRegistry,
)


# ═══════════════════════════════════════════════════════════════════════
# Process-local guard
# ═══════════════════════════════════════════════════════════════════════


class TestLoadCoordinator:
    def test_second_acquire_is_refused(self) -> None:
        coordinator = LoadCoordinator()
        lease = coordinator.try_acquire()
        assert lease is not None
        assert coordinator.is_busy
        assert coordinator.try_acquire() is None
        lease.release()
        assert not coordinator.is_busy

    def test_release_is_idempotent(self) -> None:
        coordinator = LoadCoordinator()
        lease = coordinator.try_acquire()
        lease.release()
        lease.release()
        assert lease.released
        other = coordinator.try_acquire()
        assert other is not None
        # A stale lease must not free someone else's hold.
        lease.release()
        assert coordinator.is_busy
        other.release()

    def test_context_manager_releases_on_error(self) -> None:
        coordinator = LoadCoordinator()
        with pytest.raises(RuntimeError):
            with coordinator.acquire():
                raise RuntimeError("boom")
        assert not coordinator.is_busy

    def test_context_manager_refuses_when_busy(self) -> None:
        coordinator = LoadCoordinator()
        with coordinator.acquire():
            with pytest.raises(LoadInProgressError):
                with coordinator.acquire():
                    pass


# ═══════════════════════════════════════════════════════════════════════
# Distributed process locks
# ═══════════════════════════════════════════════════════════════════════


@pytest.fixture()
def instances(session_factory) -> ServerInstanceRegistry:
    return ServerInstanceRegistry(session_factory, "instance-a", heartbeat_interval=3600)


@pytest.fixture()
def locks(session_factory, instances) -> ProcessLockService:
    return ProcessLockService(session_factory, instances)


class TestProcessLockService:
    @pytest.mark.asyncio
    async def test_acquire_and_conflict(self, locks: ProcessLockService, instances) -> None:
        first = await locks.try_acquire("db_load")
        assert isinstance(first, LockAcquired)
        assert first.token.server_instance == "instance-a"
        assert locks.is_running("db_load")

        second = await locks.try_acquire("db_load")
        assert isinstance(second, LockConflict)
        await instances.stop()

    @pytest.mark.asyncio
    async def test_release_frees_the_lock(self, locks: ProcessLockService, instances) -> None:
        result = await locks.try_acquire("db_load")
        locks.release(result.token)
        assert not locks.is_running("db_load")
        assert isinstance(await locks.try_acquire("db_load"), LockAcquired)
        await instances.stop()

    @pytest.mark.asyncio
    async def test_other_instance_is_refused(self, session_factory, locks, instances) -> None:
        await locks.try_acquire("db_load")
        other_instances = ServerInstanceRegistry(session_factory, "instance-b", heartbeat_interval=3600)
        other = ProcessLockService(session_factory, other_instances)
        assert isinstance(await other.try_acquire("db_load"), LockConflict)
        await other_instances.stop()
        await instances.stop()

    @pytest.mark.asyncio
    async def test_stop_removes_own_locks(self, locks: ProcessLockService, instances) -> None:
        await locks.try_acquire("db_load")
        await instances.stop()
        assert not locks.is_running("db_load")

    @pytest.mark.asyncio
    async def test_stale_locks_are_identified_not_cleared(self, locks, instances) -> None:
        await locks.try_acquire("db_load")
        assert locks.stale_locks(timedelta(minutes=5)) == []
        assert locks.stale_locks(timedelta(seconds=-1)) == ["db_load"]
        assert locks.is_running("db_load")
        await instances.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, instances: ServerInstanceRegistry) -> None:
        assert await instances.start() == "instance-a"
        assert await instances.start() == "instance-a"
        await instances.stop()
        assert not instances.started

    def test_random_instance_id_when_blank(self, session_factory) -> None:
        registry = ServerInstanceRegistry(session_factory, "  ")
        assert registry.instance_id.strip()


# ═══════════════════════════════════════════════════════════════════════
# Combined coordinator
# ═══════════════════════════════════════════════════════════════════════


class TestIngestionCoordinator:
    @pytest.mark.asyncio
    async def test_lock_is_single_flight(self) -> None:
        coordinator = IngestionCoordinator(LoadCoordinator())
        async with coordinator.lock():
            assert coordinator.is_busy
            with pytest.raises(LoadInProgressError):
                async with coordinator.lock():
                    pass
        assert not coordinator.is_busy

    @pytest.mark.asyncio
    async def test_lock_released_when_body_raises(self) -> None:
        coordinator = IngestionCoordinator(LoadCoordinator())
        with pytest.raises(ValueError):
            async with coordinator.lock():
                raise ValueError("bad file")
        assert not coordinator.is_busy

    @pytest.mark.asyncio
    async def test_distributed_lock_held_during_body(self, locks, instances) -> None:
        coordinator = IngestionCoordinator(LoadCoordinator(), locks)
        async with coordinator.lock():
            assert locks.is_running("db_load")
        assert not locks.is_running("db_load")
        assert not coordinator.is_busy
        await instances.stop()

    @pytest.mark.asyncio
    async def test_distributed_conflict_releases_local_guard(self, session_factory, locks, instances) -> None:
        other_instances = ServerInstanceRegistry(session_factory, "instance-b", heartbeat_interval=3600)
        await ProcessLockService(session_factory, other_instances).try_acquire("db_load")

        local = LoadCoordinator()
        coordinator = IngestionCoordinator(local, locks)
        with pytest.raises(LoadInProgressError):
            async with coordinator.lock():
                pass
        assert not local.is_busy
        await other_instances.stop()
        await instances.stop()

    @pytest.mark.asyncio
    async def test_concurrent_jobs_one_wins(self) -> None:
        coordinator = IngestionCoordinator(LoadCoordinator())
        started = asyncio.Event()
        finish = asyncio.Event()

        async def job() -> str:
            async with coordinator.lock():
                started.set()
                await finish.wait()
                return "done"

        first = asyncio.create_task(job())
        await started.wait()
        with pytest.raises(LoadInProgressError):
            await job()
        finish.set()
        assert await first == "done"
