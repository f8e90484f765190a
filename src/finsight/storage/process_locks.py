"""Cross-instance coordination — named process locks and server heartbeats.

A lock is a row in ``t_process_status`` keyed by process name.  Taking it
is an ``INSERT … ON CONFLICT DO NOTHING``: if the insert wrote no row the
lock is held by someone else.  Releasing deletes the row *only* when it
still belongs to the acquiring server instance, so a restarted instance
can never free a lock it does not own.

Every server instance also upserts a heartbeat row into
``t_server_instance``.  Heartbeats let an operator *identify* locks whose
owner has gone silent (:meth:`ProcessLockService.stale_locks`); they are
never reclaimed automatically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from finsight.storage.db import dialect_insert
from finsight.storage.orm import ProcessStatusRecord, ServerInstanceRecord, utcnow

logger = logging.getLogger(__name__)


class ProcessLockError(RuntimeError):
    """The lock table could not be written (not a conflict)."""


@dataclass(frozen=True)
class LockToken:
    """Proof of ownership handed back by a successful acquisition."""

    process_name: str
    server_instance: str


@dataclass(frozen=True)
class LockAcquired:
    token: LockToken


@dataclass(frozen=True)
class LockConflict:
    process_name: str


LockResult = LockAcquired | LockConflict


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class ServerInstanceRegistry:
    """Identity and heartbeat of the current server process.

    Parameters
    ----------
    session_factory:
        Row-store session factory.
    instance_id:
        Stable identity for this process; a random UUID when empty.
    heartbeat_interval:
        Seconds between heartbeat writes once :meth:`start` has run.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        instance_id: str = "",
        *,
        heartbeat_interval: float = 60,
    ) -> None:
        self._session_factory = session_factory
        self.instance_id = instance_id.strip() or str(uuid.uuid4())
        self.heartbeat_interval = heartbeat_interval
        self._task: asyncio.Task[None] | None = None
        self.started = False

    def heartbeat(self) -> None:
        with self._session_factory() as session, session.begin():
            now = utcnow()
            stmt = dialect_insert(session, ServerInstanceRecord).values(
                server_instance=self.instance_id, modify_time=now
            )
            session.execute(
                stmt.on_conflict_do_update(index_elements=["server_instance"], set_={"modify_time": now})
            )

    async def start(self) -> str:
        """Register this instance and start the periodic heartbeat (idempotent)."""
        if self.started:
            return self.instance_id
        await asyncio.to_thread(self.heartbeat)
        self._task = asyncio.create_task(self._heartbeat_loop(), name=f"heartbeat-{self.instance_id}")
        self.started = True
        logger.info("Server instance registered: %s", self.instance_id)
        return self.instance_id

    async def stop(self) -> None:
        """Stop heart-beating and remove this instance's heartbeat and lock rows."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if not self.started:
            return
        try:
            await asyncio.to_thread(self._delete_rows)
        except SQLAlchemyError:
            logger.exception("Failed to clean up server instance %s", self.instance_id)
        self.started = False

    def _delete_rows(self) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(
                delete(ProcessStatusRecord).where(ProcessStatusRecord.server_instance == self.instance_id)
            )
            session.execute(
                delete(ServerInstanceRecord).where(ServerInstanceRecord.server_instance == self.instance_id)
            )

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await asyncio.to_thread(self.heartbeat)
            except SQLAlchemyError:
                logger.exception("Heartbeat failed for %s", self.instance_id)


class ProcessLockService:
    """Distributed named lock backed by the row store's primary-key constraint."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        server_instances: ServerInstanceRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._server_instances = server_instances

    async def try_acquire(self, process_name: str) -> LockResult:
        """Attempt to take *process_name*; never blocks or waits for the holder."""
        instance_id = await self._server_instances.start()
        try:
            inserted = await asyncio.to_thread(self._insert_lock, process_name, instance_id)
        except SQLAlchemyError as exc:
            raise ProcessLockError(f"Failed to acquire process lock ({process_name}): {exc}") from exc

        if not inserted:
            logger.info("Process lock %r already held", process_name)
            return LockConflict(process_name=process_name)
        logger.info("Process lock %r acquired by %s", process_name, instance_id)
        return LockAcquired(token=LockToken(process_name=process_name, server_instance=instance_id))

    def _insert_lock(self, process_name: str, instance_id: str) -> int:
        with self._session_factory() as session, session.begin():
            stmt = (
                dialect_insert(session, ProcessStatusRecord)
                .values(
                    process_name=process_name,
                    server_instance=instance_id,
                    status="running",
                    modify_time=utcnow(),
                )
                .on_conflict_do_nothing(index_elements=["process_name"])
            )
            return session.execute(stmt).rowcount

    def release(self, token: LockToken) -> None:
        """Delete the lock row if (and only if) *token*'s instance still owns it."""
        try:
            with self._session_factory() as session, session.begin():
                session.execute(
                    delete(ProcessStatusRecord).where(
                        ProcessStatusRecord.process_name == token.process_name,
                        ProcessStatusRecord.server_instance == token.server_instance,
                    )
                )
        except SQLAlchemyError as exc:
            raise ProcessLockError(f"Failed to release process lock ({token.process_name}): {exc}") from exc
        logger.info("Process lock %r released by %s", token.process_name, token.server_instance)

    def is_running(self, process_name: str) -> bool:
        with self._session_factory() as session:
            return session.get(ProcessStatusRecord, process_name) is not None

    def stale_locks(self, max_age: timedelta) -> list[str]:
        """Names of held locks whose owner has not heart-beaten within *max_age*.

        Identification only — callers decide whether to clear them.
        """
        cutoff = utcnow() - max_age
        stale: list[str] = []
        with self._session_factory() as session:
            rows = session.execute(
                select(ProcessStatusRecord.process_name, ServerInstanceRecord.modify_time)
                .outerjoin(
                    ServerInstanceRecord,
                    ServerInstanceRecord.server_instance == ProcessStatusRecord.server_instance,
                )
                .order_by(ProcessStatusRecord.process_name)
            ).all()
        for process_name, last_seen in rows:
            if last_seen is None or _as_utc(last_seen) < cutoff:
                stale.append(process_name)
        return stale
