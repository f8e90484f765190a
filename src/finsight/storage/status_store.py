"""File status registry — durable per-file load state.

One row per ``(source_id, file_name, target)``.  Writes are idempotent
upserts with last-write-wins semantics; readers (status polling, the
loader's ``missing_only`` check) always see whatever was last committed,
so a client polling during a load observes incremental progress.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from finsight.storage.db import dialect_insert
from finsight.storage.models import FileStatus, FileTarget, LoadStatus, Progress
from finsight.storage.orm import FileStatusRecord, utcnow

logger = logging.getLogger(__name__)

RESET_MESSAGE = "Reset for reload"
INTERRUPTED_MESSAGE = "Reset after interrupted load"


def _to_model(record: FileStatusRecord) -> FileStatus:
    return FileStatus(
        source_id=record.data_source_id,
        file_name=record.file_name,
        target=record.target,
        status=record.status,
        message=record.message,
        url=record.url,
        updated_at=record.updated_at,
    )


class FileStatusRegistry:
    """Read / write access to the ``t_file`` table.

    Parameters
    ----------
    session_factory:
        A SQLAlchemy :class:`sessionmaker`; each call runs in its own
        short transaction.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get_status(
        self,
        source_id: str,
        file_name: str,
        target: FileTarget | str,
    ) -> FileStatus | None:
        with self._session_factory() as session:
            record = session.get(FileStatusRecord, (source_id, file_name, FileTarget(target).value))
            return _to_model(record) if record is not None else None

    def upsert_status(
        self,
        source_id: str,
        file_name: str,
        target: FileTarget | str,
        status: LoadStatus | str,
        message: str | None = None,
        url: str | None = None,
    ) -> None:
        """Insert or overwrite the row for ``(source_id, file_name, target)``.

        ``status``, ``message`` and ``updated_at`` are always overwritten.
        ``url`` is only written when supplied, so progress updates keep the
        URL recorded at initialisation.
        """
        values = {
            "data_source_id": source_id,
            "file_name": file_name,
            "target": FileTarget(target).value,
            "status": LoadStatus(status).value,
            "message": message,
            "updated_at": utcnow(),
        }
        set_ = {"status": values["status"], "message": message, "updated_at": values["updated_at"]}
        if url:
            values["url"] = url
            set_["url"] = url

        with self._session_factory() as session, session.begin():
            stmt = dialect_insert(session, FileStatusRecord).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["data_source_id", "file_name", "target"],
                set_=set_,
            )
            session.execute(stmt)

    def report_progress(
        self,
        source_id: str,
        file_name: str,
        target: FileTarget | str,
        progress: Progress,
    ) -> None:
        """Mark the row ``loading`` with the rendered progress string."""
        self.upsert_status(source_id, file_name, target, LoadStatus.LOADING, progress.render())

    def list_statuses(self) -> list[FileStatus]:
        """Return every row ordered by source, file, then target."""
        with self._session_factory() as session:
            records = session.scalars(
                select(FileStatusRecord).order_by(
                    FileStatusRecord.data_source_id,
                    FileStatusRecord.file_name,
                    FileStatusRecord.target,
                )
            ).all()
            return [_to_model(r) for r in records]

    def reset_statuses(self, targets: Iterable[FileTarget | str]) -> int:
        """Set every row whose target is in *targets* back to ``not_loaded``."""
        target_values = sorted({FileTarget(t).value for t in targets})
        if not target_values:
            return 0
        with self._session_factory() as session, session.begin():
            result = session.execute(
                update(FileStatusRecord)
                .where(FileStatusRecord.target.in_(target_values))
                .values(status=LoadStatus.NOT_LOADED.value, message=RESET_MESSAGE, updated_at=utcnow())
            )
        logger.info("Reset %d status row(s) for targets %s", result.rowcount, target_values)
        return result.rowcount

    def reset_loading(self) -> int:
        """Release rows left in ``loading`` by a timed-out or crashed job."""
        with self._session_factory() as session, session.begin():
            result = session.execute(
                update(FileStatusRecord)
                .where(FileStatusRecord.status == LoadStatus.LOADING.value)
                .values(status=LoadStatus.NOT_LOADED.value, message=INTERRUPTED_MESSAGE, updated_at=utcnow())
            )
        if result.rowcount:
            logger.warning("Reset %d stale 'loading' status row(s)", result.rowcount)
        return result.rowcount
