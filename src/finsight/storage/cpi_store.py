"""Tabular store for monthly CPI inflation observations."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from finsight.storage.db import dialect_insert
from finsight.storage.models import CpiObservation, CpiSummary
from finsight.storage.orm import CpiMonthlyRecord

logger = logging.getLogger(__name__)

# Keeps a single statement under SQLite's bound-parameter limit.
_UPSERT_BATCH_SIZE = 500


def _period_range(year: str | None, month: str | None) -> tuple[str, str] | None:
    if not year:
        return None
    if month:
        mm = str(month).zfill(2)
        return f"{year}-{mm}-01", f"{year}-{mm}-31"
    return f"{year}-01-01", f"{year}-12-31"


class CpiStore:
    """Upsert / query access to ``t_cpi_monthly``.

    ``(ref_area_code, time_period)`` is unique; re-ingesting an observation
    for the same area and month overwrites the stored value.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def upsert(self, rows: Sequence[CpiObservation]) -> int:
        """Insert *rows*, updating name and value on key conflict.

        *rows* must not repeat a key; callers deduplicate first.
        """
        if not rows:
            return 0
        with self._session_factory() as session, session.begin():
            for start in range(0, len(rows), _UPSERT_BATCH_SIZE):
                batch = rows[start : start + _UPSERT_BATCH_SIZE]
                stmt = dialect_insert(session, CpiMonthlyRecord).values(
                    [row.model_dump() for row in batch]
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["ref_area_code", "time_period"],
                    set_={
                        "ref_area_name": stmt.excluded.ref_area_name,
                        "inflation_pct": stmt.excluded.inflation_pct,
                    },
                )
                session.execute(stmt)
        logger.info("Upserted %d CPI row(s)", len(rows))
        return len(rows)

    def query(
        self,
        area_code: str,
        year: str | None = None,
        month: str | None = None,
    ) -> list[CpiObservation]:
        """Return observations for *area_code*, optionally limited to a year or month."""
        stmt = select(CpiMonthlyRecord).where(CpiMonthlyRecord.ref_area_code == area_code.upper())
        period = _period_range(year, month)
        if period is not None:
            start, end = period
            stmt = stmt.where(CpiMonthlyRecord.time_period.between(start, end))
        stmt = stmt.order_by(CpiMonthlyRecord.time_period)

        with self._session_factory() as session:
            return [
                CpiObservation(
                    ref_area_code=r.ref_area_code,
                    ref_area_name=r.ref_area_name,
                    time_period=r.time_period,
                    inflation_pct=r.inflation_pct,
                )
                for r in session.scalars(stmt).all()
            ]

    def average(
        self,
        area_code: str,
        year: str | None = None,
        month: str | None = None,
    ) -> CpiSummary | None:
        """Mean inflation over the matching observations, or ``None`` when none match."""
        rows = self.query(area_code, year, month)
        if not rows:
            return None
        return CpiSummary(
            ref_area_code=rows[0].ref_area_code,
            ref_area_name=rows[0].ref_area_name,
            inflation_pct=sum(r.inflation_pct for r in rows) / len(rows),
            observations=len(rows),
        )

    def count(self) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(CpiMonthlyRecord)) or 0

    def clear(self) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(delete(CpiMonthlyRecord))
        logger.info("Cleared CPI table")
