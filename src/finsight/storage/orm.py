"""SQLAlchemy models for all row-store tables."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class FileStatusRecord(Base):
    """Load status of one declared file for one storage target."""

    __tablename__ = "t_file"

    data_source_id: Mapped[str] = mapped_column(String, primary_key=True)
    file_name: Mapped[str] = mapped_column(String, primary_key=True)
    target: Mapped[str] = mapped_column(String, primary_key=True)  # vector | tabular
    url: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)  # not_loaded | loading | loaded | failed
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class CpiMonthlyRecord(Base):
    """One monthly CPI inflation observation."""

    __tablename__ = "t_cpi_monthly"
    __table_args__ = (
        UniqueConstraint("ref_area_code", "time_period", name="uq_cpi_area_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ref_area_code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    ref_area_name: Mapped[str] = mapped_column(String, nullable=False)
    # ISO ``YYYY-MM-DD`` for normalised periods; other forms are stored verbatim.
    time_period: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    inflation_pct: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ProcessStatusRecord(Base):
    """Cross-instance lock row; the primary key makes acquisition atomic."""

    __tablename__ = "t_process_status"

    process_name: Mapped[str] = mapped_column(String, primary_key=True)
    server_instance: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="running")
    modify_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ServerInstanceRecord(Base):
    """Heartbeat of a running server instance."""

    __tablename__ = "t_server_instance"

    server_instance: Mapped[str] = mapped_column(String, primary_key=True)
    modify_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
