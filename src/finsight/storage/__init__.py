"""
Storage — relational row store behind the ingestion pipeline.

Holds the per-file load status table, the monthly CPI table queried by the
agent's ``get_cpi`` tool, and the process-lock / server-heartbeat tables
used for cross-instance coordination.  Everything is plain SQLAlchemy so
SQLite (local, tests) and PostgreSQL (deployment) share one code path.
"""

from finsight.storage.db import create_db_engine, create_session_factory, init_db
from finsight.storage.models import (
    CpiObservation,
    CpiSummary,
    FileStatus,
    FileTarget,
    LoadStatus,
    Progress,
)

__all__ = [
    "CpiObservation",
    "CpiSummary",
    "FileStatus",
    "FileTarget",
    "LoadStatus",
    "Progress",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
