"""Domain models for file load status, progress, and tabular observations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class FileTarget(str, Enum):
    """Storage target a declared file is loaded into."""

    VECTOR = "vector"
    TABULAR = "tabular"


class LoadStatus(str, Enum):
    """Load state of one (source, file, target) row.

    The store does not validate transitions; callers drive
    ``not_loaded → loading → loaded | failed`` and may write any state.
    """

    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class FileStatus(BaseModel):
    """Snapshot of one row of the file status registry.

    Attributes
    ----------
    source_id:
        Identifier of the declared data source.
    file_name:
        File name within the source directory.
    target:
        Where the file is loaded (vector corpus or tabular store).
    status:
        Current :class:`LoadStatus`.
    message:
        Human-readable detail.  While loading this is the progress string
        ``Loading <current>/<total>`` (see :class:`Progress`).
    url:
        Public URL of the original document, if declared.
    updated_at:
        Timestamp of the last write.
    """

    source_id: str
    file_name: str
    target: FileTarget
    status: LoadStatus
    message: str | None = None
    url: str | None = None
    updated_at: datetime | None = None

    @property
    def progress(self) -> Progress | None:
        """Parsed progress when the row is loading, else ``None``."""
        if self.status is not LoadStatus.LOADING or not self.message:
            return None
        return Progress.parse(self.message)


_PROGRESS_RE = re.compile(r"^Loading (\d+)/(\d+)$")


@dataclass(frozen=True)
class Progress:
    """Structured progress record, rendered as ``Loading <current>/<total>``.

    Polling clients parse the rendered string, so :meth:`render` output is a
    format contract.
    """

    current: int
    total: int

    def __post_init__(self) -> None:
        if self.current < 0 or self.total <= 0:
            raise ValueError(f"Invalid progress {self.current}/{self.total}")

    def render(self) -> str:
        return f"Loading {self.current}/{self.total}"

    @property
    def percent(self) -> int:
        return max(0, min(100, round(100 * self.current / self.total)))

    @classmethod
    def parse(cls, message: str) -> Progress | None:
        match = _PROGRESS_RE.match(message.strip())
        if match is None:
            return None
        current, total = int(match.group(1)), int(match.group(2))
        if total <= 0:
            return None
        return cls(current=current, total=total)


class CpiObservation(BaseModel):
    """A normalised monthly CPI inflation observation.

    ``(ref_area_code, time_period)`` is the natural key.
    """

    ref_area_code: str
    ref_area_name: str
    time_period: str
    inflation_pct: float

    @property
    def key(self) -> tuple[str, str]:
        return (self.ref_area_code, self.time_period)


class CpiSummary(BaseModel):
    """Mean inflation over the observations matching a CPI query."""

    ref_area_code: str
    ref_area_name: str
    inflation_pct: float
    observations: int
