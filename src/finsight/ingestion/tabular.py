"""CSV → tabular store loader for monthly CPI observations.

Source CSVs come in two column-naming conventions (SDMX exports and the
older OECD layout).  :func:`resolve_columns` maps whichever header is
present onto the four required fields once per file, so row parsing never
probes string keys ad hoc.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from finsight.ingestion.extract import ensure_exists
from finsight.ingestion.sources import DataFileConfig, DataSourceConfig
from finsight.storage.cpi_store import CpiStore
from finsight.storage.models import CpiObservation, FileTarget, LoadStatus, Progress
from finsight.storage.status_store import FileStatusRegistry

logger = logging.getLogger(__name__)

# Candidate headers per field, canonical first, legacy alias second.
AREA_CODE_COLUMNS = ("REF_AREA", "LOCATION")
AREA_NAME_COLUMNS = ("Reference area", "Country")
TIME_PERIOD_COLUMNS = ("TIME_PERIOD", "Time")
VALUE_COLUMNS = ("OBS_VALUE", "Value")

_YEAR_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")


class CsvParseError(ValueError):
    """The CSV contained malformed lines."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"CSV parse errors: {', '.join(self.errors)}")


@dataclass(frozen=True)
class ColumnMap:
    """Headers present in a file for each required field, in priority order."""

    area_code: tuple[str, ...]
    area_name: tuple[str, ...]
    time_period: tuple[str, ...]
    value: tuple[str, ...]

    @property
    def missing_fields(self) -> list[str]:
        return [name for name in ("area_code", "time_period", "value") if not getattr(self, name)]


@dataclass(frozen=True)
class RowError:
    row_number: int
    reason: str


def resolve_columns(header: Iterable[str]) -> ColumnMap:
    """Pick the columns of *header* that feed each field.

    The area name falls back to the area code columns, so a file without
    any name column still yields rows.
    """
    present = {str(h).strip() for h in header}

    def pick(candidates: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(c for c in candidates if c in present)

    area_code = pick(AREA_CODE_COLUMNS)
    return ColumnMap(
        area_code=area_code,
        area_name=pick(AREA_NAME_COLUMNS) + area_code,
        time_period=pick(TIME_PERIOD_COLUMNS),
        value=pick(VALUE_COLUMNS),
    )


def normalize_period(value: str) -> str:
    """``YYYY-MM`` → first day of that month; any other form passes through."""
    if _YEAR_MONTH_RE.match(value):
        return f"{value}-01"
    return value


def _text(value: Any) -> str | None:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _first(record: dict[str, Any], columns: tuple[str, ...]) -> Any:
    for column in columns:
        value = record.get(column)
        if _text(value) is not None:
            return value
    return None


def parse_row(record: dict[str, Any], columns: ColumnMap, row_number: int = 0) -> CpiObservation | RowError:
    """Turn one CSV record into an observation, or say why it was dropped."""
    area_code = _text(_first(record, columns.area_code))
    area_name = _text(_first(record, columns.area_name))
    period = _text(_first(record, columns.time_period))
    raw_value = _first(record, columns.value)

    if not (area_code and area_name and period) or raw_value is None:
        return RowError(row_number, "missing required field")
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return RowError(row_number, f"non-numeric value {raw_value!r}")
    if pd.isna(value):
        return RowError(row_number, "missing required field")

    return CpiObservation(
        ref_area_code=area_code,
        ref_area_name=area_name,
        time_period=normalize_period(period),
        inflation_pct=value,
    )


def deduplicate(rows: Iterable[CpiObservation]) -> list[CpiObservation]:
    """Keep the last row per ``(area code, period)``; key order is first-seen."""
    unique: dict[tuple[str, str], CpiObservation] = {}
    for row in rows:
        unique[row.key] = row
    return list(unique.values())


def read_csv_records(path: str | Path) -> tuple[list[str], list[dict[str, Any]]]:
    """Parse *path* with a header row and type coercion.

    Returns the header and one dict per data row.  Malformed lines are
    collected and reported together as a :class:`CsvParseError`.
    """
    bad_lines: list[str] = []

    def on_bad_line(fields: list[str]) -> None:
        bad_lines.append(f"malformed line {fields!r}")
        return None

    try:
        frame = pd.read_csv(
            ensure_exists(path),
            skip_blank_lines=True,
            skipinitialspace=True,
            on_bad_lines=on_bad_line,
            engine="python",
        )
    except pd.errors.EmptyDataError:
        return [], []
    except pd.errors.ParserError as exc:
        raise CsvParseError([str(exc)]) from exc

    if bad_lines:
        raise CsvParseError(bad_lines)
    frame.columns = [str(c).strip() for c in frame.columns]
    return list(frame.columns), frame.to_dict(orient="records")


def parse_observations(path: str | Path) -> tuple[list[CpiObservation], int]:
    """Parse *path* into observations; also return the number of data rows read."""
    header, records = read_csv_records(path)
    columns = resolve_columns(header)
    if records and columns.missing_fields:
        logger.warning("%s has no column for %s", path, columns.missing_fields)

    rows: list[CpiObservation] = []
    dropped = 0
    for i, record in enumerate(records, 1):
        parsed = parse_row(record, columns, i)
        if isinstance(parsed, RowError):
            dropped += 1
            logger.debug("Dropping row %d of %s: %s", parsed.row_number, path, parsed.reason)
            continue
        rows.append(parsed)
    if dropped:
        logger.info("Dropped %d incomplete row(s) from %s", dropped, path)
    return rows, len(records)


class TabularFileLoader:
    """Load one CSV file into the CPI table.

    The whole file is one progress unit: ``Loading 0/1`` then ``Loading 1/1``.
    """

    def __init__(self, cpi_store: CpiStore, registry: FileStatusRegistry) -> None:
        self.cpi_store = cpi_store
        self.registry = registry

    async def load(self, source: DataSourceConfig, file: DataFileConfig, path: Path) -> int:
        """Parse, deduplicate and upsert *file*; return the number of unique rows."""
        logger.info("Loading table file: %s", path)
        await asyncio.to_thread(
            self.registry.report_progress, source.id, file.name, FileTarget.TABULAR, Progress(0, 1)
        )

        rows, _ = await asyncio.to_thread(parse_observations, path)
        unique_rows = deduplicate(rows)
        await asyncio.to_thread(self.cpi_store.upsert, unique_rows)

        await asyncio.to_thread(
            self.registry.report_progress, source.id, file.name, FileTarget.TABULAR, Progress(1, 1)
        )
        await asyncio.to_thread(
            self.registry.upsert_status,
            source.id,
            file.name,
            FileTarget.TABULAR,
            LoadStatus.LOADED,
            f"Loaded {len(unique_rows)} unique rows ({len(rows)} total)",
        )
        return len(unique_rows)
