"""Declared data sources — which files to ingest and where they live."""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from finsight.storage.models import FileTarget


class FileType(str, Enum):
    PDF = "pdf"
    TEXT = "text"
    TABLE = "table"


class DataFileConfig(BaseModel):
    """One file declared under a data source."""

    name: str
    type: FileType
    url: str | None = None
    year: int | None = None

    @property
    def targets(self) -> tuple[FileTarget, ...]:
        """Storage targets this file must reach to count as loaded."""
        if self.type is FileType.TABLE:
            return (FileTarget.TABULAR,)
        return (FileTarget.VECTOR,)


class DataSourceConfig(BaseModel):
    id: str
    name: str
    url: str | None = None
    files: list[DataFileConfig] = Field(default_factory=list)


class DataSourcesConfig(BaseModel):
    """Root of ``data_sources.yaml``.

    Example::

        root_directory: data
        sources:
          - id: imf_weo
            name: IMF World Economic Outlook
            url: https://www.imf.org/en/Publications/WEO
            files:
              - name: weo_oct_2025.pdf
                type: pdf
                year: 2025
          - id: oecd
            name: OECD
            files:
              - name: cpi_monthly.csv
                type: table
    """

    root_directory: Path = Path("data")
    sources: list[DataSourceConfig] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: str | Path) -> DataSourcesConfig:
        """Load the config; a relative ``root_directory`` resolves against the project root.

        The project root is the parent of the directory holding the YAML
        file (``<root>/config/data_sources.yaml``).
        """
        path = Path(path).resolve()
        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        config = cls.model_validate(raw)
        if not config.root_directory.is_absolute():
            config.root_directory = (path.parent.parent / config.root_directory).resolve()
        return config

    def iter_files(self) -> Iterator[tuple[DataSourceConfig, DataFileConfig]]:
        """Yield ``(source, file)`` pairs in declaration order."""
        for source in self.sources:
            for file in source.files:
                yield source, file

    def file_path(self, source: DataSourceConfig, file: DataFileConfig) -> Path:
        return self.root_directory / source.id / file.name
