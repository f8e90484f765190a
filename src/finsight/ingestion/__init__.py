"""
Ingestion — loading declared data sources into the knowledge base.

PDF and text files are chunked, embedded and written to the vector store;
CSV files are parsed into the monthly CPI table.  Every file reports its
progress and outcome through the file status registry, and a single-flight
coordinator keeps two loads from running at once.
"""

from finsight.ingestion.coordinator import (
    IngestionCoordinator,
    LoadCoordinator,
    LoadInProgressError,
    load_coordinator,
)
from finsight.ingestion.service import DataLoaderService, LoadPolicy, LoadStats, LoadTimeoutError
from finsight.ingestion.sources import DataFileConfig, DataSourceConfig, DataSourcesConfig, FileType

__all__ = [
    "DataFileConfig",
    "DataLoaderService",
    "DataSourceConfig",
    "DataSourcesConfig",
    "FileType",
    "IngestionCoordinator",
    "LoadCoordinator",
    "LoadInProgressError",
    "LoadPolicy",
    "LoadStats",
    "LoadTimeoutError",
    "load_coordinator",
]
