"""Health data sources."""

from pathlib import Path

from ..config import Settings
from .base import HealthDataSource, RawSample, SampleQuery, SortOrder
from .export import ExportFileSource
from .influx import InfluxHealthSource


def create_source(settings: Settings) -> HealthDataSource:
    """Build the data source selected in settings."""
    if settings.source.kind == "export":
        if not settings.source.export_path:
            raise ValueError("SOURCE_EXPORT_PATH is required for the export source")
        return ExportFileSource(Path(settings.source.export_path))
    return InfluxHealthSource(settings.influxdb)


__all__ = [
    "ExportFileSource",
    "HealthDataSource",
    "InfluxHealthSource",
    "RawSample",
    "SampleQuery",
    "SortOrder",
    "create_source",
]
