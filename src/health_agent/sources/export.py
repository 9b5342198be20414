"""Health data source backed by a Health Auto Export JSON file."""

import asyncio
import json
import re
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..models import MetricKey
from ..types import JSONObject
from .base import HealthDataSource, RawSample, SampleQuery, SortOrder

logger = structlog.get_logger(__name__)

# Export metric names per tracked metric
EXPORT_METRIC_NAMES: dict[MetricKey, tuple[str, ...]] = {
    MetricKey.WEIGHT: ("weight_body_mass", "body_mass", "bodyMass", "weight"),
    MetricKey.STEPS: ("step_count", "stepCount", "steps"),
    MetricKey.ACTIVE_ENERGY: (
        "active_energy",
        "activeEnergy",
        "active_energy_burned",
        "activeEnergyBurned",
    ),
    MetricKey.HEART_RATE: ("heart_rate", "heartRate"),
    MetricKey.RESTING_HEART_RATE: ("resting_heart_rate", "restingHeartRate"),
    MetricKey.WALKING_HEART_RATE: (
        "walking_heart_rate_average",
        "walkingHeartRateAverage",
    ),
    MetricKey.VO2_MAX: ("vo2_max", "vo2max", "vo2Max"),
    MetricKey.FLIGHTS_CLIMBED: ("flights_climbed", "flightsClimbed"),
    MetricKey.DISTANCE: (
        "walking_running_distance",
        "walkingRunningDistance",
        "distance_walking_running",
        "distanceWalkingRunning",
    ),
}

_NAME_LOOKUP: dict[str, MetricKey] = {
    name.lower(): metric for metric, names in EXPORT_METRIC_NAMES.items() for name in names
}

# "2022-06-12 23:59:00 +0400" -> "2022-06-12T23:59:00+04:00"
_DATE_SPACE_TZ_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\s(\d{2}:\d{2}:\d{2})\s([+-])(\d{2})(\d{2})$")


def _normalize_date(value: Any) -> Any:
    """Normalize date strings from Health Auto Export format to ISO 8601."""
    if not isinstance(value, str):
        return value
    m = _DATE_SPACE_TZ_RE.match(value)
    if m:
        return f"{m[1]}T{m[2]}{m[3]}{m[4]}:{m[5]}"
    return value


class ExportedMetric(BaseModel):
    """Single data point from a Health Auto Export payload."""

    name: str = Field(description="Metric name/type")
    date: datetime = Field(description="Timestamp of the measurement")
    qty: float | None = Field(default=None, description="Quantity value")
    avg: float | None = Field(default=None, description="Average value")
    units: str | None = Field(default=None, description="Unit of measurement")

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _normalize_date(v)

    @property
    def value(self) -> float | None:
        """Quantity, falling back to the average for min/avg/max metrics."""
        return self.qty if self.qty is not None else self.avg


def flatten_export(data: JSONObject) -> list[JSONObject]:
    """Flatten an export payload into individual data point dicts.

    Handles two formats from Health Auto Export:

    REST API format (nested metrics, current):
        {"data": {"metrics": [{"name": "heart_rate", "units": "bpm",
                               "data": [{"date": "...", "qty": 72}]}]}}

    Flat list format (legacy):
        {"data": [{"name": "heart_rate", "date": "...", "qty": 72}]}
    """
    inner = data.get("data")

    if isinstance(inner, dict) and "metrics" in inner:
        items: list[JSONObject] = []
        for metric in inner["metrics"]:
            if not isinstance(metric, dict):
                continue
            name = metric.get("name", "")
            units = metric.get("units", "")
            for point in metric.get("data", []):
                if isinstance(point, dict):
                    item = {**point, "name": name}
                    if units:
                        item.setdefault("units", units)
                    items.append(item)
        return items

    if isinstance(inner, list):
        return [item for item in inner if isinstance(item, dict)]

    return []


def parse_export(data: JSONObject) -> dict[MetricKey, list[RawSample]]:
    """Group the tracked metrics of an export payload into raw samples.

    Untracked metric names are ignored; malformed points are logged and skipped.
    """
    samples: dict[MetricKey, list[RawSample]] = {}
    for item in flatten_export(data):
        metric = _NAME_LOOKUP.get(str(item.get("name", "")).lower())
        if metric is None:
            continue
        try:
            point = ExportedMetric.model_validate(item)
        except ValidationError as e:
            logger.warning(
                "export_point_invalid",
                metric=metric.value,
                error=str(e),
                metric_date=str(item.get("date", "unknown")),
            )
            continue
        if point.value is None:
            continue
        end_date = point.date if point.date.tzinfo else point.date.replace(tzinfo=UTC)
        samples.setdefault(metric, []).append(
            RawSample(value=point.value, unit=point.units or "", end_date=end_date)
        )
    return samples


class ExportFileSource(HealthDataSource):
    """Reads samples from a Health Auto Export JSON file.

    Authorization loads and parses the file; only metrics present in the
    export are supported. The file is read again before an aggregation when
    its modification time has changed.
    """

    name = "export"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._samples: dict[MetricKey, list[RawSample]] | None = None
        self._mtime_ns: int | None = None

    def _load(self) -> tuple[int, dict[MetricKey, list[RawSample]]]:
        mtime_ns = self._path.stat().st_mtime_ns
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("Export root must be a JSON object")
        return mtime_ns, parse_export(data)

    async def request_authorization(self) -> bool:
        """Grant access when the export file can be read and parsed."""
        try:
            self._mtime_ns, self._samples = await asyncio.to_thread(self._load)
        except (OSError, ValueError) as e:
            logger.warning("export_unreadable", path=str(self._path), error=str(e))
            self._samples = None
            return False

        logger.info(
            "export_loaded",
            path=str(self._path),
            metrics=sorted(metric.value for metric in self._samples),
        )
        return True

    async def refresh(self) -> None:
        """Reload the export if the file changed; keep the last snapshot on failure."""
        if self._samples is None:
            return
        try:
            stat = await asyncio.to_thread(self._path.stat)
            if stat.st_mtime_ns == self._mtime_ns:
                return
            self._mtime_ns, self._samples = await asyncio.to_thread(self._load)
        except (OSError, ValueError) as e:
            logger.warning("export_reload_failed", path=str(self._path), error=str(e))
            return

        logger.info(
            "export_reloaded",
            path=str(self._path),
            metrics=sorted(metric.value for metric in self._samples),
        )

    def supports(self, metric: MetricKey) -> bool:
        return self._samples is not None and metric in self._samples

    async def query_samples(self, query: SampleQuery) -> Iterator[RawSample]:
        """Filter, order and cap the loaded samples for one metric."""
        loaded = (self._samples or {}).get(query.metric, [])
        matching = [
            sample
            for sample in loaded
            if (query.start is None or sample.end_date >= query.start)
            and (query.end is None or sample.end_date <= query.end)
        ]
        matching.sort(
            key=lambda sample: sample.end_date,
            reverse=query.order == SortOrder.NEWEST_FIRST,
        )
        return iter(matching[: query.limit])
