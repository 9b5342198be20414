"""Health data source backed by the ingestion pipeline's InfluxDB bucket."""

from collections.abc import Iterator
from datetime import UTC, datetime

import structlog
from influxdb_client.client.flux_table import TableList
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from ..config import InfluxDBSettings
from ..models import MetricKey
from .base import HealthDataSource, RawSample, SampleQuery, SortOrder

logger = structlog.get_logger(__name__)

# Metric -> (measurement, field, unit as stored). Distance keeps the export unit
# (km). Walking heart rate is written into heart.bpm with no distinguishing tag,
# so it cannot be read back separately and is left unsupported.
METRIC_FIELDS: dict[MetricKey, tuple[str, str, str]] = {
    MetricKey.WEIGHT: ("body", "weight_kg", "kg"),
    MetricKey.STEPS: ("activity", "steps", "count"),
    MetricKey.ACTIVE_ENERGY: ("activity", "active_calories", "kcal"),
    MetricKey.HEART_RATE: ("heart", "bpm", "count/min"),
    MetricKey.RESTING_HEART_RATE: ("heart", "resting_bpm", "count/min"),
    MetricKey.VO2_MAX: ("vitals", "vo2max", "mL/(kg·min)"),
    MetricKey.FLIGHTS_CLIMBED: ("activity", "floors_climbed", "count"),
    MetricKey.DISTANCE: ("activity", "distance_m", "km"),
}


def _flux_time(value: datetime) -> str:
    """Format a datetime as an RFC 3339 Flux time literal."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_flux_query(bucket: str, query: SampleQuery) -> str:
    """Build a Flux query for one metric's raw samples."""
    measurement, field, _ = METRIC_FIELDS[query.metric]
    start = _flux_time(query.start) if query.start else "0"
    stop = f", stop: {_flux_time(query.end)}" if query.end else ""
    desc = "true" if query.order == SortOrder.NEWEST_FIRST else "false"

    parts = [
        f'from(bucket: "{bucket}")',
        f"  |> range(start: {start}{stop})",
        f'  |> filter(fn: (r) => r._measurement == "{measurement}")',
        f'  |> filter(fn: (r) => r._field == "{field}")',
        "  |> group()",
        f'  |> sort(columns: ["_time"], desc: {desc})',
        f"  |> limit(n: {query.limit})",
    ]
    return "\n".join(parts)


def _iter_samples(tables: TableList, unit: str) -> Iterator[RawSample]:
    for table in tables:
        for record in table.records:
            value = record.get_value()
            end_date = record.get_time()
            if value is None or end_date is None:
                continue
            yield RawSample(value=float(value), unit=unit, end_date=end_date)


class InfluxHealthSource(HealthDataSource):
    """Queries health samples written by the ingestion service."""

    name = "influxdb"

    def __init__(self, settings: InfluxDBSettings) -> None:
        self._settings = settings

    def _make_client(self) -> InfluxDBClientAsync:
        return InfluxDBClientAsync(
            url=self._settings.url,
            token=self._settings.token,
            org=self._settings.org,
        )

    async def request_authorization(self) -> bool:
        """Grant access when a token is configured and the server answers."""
        if not self._settings.token:
            logger.warning("influxdb_no_token")
            return False

        client = self._make_client()
        try:
            reachable = await client.ping()
        finally:
            await client.close()

        if not reachable:
            logger.warning("influxdb_unreachable", url=self._settings.url)
        return reachable

    def supports(self, metric: MetricKey) -> bool:
        return metric in METRIC_FIELDS

    async def query_samples(self, query: SampleQuery) -> Iterator[RawSample]:
        """Query one metric; records are materialized by the client, iterated lazily."""
        _, _, unit = METRIC_FIELDS[query.metric]
        flux_query = build_flux_query(self._settings.bucket, query)

        client = self._make_client()
        try:
            tables = await client.query_api().query(flux_query)
        finally:
            await client.close()

        return _iter_samples(tables, unit)
