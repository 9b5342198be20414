"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
import sys

import pytest
import structlog

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from health_agent.config import AggregationSettings, CompletionSettings  # noqa: E402
from health_agent.models import MetricKey  # noqa: E402
from health_agent.sources.base import (  # noqa: E402
    HealthDataSource,
    RawSample,
    SampleQuery,
    SortOrder,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _structlog_to_stderr() -> Iterator[None]:
    """Route structlog output to stderr, as ``main()`` does, so stdout stays clean."""
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(file=sys.stderr))
    yield
    structlog.reset_defaults()


class FakeHealthSource(HealthDataSource):
    """In-memory source with per-metric delays and failures."""

    name = "fake"

    def __init__(
        self,
        samples: dict[MetricKey, list[RawSample]] | None = None,
        granted: bool = True,
        unsupported: set[MetricKey] | None = None,
        failing: set[MetricKey] | None = None,
        delays: dict[MetricKey, float] | None = None,
    ) -> None:
        self.samples = samples or {}
        self.granted = granted
        self.unsupported = unsupported or set()
        self.failing = failing or set()
        self.delays = delays or {}
        self.queries: list[SampleQuery] = []
        self.authorization_requests = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.finished = 0
        self.refreshes = 0

    async def refresh(self) -> None:
        self.refreshes += 1

    async def request_authorization(self) -> bool:
        self.authorization_requests += 1
        await asyncio.sleep(0)
        return self.granted

    def supports(self, metric: MetricKey) -> bool:
        return metric not in self.unsupported

    async def query_samples(self, query: SampleQuery) -> Iterator[RawSample]:
        self.queries.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(query.metric, 0))
            if query.metric in self.failing:
                raise ConnectionError(f"{query.metric.value} query failed")
            matching = [
                s
                for s in self.samples.get(query.metric, [])
                if (query.start is None or s.end_date >= query.start)
                and (query.end is None or s.end_date <= query.end)
            ]
            matching.sort(
                key=lambda s: s.end_date, reverse=query.order == SortOrder.NEWEST_FIRST
            )
            return iter(matching[: query.limit])
        finally:
            self.in_flight -= 1
            self.finished += 1


def raw(value: float, when: datetime, unit: str = "") -> RawSample:
    """Shorthand for a raw sample."""
    return RawSample(value=value, unit=unit, end_date=when)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def aggregation_settings() -> AggregationSettings:
    return AggregationSettings(_env_file=None, day_format="%Y-%m-%d")


@pytest.fixture
def completion_settings() -> CompletionSettings:
    return CompletionSettings(
        _env_file=None,
        endpoint_url="https://example.test/openai/deployments/chat/completions",
        api_key="test-key",
    )


@pytest.fixture
def sample_source() -> FakeHealthSource:
    """Source with a little data for several metrics."""
    return FakeHealthSource(
        samples={
            MetricKey.WEIGHT: [
                raw(75.5, datetime(2024, 6, 10, 8, 0, tzinfo=UTC), "kg"),
                raw(166.0, datetime(2024, 6, 12, 8, 0, tzinfo=UTC), "lb"),
            ],
            MetricKey.STEPS: [
                raw(10523, datetime(2024, 6, 14, 23, 0, tzinfo=UTC), "count"),
                raw(0, datetime(2024, 6, 13, 23, 0, tzinfo=UTC), "count"),
            ],
            MetricKey.HEART_RATE: [
                raw(72, datetime(2024, 6, 14, 10, 0, tzinfo=UTC), "count/min"),
                raw(float("nan"), datetime(2024, 6, 14, 11, 0, tzinfo=UTC), "count/min"),
            ],
            MetricKey.VO2_MAX: [
                raw(42.0, datetime(2024, 6, 1, 9, 0, tzinfo=UTC), "mL/(kg·min)"),
            ],
        }
    )


@pytest.fixture
def sample_export_payload() -> dict:
    """Health Auto Export REST API payload."""
    return {
        "data": {
            "metrics": [
                {
                    "name": "weight_body_mass",
                    "units": "kg",
                    "data": [
                        {"date": "2024-06-10 08:00:00 +0000", "qty": 75.5},
                        {"date": "2024-06-12 08:00:00 +0000", "qty": 75.1},
                    ],
                },
                {
                    "name": "heart_rate",
                    "units": "count/min",
                    "data": [
                        {"date": "2024-06-14 10:00:00 +0000", "Min": 60, "avg": 70, "Max": 90},
                    ],
                },
                {
                    "name": "walking_running_distance",
                    "units": "km",
                    "data": [{"date": "2024-06-14 20:00:00 +0000", "qty": 5.2}],
                },
                {
                    "name": "sleep_analysis",
                    "units": "hr",
                    "data": [{"date": "2024-06-14 07:00:00 +0000", "asleep": 7.1}],
                },
            ]
        }
    }
