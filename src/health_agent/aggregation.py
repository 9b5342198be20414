"""Concurrent fan-out/fan-in aggregation of all tracked metrics."""

import asyncio
import time
from datetime import UTC, date, datetime

import structlog
from opentelemetry import trace

from .config import AggregationSettings
from .executor import MetricQueryExecutor, MetricQueryResult
from .metrics import AGGREGATION_DURATION, AGGREGATION_RUNS
from .models import DailyCalorieEntry, HealthSummaryDocument, MetricKey
from .sources.base import HealthDataSource

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def build_daily_calories(
    sums: dict[date, float], day_format: str = "%x"
) -> tuple[DailyCalorieEntry, ...]:
    """Turn per-day calorie sums into chronologically ordered entries."""
    return tuple(
        DailyCalorieEntry(date=day.strftime(day_format), calories=calories)
        for day, calories in sorted(sums.items())
    )


class HealthAggregator:
    """Collects every tracked metric concurrently into one summary document.

    One executor runs per metric; each fills only its own result slot, and
    the slots are merged after all of them have completed.
    """

    def __init__(
        self,
        source: HealthDataSource,
        settings: AggregationSettings | None = None,
        metrics: tuple[MetricKey, ...] = tuple(MetricKey),
    ) -> None:
        self._source = source
        self._settings = settings or AggregationSettings()
        self._executors = [
            MetricQueryExecutor(
                source,
                metric,
                sample_limit=self._settings.sample_limit,
                window_months=self._settings.window_months,
            )
            for metric in metrics
        ]
        self._completed = 0

    @property
    def expected(self) -> int:
        """Number of executors launched per run."""
        return len(self._executors)

    @property
    def completed(self) -> int:
        """Executors finished in the current or last run."""
        return self._completed

    async def _run_executor(
        self, executor: MetricQueryExecutor, now: datetime
    ) -> MetricQueryResult:
        try:
            return await executor.run(now)
        finally:
            self._completed += 1

    async def collect(self, now: datetime | None = None) -> HealthSummaryDocument:
        """Run all metric queries and join them into a summary document.

        Args:
            now: End of the trailing window shared by every query.

        Returns:
            Freshly built document; metrics without data have empty series.
        """
        now = now or datetime.now(UTC)
        self._completed = 0
        started = time.monotonic()

        with tracer.start_as_current_span("health_summary.collect") as span:
            span.set_attribute("metrics.count", self.expected)
            await self._source.refresh()
            results = await asyncio.gather(
                *(self._run_executor(executor, now) for executor in self._executors)
            )

            calorie_sums: dict[date, float] = {}
            for result in results:
                for day, calories in result.daily_calories.items():
                    calorie_sums[day] = calorie_sums.get(day, 0.0) + calories

            document = HealthSummaryDocument(
                series={result.metric: result.series for result in results},
                daily_calories=build_daily_calories(calorie_sums, self._settings.day_format),
            )
            span.set_attribute("samples.count", document.sample_count)

        duration = time.monotonic() - started
        AGGREGATION_RUNS.inc()
        AGGREGATION_DURATION.observe(duration)
        logger.info(
            "health_summary_collected",
            metrics=self.expected,
            samples=document.sample_count,
            calorie_days=len(document.daily_calories),
            duration_ms=round(duration * 1000, 1),
        )
        return document
