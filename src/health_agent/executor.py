"""Per-metric sample query execution."""

import calendar
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

import structlog

from .metrics import SAMPLES_COLLECTED, SAMPLES_DROPPED, SOURCE_QUERY_ERRORS
from .models import MetricKey, MetricSeries, Sample
from .normalizer import converter_for, normalize_sample
from .sources.base import HealthDataSource, RawSample, SampleQuery, SortOrder

logger = structlog.get_logger(__name__)

DEFAULT_SAMPLE_LIMIT = 550
DEFAULT_WINDOW_MONTHS = 18


def months_before(moment: datetime, months: int) -> datetime:
    """Shift a datetime back by calendar months, clamping the day of month."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def local_day(moment: datetime) -> date:
    """Calendar day of a datetime in the local timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone().date()


@dataclass
class MetricQueryResult:
    """Outcome of one metric query.

    ``daily_calories`` is only filled for the active-energy metric.
    """

    metric: MetricKey
    series: MetricSeries
    daily_calories: dict[date, float] = field(default_factory=dict)
    dropped: int = 0


class MetricQueryExecutor:
    """Runs the windowed sample query for one metric.

    A query never fails: unsupported metrics and source errors both
    degrade to an empty series.
    """

    def __init__(
        self,
        source: HealthDataSource,
        metric: MetricKey,
        sample_limit: int = DEFAULT_SAMPLE_LIMIT,
        window_months: int = DEFAULT_WINDOW_MONTHS,
    ) -> None:
        self._source = source
        self._metric = metric
        self._sample_limit = sample_limit
        self._window_months = window_months
        self._convert = converter_for(metric)

    @property
    def metric(self) -> MetricKey:
        return self._metric

    async def run(self, now: datetime | None = None) -> MetricQueryResult:
        """Query, normalize and order the metric's samples.

        Args:
            now: End of the trailing window. Defaults to the current time.

        Returns:
            Newest-first series plus per-day calorie sums for active energy.
        """
        result = MetricQueryResult(metric=self._metric, series=MetricSeries.empty(self._metric))

        if not self._source.supports(self._metric):
            logger.info("metric_unsupported", metric=self._metric.value, source=self._source.name)
            return result

        end = now or datetime.now(UTC)
        query = SampleQuery(
            metric=self._metric,
            limit=self._sample_limit,
            start=months_before(end, self._window_months),
            end=end,
            order=SortOrder.NEWEST_FIRST,
        )

        try:
            raw_samples = list(await self._source.query_samples(query))
        except Exception as e:
            logger.warning(
                "metric_query_failed",
                metric=self._metric.value,
                source=self._source.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            SOURCE_QUERY_ERRORS.labels(metric=self._metric.value).inc()
            return result

        raw_samples.sort(key=lambda raw: raw.end_date, reverse=True)
        samples: list[Sample] = []
        for raw in raw_samples[: self._sample_limit]:
            sample = normalize_sample(raw, self._convert)
            if sample is None:
                result.dropped += 1
                continue
            samples.append(sample)
            if self._metric == MetricKey.ACTIVE_ENERGY:
                day = local_day(raw.end_date)
                result.daily_calories[day] = result.daily_calories.get(day, 0.0) + sample.value

        result.series = MetricSeries(metric=self._metric, samples=tuple(samples))
        SAMPLES_COLLECTED.labels(metric=self._metric.value).inc(len(samples))
        if result.dropped:
            SAMPLES_DROPPED.labels(metric=self._metric.value).inc(result.dropped)

        logger.debug(
            "metric_query_complete",
            metric=self._metric.value,
            samples=len(samples),
            dropped=result.dropped,
        )
        return result

    async def read_latest(self) -> Sample | None:
        """Read the single newest valid sample, ignoring the window."""
        if not self._source.supports(self._metric):
            return None

        query = SampleQuery(metric=self._metric, limit=1, order=SortOrder.NEWEST_FIRST)
        raw_samples: list[RawSample] = list(await self._source.query_samples(query))
        if not raw_samples:
            return None
        return normalize_sample(raw_samples[0], self._convert)
