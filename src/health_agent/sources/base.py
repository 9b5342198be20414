"""Health data source interface and common query models."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..models import MetricKey


class SortOrder(str, Enum):
    """Sample ordering by end date."""

    NEWEST_FIRST = "newest_first"
    OLDEST_FIRST = "oldest_first"


@dataclass(frozen=True)
class RawSample:
    """Measurement as reported by a data source, in its native unit."""

    value: float
    unit: str
    end_date: datetime


@dataclass(frozen=True)
class SampleQuery:
    """Time-bounded sample query for one metric.

    A missing start or end leaves that side of the window open.
    """

    metric: MetricKey
    limit: int
    start: datetime | None = None
    end: datetime | None = None
    order: SortOrder = SortOrder.NEWEST_FIRST


class HealthDataSource(ABC):
    """Provider of raw health samples."""

    name: str

    @abstractmethod
    async def request_authorization(self) -> bool:
        """Ask for read access to the source.

        Returns:
            True if access was granted, False if it was denied.
        """
        pass

    async def refresh(self) -> None:
        """Pick up data changed since the last aggregation.

        Called before every aggregation run. Must not raise.
        """
        pass

    @abstractmethod
    def supports(self, metric: MetricKey) -> bool:
        """Check if the source can provide samples for a metric."""
        pass

    @abstractmethod
    async def query_samples(self, query: SampleQuery) -> Iterator[RawSample]:
        """Run a sample query.

        Args:
            query: Metric, window, limit and ordering to apply.

        Returns:
            Lazy iterator over matching samples.
        """
        pass
