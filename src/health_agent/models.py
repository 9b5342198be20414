"""Domain models for health summaries and conversations."""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .types import DailyCaloriesPayload, JSONObject, SamplePayload


class MetricKey(str, Enum):
    """Tracked health metrics."""

    WEIGHT = "weight"
    STEPS = "steps"
    ACTIVE_ENERGY = "active-energy"
    HEART_RATE = "heart-rate"
    RESTING_HEART_RATE = "resting-heart-rate"
    WALKING_HEART_RATE = "walking-heart-rate"
    VO2_MAX = "vo2max"
    FLIGHTS_CLIMBED = "flights-climbed"
    DISTANCE = "distance"

    @property
    def document_key(self) -> str:
        """Key used for this metric in the serialized summary."""
        return DOCUMENT_KEYS[self]

    @property
    def canonical_unit(self) -> str:
        """Unit every sample of this metric is normalized to."""
        return CANONICAL_UNITS[self]


DOCUMENT_KEYS: dict[MetricKey, str] = {
    MetricKey.WEIGHT: "weights",
    MetricKey.STEPS: "steps",
    MetricKey.ACTIVE_ENERGY: "activeEnergy",
    MetricKey.HEART_RATE: "heartRates",
    MetricKey.RESTING_HEART_RATE: "restingHeartRates",
    MetricKey.WALKING_HEART_RATE: "walkingHeartRates",
    MetricKey.VO2_MAX: "vo2Max",
    MetricKey.FLIGHTS_CLIMBED: "flightsClimbed",
    MetricKey.DISTANCE: "distanceWalkingRunning",
}

CANONICAL_UNITS: dict[MetricKey, str] = {
    MetricKey.WEIGHT: "kg",
    MetricKey.STEPS: "count",
    MetricKey.ACTIVE_ENERGY: "kcal",
    MetricKey.HEART_RATE: "count/min",
    MetricKey.RESTING_HEART_RATE: "count/min",
    MetricKey.WALKING_HEART_RATE: "count/min",
    MetricKey.VO2_MAX: "L/(min·kg)",
    MetricKey.FLIGHTS_CLIMBED: "count",
    MetricKey.DISTANCE: "m",
}

DAILY_CALORIES_KEY = "dailyCaloriesEstimate"


@dataclass(frozen=True)
class Sample:
    """One normalized measurement.

    The value is always finite and strictly positive; the timestamp is the
    measurement end time in ISO 8601 (UTC).
    """

    value: float
    timestamp: str

    def to_dict(self) -> SamplePayload:
        return {"value": self.value, "timestamp": self.timestamp}


@dataclass(frozen=True)
class MetricSeries:
    """Normalized samples for one metric, newest first."""

    metric: MetricKey
    samples: tuple[Sample, ...] = ()

    def __len__(self) -> int:
        return len(self.samples)

    @classmethod
    def empty(cls, metric: MetricKey) -> "MetricSeries":
        return cls(metric=metric)


@dataclass(frozen=True)
class DailyCalorieEntry:
    """Active energy summed over one local day."""

    date: str
    calories: float

    def to_dict(self) -> DailyCaloriesPayload:
        return {"date": self.date, "calories": self.calories}


@dataclass(frozen=True)
class HealthSummaryDocument:
    """Snapshot of every metric series plus the daily calorie estimate.

    Built from scratch for every question and never mutated afterwards.
    """

    series: Mapping[MetricKey, MetricSeries]
    daily_calories: tuple[DailyCalorieEntry, ...] = ()

    def __post_init__(self) -> None:
        # Metrics without a series still appear, as empty series
        complete = {
            metric: self.series.get(metric, MetricSeries.empty(metric)) for metric in MetricKey
        }
        object.__setattr__(self, "series", MappingProxyType(complete))

    def to_dict(self) -> JSONObject:
        """Convert to the JSON-ready document layout."""
        document: JSONObject = {
            metric.document_key: [sample.to_dict() for sample in self.series[metric].samples]
            for metric in MetricKey
        }
        document[DAILY_CALORIES_KEY] = [entry.to_dict() for entry in self.daily_calories]
        return document

    @property
    def sample_count(self) -> int:
        return sum(len(series) for series in self.series.values())


@dataclass(frozen=True)
class ChatMessage:
    """Single conversation entry."""

    text: str
    is_user: bool
    id: uuid.UUID = field(default_factory=uuid.uuid4)


class ConversationState(str, Enum):
    """Conversation orchestrator states."""

    IDLE = "idle"
    AUTHORIZING = "authorizing"
    AGGREGATING = "aggregating"
    REQUESTING = "requesting"
