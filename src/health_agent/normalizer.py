"""Unit normalization and sample validation.

Every raw measurement passes through here before it can reach a metric
series. Units are reconciled into one canonical unit per metric (see
``MetricKey.canonical_unit``) and anything that is not a finite, strictly
positive number afterwards is rejected.
"""

import math
from collections.abc import Callable
from datetime import UTC, datetime

from .models import MetricKey, Sample
from .sources.base import RawSample

UnitConverter = Callable[[RawSample], float]


class IncompatibleUnitError(ValueError):
    """Raised when a raw unit cannot be converted to the canonical unit."""

    pass


# Conversion factors into the canonical unit, keyed by normalized unit name
_MASS_FACTORS = {
    "kg": 1.0,
    "g": 0.001,
    "lb": 0.453592,
    "lbs": 0.453592,
    "st": 6.35029,
}
_COUNT_FACTORS = {
    "": 1.0,
    "count": 1.0,
    "steps": 1.0,
    "floors": 1.0,
}
_ENERGY_FACTORS = {
    "kcal": 1.0,
    "Cal": 1.0,  # dietary Calorie
    "cal": 0.001,  # small calorie
    "kj": 0.239006,
}
_RATE_FACTORS = {
    "": 1.0,
    "count/min": 1.0,
    "bpm": 1.0,
    "beats/min": 1.0,
}
_VO2_FACTORS = {
    "l/(minkg)": 1.0,
    "l/(kgmin)": 1.0,
    "l/min/kg": 1.0,
    "ml/(kgmin)": 0.001,
    "ml/(minkg)": 0.001,
    "ml/kg/min": 0.001,
}
_LENGTH_FACTORS = {
    "m": 1.0,
    "km": 1000.0,
    "mi": 1609.344,
    "ft": 0.3048,
    "yd": 0.9144,
}

UNIT_FACTORS: dict[MetricKey, dict[str, float]] = {
    MetricKey.WEIGHT: _MASS_FACTORS,
    MetricKey.STEPS: _COUNT_FACTORS,
    MetricKey.ACTIVE_ENERGY: _ENERGY_FACTORS,
    MetricKey.HEART_RATE: _RATE_FACTORS,
    MetricKey.RESTING_HEART_RATE: _RATE_FACTORS,
    MetricKey.WALKING_HEART_RATE: _RATE_FACTORS,
    MetricKey.VO2_MAX: _VO2_FACTORS,
    MetricKey.FLIGHTS_CLIMBED: _COUNT_FACTORS,
    MetricKey.DISTANCE: _LENGTH_FACTORS,
}


def _unit_key(unit: str) -> str:
    """Normalize a unit string: "mL/(kg·min)" -> "ml/(kgmin)".

    "Cal" and "cal" differ by a factor of 1000 and keep their case.
    """
    key = "".join(ch for ch in unit if ch not in " ·*")
    if key in ("Cal", "cal"):
        return key
    return key.lower()


def converter_for(metric: MetricKey) -> UnitConverter:
    """Return the converter into the canonical unit of a metric.

    Empty units are taken as already canonical.
    """
    factors = UNIT_FACTORS[metric]
    canonical = _unit_key(metric.canonical_unit)

    def convert(raw: RawSample) -> float:
        key = _unit_key(raw.unit)
        if not key:
            key = canonical
        factor = factors.get(key)
        if factor is None:
            raise IncompatibleUnitError(
                f"Cannot convert '{raw.unit}' to {metric.canonical_unit} for {metric.value}"
            )
        return raw.value * factor

    return convert


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO 8601 UTC with a "Z" suffix.

    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def normalize_sample(raw: RawSample, convert: UnitConverter) -> Sample | None:
    """Convert a raw measurement into a sample.

    Returns:
        The sample, or None if the unit is incompatible or the converted
        value is NaN, infinite, zero or negative.
    """
    try:
        value = float(convert(raw))
    except (IncompatibleUnitError, TypeError, OverflowError):
        return None

    if not math.isfinite(value) or value <= 0:
        return None

    return Sample(value=value, timestamp=format_timestamp(raw.end_date))
