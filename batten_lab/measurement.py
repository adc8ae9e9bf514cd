"""
Measurement Module
==================
Records exchanged with the calculation engine.

A ``Measurement`` holds the eight raw readings of one bending test, a
``NetDeflection`` the load-induced bend at the three marked points, and a
``BattenResult`` the four derived metrics.
"""

import math
import logging
from dataclasses import dataclass, fields, asdict
from typing import Any, Mapping

logger = logging.getLogger(__name__)

# Field order matches the report layout: weight, length, self row, weighted row
MEASUREMENT_FIELDS = (
    "test_weight",
    "test_length",
    "self_14",
    "self_12",
    "self_34",
    "weighted_14",
    "weighted_12",
    "weighted_34",
)

# Spellings used by the web form and by profiles saved from it
FIELD_ALIASES = {
    "testWeight": "test_weight",
    "testLength": "test_length",
    "self14": "self_14",
    "self12": "self_12",
    "self34": "self_34",
    "weighted14": "weighted_14",
    "weighted12": "weighted_12",
    "weighted34": "weighted_34",
}


def finite_or_zero(value: Any) -> float:
    """Coerce a raw reading to a finite float; blanks, text, NaN and infinities become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


@dataclass(frozen=True)
class Measurement:
    """Raw readings of one test: weight in kg, length and deflections in mm."""
    test_weight: float = 0.0
    test_length: float = 0.0
    self_14: float = 0.0
    self_12: float = 0.0
    self_34: float = 0.0
    weighted_14: float = 0.0
    weighted_12: float = 0.0
    weighted_34: float = 0.0

    def normalized(self) -> "Measurement":
        """Return a copy with every non-finite field replaced by 0."""
        return Measurement(**{name: finite_or_zero(getattr(self, name))
                              for name in MEASUREMENT_FIELDS})

    def is_finite(self) -> bool:
        return all(
            isinstance(getattr(self, name), (int, float))
            and math.isfinite(getattr(self, name))
            for name in MEASUREMENT_FIELDS
        )

    def as_values(self) -> dict:
        """Variable bindings for the expression trees of the calculator."""
        return {name: getattr(self, name) for name in MEASUREMENT_FIELDS}

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping) -> "Measurement":
        """
        Build a normalized measurement from a mapping.

        Accepts snake_case or camelCase keys. Unknown keys are ignored,
        missing or non-numeric values become 0.
        """
        values = {}
        for key, raw in data.items():
            name = FIELD_ALIASES.get(key, key)
            if name in MEASUREMENT_FIELDS:
                values[name] = finite_or_zero(raw)
            else:
                logger.debug(f"Ignoring unknown measurement key: {key!r}")
        return cls(**values)

    def with_updates(self, **updates) -> "Measurement":
        """Copy with the given fields replaced; ``None`` values are skipped."""
        merged = self.to_dict()
        for name, value in updates.items():
            if value is None:
                continue
            if name not in merged:
                raise KeyError(f"Unknown measurement field: {name}")
            merged[name] = finite_or_zero(value)
        return Measurement(**merged)


@dataclass(frozen=True)
class NetDeflection:
    """Loaded minus self-weight deflection at 1/4, 1/2 and 3/4 span (unfloored)."""
    net_14: float
    net_12: float
    net_34: float


@dataclass(frozen=True)
class BattenResult:
    front_percent: float
    back_percent: float
    camber_percent: float
    average_ei: float

    def to_dict(self) -> dict:
        return asdict(self)

    def is_finite(self) -> bool:
        return all(math.isfinite(getattr(self, f.name)) for f in fields(self))
