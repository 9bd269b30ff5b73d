"""Locale-tolerant numeric parsing for spreadsheet cells."""

import math
import re
from numbers import Real
from typing import Dict, Optional, Tuple

from sensor_records import MetricKey

_NON_NUMERIC_RE = re.compile(r"[^0-9.,\-]")
# Same prefix semantics as a browser's parseFloat: trailing noise is ignored.
_FLOAT_PREFIX_RE = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)")

_TIME_LIKE_PATTERNS = (
    re.compile(r"\b\d{1,2}:\d{2}:\d{2}\b"),
    re.compile(r"\d{4}-\d{2}-\d{2}T"),
    re.compile(r"\b\d{1,2}\.\d{2}\.\d{2}\b"),
)

# Physically plausible ranges used by the strict display parser.
PLAUSIBLE_RANGES: Dict[MetricKey, Tuple[float, float]] = {
    MetricKey.TEMPERATURE: (-10.0, 100.0),
    MetricKey.TEMPERATURE_AIR: (-10.0, 100.0),
    MetricKey.HUMIDITY: (0.0, 100.0),
    MetricKey.SOIL_MOISTURE: (0.0, 100.0),
    MetricKey.PH: (0.0, 14.0),
    MetricKey.FLOW_RATE: (0.0, 1000.0),
}


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def parse_number(raw: object) -> Optional[float]:
    """Return a float parsed from a raw cell, or ``None``.

    Both ``1.234,56`` and ``1,234.56`` parse to ``1234.56``: whichever of ``.``
    and ``,`` occurs last is the decimal separator and the other one is
    treated as a thousands separator.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Real):
        return _finite_or_none(float(raw))

    text = str(raw).strip()
    if not text:
        return None

    cleaned = _NON_NUMERIC_RE.sub("", text)
    dot = cleaned.rfind(".")
    comma = cleaned.rfind(",")
    if dot > comma:
        cleaned = cleaned.replace(",", "")
    elif comma > -1:
        cleaned = cleaned.replace(".", "").replace(",", ".")

    match = _FLOAT_PREFIX_RE.match(cleaned)
    if not match:
        return None
    try:
        return _finite_or_none(float(match.group(0)))
    except ValueError:
        return None


def looks_like_time(text: str) -> bool:
    """Return True when the text looks like a clock time or ISO datetime."""

    return any(pattern.search(text) for pattern in _TIME_LIKE_PATTERNS)


def parse_number_strict(metric: MetricKey, raw: object) -> Optional[float]:
    """Parse a value for display, rejecting implausible readings.

    Guards against timestamp strings that leaked into a metric column being
    shown as numbers.
    """

    if raw is None:
        return None
    if isinstance(raw, str) and looks_like_time(raw):
        return None

    value = parse_number(raw)
    if value is None:
        return None

    bounds = PLAUSIBLE_RANGES.get(metric)
    if bounds is not None:
        lo, hi = bounds
        if value < lo or value > hi:
            return None
    return value


__all__ = ["parse_number", "parse_number_strict", "looks_like_time", "PLAUSIBLE_RANGES"]
