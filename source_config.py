"""Per-source configuration passed into the mapper and the polling loop."""

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional, Tuple

from diagnostics import ConfigError
from row_mapping import (
    DATE_COLUMN_ALIASES,
    HYDROPONIC_ALIASES,
    IRRIGATION_ALIASES,
    TIME_COLUMN_ALIASES,
)
from sensor_records import Domain, MetricKey
from threshold_alerts import HYDROPONIC_THRESHOLDS, IRRIGATION_THRESHOLDS, ThresholdRule
from timestamp_parsing import WIB, TimeZoneProfile

DEFAULT_PAGE_SIZE = 10
DEFAULT_WINDOW_SIZE = 60
LIVE_INTERVAL_MS = 2000
DASHBOARD_INTERVAL_MS = 5000
MIN_INTERVAL_MS = 1000

# CSV header per metric, in the domain's column order.
CSV_LABELS: Dict[MetricKey, str] = {
    MetricKey.TEMPERATURE: "Temperature (°C)",
    MetricKey.TEMPERATURE_AIR: "Air Temperature (°C)",
    MetricKey.HUMIDITY: "Air Humidity (%)",
    MetricKey.SOIL_MOISTURE: "Soil Moisture (%)",
    MetricKey.PH: "pH",
    MetricKey.FLOW_RATE: "Flow Rate (L/min)",
}

CSV_DECIMALS: Dict[MetricKey, int] = {
    MetricKey.TEMPERATURE: 1,
    MetricKey.TEMPERATURE_AIR: 1,
    MetricKey.HUMIDITY: 1,
    MetricKey.SOIL_MOISTURE: 1,
    MetricKey.PH: 2,
    MetricKey.FLOW_RATE: 2,
}


@dataclass(frozen=True)
class SourceConfig:
    """Everything the core needs to know about one spreadsheet source."""

    name: str
    spreadsheet_id: str
    sheet: str
    domain: Domain
    source_zone: TimeZoneProfile = WIB
    display_zone: TimeZoneProfile = WIB
    aliases: Mapping[MetricKey, Tuple[str, ...]] = field(default_factory=dict)
    date_aliases: Tuple[str, ...] = DATE_COLUMN_ALIASES
    time_aliases: Tuple[str, ...] = TIME_COLUMN_ALIASES
    # Guess temperature from the column after pH when no header matches.
    positional_temperature_fallback: bool = False
    strict_values: bool = False
    interval_ms: int = DASHBOARD_INTERVAL_MS
    page_size: int = DEFAULT_PAGE_SIZE
    window_size: int = DEFAULT_WINDOW_SIZE
    thresholds: Mapping[MetricKey, ThresholdRule] = field(default_factory=dict)
    csv_timestamp_label: str = "Timestamp"
    fetch_options: Mapping[str, object] = field(default_factory=dict)


IRRIGATION_SOURCE = SourceConfig(
    name="irrigation",
    spreadsheet_id="1Y_LrC7kzvRlMPthtowIohP3ubRVGYDLoZEvjR2YPt1g",
    sheet="1",
    domain=Domain.IRRIGATION,
    aliases=IRRIGATION_ALIASES,
    interval_ms=DASHBOARD_INTERVAL_MS,
    thresholds=IRRIGATION_THRESHOLDS,
)

HYDROPONIC_SOURCE = SourceConfig(
    name="hydroponic",
    spreadsheet_id="1rL0v_f4yI4cWr6g0uTwHQSqG-ASnI4cnYw0WArDbDxE",
    sheet="1",
    domain=Domain.HYDROPONIC,
    aliases=HYDROPONIC_ALIASES,
    positional_temperature_fallback=True,
    strict_values=True,
    interval_ms=LIVE_INTERVAL_MS,
    thresholds=HYDROPONIC_THRESHOLDS,
)


def _env_key(config: SourceConfig, suffix: str) -> str:
    return f"SENSOR_{config.name.upper()}_{suffix}"


def _parse_interval(text: str, key: str) -> int:
    try:
        interval = int(text)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer number of milliseconds, got {text!r}") from exc
    if interval < MIN_INTERVAL_MS:
        raise ConfigError(f"{key} must be at least {MIN_INTERVAL_MS} ms, got {interval}")
    return interval


def source_from_env(
    base: SourceConfig, environ: Optional[Mapping[str, str]] = None
) -> SourceConfig:
    """Return ``base`` with id, sheet and interval overridden from the environment.

    Variables are named ``SENSOR_<NAME>_SPREADSHEET_ID``, ``SENSOR_<NAME>_SHEET``
    and ``SENSOR_<NAME>_INTERVAL_MS``.
    """

    env = os.environ if environ is None else environ
    changes: Dict[str, object] = {}

    spreadsheet_id = env.get(_env_key(base, "SPREADSHEET_ID"), "").strip()
    if spreadsheet_id:
        changes["spreadsheet_id"] = spreadsheet_id

    sheet = env.get(_env_key(base, "SHEET"), "").strip()
    if sheet:
        changes["sheet"] = sheet

    interval_key = _env_key(base, "INTERVAL_MS")
    interval = env.get(interval_key, "").strip()
    if interval:
        changes["interval_ms"] = _parse_interval(interval, interval_key)

    return replace(base, **changes) if changes else base


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_WINDOW_SIZE",
    "LIVE_INTERVAL_MS",
    "DASHBOARD_INTERVAL_MS",
    "CSV_LABELS",
    "CSV_DECIMALS",
    "SourceConfig",
    "IRRIGATION_SOURCE",
    "HYDROPONIC_SOURCE",
    "source_from_env",
]
