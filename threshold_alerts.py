"""Throttled out-of-range alerts for the latest sensor reading."""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

import numpy as np

from diagnostics import dprint
from sensor_records import MetricKey, NormalizedRecord

# One alert per metric per minute.
ALERT_COOLDOWN_SECONDS = 60.0


@dataclass(frozen=True)
class ThresholdRule:
    min: float
    max: float
    label: str
    unit: str = ""


@dataclass(frozen=True)
class Alert:
    metric: MetricKey
    value: float
    rule: ThresholdRule
    raised_at: float

    @property
    def message(self) -> str:
        rule = self.rule
        return (
            f"{rule.label}: {self.value:g}{rule.unit} out of range "
            f"({rule.min:g}-{rule.max:g}{rule.unit})"
        )


IRRIGATION_THRESHOLDS: Dict[MetricKey, ThresholdRule] = {
    MetricKey.TEMPERATURE: ThresholdRule(18, 35, "Soil temperature", "°C"),
    MetricKey.TEMPERATURE_AIR: ThresholdRule(18, 38, "Air temperature", "°C"),
    MetricKey.HUMIDITY: ThresholdRule(40, 90, "Air humidity", "%"),
    MetricKey.SOIL_MOISTURE: ThresholdRule(69, 78, "Soil moisture", "%"),
    MetricKey.PH: ThresholdRule(5.5, 7.2, "Soil pH"),
    MetricKey.FLOW_RATE: ThresholdRule(0.2, 8, "Flow", " L/min"),
}

HYDROPONIC_THRESHOLDS: Dict[MetricKey, ThresholdRule] = {
    MetricKey.TEMPERATURE: ThresholdRule(22, 32, "Water temperature", "°C"),
    MetricKey.PH: ThresholdRule(5.5, 7.5, "Nutrient pH"),
    MetricKey.FLOW_RATE: ThresholdRule(1, 3, "Flow", " L/min"),
}


def out_of_range_metrics(
    record: NormalizedRecord, rules: Mapping[MetricKey, ThresholdRule]
) -> List[MetricKey]:
    """Return the metrics of ``record`` strictly outside their rule bounds."""

    metrics = list(rules)
    if not metrics:
        return []
    values = np.array(
        [np.nan if record.get(m) is None else record.get(m) for m in metrics],
        dtype=float,
    )
    lows = np.array([rules[m].min for m in metrics], dtype=float)
    highs = np.array([rules[m].max for m in metrics], dtype=float)

    # NaN compares False on both sides, so missing values never alert.
    mask = (values < lows) | (values > highs)
    return [metrics[i] for i in np.flatnonzero(mask)]


class ThresholdNotifier:
    """Raise at most one alert per metric within the cooldown window.

    The cooldown bookkeeping lives as long as the notifier, so a coordinator
    that keeps one notifier across polling cycles does not re-alert every tick.
    """

    def __init__(
        self,
        rules: Mapping[MetricKey, ThresholdRule],
        cooldown_seconds: float = ALERT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_alert: Optional[Callable[[Alert], None]] = None,
    ) -> None:
        self.rules = dict(rules)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._on_alert = on_alert
        self._last_raised: Dict[MetricKey, float] = {}

    def check(self, record: Optional[NormalizedRecord]) -> List[Alert]:
        if record is None:
            return []

        now = self._clock()
        alerts: List[Alert] = []
        for metric in out_of_range_metrics(record, self.rules):
            last = self._last_raised.get(metric)
            if last is not None and now - last < self.cooldown_seconds:
                continue
            self._last_raised[metric] = now
            alert = Alert(metric, float(record.get(metric)), self.rules[metric], now)
            dprint(f"[alert] {alert.message}")
            alerts.append(alert)
            if self._on_alert is not None:
                self._on_alert(alert)
        return alerts

    def reset(self) -> None:
        self._last_raised.clear()


__all__ = [
    "ALERT_COOLDOWN_SECONDS",
    "ThresholdRule",
    "Alert",
    "IRRIGATION_THRESHOLDS",
    "HYDROPONIC_THRESHOLDS",
    "out_of_range_metrics",
    "ThresholdNotifier",
]
