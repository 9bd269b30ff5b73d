"""Metric keys, domains and the normalized record shared by every stage."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple


class MetricKey(str, Enum):
    TEMPERATURE = "temperature"
    TEMPERATURE_AIR = "temperatureAir"
    HUMIDITY = "humidity"
    SOIL_MOISTURE = "soilMoisture"
    PH = "ph"
    FLOW_RATE = "flowRate"


class Domain(str, Enum):
    IRRIGATION = "irrigation"
    HYDROPONIC = "hydroponic"


# Column order also drives the CSV export order.
DOMAIN_METRICS: Dict[Domain, Tuple[MetricKey, ...]] = {
    Domain.IRRIGATION: (
        MetricKey.TEMPERATURE,
        MetricKey.TEMPERATURE_AIR,
        MetricKey.HUMIDITY,
        MetricKey.SOIL_MOISTURE,
        MetricKey.PH,
        MetricKey.FLOW_RATE,
    ),
    Domain.HYDROPONIC: (
        MetricKey.TEMPERATURE,
        MetricKey.PH,
        MetricKey.FLOW_RATE,
    ),
}


@dataclass(frozen=True)
class NormalizedRecord:
    """One sensor reading at one instant.

    ``instant`` is epoch milliseconds on a UTC basis. ``fields`` maps every
    metric of the record's domain to a parsed float, or ``None`` when the cell
    was absent or not numeric.
    """

    instant: int
    fields: Mapping[MetricKey, Optional[float]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "instant", int(self.instant))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get(self, metric: MetricKey) -> Optional[float]:
        return self.fields.get(metric)

    def present(self) -> Iterator[Tuple[MetricKey, float]]:
        """Yield the metrics that carry a value."""

        for metric, value in self.fields.items():
            if value is not None:
                yield metric, value


__all__ = ["MetricKey", "Domain", "DOMAIN_METRICS", "NormalizedRecord"]
