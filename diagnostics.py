"""Error types and debug output shared by the sensor core."""

import os
import warnings

# Debug toggler: set SENSOR_DEBUG=1 to enable verbose parse/poll logs
DEBUG = os.getenv("SENSOR_DEBUG", "0") == "1"


def dprint(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


class SensorCoreError(Exception):
    """Base class for errors raised by the sensor core."""


class TransportError(SensorCoreError):
    """The sheet fetch collaborator failed (network, HTTP or payload error)."""


class MalformedRowError(SensorCoreError, ValueError):
    """A raw row carries no timestamp that can be normalized."""


class ConfigError(SensorCoreError, ValueError):
    pass


class AmbiguousFormatWarning(UserWarning):
    """A value was interpreted through a low-confidence heuristic."""


def warn_ambiguous(message: str) -> None:
    """Report a heuristic guess without interrupting processing."""

    dprint(f"[ambiguous] {message}")
    warnings.warn(message, AmbiguousFormatWarning, stacklevel=3)


__all__ = [
    "DEBUG",
    "dprint",
    "SensorCoreError",
    "TransportError",
    "MalformedRowError",
    "ConfigError",
    "AmbiguousFormatWarning",
    "warn_ambiguous",
]
