import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from diagnostics import ConfigError
from sensor_records import DOMAIN_METRICS, Domain
from source_config import (
    CSV_LABELS,
    HYDROPONIC_SOURCE,
    IRRIGATION_SOURCE,
    source_from_env,
)


def test_environment_overrides_id_sheet_and_interval() -> None:
    env = {
        "SENSOR_IRRIGATION_SPREADSHEET_ID": " abc123 ",
        "SENSOR_IRRIGATION_SHEET": "Data",
        "SENSOR_IRRIGATION_INTERVAL_MS": "3000",
        "SENSOR_HYDROPONIC_SHEET": "ignored",
    }

    config = source_from_env(IRRIGATION_SOURCE, env)

    assert config.spreadsheet_id == "abc123"
    assert config.sheet == "Data"
    assert config.interval_ms == 3000
    assert config.aliases is IRRIGATION_SOURCE.aliases


def test_empty_environment_returns_base_unchanged() -> None:
    assert source_from_env(HYDROPONIC_SOURCE, {}) is HYDROPONIC_SOURCE
    assert source_from_env(HYDROPONIC_SOURCE, {"SENSOR_HYDROPONIC_SHEET": "  "}) is HYDROPONIC_SOURCE


@pytest.mark.parametrize("value", ["fast", "2.5", "999", "-1"])
def test_bad_interval_is_a_config_error(value: str) -> None:
    with pytest.raises(ConfigError):
        source_from_env(HYDROPONIC_SOURCE, {"SENSOR_HYDROPONIC_INTERVAL_MS": value})


def test_config_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        source_from_env(IRRIGATION_SOURCE, {"SENSOR_IRRIGATION_INTERVAL_MS": "soon"})


def test_builtin_sources_cover_their_domain_metrics() -> None:
    for config in (IRRIGATION_SOURCE, HYDROPONIC_SOURCE):
        metrics = DOMAIN_METRICS[config.domain]
        assert set(config.aliases) == set(metrics)
        assert set(config.thresholds) == set(metrics)
        assert all(metric in CSV_LABELS for metric in metrics)

    assert IRRIGATION_SOURCE.domain is Domain.IRRIGATION
    assert not IRRIGATION_SOURCE.positional_temperature_fallback
    assert HYDROPONIC_SOURCE.interval_ms == 2000
