from __future__ import annotations

import pytest

from jax_forecasting.core.domain.errors.base import ConfigurationError
from jax_forecasting.core.domain.utils.frequency import (
    get_lags_for_frequency,
    get_seasonality,
    parse_frequency,
    to_pandas_freq,
)


@pytest.mark.parametrize(
    "freq, expected",
    [
        ("H", "h"),
        ("h", "h"),
        ("2H", "2h"),
        ("D", "D"),
        ("W-SUN", "W-SUN"),
        ("MS", "M"),
        ("min", "min"),
        ("T", "min"),
        ("A", "Y"),
    ],
)
def test_to_pandas_freq(freq: str, expected: str) -> None:
    assert to_pandas_freq(freq) == expected


def test_parse_frequency_multiple_and_anchor() -> None:
    f = parse_frequency("3W-MON")
    assert f.base == "W"
    assert f.multiple == 3
    assert f.anchor == "-MON"


def test_seasonality_table_and_multiples() -> None:
    assert get_seasonality("H") == 24
    assert get_seasonality("2H") == 12
    assert get_seasonality("5H") == 1  # 24 is not divisible by 5
    assert get_seasonality("D") == 1
    assert get_seasonality("B") == 5
    assert get_seasonality("M") == 12
    assert get_seasonality("A") == 1


def test_hourly_lags_cover_daily_and_weekly_neighbours() -> None:
    lags = get_lags_for_frequency("H")
    assert lags == sorted(set(lags))
    for lag in [1, 2, 3, 4, 5, 6, 7, 23, 24, 25, 47, 48, 49, 167, 168, 169, 503, 504, 505]:
        assert lag in lags
    assert max(lags) == 505


def test_lags_respect_max_lag() -> None:
    lags = get_lags_for_frequency("H", max_lag=30)
    assert max(lags) <= 30
    assert 24 in lags


@pytest.mark.parametrize("freq", ["", "XYZ", "0H", "H-"])
def test_invalid_frequency_raises(freq: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_frequency(freq)
