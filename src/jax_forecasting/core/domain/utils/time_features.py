from __future__ import annotations

from typing import Callable

import numpy as np
import pandas as pd

from jax_forecasting.core.domain.utils.frequency import parse_frequency

TimeFeature = Callable[[pd.PeriodIndex], np.ndarray]


def minute_of_hour(index: pd.PeriodIndex) -> np.ndarray:
    return np.asarray(index.minute, dtype=np.float32) / 59.0 - 0.5


def hour_of_day(index: pd.PeriodIndex) -> np.ndarray:
    return np.asarray(index.hour, dtype=np.float32) / 23.0 - 0.5


def day_of_week(index: pd.PeriodIndex) -> np.ndarray:
    return np.asarray(index.dayofweek, dtype=np.float32) / 6.0 - 0.5


def day_of_month(index: pd.PeriodIndex) -> np.ndarray:
    return (np.asarray(index.day, dtype=np.float32) - 1.0) / 30.0 - 0.5


def day_of_year(index: pd.PeriodIndex) -> np.ndarray:
    return (np.asarray(index.dayofyear, dtype=np.float32) - 1.0) / 365.0 - 0.5


def week_of_year(index: pd.PeriodIndex) -> np.ndarray:
    return (np.asarray(index.week, dtype=np.float32) - 1.0) / 52.0 - 0.5


def month_of_year(index: pd.PeriodIndex) -> np.ndarray:
    return (np.asarray(index.month, dtype=np.float32) - 1.0) / 11.0 - 0.5


_FEATURES_BY_BASE: dict[str, tuple[TimeFeature, ...]] = {
    "S": (minute_of_hour, hour_of_day, day_of_week, day_of_month, day_of_year),
    "T": (minute_of_hour, hour_of_day, day_of_week, day_of_month, day_of_year),
    "H": (hour_of_day, day_of_week, day_of_month, day_of_year),
    "D": (day_of_week, day_of_month, day_of_year),
    "B": (day_of_week, day_of_month, day_of_year),
    "W": (day_of_month, week_of_year),
    "M": (month_of_year,),
}


def time_features_for(freq: str) -> tuple[TimeFeature, ...]:
    """Calendar features appropriate for `freq`, each scaled to [-0.5, 0.5]."""

    return _FEATURES_BY_BASE.get(parse_frequency(freq).base, ())


def compute_time_features(features: tuple[TimeFeature, ...], index: pd.PeriodIndex) -> np.ndarray:
    """Evaluate features on `index`; returns (len(index), len(features)) float32."""

    if not features:
        return np.zeros((len(index), 0), dtype=np.float32)
    return np.stack([f(index) for f in features], axis=-1).astype(np.float32)
