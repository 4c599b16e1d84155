from __future__ import annotations

import numpy as np

# Per-window forecast accuracy metrics. All inputs are 1-D arrays of the same
# length; NaN targets are ignored. Each function returns NaN when it is undefined.


def _valid(target: np.ndarray, *others: np.ndarray) -> np.ndarray:
    mask = ~np.isnan(target)
    for o in others:
        mask &= ~np.isnan(o)
    return mask


def mse(target: np.ndarray, forecast: np.ndarray) -> float:
    m = _valid(target, forecast)
    if not m.any():
        return float("nan")
    return float(np.mean(np.square(target[m] - forecast[m])))


def abs_error(target: np.ndarray, forecast: np.ndarray) -> float:
    m = _valid(target, forecast)
    return float(np.sum(np.abs(target[m] - forecast[m])))


def abs_target_sum(target: np.ndarray) -> float:
    return float(np.nansum(np.abs(target)))


def abs_target_mean(target: np.ndarray) -> float:
    m = _valid(target)
    if not m.any():
        return float("nan")
    return float(np.mean(np.abs(target[m])))


def seasonal_error(past: np.ndarray, seasonality: int) -> float:
    """Mean absolute error of the in-sample seasonal naive forecast.

    Falls back to a lag of 1 when the history is not longer than one season.
    """

    past = np.asarray(past, dtype=np.float64)
    m = seasonality if seasonality < len(past) else 1
    if len(past) <= m:
        return float("nan")
    diff = np.abs(past[m:] - past[:-m])
    diff = diff[~np.isnan(diff)]
    if diff.size == 0:
        return float("nan")
    return float(np.mean(diff))


def mase(target: np.ndarray, forecast: np.ndarray, season_error: float) -> float:
    m = _valid(target, forecast)
    if not m.any() or not season_error or np.isnan(season_error):
        return float("nan")
    return float(np.mean(np.abs(target[m] - forecast[m])) / season_error)


def mape(target: np.ndarray, forecast: np.ndarray) -> float:
    m = _valid(target, forecast) & (target != 0)
    if not m.any():
        return float("nan")
    return float(np.mean(np.abs(target[m] - forecast[m]) / np.abs(target[m])))


def smape(target: np.ndarray, forecast: np.ndarray) -> float:
    m = _valid(target, forecast)
    denom = np.abs(target) + np.abs(forecast)
    m &= denom > 0
    if not m.any():
        return float("nan")
    return float(np.mean(2.0 * np.abs(target[m] - forecast[m]) / denom[m]))


def msis(
    target: np.ndarray,
    lower: np.ndarray,
    upper: np.ndarray,
    season_error: float,
    *,
    alpha: float,
) -> float:
    """Mean scaled interval score of the central (1 - alpha) interval."""

    m = _valid(target, lower, upper)
    if not m.any() or not season_error or np.isnan(season_error):
        return float("nan")
    y, lo, hi = target[m], lower[m], upper[m]
    score = (
        (hi - lo)
        + (2.0 / alpha) * (lo - y) * (y < lo)
        + (2.0 / alpha) * (y - hi) * (y > hi)
    )
    return float(np.mean(score) / season_error)


def quantile_loss(target: np.ndarray, quantile_forecast: np.ndarray, q: float) -> float:
    m = _valid(target, quantile_forecast)
    y, f = target[m], quantile_forecast[m]
    return float(2.0 * np.sum(np.abs((f - y) * ((y <= f) - q))))


def coverage(target: np.ndarray, quantile_forecast: np.ndarray) -> float:
    m = _valid(target, quantile_forecast)
    if not m.any():
        return float("nan")
    return float(np.mean(target[m] <= quantile_forecast[m]))
