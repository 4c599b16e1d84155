from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np

from jax_forecasting.core.domain.entities.dataset import TimeSeriesEntry
from jax_forecasting.core.domain.entities.forecast import SampleForecast
from jax_forecasting.core.domain.errors.training import EvaluationError
from jax_forecasting.core.domain.utils import metrics as M
from jax_forecasting.core.domain.utils.frequency import get_seasonality
from jax_forecasting.core.use_cases.predictors import Predictor

DEFAULT_QUANTILES = (0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9)


def _qkey(name: str, q: float) -> str:
    return f"{name}[{q:g}]"


def make_evaluation_predictions(
    entries: Iterable[TimeSeriesEntry],
    predictor: Predictor,
) -> tuple[list[SampleForecast], list[TimeSeriesEntry]]:
    """Hold out the last `prediction_length` values of every series and forecast them.

    Returns forecasts and the full (untruncated) series, aligned by position.
    """

    series = list(entries)
    horizon = predictor.prediction_length
    for entry in series:
        if len(entry) <= horizon:
            raise EvaluationError(
                f"Series {entry.item_id!r} has {len(entry)} values; need more than prediction_length={horizon}"
            )
    forecasts = list(predictor.predict(entry.truncated(horizon) for entry in series))
    return forecasts, series


class Evaluator:
    """Accuracy metrics for probabilistic forecasts.

    `seasonality` defaults to the seasonality of each forecast's frequency and
    is used to scale MASE and MSIS. `alpha` sets the MSIS interval.
    """

    def __init__(
        self,
        *,
        quantiles: Sequence[float] = DEFAULT_QUANTILES,
        seasonality: int | None = None,
        alpha: float = 0.05,
    ) -> None:
        self.quantiles = tuple(float(q) for q in quantiles)
        self.seasonality = seasonality
        self.alpha = alpha

    def item_metrics(self, entry: TimeSeriesEntry, forecast: SampleForecast) -> dict[str, Any]:
        horizon = forecast.prediction_length
        if len(entry) <= horizon:
            raise EvaluationError(f"Series {entry.item_id!r} is not longer than the forecast horizon {horizon}")

        target = np.asarray(entry.target[-horizon:], dtype=np.float64)
        past = np.asarray(entry.target[:-horizon], dtype=np.float64)
        median = forecast.median.astype(np.float64)
        mean = forecast.mean.astype(np.float64)

        seasonality = self.seasonality or get_seasonality(forecast.freq)
        season_error = M.seasonal_error(past, seasonality)

        out: dict[str, Any] = {
            "item_id": forecast.item_id,
            "MSE": M.mse(target, mean),
            "abs_error": M.abs_error(target, median),
            "abs_target_sum": M.abs_target_sum(target),
            "abs_target_mean": M.abs_target_mean(target),
            "seasonal_error": season_error,
            "MASE": M.mase(target, median, season_error),
            "MAPE": M.mape(target, median),
            "sMAPE": M.smape(target, median),
            "MSIS": M.msis(
                target,
                forecast.quantile(self.alpha / 2.0).astype(np.float64),
                forecast.quantile(1.0 - self.alpha / 2.0).astype(np.float64),
                season_error,
                alpha=self.alpha,
            ),
        }
        for q in self.quantiles:
            fq = forecast.quantile(q).astype(np.float64)
            out[_qkey("QuantileLoss", q)] = M.quantile_loss(target, fq, q)
            out[_qkey("Coverage", q)] = M.coverage(target, fq)
        return out

    def aggregate(self, item_metrics: list[dict[str, Any]]) -> dict[str, float]:
        if not item_metrics:
            raise EvaluationError("No forecasts to evaluate")

        def column(name: str) -> np.ndarray:
            return np.asarray([m[name] for m in item_metrics], dtype=np.float64)

        def nanmean(name: str) -> float:
            values = column(name)
            values = values[~np.isnan(values)]
            return float(values.mean()) if values.size else float("nan")

        agg: dict[str, float] = {}
        for name in ("MSE", "abs_target_mean", "seasonal_error", "MASE", "MAPE", "sMAPE", "MSIS"):
            agg[name] = nanmean(name)
        for name in ("abs_error", "abs_target_sum"):
            agg[name] = float(np.nansum(column(name)))

        agg["RMSE"] = float(np.sqrt(agg["MSE"]))
        agg["NRMSE"] = agg["RMSE"] / agg["abs_target_mean"] if agg["abs_target_mean"] else float("nan")
        agg["ND"] = agg["abs_error"] / agg["abs_target_sum"] if agg["abs_target_sum"] else float("nan")

        w_losses = []
        coverage_errors = []
        for q in self.quantiles:
            ql = float(np.nansum(column(_qkey("QuantileLoss", q))))
            agg[_qkey("QuantileLoss", q)] = ql
            agg[_qkey("Coverage", q)] = nanmean(_qkey("Coverage", q))
            wql = ql / agg["abs_target_sum"] if agg["abs_target_sum"] else float("nan")
            agg[_qkey("wQuantileLoss", q)] = wql
            w_losses.append(wql)
            coverage_errors.append(abs(agg[_qkey("Coverage", q)] - q))

        agg["mean_wQuantileLoss"] = float(np.mean(w_losses)) if w_losses else float("nan")
        agg["MAE_Coverage"] = float(np.mean(coverage_errors)) if coverage_errors else float("nan")
        return agg

    def __call__(
        self,
        series: Iterable[TimeSeriesEntry],
        forecasts: Iterable[SampleForecast],
    ) -> tuple[dict[str, float], list[dict[str, Any]]]:
        series = list(series)
        forecasts = list(forecasts)
        if len(series) != len(forecasts):
            raise EvaluationError(f"Got {len(series)} series but {len(forecasts)} forecasts")

        items = [self.item_metrics(s, f) for s, f in zip(series, forecasts)]
        return self.aggregate(items), items


def backtest_metrics(
    entries: Iterable[TimeSeriesEntry],
    predictor: Predictor,
    evaluator: Evaluator | None = None,
) -> tuple[dict[str, float], list[dict[str, Any]]]:
    """Backtest `predictor` on the last window of every series."""

    forecasts, series = make_evaluation_predictions(entries, predictor)
    return (evaluator or Evaluator())(series, forecasts)
