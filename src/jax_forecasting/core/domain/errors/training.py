from __future__ import annotations

from .base import ForecastingError

__all__ = ["EvaluationError", "PredictionError", "TrainingError"]


class TrainingError(ForecastingError):
    """Training cannot start or diverged."""


class PredictionError(ForecastingError):
    """A predictor was given input it cannot forecast."""


class EvaluationError(ForecastingError):
    """Forecasts and ground truth cannot be compared."""
