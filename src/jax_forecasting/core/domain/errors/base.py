from __future__ import annotations


class ForecastingError(Exception):
    """Base class for every error raised by the forecasting core."""


class ConfigurationError(ForecastingError, ValueError):
    """An option or model configuration is not usable."""
