from __future__ import annotations

from .base import ConfigurationError, ForecastingError

__all__ = ["ConfigurationError", "DatasetError", "ForecastingError"]


class DatasetError(ForecastingError):
    """The dataset cannot be read or does not fit the requested task."""
