from __future__ import annotations

import re
from dataclasses import dataclass

from jax_forecasting.core.domain.errors.base import ConfigurationError

# Canonical base names are the classic single-letter offsets.
_BASE_ALIASES = {
    "S": "S",
    "s": "S",
    "T": "T",
    "min": "T",
    "MIN": "T",
    "H": "H",
    "h": "H",
    "D": "D",
    "d": "D",
    "B": "B",
    "W": "W",
    "w": "W",
    "M": "M",
    "MS": "M",
    "ME": "M",
    "Q": "Q",
    "QS": "Q",
    "QE": "Q",
    "A": "A",
    "AS": "A",
    "Y": "A",
    "YS": "A",
    "YE": "A",
}

# Spelling accepted by current pandas for `Period`/`period_range`.
_PANDAS_NAMES = {
    "S": "s",
    "T": "min",
    "H": "h",
    "D": "D",
    "B": "B",
    "W": "W",
    "M": "M",
    "Q": "Q",
    "A": "Y",
}

_DEFAULT_SEASONALITIES = {
    "S": 3600,
    "T": 1440,
    "H": 24,
    "D": 1,
    "W": 1,
    "M": 12,
    "B": 5,
    "Q": 4,
}

# Seasonal periods (in units of the base frequency) used to build lag sets.
_SEASONAL_PERIODS = {
    "S": (60, 3600),
    "T": (60, 1440),
    "H": (24, 168),
    "D": (7, 30),
    "B": (5, 20),
    "W": (4, 52),
    "M": (12,),
    "Q": (4,),
    "A": (),
}

_FREQ_RE = re.compile(r"^\s*(\d*)\s*([A-Za-z]+)(-[A-Za-z]+)?\s*$")


@dataclass(frozen=True)
class Frequency:
    base: str
    multiple: int = 1
    anchor: str = ""

    @property
    def pandas_freq(self) -> str:
        prefix = str(self.multiple) if self.multiple > 1 else ""
        return f"{prefix}{_PANDAS_NAMES[self.base]}{self.anchor}"


def parse_frequency(freq: str) -> Frequency:
    """Parse a frequency string such as `H`, `2h`, `W-SUN` or `MS`."""

    m = _FREQ_RE.match(freq or "")
    if m is None:
        raise ConfigurationError(f"Unsupported frequency: {freq!r}")
    multiple_s, name, anchor = m.groups()
    base = _BASE_ALIASES.get(name) or _BASE_ALIASES.get(name.upper())
    if base is None:
        raise ConfigurationError(f"Unsupported frequency: {freq!r}")
    multiple = int(multiple_s) if multiple_s else 1
    if multiple < 1:
        raise ConfigurationError(f"Frequency multiple must be >= 1, got {freq!r}")
    # Anchors only make sense for weekly/quarterly/yearly periods.
    anchor = (anchor or "").upper() if base in {"W", "Q", "A"} else ""
    return Frequency(base=base, multiple=multiple, anchor=anchor)


def to_pandas_freq(freq: str) -> str:
    return parse_frequency(freq).pandas_freq


def get_seasonality(freq: str) -> int:
    """Default seasonal period for `freq` (used by seasonal naive and MASE)."""

    f = parse_frequency(freq)
    base_season = _DEFAULT_SEASONALITIES.get(f.base, 1)
    season, remainder = divmod(base_season, f.multiple)
    if remainder:
        return 1
    return max(1, season)


def get_lags_for_frequency(freq: str, *, num_default_lags: int = 7, max_lag: int = 1200) -> list[int]:
    """Lag indices for autoregressive inputs: the last few steps plus seasonal neighbours."""

    f = parse_frequency(freq)
    lags = set(range(1, num_default_lags + 1))
    for period in _SEASONAL_PERIODS.get(f.base, ()):
        season = period // f.multiple
        if season < 2:
            continue
        for k in (1, 2, 3):
            lags.update({k * season - 1, k * season, k * season + 1})
    return sorted(lag for lag in lags if 1 <= lag <= max_lag)
