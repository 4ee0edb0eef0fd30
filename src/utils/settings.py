# utils/settings.py
"""
Typed configuration for the forecaster.

`ForecastConfig.from_yaml()` reads models/forecast.yaml; unknown keys are
rejected so typos do not silently fall back to defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

from utils.constants import (
    ANNUAL_PERIOD, HARMONIC_ORDER, INTERVAL_LEVELS, LONG_HISTORY_DAYS,
    PRICE_BUCKET_WIDTH, SEASONAL_PERIOD,
)
from utils.io_utils import load_config


@dataclass(frozen=True)
class SearchConfig:
    """Bounds and execution settings for the ARIMA order search."""

    max_p: int = 3
    max_q: int = 3
    max_P: int = 1
    max_Q: int = 1
    max_d: int = 1
    max_D: int = 1
    max_order: int = 5
    information_criterion: str = "aicc"
    allow_mean: bool = True
    allow_drift: bool = True
    kpss_alpha: float = 0.05
    seasonal_strength_threshold: float = 0.64
    min_root_modulus: float = 1.01
    n_jobs: int = 1
    timeout: Optional[float] = None

    def __post_init__(self):
        for name in ("max_p", "max_q", "max_P", "max_Q", "max_d", "max_D", "max_order"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.information_criterion not in ("aicc", "aic", "bic"):
            raise ValueError(
                f"information_criterion must be one of aicc/aic/bic, got {self.information_criterion!r}"
            )
        if self.n_jobs < 1:
            raise ValueError("n_jobs must be >= 1")


@dataclass(frozen=True)
class ForecastConfig:
    price_bucket_width: float = PRICE_BUCKET_WIDTH
    long_history_days: int = LONG_HISTORY_DAYS
    seasonal_period: int = SEASONAL_PERIOD
    annual_period: float = ANNUAL_PERIOD
    harmonic_order: int = HARMONIC_ORDER
    interval_levels: Tuple[int, ...] = tuple(INTERVAL_LEVELS)
    primary_level: int = 95
    boxcox_offset: float = 1.0
    lambda_bounds: Tuple[float, float] = (-1.0, 2.0)
    search: SearchConfig = field(default_factory=SearchConfig)

    def __post_init__(self):
        if self.primary_level not in self.interval_levels:
            raise ValueError(
                f"primary_level {self.primary_level} must be one of interval_levels {self.interval_levels}"
            )
        if any(not 0 < lvl < 100 for lvl in self.interval_levels):
            raise ValueError("interval levels must lie strictly between 0 and 100")
        if self.price_bucket_width <= 0:
            raise ValueError("price_bucket_width must be positive")

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "ForecastConfig":
        cfg = dict(cfg or {})
        search_cfg = cfg.pop("search", None) or {}
        _reject_unknown(cls, cfg)
        _reject_unknown(SearchConfig, search_cfg)
        for key in ("interval_levels", "lambda_bounds"):
            if key in cfg:
                cfg[key] = tuple(cfg[key])
        return cls(search=SearchConfig(**search_cfg), **cfg)

    @classmethod
    def from_yaml(cls, path: str | None = None) -> "ForecastConfig":
        return cls.from_dict(load_config(path))

    def with_search(self, **overrides) -> "ForecastConfig":
        return replace(self, search=replace(self.search, **overrides))


def _reject_unknown(klass, cfg: Dict[str, Any]) -> None:
    known = {f.name for f in fields(klass)} - {"search"}
    unknown = sorted(set(cfg) - known)
    if unknown:
        raise ValueError(f"Unknown {klass.__name__} key(s): {unknown}")
