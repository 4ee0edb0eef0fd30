# forecaster.py
"""
Seasonal regression-with-ARIMA-errors forecaster for one SKU's daily demand.

Two modes, chosen once per call from the length of the SKU's own history:
  - LONG  (>= long_history_days rows): annual Fourier harmonics are appended
    to the regressors and the ARIMA seasonal search is switched off.
  - SHORT (< long_history_days rows): no harmonics; seasonal orders at the
    weekly period are searched.
Both modes share one routine: Box-Cox transform -> order search -> refit ->
in-sample accuracy -> horizon forecast with intervals on the original scale.
"""

import logging
import threading
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import numpy as np
import pandas as pd

from covariates import build_covariates, validate_horizon, with_harmonics
from filters import FilterConditions, filter_store
from models.order_search import SearchResult, search_order
from series_store import product_history
from similarity.search import find_similar
from utils.constants import DATE_COL, ID_COL, TARGET_COL
from utils.errors import ForecastError, InsufficientHistory
from utils.math_utils import accuracy_metrics, boxcox_forward, boxcox_inverse, boxcox_lambda
from utils.schema import HORIZON_COLS
from utils.settings import ForecastConfig

logger = logging.getLogger(__name__)


class HistoryMode(str, Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class ModeSettings:
    include_harmonics: bool
    seasonal_search: bool
    approximation: bool


MODE_SETTINGS: Dict[HistoryMode, ModeSettings] = {
    HistoryMode.LONG: ModeSettings(include_harmonics=True, seasonal_search=False, approximation=False),
    HistoryMode.SHORT: ModeSettings(include_harmonics=False, seasonal_search=True, approximation=False),
}


def select_mode(n_obs: int, threshold: int = 365) -> HistoryMode:
    return HistoryMode.LONG if n_obs >= threshold else HistoryMode.SHORT


@dataclass
class ForecastResult:
    product_id: Any
    mode: HistoryMode
    model_summary: Dict[str, Any]
    accuracy: Dict[str, float]
    horizon: pd.DataFrame
    regressors: list = field(default_factory=list)
    excluded_regressors: list = field(default_factory=list)
    fitted_model: Any = field(default=None, repr=False)

    def to_frame(self) -> pd.DataFrame:
        out = self.horizon.copy()
        out.insert(0, ID_COL, self.product_id)
        return out

    def summary_text(self) -> str:
        if self.fitted_model is None:
            return ""
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            return str(self.fitted_model.summary())


class SeasonalForecaster:
    """
    Fits and forecasts one SKU at a time. Holds no per-SKU state, so one
    instance can serve many calls; `config.search.n_jobs` sizes the pool used
    by the order search and `cancel_event` stops an in-flight search.
    """

    def __init__(self, config: Optional[ForecastConfig] = None, cancel_event: Optional[threading.Event] = None):
        self.config = config or ForecastConfig()
        self.cancel_event = cancel_event

    def fit_forecast(
        self,
        history: pd.DataFrame,
        horizon: int,
        promotion_1: int = 0,
        promotion_2: int = 0,
    ) -> ForecastResult:
        cfg = self.config
        product_id = history[ID_COL].iloc[0] if len(history) else None
        horizon = validate_horizon(horizon, product_id)
        if len(history) < horizon:
            raise InsufficientHistory(product_id, len(history), horizon)

        history = history.sort_values(DATE_COL).reset_index(drop=True)
        mode = select_mode(len(history), cfg.long_history_days)
        settings = MODE_SETTINGS[mode]
        logger.info("Product %s: %d day(s) of history -> %s-history mode", product_id, len(history), mode.value)

        cov = build_covariates(history, horizon, promotion_1, promotion_2)
        if settings.include_harmonics:
            cov = with_harmonics(cov, history[DATE_COL], cfg.annual_period, cfg.harmonic_order)

        y = history[TARGET_COL].to_numpy(dtype=float)
        lam = boxcox_lambda(y, cfg.boxcox_offset, cfg.lambda_bounds)
        endog = pd.Series(boxcox_forward(y, lam, cfg.boxcox_offset), index=cov.train.index, name=TARGET_COL)

        search = search_order(
            endog,
            cov.train,
            cfg.search,
            seasonal=settings.seasonal_search,
            period=cfg.seasonal_period,
            approximation=settings.approximation,
            product_id=product_id,
            cancel_event=self.cancel_event,
        )
        fitted = search.fitted

        in_sample = boxcox_inverse(np.asarray(fitted.fittedvalues, dtype=float), lam, cfg.boxcox_offset)
        accuracy = accuracy_metrics(y, in_sample, period=cfg.seasonal_period)

        horizon_df = self._horizon_table(fitted, cov.future, cov.future_dates, lam)

        return ForecastResult(
            product_id=product_id,
            mode=mode,
            model_summary=self._model_summary(product_id, mode, search, lam, cov.regressors, cov.excluded, len(y)),
            accuracy=accuracy,
            horizon=horizon_df,
            regressors=cov.regressors,
            excluded_regressors=cov.excluded,
            fitted_model=fitted,
        )

    def _horizon_table(self, fitted, future_exog: pd.DataFrame, dates: pd.DatetimeIndex, lam: float) -> pd.DataFrame:
        cfg = self.config
        steps = len(future_exog)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            pred = fitted.get_forecast(steps=steps, exog=future_exog)
            mean_z = np.asarray(pred.predicted_mean, dtype=float)
            intervals = {
                level: np.asarray(pred.conf_int(alpha=1.0 - level / 100.0), dtype=float)
                for level in sorted(cfg.interval_levels)
            }

        offset_col, date_col, point_col, lower_col, upper_col = HORIZON_COLS
        out = pd.DataFrame({
            offset_col: np.arange(1, steps + 1),
            date_col: dates,
            point_col: boxcox_inverse(mean_z, lam, cfg.boxcox_offset),
        })
        for level, ci in intervals.items():
            out[f"lower_{level}"] = boxcox_inverse(ci[:, 0], lam, cfg.boxcox_offset)
            out[f"upper_{level}"] = boxcox_inverse(ci[:, 1], lam, cfg.boxcox_offset)
        out[lower_col] = out[f"lower_{cfg.primary_level}"]
        out[upper_col] = out[f"upper_{cfg.primary_level}"]
        return out

    def _model_summary(self, product_id, mode, search: SearchResult, lam, regressors, excluded, n_obs) -> Dict[str, Any]:
        fitted = search.fitted
        params = pd.Series(fitted.params)
        return {
            "product_id": product_id,
            "mode": mode.value,
            "model": search.best.label(),
            "order": search.best.order,
            "seasonal_order": search.best.seasonal_order,
            "trend": search.best.trend,
            "seasonal_period": self.config.seasonal_period,
            "boxcox_lambda": lam,
            "aicc": float(fitted.aicc),
            "aic": float(fitted.aic),
            "bic": float(fitted.bic),
            "log_likelihood": float(fitted.llf),
            "sigma2": float(params.get("sigma2", np.nan)),
            "coefficients": {str(k): float(v) for k, v in params.items()},
            "regressors": list(regressors),
            "excluded_regressors": list(excluded),
            "n_obs": n_obs,
            "candidates_evaluated": len(search.scores),
            "candidates_failed": search.n_failed,
        }


# ------------------ Store-level operations ------------------
def forecast(
    store: pd.DataFrame,
    product_id,
    horizon_days: int,
    promotion_1_flag: int = 0,
    promotion_2_flag: int = 0,
    config: Optional[ForecastConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ForecastResult:
    """Forecast `horizon_days` of units_sold for one SKU from its own history."""
    horizon = validate_horizon(horizon_days, product_id)
    history = product_history(store, product_id)
    if history.empty:
        raise InsufficientHistory(product_id, 0, horizon)
    return SeasonalForecaster(config, cancel_event).fit_forecast(
        history, horizon, promotion_1_flag, promotion_2_flag
    )


@dataclass
class BatchResult:
    results: Dict[Any, ForecastResult] = field(default_factory=dict)
    failures: Dict[Any, ForecastError] = field(default_factory=dict)

    def to_frame(self) -> pd.DataFrame:
        frames = [r.to_frame() for r in self.results.values()]
        return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()


def forecast_batch(
    store: pd.DataFrame,
    product_ids: Iterable,
    horizon_days: int,
    promotion_1_flag: int = 0,
    promotion_2_flag: int = 0,
    config: Optional[ForecastConfig] = None,
) -> BatchResult:
    """Forecast several SKUs; a failing SKU is recorded and the rest continue."""
    batch = BatchResult()
    for pid in product_ids:
        try:
            batch.results[pid] = forecast(store, pid, horizon_days, promotion_1_flag, promotion_2_flag, config)
        except ForecastError as exc:
            logger.warning("Product %s: forecast failed: %s", pid, exc)
            batch.failures[pid] = exc
    logger.info("Batch forecast: %d succeeded, %d failed", len(batch.results), len(batch.failures))
    return batch


@dataclass
class ColdStartResult:
    target_id: Any
    substitute_id: Any
    distance_table: pd.DataFrame
    forecast: ForecastResult


def forecast_cold_start(
    store: pd.DataFrame,
    target_id,
    horizon_days: int,
    promotion_1_flag: int = 0,
    promotion_2_flag: int = 0,
    conditions=None,
    config: Optional[ForecastConfig] = None,
) -> ColdStartResult:
    """
    Forecast a thin-history SKU with the demand model of its closest SKU.
    The candidate pool is `store` narrowed by `conditions`; the target's own
    rows are always part of the pool.
    """
    config = config or ForecastConfig()
    validate_horizon(horizon_days, target_id)
    pool = filter_store(store, conditions if conditions is not None else FilterConditions())
    if not (pool[ID_COL] == target_id).any():
        pool = pd.concat([pool, product_history(store, target_id)], ignore_index=True)

    substitute_id, table = find_similar(pool, target_id, n_jobs=config.search.n_jobs)
    logger.info("Product %s: forecasting with substitute %s", target_id, substitute_id)
    result = forecast(store, substitute_id, horizon_days, promotion_1_flag, promotion_2_flag, config)
    return ColdStartResult(target_id, substitute_id, table, result)
