# covariates.py
"""
Exogenous regressors for one SKU's history and its forecast horizon.

Always used: average_price, web1_prop, web2_prop, web3_prop.
Promotion dummies are used only when they vary over the training window; a
constant column is collinear with the intercept and breaks estimation.

Horizon rows assume persistence:
  - price: mean of the last h training prices
  - channel mix: the last h observed proportions, replayed in order
  - promotions: the caller's flags, broadcast over all h days
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from utils.constants import (
    ANNUAL_PERIOD, DATE_COL, HARMONIC_ORDER, ID_COL, PRICE_COL, PROMO_COLS, WEB_PROP_COLS,
)
from utils.errors import InsufficientHistory, InvalidHorizon
from utils.schema import BASE_REGRESSORS, OPTIONAL_REGRESSORS

logger = logging.getLogger(__name__)


@dataclass
class CovariateMatrices:
    train: pd.DataFrame          # one row per historical day
    future: pd.DataFrame         # one row per horizon day
    future_dates: pd.DatetimeIndex
    regressors: List[str]
    excluded: List[str] = field(default_factory=list)


def is_degenerate(values: pd.Series) -> bool:
    """True when a column takes a single value (NaN counted as a value)."""
    return values.nunique(dropna=False) <= 1


def select_regressors(history: pd.DataFrame):
    """Split the candidate list into (used, excluded) for this training window."""
    used, excluded = list(BASE_REGRESSORS), []
    for col in OPTIONAL_REGRESSORS:
        (excluded if is_degenerate(history[col]) else used).append(col)
    return used, excluded


def validate_horizon(horizon, product_id=None) -> int:
    if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)) or horizon <= 0:
        raise InvalidHorizon(horizon, product_id)
    return int(horizon)


def future_dates(history: pd.DataFrame, horizon: int) -> pd.DatetimeIndex:
    last = pd.Timestamp(history[DATE_COL].max())
    return pd.date_range(last + pd.Timedelta(days=1), periods=horizon, freq="D")


def build_covariates(
    history: pd.DataFrame,
    horizon: int,
    promotion_1: int = 0,
    promotion_2: int = 0,
) -> CovariateMatrices:
    """
    Aligned training / horizon regressor matrices for one SKU.
    `history` must be the SKU's date-ordered rows.
    """
    product_id = history[ID_COL].iloc[0] if len(history) and ID_COL in history.columns else None
    horizon = validate_horizon(horizon, product_id)
    if len(history) < horizon:
        raise InsufficientHistory(product_id, len(history), horizon)

    history = history.sort_values(DATE_COL).reset_index(drop=True)
    used, excluded = select_regressors(history)
    if excluded:
        logger.info("Product %s: constant regressor(s) %s left out", product_id, excluded)

    train = history[used].astype(float).reset_index(drop=True)

    recent = history.iloc[-horizon:]
    flags: Dict[str, int] = dict(zip(PROMO_COLS, (int(promotion_1), int(promotion_2))))
    future_cols = {}
    for col in used:
        if col == PRICE_COL:
            future_cols[col] = np.full(horizon, float(recent[PRICE_COL].mean()))
        elif col in WEB_PROP_COLS:
            future_cols[col] = recent[col].to_numpy(dtype=float)
        else:
            future_cols[col] = np.full(horizon, float(flags[col]))
    future = pd.DataFrame(future_cols, columns=used)
    future.index = pd.RangeIndex(len(train), len(train) + horizon)

    return CovariateMatrices(
        train=train,
        future=future,
        future_dates=future_dates(history, horizon),
        regressors=used,
        excluded=excluded,
    )


# ------------------ Calendar harmonics ------------------
def fourier_terms(
    dates,
    origin: Optional[pd.Timestamp] = None,
    period: float = ANNUAL_PERIOD,
    order: int = HARMONIC_ORDER,
) -> pd.DataFrame:
    """
    sin/cos pairs k = 1..order at `period` days, on days elapsed since `origin`
    (first date when omitted). Using elapsed calendar days keeps the terms
    aligned across missing dates and across the train/horizon boundary.
    """
    dates = pd.DatetimeIndex(pd.to_datetime(dates))
    if origin is None:
        origin = dates.min()
    t = ((dates - pd.Timestamp(origin)) / pd.Timedelta(days=1)).to_numpy(dtype=float) + 1.0

    cols = {}
    tag = f"{period:g}"
    for k in range(1, order + 1):
        angle = 2.0 * np.pi * k * t / period
        cols[f"sin{k}_{tag}"] = np.sin(angle)
        cols[f"cos{k}_{tag}"] = np.cos(angle)
    return pd.DataFrame(cols)


def with_harmonics(
    cov: CovariateMatrices,
    train_dates,
    period: float = ANNUAL_PERIOD,
    order: int = HARMONIC_ORDER,
) -> CovariateMatrices:
    """Append harmonic columns to both matrices, sharing the training origin."""
    origin = pd.Timestamp(pd.to_datetime(train_dates).min())
    fit_terms = fourier_terms(train_dates, origin, period, order)
    fc_terms = fourier_terms(cov.future_dates, origin, period, order)
    fit_terms.index = cov.train.index
    fc_terms.index = cov.future.index
    return CovariateMatrices(
        train=pd.concat([cov.train, fit_terms], axis=1),
        future=pd.concat([cov.future, fc_terms], axis=1),
        future_dates=cov.future_dates,
        regressors=cov.regressors + list(fit_terms.columns),
        excluded=cov.excluded,
    )
