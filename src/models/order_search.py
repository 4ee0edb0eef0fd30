# order_search.py
"""
Automatic order selection for regression-with-ARIMA-errors models.

- Differencing is fixed before the grid search so information criteria stay
  comparable: seasonal D from STL seasonal strength, then d from repeated
  KPSS tests, both on the residuals of an OLS fit of y on the regressors.
- The grid is exhaustive over p, q (and P, Q when seasonal search is on),
  bounded by max_order, with a mean (d + D == 0) or drift (d + D == 1) term as
  an extra candidate dimension.
- Candidate fits are independent; with n_jobs > 1 they run in a process pool
  and the only synchronisation is the final min-criterion reduction.
- A fit is rejected if it raises, its criterion is not finite, or an AR/MA
  root lies within min_root_modulus of the unit circle.
"""

import logging
import threading
import time
import warnings
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.stattools import kpss

from utils.errors import ModelFitFailure, SearchCancelled
from utils.settings import SearchConfig

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.25


@dataclass(frozen=True)
class Candidate:
    order: Tuple[int, int, int]
    seasonal_order: Tuple[int, int, int, int]
    trend: str = "n"

    @property
    def complexity(self) -> int:
        p, _, q = self.order
        P, _, Q, _ = self.seasonal_order
        return p + q + P + Q + (0 if self.trend == "n" else 1)

    def label(self) -> str:
        p, d, q = self.order
        P, D, Q, s = self.seasonal_order
        txt = f"ARIMA({p},{d},{q})"
        if s:
            txt += f"({P},{D},{Q})[{s}]"
        return txt + {"n": "", "c": " with mean", "t": " with drift"}.get(self.trend, f" trend={self.trend}")


@dataclass
class CandidateScore:
    candidate: Candidate
    criterion: float = np.inf
    converged: bool = False
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.error is None and np.isfinite(self.criterion)


@dataclass
class SearchResult:
    best: Candidate
    fitted: object                    # statsmodels ARIMAResults refit with covariance
    criterion: float
    d: int
    D: int
    scores: List[CandidateScore] = field(default_factory=list)

    @property
    def n_failed(self) -> int:
        return sum(not s.valid for s in self.scores)


# ------------------ Differencing ------------------
def regression_residuals(endog, exog: Optional[pd.DataFrame]) -> np.ndarray:
    y = np.asarray(endog, dtype=float)
    if exog is None or np.asarray(exog).size == 0:
        return y - y.mean()
    X = np.column_stack([np.ones(len(y)), np.asarray(exog, dtype=float)])
    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    return y - X @ beta


def seasonal_strength(x, period: int) -> float:
    """max(0, 1 - Var(remainder) / Var(seasonal + remainder)) from an STL fit."""
    x = np.asarray(x, dtype=float)
    if period < 2 or len(x) < 2 * period + 1 or np.ptp(x) == 0:
        return 0.0
    res = STL(x, period=period).fit()
    denom = np.var(res.seasonal + res.resid)
    if denom <= 0:
        return 0.0
    return float(max(0.0, 1.0 - np.var(res.resid) / denom))


def choose_seasonal_diff(x, period: int, max_D: int, threshold: float) -> int:
    D = 0
    x = np.asarray(x, dtype=float)
    while D < max_D and seasonal_strength(x, period) > threshold:
        x = x[period:] - x[:-period]
        D += 1
    return D


def choose_diff(x, max_d: int, alpha: float) -> int:
    """Difference while the KPSS test rejects level stationarity at alpha."""
    d = 0
    x = np.asarray(x, dtype=float)
    while d < max_d and len(x) > 3 and np.ptp(x) > 0:
        with warnings.catch_warnings():
            # p-values outside the lookup table are reported at the table edge
            warnings.simplefilter("ignore")
            pvalue = kpss(x, regression="c", nlags="auto")[1]
        if pvalue >= alpha:
            break
        x = np.diff(x)
        d += 1
    return d


def has_constant_column(exog) -> bool:
    if exog is None:
        return False
    X = np.asarray(exog, dtype=float)
    if X.size == 0:
        return False
    X = X.reshape(len(X), -1)
    return bool(np.any(np.ptp(X, axis=0) == 0))


# ------------------ Grid ------------------
def candidate_grid(
    d: int,
    D: int,
    search: SearchConfig,
    seasonal: bool,
    period: int,
    exog_has_constant: bool = False,
) -> List[Candidate]:
    """
    Exhaustive (p, q[, P, Q]) grid for fixed d and D. A mean term is skipped
    when a regressor is already constant, since statsmodels rejects both.
    """
    trends = ["n"]
    if d + D == 0 and search.allow_mean and not exog_has_constant:
        trends.append("c")
    if d + D == 1 and search.allow_drift:
        trends.append("t")

    max_P = search.max_P if seasonal else 0
    max_Q = search.max_Q if seasonal else 0
    grid = []
    for p in range(search.max_p + 1):
        for q in range(search.max_q + 1):
            for P in range(max_P + 1):
                for Q in range(max_Q + 1):
                    if p + q + P + Q > search.max_order:
                        continue
                    s_order = (P, D, Q, period) if (seasonal and (P or D or Q)) else (0, 0, 0, 0)
                    for trend in trends:
                        grid.append(Candidate((p, d, q), s_order, trend))
    return grid


# ------------------ Fitting ------------------
def fit_candidate(endog, exog, candidate: Candidate, approximation: bool = False, cov_type: str = "none"):
    """Fit one candidate; `approximation` caps optimizer iterations for a quick score."""
    model = ARIMA(
        endog,
        exog=exog,
        order=candidate.order,
        seasonal_order=candidate.seasonal_order,
        trend=candidate.trend,
    )
    method_kwargs = {"maxiter": 25} if approximation else {}
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return model.fit(method="statespace", method_kwargs=method_kwargs, cov_type=cov_type)


def _roots_ok(res, min_modulus: float) -> bool:
    roots = np.concatenate([np.atleast_1d(res.arroots), np.atleast_1d(res.maroots)])
    return roots.size == 0 or bool(np.all(np.abs(roots) > min_modulus))


def score_candidate(args) -> CandidateScore:
    """Worker: fit and score one candidate. Fit errors are recorded on the score, never raised."""
    endog, exog, candidate, criterion, approximation, min_modulus = args
    try:
        res = fit_candidate(endog, exog, candidate, approximation=approximation)
    except Exception as exc:  # any statsmodels failure marks the candidate invalid
        return CandidateScore(candidate, error=f"{type(exc).__name__}: {exc}")

    value = float(getattr(res, criterion))
    converged = bool((getattr(res, "mle_retvals", None) or {}).get("converged", True))
    if not np.isfinite(value):
        return CandidateScore(candidate, value, converged, error=f"non-finite {criterion}")
    if not _roots_ok(res, min_modulus):
        return CandidateScore(candidate, value, converged, error="root near unit circle")
    return CandidateScore(candidate, value, converged)


def evaluate_candidates(
    endog,
    exog,
    candidates: Sequence[Candidate],
    search: SearchConfig,
    approximation: bool = False,
    product_id=None,
    cancel_event: Optional[threading.Event] = None,
) -> List[CandidateScore]:
    """
    Score every candidate, in grid order.
    Raises SearchCancelled when `search.timeout` seconds pass or `cancel_event`
    is set. Sequential runs are checked between fits; pooled runs drop their
    pending fits.
    """
    jobs = [
        (endog, exog, c, search.information_criterion, approximation, search.min_root_modulus)
        for c in candidates
    ]
    deadline = time.monotonic() + search.timeout if search.timeout else None

    def _stop_reason() -> Optional[str]:
        if cancel_event is not None and cancel_event.is_set():
            return "cancelled"
        if deadline is not None and time.monotonic() >= deadline:
            return "timed out"
        return None

    if search.n_jobs == 1 or len(jobs) <= 1:
        scores = []
        for job in jobs:
            reason = _stop_reason()
            if reason:
                raise SearchCancelled(product_id, len(scores), len(jobs), reason)
            scores.append(score_candidate(job))
        return scores

    results: List[Optional[CandidateScore]] = [None] * len(jobs)
    executor = ProcessPoolExecutor(max_workers=min(search.n_jobs, len(jobs)))
    cancelled = False
    try:
        pending = {executor.submit(score_candidate, job): i for i, job in enumerate(jobs)}
        while pending:
            done, _ = wait(list(pending), timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for fut in done:
                results[pending.pop(fut)] = fut.result()
            reason = _stop_reason()
            if reason and pending:
                cancelled = True
                completed = sum(r is not None for r in results)
                raise SearchCancelled(product_id, completed, len(jobs), reason)
    finally:
        executor.shutdown(wait=not cancelled, cancel_futures=True)
    return results


def _selection_key(indexed):
    i, score = indexed
    return (score.criterion, score.candidate.complexity, i)


def search_order(
    endog,
    exog: Optional[pd.DataFrame],
    search: SearchConfig,
    seasonal: bool,
    period: int,
    approximation: bool = False,
    product_id=None,
    cancel_event: Optional[threading.Event] = None,
) -> SearchResult:
    """Pick differencing, score the grid, refit the winner with full covariance."""
    resid = regression_residuals(endog, exog)
    D = choose_seasonal_diff(resid, period, search.max_D, search.seasonal_strength_threshold) if seasonal else 0
    x = resid
    for _ in range(D):
        x = x[period:] - x[:-period]
    d = choose_diff(x, search.max_d, search.kpss_alpha)

    candidates = candidate_grid(d, D, search, seasonal, period, has_constant_column(exog))
    logger.info(
        "Product %s: searching %d candidate(s) with d=%d, D=%d (seasonal=%s, n_jobs=%d)",
        product_id, len(candidates), d, D, seasonal, search.n_jobs,
    )
    scores = evaluate_candidates(endog, exog, candidates, search, approximation, product_id, cancel_event)

    valid = [(i, s) for i, s in enumerate(scores) if s.valid]
    if not valid:
        last_error = next((s.error for s in reversed(scores) if s.error), None)
        raise ModelFitFailure(product_id, len(endog), len(candidates), last_error)

    _, best = min(valid, key=_selection_key)
    logger.info(
        "Product %s: selected %s (%s=%.3f, %d/%d candidate(s) failed)",
        product_id, best.candidate.label(), search.information_criterion, best.criterion,
        len(scores) - len(valid), len(scores),
    )

    try:
        fitted = fit_candidate(endog, exog, best.candidate, approximation=False, cov_type="approx")
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise ModelFitFailure(product_id, len(endog), len(candidates), f"refit failed: {exc}") from exc

    return SearchResult(
        best=best.candidate,
        fitted=fitted,
        criterion=float(getattr(fitted, search.information_criterion)),
        d=d,
        D=D,
        scores=scores,
    )
