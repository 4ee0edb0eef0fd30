# utils/errors.py
"""
Exceptions raised by the forecasting core.

Every error keeps the identifiers needed to diagnose it without re-running
(product id, window length, requested horizon) as attributes.
"""


class ForecastError(Exception):
    """Base class for recoverable forecasting failures."""


class InsufficientData(ForecastError):
    """Similarity pool too small, target missing, or an empty series."""

    def __init__(self, message: str, target_id=None, n_products: int | None = None):
        super().__init__(message)
        self.target_id = target_id
        self.n_products = n_products


class InsufficientHistory(ForecastError):
    """Training window shorter than the requested horizon."""

    def __init__(self, product_id, window_length: int, horizon: int):
        super().__init__(
            f"Product {product_id}: {window_length} day(s) of history cannot "
            f"support a {horizon}-day horizon (need at least {horizon})."
        )
        self.product_id = product_id
        self.window_length = window_length
        self.horizon = horizon


class InvalidHorizon(ForecastError, ValueError):
    """Forecast horizon must be a positive number of days."""

    def __init__(self, horizon, product_id=None):
        super().__init__(f"Forecast horizon must be > 0, got {horizon!r} (product {product_id}).")
        self.horizon = horizon
        self.product_id = product_id


class InvalidFilterKey(ForecastError, KeyError):
    """Filter condition names an attribute that is not filterable."""

    def __init__(self, keys, allowed):
        self.keys = list(keys)
        self.allowed = list(allowed)
        super().__init__(f"Unknown filter attribute(s) {self.keys}; expected any of {self.allowed}.")

    def __str__(self) -> str:
        return self.args[0]


class ModelFitFailure(ForecastError):
    """No candidate order in the search grid produced a usable fit."""

    def __init__(self, product_id, n_obs: int, n_candidates: int, last_error: str | None = None):
        msg = (
            f"Product {product_id}: none of {n_candidates} candidate model(s) "
            f"produced a valid fit on {n_obs} observation(s)."
        )
        if last_error:
            msg += f" Last error: {last_error}"
        super().__init__(msg)
        self.product_id = product_id
        self.n_obs = n_obs
        self.n_candidates = n_candidates
        self.last_error = last_error


class SearchCancelled(ForecastError):
    """Order search stopped by timeout or an explicit cancel request."""

    def __init__(self, product_id, completed: int, total: int, reason: str = "cancelled"):
        super().__init__(
            f"Product {product_id}: order search {reason} after {completed}/{total} candidate fit(s)."
        )
        self.product_id = product_id
        self.completed = completed
        self.total = total
        self.reason = reason
