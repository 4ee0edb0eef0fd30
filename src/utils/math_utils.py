from typing import Dict, Tuple

import numpy as np
from scipy import special, stats
from sklearn.metrics import mean_absolute_error, mean_squared_error
from statsmodels.tsa.stattools import acf


def mape(y_true, y_pred) -> float:
    """Mean Absolute Percentage Error (MAPE) in %."""
    y_true = np.asarray(y_true).ravel()
    y_pred = np.asarray(y_pred).ravel()
    mask = y_true != 0
    if not np.any(mask):
        return np.nan
    return float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100.0)


def mpe(y_true, y_pred) -> float:
    """Mean Percentage Error in %, zero actuals skipped."""
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    mask = y_true != 0
    if not np.any(mask):
        return np.nan
    return float(np.mean((y_true[mask] - y_pred[mask]) / y_true[mask]) * 100.0)


def mase(y_true, y_pred, period: int = 1) -> float:
    """MAE scaled by the in-sample MAE of a seasonal naive forecast."""
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    if len(y_true) <= period:
        return np.nan
    scale = np.mean(np.abs(y_true[period:] - y_true[:-period]))
    if scale == 0:
        return np.nan
    return float(np.mean(np.abs(y_true - y_pred)) / scale)


def accuracy_metrics(y_true, y_pred, period: int = 1) -> Dict[str, float]:
    """
    In-sample accuracy of one-step-ahead fitted values.
    Returns ME, RMSE, MAE, MPE, MAPE, MASE and the lag-1 residual autocorrelation.
    """
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    if len(y_true) != len(y_pred):
        raise ValueError(f"y_true and y_pred length mismatch: {len(y_true)} vs {len(y_pred)}.")
    resid = y_true - y_pred

    acf1 = np.nan
    if len(resid) > 2 and np.var(resid) > 0:
        acf1 = float(acf(resid, nlags=1, fft=False)[1])

    return {
        "ME": float(np.mean(resid)),
        "RMSE": float(np.sqrt(mean_squared_error(y_true, y_pred))),
        "MAE": float(mean_absolute_error(y_true, y_pred)),
        "MPE": mpe(y_true, y_pred),
        "MAPE": mape(y_true, y_pred),
        "MASE": mase(y_true, y_pred, period),
        "ACF1": acf1,
    }


# ------------------ Box-Cox ------------------
def boxcox_lambda(y, offset: float = 1.0, bounds: Tuple[float, float] = (-1.0, 2.0)) -> float:
    """MLE Box-Cox lambda for y + offset, clipped to bounds; 1.0 for a flat series."""
    x = np.asarray(y, dtype=float).ravel() + offset
    if np.any(x <= 0):
        raise ValueError("Box-Cox requires y + offset > 0.")
    if np.ptp(x) == 0:
        return 1.0
    lam = stats.boxcox_normmax(x, method="mle")
    return float(np.clip(lam, bounds[0], bounds[1]))


def boxcox_forward(y, lam: float, offset: float = 1.0) -> np.ndarray:
    return special.boxcox(np.asarray(y, dtype=float) + offset, lam)


def boxcox_inverse(z, lam: float, offset: float = 1.0) -> np.ndarray:
    """
    Back-transform to the original scale, clipped at zero.
    Values outside the transform's range are pulled to its edge so the
    inverse stays finite and monotone (interval ordering is preserved).
    """
    z = np.asarray(z, dtype=float)
    if lam > 0:
        z = np.maximum(z, -1.0 / lam + 1e-8)
    elif lam < 0:
        z = np.minimum(z, -1.0 / lam - 1e-8)
    return np.maximum(special.inv_boxcox(z, lam) - offset, 0.0)
