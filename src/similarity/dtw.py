# dtw.py
"""
Dynamic time warping distance between two demand sequences of any length.

Full alignment: no window or slope constraint. The cumulative cost matrix
has shape (len(x), len(y)); its first row and column are prefix sums of the
local costs and every other cell adds the cheapest of its diagonal, left and
upper neighbours. The distance is the last cell. O(len(x) * len(y)) time.
"""

import numpy as np

from utils.errors import InsufficientData

_METRICS = ("absolute", "squared")


def local_cost_matrix(x: np.ndarray, y: np.ndarray, metric: str = "absolute") -> np.ndarray:
    if metric not in _METRICS:
        raise ValueError(f"metric must be one of {_METRICS}, got {metric!r}")
    diff = x[:, None] - y[None, :]
    return np.abs(diff) if metric == "absolute" else diff * diff


def cumulative_cost_matrix(x, y, metric: str = "absolute") -> np.ndarray:
    x = np.asarray(x, dtype=float).ravel()
    y = np.asarray(y, dtype=float).ravel()
    if x.size == 0 or y.size == 0:
        raise InsufficientData(f"DTW needs two non-empty series (got lengths {x.size} and {y.size}).")

    cost = local_cost_matrix(x, y, metric)
    acc = np.empty_like(cost)
    acc[0, :] = np.cumsum(cost[0, :])
    acc[:, 0] = np.cumsum(cost[:, 0])

    n, m = cost.shape
    for i in range(1, n):
        prev = acc[i - 1]
        row = acc[i]
        c = cost[i]
        # diagonal/up part of the min does not depend on the current row
        diag_up = np.minimum(prev[:-1], prev[1:])
        for j in range(1, m):
            left = row[j - 1]
            best = diag_up[j - 1]
            row[j] = c[j] + (left if left < best else best)
    return acc


def dtw_distance(x, y, metric: str = "absolute") -> float:
    """DTW alignment cost between x and y (symmetric; 0 for identical series)."""
    return float(cumulative_cost_matrix(x, y, metric)[-1, -1])
