# search.py
"""
Nearest-neighbour search over SKU demand curves (cold-start substitute lookup).

For a target SKU, every other SKU in the pool is scored by the DTW distance
between the two full, date-ordered units_sold sequences. Sequences may differ
in length. Cost is O(M*N) per pair and one pair per candidate, so a full pool
is quadratic in total data volume; narrow the pool with filters.filter_store()
first when the store is large.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from similarity.dtw import dtw_distance
from utils.constants import DATE_COL, ID_COL, TARGET_COL
from utils.errors import InsufficientData
from utils.schema import DISTANCE_COLS

logger = logging.getLogger(__name__)


def demand_sequences(pool: pd.DataFrame) -> Dict[int, np.ndarray]:
    """units_sold per product, ordered by date."""
    ordered = pool.sort_values([ID_COL, DATE_COL])
    return {
        int(pid): g[TARGET_COL].to_numpy(dtype=float)
        for pid, g in ordered.groupby(ID_COL, sort=True)
    }


def _distance_worker(args: Tuple[np.ndarray, np.ndarray, str]) -> float:
    target, candidate, metric = args
    return dtw_distance(target, candidate, metric)


def _distances(target: np.ndarray, candidates: List[np.ndarray], metric: str, n_jobs: int) -> List[float]:
    jobs = [(target, c, metric) for c in candidates]
    if n_jobs <= 1 or len(jobs) <= 1:
        return [_distance_worker(j) for j in jobs]
    workers = min(n_jobs, len(jobs))
    chunksize = max(1, len(jobs) // (workers * 4))
    with ProcessPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_distance_worker, jobs, chunksize=chunksize))


def find_similar(
    pool: pd.DataFrame,
    target_id: int,
    n_jobs: int = 1,
    metric: str = "absolute",
) -> Tuple[int, pd.DataFrame]:
    """
    Return (best_candidate_id, distance_table).

    distance_table has one row per candidate SKU (target excluded), sorted by
    candidate_id. When several candidates share the minimum distance the
    smallest id is nominated; see tied_candidates() for the full set.
    """
    series = demand_sequences(pool)
    if len(series) < 2:
        raise InsufficientData(
            f"Similarity search needs at least 2 distinct products, pool has {len(series)}.",
            target_id=target_id, n_products=len(series),
        )
    if target_id not in series:
        raise InsufficientData(
            f"Target product {target_id} has no rows in the pool.",
            target_id=target_id, n_products=len(series),
        )

    candidate_ids = [pid for pid in series if pid != target_id]
    empty = [pid for pid in [target_id] + candidate_ids if series[pid].size == 0]
    if empty:
        raise InsufficientData(f"Empty demand series for product(s) {empty}.", target_id=target_id)

    logger.info(
        "DTW search for product %s over %d candidate(s) (target length %d)",
        target_id, len(candidate_ids), series[target_id].size,
    )
    distances = _distances(series[target_id], [series[c] for c in candidate_ids], metric, n_jobs)

    table = pd.DataFrame({
        DISTANCE_COLS[0]: candidate_ids,
        DISTANCE_COLS[1]: target_id,
        DISTANCE_COLS[2]: np.asarray(distances, dtype=float),
    })
    best_id = int(tied_candidates(table)[0])

    logger.info("Closest product to %s is %s (distance %.4f)", target_id, best_id,
                float(table[DISTANCE_COLS[2]].min()))
    return best_id, table


def tied_candidates(distance_table: pd.DataFrame) -> List[int]:
    """All candidate ids sharing the minimum distance, ascending."""
    dist = distance_table[DISTANCE_COLS[2]]
    tied = distance_table.loc[dist == dist.min(), DISTANCE_COLS[0]]
    return sorted(int(c) for c in tied)
