# src/tests/conftest.py
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add the parent directory of this tests folder (i.e., src/) to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from series_store import build_series_store  # noqa: E402
from utils.settings import ForecastConfig  # noqa: E402


def _raw_sales(
    product_id: int,
    n_days: int,
    start: str = "2022-01-01",
    base: float = 20.0,
    promo1=None,
    promo2=None,
    seed: int = 0,
) -> pd.DataFrame:
    """Three storefront rows per day with weekly/annual shape and promo uplift."""
    rng = np.random.default_rng(seed + product_id)
    dates = pd.date_range(start, periods=n_days, freq="D")
    t = np.arange(n_days)
    level = base + 0.2 * base * np.sin(2 * np.pi * t / 7) + 0.15 * base * np.sin(2 * np.pi * t / 365.25)

    p1 = np.asarray(promo1 if promo1 is not None else (t % 10 < 2).astype(int))
    p2 = np.asarray(promo2 if promo2 is not None else np.zeros(n_days, dtype=int))
    uplift = np.where(p1 == 1, 1.3, 1.0)

    frames = []
    for website, share in zip((1, 2, 3), (0.5, 0.3, 0.2)):
        frames.append(pd.DataFrame({
            "product_id": product_id,
            "date": dates,
            "website": website,
            "selling_price": 30.0 + rng.normal(0, 1.0, n_days) - 3.0 * p1,
            "units_sold": rng.poisson(np.maximum(level * share * uplift, 0.1)),
            "promotion_dummy_1": p1,
            "promotion_dummy_2": p2,
        }))
    return pd.concat(frames, ignore_index=True)


def _catalog(product_ids, brand="acme", main_category_id=10, parent_category_id=1) -> pd.DataFrame:
    return pd.DataFrame({
        "product_id": list(product_ids),
        "brand": brand,
        "main_category_id": main_category_id,
        "parent_category_id": parent_category_id,
    })


@pytest.fixture
def make_sales():
    return _raw_sales


@pytest.fixture
def make_catalog():
    return _catalog


@pytest.fixture
def make_store():
    """Factory: {product_id: n_days} -> series store built through build_series_store()."""
    def _make(lengths: dict, **kwargs) -> pd.DataFrame:
        sales = pd.concat(
            [_raw_sales(pid, n, **kwargs) for pid, n in lengths.items()], ignore_index=True
        )
        return build_series_store(_catalog(lengths.keys()), sales, price_bucket_width=25.0)
    return _make


@pytest.fixture
def fast_config() -> ForecastConfig:
    """Small, single-process search grid so model tests stay quick and deterministic."""
    return ForecastConfig().with_search(
        max_p=1, max_q=1, max_P=0, max_Q=1, max_d=1, max_D=0, max_order=2, n_jobs=1,
    )
