# pipeline.py
"""
Daily SKU demand forecasting pipeline.

CLI:
- Find the closest SKU to a target by DTW over units_sold:
  python pipeline.py similar --sales sales.csv --catalog catalog.csv --target 9 --brand acme

- Forecast one SKU (optionally with promotions switched on over the horizon):
  python pipeline.py forecast --sales sales.csv --catalog catalog.csv --product 1001 --horizon 35 --promo1 1

- Forecast several SKUs, collecting per-SKU failures:
  python pipeline.py batch --sales sales.csv --catalog catalog.csv --products 1001 1002 --horizon 28

- Cold-start: forecast a thin-history SKU with its closest neighbour's model:
  python pipeline.py coldstart --sales sales.csv --catalog catalog.csv --target 9 --horizon 14
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from typing import Optional

import pandas as pd

from filters import FilterConditions, filter_store
from models.forecaster import forecast, forecast_batch, forecast_cold_start
from series_store import build_series_store, load_catalog_csv, load_sales_csv
from similarity.search import find_similar, tied_candidates
from utils.io_utils import ensure_parent_dir
from utils.settings import ForecastConfig

logger = logging.getLogger(__name__)


# ---------- Helpers ----------
def _load_config(config_path: Optional[str], n_jobs: Optional[int]) -> ForecastConfig:
    cfg = ForecastConfig.from_yaml(config_path)
    if n_jobs:
        cfg = cfg.with_search(n_jobs=int(n_jobs))
    return cfg


def _load_store(sales_csv: str, catalog_csv: str, cfg: ForecastConfig) -> pd.DataFrame:
    sales = load_sales_csv(sales_csv)
    catalog = load_catalog_csv(catalog_csv)
    store = build_series_store(catalog, sales, cfg.price_bucket_width)
    print(f"Loaded {len(store)} daily rows for {store['product_id'].nunique()} products")
    return store


def _conditions(args) -> FilterConditions:
    return FilterConditions(
        price_range=args.price_range,
        brand=args.brand,
        main_category_id=args.main_category,
        parent_category_id=args.parent_category,
    )


def _out_path(out_csv: Optional[str], stem: str) -> str:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    return ensure_parent_dir(out_csv if out_csv else os.path.join(os.getcwd(), f"{stem}_{ts}.csv"))


# ---------- Commands ----------
def cmd_similar(sales_csv: str, catalog_csv: str, target: int, conditions: FilterConditions,
                out_csv: Optional[str] = None, config_path: Optional[str] = None, n_jobs: Optional[int] = None):
    cfg = _load_config(config_path, n_jobs)
    store = _load_store(sales_csv, catalog_csv, cfg)
    pool = filter_store(store, conditions)
    if not (pool["product_id"] == target).any():
        pool = pd.concat([pool, store[store["product_id"] == target]], ignore_index=True)

    best, table = find_similar(pool, target, n_jobs=cfg.search.n_jobs)
    tied = tied_candidates(table)
    print(f"✅ Closest product to {target}: {best}" + (f" (tied: {tied})" if len(tied) > 1 else ""))

    out_path = _out_path(out_csv, f"similar_{target}")
    table.sort_values("distance").to_csv(out_path, index=False)
    print(f"✅ Distance table saved to: {out_path}")
    return best, table


def cmd_forecast(sales_csv: str, catalog_csv: str, product: int, horizon: int, promo1: int, promo2: int,
                 out_csv: Optional[str] = None, config_path: Optional[str] = None, n_jobs: Optional[int] = None):
    cfg = _load_config(config_path, n_jobs)
    store = _load_store(sales_csv, catalog_csv, cfg)

    result = forecast(store, product, horizon, promo1, promo2, config=cfg)
    print(f"✅ {result.model_summary['model']} ({result.mode.value}-history mode), "
          f"regressors: {result.regressors}")
    print(f"✅ In-sample accuracy: {result.accuracy}")

    out_path = _out_path(out_csv, f"forecast_{product}_{horizon}days")
    result.to_frame().to_csv(out_path, index=False)
    print(f"✅ Forecast saved to: {out_path}")
    return result


def cmd_batch(sales_csv: str, catalog_csv: str, products: list, horizon: int, promo1: int, promo2: int,
              out_csv: Optional[str] = None, config_path: Optional[str] = None, n_jobs: Optional[int] = None):
    cfg = _load_config(config_path, n_jobs)
    store = _load_store(sales_csv, catalog_csv, cfg)

    batch = forecast_batch(store, products, horizon, promo1, promo2, config=cfg)
    for pid, exc in batch.failures.items():
        print(f"[FAILED] product {pid}: {exc}", file=sys.stderr)

    out_path = _out_path(out_csv, f"batch_{horizon}days")
    batch.to_frame().to_csv(out_path, index=False)
    print(f"✅ {len(batch.results)} forecast(s) saved to: {out_path}")
    return batch


def cmd_coldstart(sales_csv: str, catalog_csv: str, target: int, horizon: int, promo1: int, promo2: int,
                  conditions: FilterConditions, out_csv: Optional[str] = None,
                  config_path: Optional[str] = None, n_jobs: Optional[int] = None):
    cfg = _load_config(config_path, n_jobs)
    store = _load_store(sales_csv, catalog_csv, cfg)

    res = forecast_cold_start(store, target, horizon, promo1, promo2, conditions=conditions, config=cfg)
    print(f"✅ Product {target} forecast with substitute {res.substitute_id}: {res.forecast.model_summary['model']}")

    out = res.forecast.to_frame()
    out.insert(0, "target_id", target)
    out_path = _out_path(out_csv, f"coldstart_{target}_{horizon}days")
    out.to_csv(out_path, index=False)
    print(f"✅ Forecast saved to: {out_path}")
    return res


# ---------- CLI ----------
def _add_common(p):
    p.add_argument("--sales", required=True)
    p.add_argument("--catalog", required=True)
    p.add_argument("--config", default=None)
    p.add_argument("--n-jobs", type=int, default=None)
    p.add_argument("--out", default=None)


def _add_filters(p):
    p.add_argument("--price-range", default=None)
    p.add_argument("--brand", default=None)
    p.add_argument("--main-category", default=None)
    p.add_argument("--parent-category", default=None)


def _add_horizon(p):
    p.add_argument("--horizon", type=int, default=14)
    p.add_argument("--promo1", type=int, default=0, choices=[0, 1])
    p.add_argument("--promo2", type=int, default=0, choices=[0, 1])


def main(argv=None):
    import argparse
    parser = argparse.ArgumentParser(description="SKU demand forecasting pipeline")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_sim = sub.add_parser("similar", help="Find the closest SKU by DTW distance")
    _add_common(p_sim)
    _add_filters(p_sim)
    p_sim.add_argument("--target", type=int, required=True)

    p_fc = sub.add_parser("forecast", help="Forecast one SKU")
    _add_common(p_fc)
    _add_horizon(p_fc)
    p_fc.add_argument("--product", type=int, required=True)

    p_batch = sub.add_parser("batch", help="Forecast several SKUs")
    _add_common(p_batch)
    _add_horizon(p_batch)
    p_batch.add_argument("--products", type=int, nargs="+", required=True)

    p_cold = sub.add_parser("coldstart", help="Forecast a SKU with its closest neighbour's model")
    _add_common(p_cold)
    _add_filters(p_cold)
    _add_horizon(p_cold)
    p_cold.add_argument("--target", type=int, required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    common = dict(out_csv=args.out, config_path=args.config, n_jobs=args.n_jobs)
    if args.cmd == "similar":
        cmd_similar(args.sales, args.catalog, args.target, _conditions(args), **common)
    elif args.cmd == "forecast":
        cmd_forecast(args.sales, args.catalog, args.product, args.horizon, args.promo1, args.promo2, **common)
    elif args.cmd == "batch":
        cmd_batch(args.sales, args.catalog, args.products, args.horizon, args.promo1, args.promo2, **common)
    elif args.cmd == "coldstart":
        cmd_coldstart(args.sales, args.catalog, args.target, args.horizon, args.promo1, args.promo2,
                      _conditions(args), **common)
    else:
        parser.print_help()


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
