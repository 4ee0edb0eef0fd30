"""
series_store.py
Builds the canonical per-SKU daily series from storefront sale rows.
- One row per (product_id, date); units summed across the three storefronts.
- average_price = mean selling price over the storefront rows of that day.
- Storefront unit counts pivoted into web1_prop / web2_prop / web3_prop
  (sum to 1 on days with sales, all 0 otherwise).
- Promotion flags coerced to 0/1 (a day is on promotion if any storefront was).
- price_range = right-closed fixed-width bucket of average_price.
- Catalog attributes (brand, category ids) joined by product_id.
Rows with missing or non-positive prices are dropped and reported in the log.
"""

import logging
from typing import Mapping, Union

import numpy as np
import pandas as pd

from utils.constants import (
    CATALOG_COLS, DATE_COL, ID_COL, PRICE_BUCKET_WIDTH, PRICE_COL, PRICE_RANGE_COL,
    PROMO_COLS, RAW_PRICE_COL, RAW_SALES_COLUMNS, TARGET_COL, WEB_PROP_COLS,
    WEBSITE_COL, WEBSITES,
)
from utils.schema import SERIES_COLS

logger = logging.getLogger(__name__)

_NA_VALUES = ["", "NA", "N/A", "na", "n/a", "NULL", "null", "-", "--"]


def _ensure_required_columns(df: pd.DataFrame, required, what: str) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise KeyError(f"Missing required {what} columns: {missing}")


def _website_label(value) -> str:
    """Map 1 / '1' / 'web1' / 'WEB1' to 'web1'."""
    text = str(value).strip().lower()
    if text.endswith(".0"):
        text = text[:-2]
    if not text.startswith("web"):
        text = f"web{text}"
    if text not in WEBSITES:
        raise ValueError(f"Unknown storefront {value!r}; expected one of {WEBSITES}")
    return text


# ------------------ CSV ingestion (CLI helpers) ------------------
def load_sales_csv(path: str) -> pd.DataFrame:
    """Read a raw sales CSV; types are coerced later by build_series_store()."""
    df = pd.read_csv(path, dtype="string", keep_default_na=True, na_values=_NA_VALUES)
    _ensure_required_columns(df, RAW_SALES_COLUMNS, "sales")
    return df


def load_catalog_csv(path: str) -> pd.DataFrame:
    df = pd.read_csv(path, dtype="string", keep_default_na=True, na_values=_NA_VALUES)
    _ensure_required_columns(df, [ID_COL] + CATALOG_COLS, "catalog")
    return df


# ------------------ Coercions & validation ------------------
def _coerce_sales(sales: pd.DataFrame) -> pd.DataFrame:
    _ensure_required_columns(sales, RAW_SALES_COLUMNS, "sales")
    df = sales[RAW_SALES_COLUMNS].copy()
    original_len = len(df)

    df[ID_COL] = pd.to_numeric(df[ID_COL], errors="coerce")
    df[DATE_COL] = pd.to_datetime(df[DATE_COL], errors="coerce").dt.normalize()
    df[RAW_PRICE_COL] = pd.to_numeric(df[RAW_PRICE_COL], errors="coerce")
    df[TARGET_COL] = pd.to_numeric(df[TARGET_COL], errors="coerce")
    for c in PROMO_COLS:
        df[c] = pd.to_numeric(df[c], errors="coerce").fillna(0)

    invalid_mask = df[ID_COL].isna() | df[DATE_COL].isna() | df[WEBSITE_COL].isna()
    invalid_mask |= df[TARGET_COL].isna() | (df[TARGET_COL] < 0)
    bad_price = df[RAW_PRICE_COL].isna() | (df[RAW_PRICE_COL] <= 0)

    if bad_price.any():
        logger.warning("Dropping %d sale row(s) with missing or non-positive price", int(bad_price.sum()))
    if (invalid_mask & ~bad_price).any():
        example_idx = list(df.index[invalid_mask & ~bad_price][:5])
        logger.warning(
            "Dropping %d sale row(s) failing validation (first 5 indices: %s)",
            int((invalid_mask & ~bad_price).sum()), example_idx,
        )
    df = df[~(invalid_mask | bad_price)].copy()

    df[ID_COL] = df[ID_COL].astype("int64")
    df[TARGET_COL] = df[TARGET_COL].astype("int64")
    df[RAW_PRICE_COL] = df[RAW_PRICE_COL].astype("float64")
    for c in PROMO_COLS:
        df[c] = (df[c] > 0).astype("int64")
    df["_web"] = df[WEBSITE_COL].map(_website_label)

    logger.debug("Kept %d of %d sale row(s)", len(df), original_len)
    return df


def _category_ids(values: pd.Series, col: str) -> pd.Series:
    """Whole-number ids become nullable integers; anything else is kept as text."""
    present = values.dropna()
    numeric = pd.to_numeric(present, errors="coerce")
    if len(present) and numeric.notna().all() and (numeric % 1 == 0).all():
        return pd.to_numeric(values, errors="coerce").astype("Int64")
    if numeric.notna().any():
        logger.warning(
            "Catalog %s has non-integer or mixed ids (e.g. %s); keeping all values as text",
            col, present.head(3).tolist(),
        )
    return values.map(_id_text, na_action="ignore").astype("string")


def _id_text(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_catalog(catalog: Union[pd.DataFrame, Mapping]) -> pd.DataFrame:
    if isinstance(catalog, Mapping):
        catalog = (
            pd.DataFrame.from_dict(dict(catalog), orient="index")
            .rename_axis(ID_COL)
            .reset_index()
        )
    _ensure_required_columns(catalog, [ID_COL] + CATALOG_COLS, "catalog")
    cat = catalog[[ID_COL] + CATALOG_COLS].copy()
    cat[ID_COL] = pd.to_numeric(cat[ID_COL], errors="coerce")
    cat = cat[cat[ID_COL].notna()].copy()
    cat[ID_COL] = cat[ID_COL].astype("int64")
    for col in ("main_category_id", "parent_category_id"):
        cat[col] = _category_ids(cat[col], col)

    dupes = cat[ID_COL][cat[ID_COL].duplicated()].unique().tolist()
    if dupes:
        raise ValueError(f"Catalog has duplicate product_id values: {dupes[:5]}")
    return cat


# ------------------ Price buckets ------------------
def _bucket_label(upper: float, width: float) -> str:
    return f"({upper - width:g}, {upper:g}]"


def assign_price_range(store: pd.DataFrame, price_bucket_width: float = PRICE_BUCKET_WIDTH) -> pd.DataFrame:
    """
    Return a copy of `store` with price_range recomputed for the given width.
    Buckets are right-closed: with width 25, a price of 25.0 falls in "(0, 25]".
    """
    if price_bucket_width <= 0:
        raise ValueError("price_bucket_width must be positive")
    out = store.copy()
    upper = np.ceil(out[PRICE_COL].to_numpy(dtype=float) / price_bucket_width) * price_bucket_width
    labels = {u: _bucket_label(u, price_bucket_width) for u in np.unique(upper)}
    out[PRICE_RANGE_COL] = pd.Series(upper, index=out.index).map(labels)
    return out


# ------------------ Store construction ------------------
def build_series_store(
    catalog: Union[pd.DataFrame, Mapping],
    sales: pd.DataFrame,
    price_bucket_width: float = PRICE_BUCKET_WIDTH,
) -> pd.DataFrame:
    """
    Reduce storefront sale rows to one DailySeriesRow per (product_id, date).
    The returned frame is sorted by product_id, date and treated as read-only.
    """
    df = _coerce_sales(sales)
    cat = _coerce_catalog(catalog)
    keys = [ID_COL, DATE_COL]

    daily = (
        df.groupby(keys, sort=True)
        .agg(
            units_sold=(TARGET_COL, "sum"),
            average_price=(RAW_PRICE_COL, "mean"),
            promotion_dummy_1=(PROMO_COLS[0], "max"),
            promotion_dummy_2=(PROMO_COLS[1], "max"),
        )
        .reset_index()
    )

    # Storefront mix: units per storefront divided by the day's total
    by_web = (
        df.pivot_table(index=keys, columns="_web", values=TARGET_COL, aggfunc="sum", fill_value=0)
        .reindex(columns=WEBSITES, fill_value=0)
        .astype(float)
    )
    totals = by_web.sum(axis=1)
    props = by_web.div(totals.where(totals > 0), axis=0).fillna(0.0)
    props.columns = WEB_PROP_COLS
    daily = daily.merge(props.reset_index(), on=keys, how="left")

    daily = daily.merge(cat, on=ID_COL, how="left")
    unknown = daily.loc[daily[CATALOG_COLS].isna().all(axis=1), ID_COL].unique().tolist()
    if unknown:
        logger.warning("No catalog entry for %d product(s), e.g. %s", len(unknown), unknown[:5])

    daily = assign_price_range(daily, price_bucket_width)
    daily = daily[SERIES_COLS].sort_values(keys).reset_index(drop=True)

    logger.info(
        "Built series store: %d row(s), %d product(s), %s to %s",
        len(daily), daily[ID_COL].nunique(),
        daily[DATE_COL].min().date() if len(daily) else None,
        daily[DATE_COL].max().date() if len(daily) else None,
    )
    return daily


def product_history(store: pd.DataFrame, product_id) -> pd.DataFrame:
    """Date-ordered rows of one SKU (empty frame if the id is absent)."""
    rows = store[store[ID_COL] == product_id]
    return rows.sort_values(DATE_COL).reset_index(drop=True)
