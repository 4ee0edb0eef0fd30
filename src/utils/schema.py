# schema.py
"""
Schema definition for the canonical daily series and the forecast regressors.
"""

from utils.constants import (
    CATALOG_COLS, DATE_COL, ID_COL, PRICE_COL, PRICE_RANGE_COL, PROMO_COLS,
    TARGET_COL, WEB_PROP_COLS,
)

SERIES_COLS = (
    [ID_COL, DATE_COL, TARGET_COL, PRICE_COL]
    + PROMO_COLS
    + WEB_PROP_COLS
    + [PRICE_RANGE_COL]
    + CATALOG_COLS
)

# Regressors always handed to the model
BASE_REGRESSORS = [PRICE_COL] + WEB_PROP_COLS

# Regressors kept only when they vary over the training window
OPTIONAL_REGRESSORS = list(PROMO_COLS)

FILTERABLE_ATTRIBUTES = [PRICE_RANGE_COL] + CATALOG_COLS

HORIZON_COLS = ["date_offset", DATE_COL, "point_forecast", "lower_bound", "upper_bound"]

DISTANCE_COLS = ["candidate_id", "target_id", "distance"]
