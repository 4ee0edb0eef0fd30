# utils/constants.py

# Schema constants used by series_store and others
DATE_COL = "date"
ID_COL = "product_id"
TARGET_COL = "units_sold"
PRICE_COL = "average_price"
RAW_PRICE_COL = "selling_price"
WEBSITE_COL = "website"
PROMO_COLS = ["promotion_dummy_1", "promotion_dummy_2"]
WEB_PROP_COLS = ["web1_prop", "web2_prop", "web3_prop"]
CATALOG_COLS = ["brand", "main_category_id", "parent_category_id"]
PRICE_RANGE_COL = "price_range"

RAW_SALES_COLUMNS = (
    [ID_COL, DATE_COL, WEBSITE_COL, RAW_PRICE_COL, TARGET_COL] + PROMO_COLS
)

# Storefront labels accepted in the raw `website` column
WEBSITES = ["web1", "web2", "web3"]

# Forecasting defaults (overridable through models/forecast.yaml)
PRICE_BUCKET_WIDTH = 25.0
LONG_HISTORY_DAYS = 365
SEASONAL_PERIOD = 7
ANNUAL_PERIOD = 365.25
HARMONIC_ORDER = 5
INTERVAL_LEVELS = [80, 95]
