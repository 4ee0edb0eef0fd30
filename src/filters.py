# filters.py
"""
Equality filters over series-store rows (price bucket, brand, categories).
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional, Union

import pandas as pd

from utils.errors import InvalidFilterKey
from utils.schema import FILTERABLE_ATTRIBUTES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterConditions:
    """Required attribute values; None means "any"."""

    price_range: Optional[str] = None
    brand: Optional[Any] = None
    main_category_id: Optional[Any] = None
    parent_category_id: Optional[Any] = None

    @classmethod
    def from_mapping(cls, conditions: Mapping[str, Any]) -> "FilterConditions":
        unknown = [k for k in conditions if k not in FILTERABLE_ATTRIBUTES]
        if unknown:
            raise InvalidFilterKey(unknown, FILTERABLE_ATTRIBUTES)
        return cls(**dict(conditions))

    def active(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _equals(column: pd.Series, value) -> pd.Series:
    """Elementwise equality; "10" matches integer id 10 and 10 matches text id "10"."""
    if isinstance(value, str) and pd.api.types.is_integer_dtype(column):
        if not value.strip().lstrip("-").isdigit():
            return pd.Series(False, index=column.index)
        value = int(value)
    elif not isinstance(value, str) and pd.api.types.is_string_dtype(column):
        value = str(value)
    return (column == value).fillna(False).astype(bool)


def filter_store(
    store: pd.DataFrame,
    conditions: Union[FilterConditions, Mapping[str, Any], None] = None,
) -> pd.DataFrame:
    """
    Rows of `store` matching ALL conditions, in their original order.
    No conditions -> the store itself. No match -> empty frame (not an error).
    """
    if conditions is None:
        return store
    if not isinstance(conditions, FilterConditions):
        conditions = FilterConditions.from_mapping(conditions)

    active = conditions.active()
    if not active:
        return store

    missing = [k for k in active if k not in store.columns]
    if missing:
        raise InvalidFilterKey(missing, [c for c in FILTERABLE_ATTRIBUTES if c in store.columns])

    mask = pd.Series(True, index=store.index)
    for col, value in active.items():
        mask &= _equals(store[col], value)
    out = store[mask]

    logger.debug("Filter %s kept %d of %d row(s)", active, len(out), len(store))
    if out.empty:
        logger.info("Filter %s matched no products", active)
    return out
