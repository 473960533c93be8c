"""Build screener universes from pandas DataFrames and back."""

from typing import Any, Optional

import pandas as pd

from src.nlscreen.catalog import FIELD_CATALOG, FieldCatalog
from src.nlscreen.models import ScreenerResponse, Security, SECURITY_ATTRS

TEXT_ATTRS = ("name", "sector", "industry")


def universe_from_frame(
    df: pd.DataFrame,
    catalog: Optional[FieldCatalog] = None,
) -> list[Security]:
    """Convert a DataFrame of securities into ``Security`` records.

    Columns may use catalog keys (``changePct``), attribute names
    (``change_pct``) or any catalog alias. Symbols come from a symbol
    column or, failing that, a string index. NaN becomes missing and
    unknown columns are ignored.
    """
    catalog = catalog or FIELD_CATALOG

    frame = df
    mapping = _column_mapping(frame, catalog)
    if "symbol" not in mapping.values() and pd.api.types.is_string_dtype(frame.index):
        frame = frame.rename_axis("symbol").reset_index()
        mapping = _column_mapping(frame, catalog)
    if "symbol" not in mapping.values():
        raise ValueError("DataFrame needs a symbol column or a symbol index")

    securities = []
    for row in frame.to_dict(orient="records"):
        values = {attr: _clean(row[column]) for column, attr in mapping.items()}
        values["symbol"] = str(values["symbol"]).strip()
        for attr in TEXT_ATTRS:
            if attr in values and values[attr] is None:
                values[attr] = ""
        securities.append(Security(**values))
    return securities


def results_to_frame(response: ScreenerResponse) -> pd.DataFrame:
    """Response rows as a DataFrame restricted to the display columns."""
    columns = list(response.columns)
    records = [s.to_dict() for s in response.data]
    if not records:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame.from_records(records)
    if columns:
        df = df[[c for c in columns if c in df.columns]]
    return df


def _column_mapping(frame: pd.DataFrame, catalog: FieldCatalog) -> dict[Any, str]:
    """DataFrame column -> ``Security`` attribute; first column wins."""
    mapping = {}
    for column in frame.columns:
        attr = _attr_for(str(column), catalog)
        if attr and attr not in mapping.values():
            mapping[column] = attr
    return mapping


def _attr_for(column: str, catalog: FieldCatalog) -> Optional[str]:
    if column in SECURITY_ATTRS:
        return column
    key = catalog.resolve(column)
    if key:
        return catalog.require(key).attr
    return None


def _clean(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if pd.isna(value):
        return None
    if hasattr(value, "item"):
        return value.item()  # numpy scalar
    return value
