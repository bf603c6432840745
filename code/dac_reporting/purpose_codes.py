"""
purpose_codes.py

Splits CRS rows that carry several purpose codes into one row per code.

A purpose code cell may hold multiple codes with percentage weights, e.g.
"14030:50|15110:50". Each fragment becomes its own row, and the amount
columns of that row are scaled by the fragment's percentage. A fragment
without a percentage counts as 100%. Percentages are not required to sum
to 100 across one cell.

Rows with an empty purpose code pass through unchanged.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from .config import AMOUNT_COLUMNS, COL_PURPOSE_CODE
from .rule_engine import RuleConfigurationError

CODE_DELIMITER = "|"
_CODE_RE = re.compile(r"^\d+")
_PERCENT_RE = re.compile(r":(\d+)")


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return bool(pd.isna(value))


def parse_fragment(fragment: str) -> Tuple[Optional[str], float, bool]:
    """
    Parse one "code:percentage" fragment.

    Returns:
        (code or None, percentage, parsed_cleanly)
    """
    clean = True

    m = _CODE_RE.match(fragment)
    code = m.group(0) if m else None
    if code is None:
        clean = False

    percentage = 100.0
    if ":" in fragment:
        pm = _PERCENT_RE.search(fragment)
        if pm:
            percentage = float(pm.group(1))
        else:
            clean = False

    return code, percentage, clean


def split_composite(value: object) -> List[Tuple[Optional[str], float, bool]]:
    """
    Split a raw purpose code cell into parsed fragments.

    A cell that yields no fragment at all (e.g. "|") gives a single
    unset code at 100%.
    """
    fragments = [f.strip() for f in str(value).split(CODE_DELIMITER)]
    parsed = [parse_fragment(f) for f in fragments if f]
    if not parsed:
        return [(None, 100.0, False)]
    return parsed


def _check_scaled_fields(df: pd.DataFrame, scaled_fields: Iterable[str]) -> List[str]:
    fields = list(scaled_fields)
    missing = [c for c in fields if c not in df.columns]
    if missing:
        raise RuleConfigurationError(f"Amount columns missing from records: {missing}")
    non_numeric = [c for c in fields if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise RuleConfigurationError(f"Amount columns are not numeric: {non_numeric}")
    return fields


def expand(
    records: pd.DataFrame,
    composite_field: str,
    scaled_fields: Iterable[str],
    warnings: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Expand composite code rows into one row per code.

    Args:
        records: prepared records, one row per CRS line item
        composite_field: column holding "code:pct|code:pct" values
        scaled_fields: numeric columns scaled by each fragment's percentage
        warnings: optional list receiving data-quality messages

    Returns:
        New DataFrame (input is not modified), original row order outer,
        fragment order inner, fresh RangeIndex.

    Raises:
        RuleConfigurationError: if a scaled field is missing or non-numeric
    """
    fields = _check_scaled_fields(records, scaled_fields)

    if composite_field not in records.columns or records.empty:
        return records.reset_index(drop=True)

    positions: List[int] = []
    codes: List[object] = []
    factors: List[float] = []

    for position, raw in enumerate(records[composite_field].tolist()):
        if _is_blank(raw):
            positions.append(position)
            codes.append(raw)
            factors.append(1.0)
            continue

        for code, percentage, clean in split_composite(raw):
            if not clean and warnings is not None:
                warnings.append(
                    f"Row {position}: could not fully parse {composite_field} value "
                    f"{raw!r} (code={code}, percentage={percentage:g})"
                )
            positions.append(position)
            codes.append(code)
            factors.append(percentage / 100)

    out = records.iloc[positions].reset_index(drop=True).copy()
    out[composite_field] = pd.Series(codes, index=out.index, dtype=object)

    factor = pd.Series(factors, index=out.index)
    for col in fields:
        out[col] = out[col] * factor

    return out


def expand_purpose_codes(
    records: pd.DataFrame,
    composite_field: str = COL_PURPOSE_CODE,
    scaled_fields: Iterable[str] = AMOUNT_COLUMNS,
    warnings: Optional[List[str]] = None,
) -> pd.DataFrame:
    """expand() with the CRS purpose code column and the five amount columns."""
    return expand(records, composite_field, scaled_fields, warnings)
