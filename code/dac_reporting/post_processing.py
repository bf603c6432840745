"""
post_processing.py

Final DAC1b adjustments applied to the aggregated rule results.

Steps (in order):
1. Positive / Negative grant equivalents overwrite 1160 and Amounts
   mobilized overwrites 1122 unless the rule skipped them (an active
   directive that matched nothing writes 0).
2. Row 420 moves its 1160 value to 1130 (negated) and clears 1160.
   Row 425 subtracts row 420's 1130 from its 1121.
3. Row 2902 (MDRI debt relief) is recomputed from the CRS records whose
   project title mentions MDRI but not HIPC.
4. Summary rows (1030, 207, 3102) are added as sums of their member rows.
5. IDs become integers and the table is sorted by ID.

Row numbers and the MDRI title match are reporting-country specific; they
are exposed as module constants and keyword arguments.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import pandas as pd

from .config import COL_EXTENDED, COL_GEQ, COL_PROJECT_TITLE
from .rule_engine import RESULT_ID

ROW_RECEIVED_FROM_GEQ = 420
ROW_GRANTS_NET_OF_RECEIVED = 425
ROW_MDRI = 2902

MDRI_INCLUDE = "MDRI"
MDRI_EXCLUDE = "HIPC"

SUMMARY_ROWS: Dict[int, Sequence[int]] = {
    1030: (10301, 10302, 10303),
    207: (20701, 20702),
    3102: (31021, 31022, 31023),
}


def _numeric_ids(ids: pd.Series, warnings: Optional[List[str]]) -> pd.Series:
    numeric = pd.to_numeric(ids, errors="coerce")
    numeric = numeric.where(numeric == numeric.round())
    bad = ids[numeric.isna() & ids.notna()]
    if len(bad) > 0 and warnings is not None:
        warnings.append(f"Non-integer rule IDs kept without ID: {bad.tolist()}")
    return numeric


OVERRIDES = (
    ("Positive_Grant_Equivalent", "1160"),
    ("Negative_Grant_Equivalent", "1160"),
    ("Amounts_mobilized", "1122"),
)


def apply_grant_equivalent_overrides(
    result: pd.DataFrame,
    skipped: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Overwrite 1160 / 1122 with the override aggregates.

    With `skipped` (from evaluate_rules(..., return_skipped=True)), every
    override whose directive is active is written, a null sum counting as 0.
    Without it, only non-null overrides are written.
    """
    out = result.copy()
    for source, target in OVERRIDES:
        if skipped is None:
            active = out[source].notna()
        else:
            active = pd.Series(~skipped[source].to_numpy(dtype=bool), index=out.index)
        out[target] = out[source].fillna(0.0).where(active, out[target])
    return out


def adjust_received_rows(
    result: pd.DataFrame,
    source_id: int = ROW_RECEIVED_FROM_GEQ,
    target_id: int = ROW_GRANTS_NET_OF_RECEIVED,
) -> pd.DataFrame:
    out = result.copy()
    is_source = out[RESULT_ID] == source_id
    if not is_source.any():
        return out

    out.loc[is_source, "1130"] = -out.loc[is_source, "1160"]
    out.loc[is_source, "1160"] = float("nan")

    received = out.loc[is_source, "1130"].iloc[0]
    is_target = out[RESULT_ID] == target_id
    out.loc[is_target, "1121"] = out.loc[is_target, "1121"] - received
    return out


def apply_mdri(
    result: pd.DataFrame,
    crs_data: pd.DataFrame,
    row_id: int = ROW_MDRI,
    warnings: Optional[List[str]] = None,
) -> pd.DataFrame:
    out = result.copy()
    if COL_PROJECT_TITLE not in crs_data.columns:
        if warnings is not None:
            warnings.append(f"MDRI row {row_id} not recomputed: {COL_PROJECT_TITLE} missing")
        return out

    title = crs_data[COL_PROJECT_TITLE].fillna("").astype(str)
    mdri = crs_data[
        title.str.contains(MDRI_INCLUDE, regex=False)
        & ~title.str.contains(MDRI_EXCLUDE, regex=False)
    ]

    is_row = out[RESULT_ID] == row_id
    out.loc[is_row, "1121"] = mdri[COL_EXTENDED].sum()
    out.loc[is_row, "1160"] = mdri[COL_GEQ].sum()
    return out


def add_summary_rows(
    result: pd.DataFrame,
    summary_rows: Dict[int, Sequence[int]] = SUMMARY_ROWS,
) -> pd.DataFrame:
    value_cols = [c for c in result.columns if c != RESULT_ID]

    new_rows = []
    for new_id, members in summary_rows.items():
        subset = result[result[RESULT_ID].isin(list(members))]
        row = subset[value_cols].sum(skipna=True)
        row[RESULT_ID] = new_id
        new_rows.append(row)

    if not new_rows:
        return result.copy()
    return pd.concat(
        [result, pd.DataFrame(new_rows, columns=result.columns)],
        ignore_index=True,
    )


def post_process_result(
    result: pd.DataFrame,
    crs_data: pd.DataFrame,
    summary_rows: Dict[int, Sequence[int]] = SUMMARY_ROWS,
    warnings: Optional[List[str]] = None,
    skipped: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    if skipped is not None and len(skipped) != len(result):
        raise ValueError(
            f"Skip mask has {len(skipped)} rows, result has {len(result)}"
        )

    out = result.copy()
    out[RESULT_ID] = _numeric_ids(out[RESULT_ID], warnings)

    out = apply_grant_equivalent_overrides(out, skipped)
    out = adjust_received_rows(out)
    out = apply_mdri(out, crs_data, warnings=warnings)
    out = add_summary_rows(out, summary_rows)

    out[RESULT_ID] = pd.to_numeric(out[RESULT_ID])
    out = out.sort_values(RESULT_ID, kind="stable", na_position="last").reset_index(drop=True)
    out[RESULT_ID] = out[RESULT_ID].astype("Int64")
    return out
