"""
diagnostics.py

Rule coverage diagnostics for the DAC1b rule table.

Explains "odd" bucket totals by showing, per rule, how many expanded CRS
records its categorical filters match, and which records no rule matches
at all. Only Step A (categorical filters) is considered here; directive
filters on Type_of_finance are not.

Outputs:
- rule_impact_summary.csv
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

import pandas as pd

from .config import COL_EXTENDED, DEFAULT_COLUMN_MAPPING, PLACEHOLDER
from .rule_engine import RESULT_ID, Rule, match_rule, nullable_sum, parse_rule

IMPACT_COLUMNS = ["ID", "Matched_Records", "Matched_Pct", "Extended_Total", "Impact_Rank"]


def _parse_rules(
    rules: Union[pd.DataFrame, Sequence[Mapping[str, object]]],
    column_mapping: Mapping[str, str],
    placeholder: str,
) -> List[Rule]:
    rows = rules.to_dict("records") if isinstance(rules, pd.DataFrame) else list(rules)
    return [parse_rule(row, column_mapping, placeholder) for row in rows]


def generate_rule_impact_summary(
    rules: Union[pd.DataFrame, Sequence[Mapping[str, object]]],
    records: pd.DataFrame,
    column_mapping: Mapping[str, str] = DEFAULT_COLUMN_MAPPING,
    placeholder: str = PLACEHOLDER,
    amount_field: str = COL_EXTENDED,
) -> pd.DataFrame:
    """
    One row per rule: matched record count, share of all records and
    extended amount total, ranked by absolute extended amount.
    """
    parsed = _parse_rules(rules, column_mapping, placeholder)
    if not parsed:
        return pd.DataFrame(columns=IMPACT_COLUMNS)

    total = len(records)
    rows = []
    for rule in parsed:
        matched = match_rule(rule, records)
        rows.append({
            "ID": rule.rule_id,
            "Matched_Records": len(matched),
            "Matched_Pct": round(len(matched) / total * 100, 2) if total else 0.0,
            "Extended_Total": nullable_sum(matched[amount_field]),
        })

    summary = pd.DataFrame(rows)
    summary["Extended_Total"] = summary["Extended_Total"].astype(float)

    # Rank by absolute impact; rules without data rank last
    order = summary["Extended_Total"].abs().rank(method="first", ascending=False, na_option="bottom")
    summary["Impact_Rank"] = order.astype(int)
    return summary[IMPACT_COLUMNS]


def unmatched_records(
    rules: Union[pd.DataFrame, Sequence[Mapping[str, object]]],
    records: pd.DataFrame,
    column_mapping: Mapping[str, str] = DEFAULT_COLUMN_MAPPING,
    placeholder: str = PLACEHOLDER,
) -> pd.DataFrame:
    """Records that no rule's categorical filters select."""
    covered = pd.Series(False, index=records.index)
    for rule in _parse_rules(rules, column_mapping, placeholder):
        covered[match_rule(rule, records).index] = True
    return records[~covered]


def write_impact_summary(summary: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    summary.to_csv(path, index=False)
    return path


def print_console_summary(
    summary: pd.DataFrame,
    unmatched: pd.DataFrame,
    total_records: int,
    top_n: int = 5,
    output_path: Optional[Path] = None,
) -> None:
    print("\n" + "=" * 60)
    print("RULE COVERAGE DIAGNOSTICS")
    print("=" * 60)
    print(f"Expanded CRS records: {total_records}")
    print(f"Records matched by no rule: {len(unmatched)}")

    empty = summary[summary["Matched_Records"] == 0]
    print(f"Rules matching no record: {len(empty)}")

    print(f"\nTop {top_n} rules by absolute extended amount:")
    ranked = summary.sort_values("Impact_Rank").head(top_n)
    if len(ranked) == 0:
        print("  (no data)")
    for _, row in ranked.iterrows():
        amount = row["Extended_Total"]
        shown = "n/a" if pd.isna(amount) else f"{amount:>14,.1f}"
        print(f"  {row['Impact_Rank']}. {RESULT_ID} {row['ID']!s:<10} | {shown} | {row['Matched_Records']} records")

    if output_path is not None:
        print(f"\nOutput written to: {output_path}")
    print("=" * 60)
