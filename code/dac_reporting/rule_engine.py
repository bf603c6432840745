"""
rule_engine.py

Applies DAC1b rule rows to the expanded CRS records and computes the
aggregates of each reporting bucket.

Rule evaluation
---------------
Step A (categorical filtering):
    For every rule column in the column mapping, the cell is parsed into a
    Clause and narrows the candidate records on the mapped CRS column.
    Clauses are AND-combined; empty cells do not narrow.

Step B (aggregation):
    Each aggregate has its own directive cell:
    - placeholder  -> aggregate skipped, result is null
    - empty        -> sum over all Step A records
    - clause       -> Step A records further filtered on Type_of_finance
    Sums skip nulls. A sum with no non-null contributor is null, so
    "nothing matched" stays distinguishable from "matched and summed to 0".

Sign convention:
    Amounts received (1130) are reported negated.

Rules are independent of each other and never mutate the records, so they
can be evaluated in any order or in parallel.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .config import (
    COL_COMMITMENTS,
    COL_EXTENDED,
    COL_FINANCE_TYPE,
    COL_GEQ,
    COL_MOBILIZED,
    COL_RECEIVED,
    DEFAULT_COLUMN_MAPPING,
    PLACEHOLDER,
)
from .match_terms import EMPTY_CLAUSE, Clause, parse_clause


class RuleConfigurationError(Exception):
    """Raised when the rule table and the CRS record schema are out of sync."""
    pass


# ======================================================
# AGGREGATE DEFINITIONS
# ======================================================

DIRECTIVE_GRANTS = "Type of finance grants"
DIRECTIVE_NON_GRANTS = "Type of finance non grants"
DIRECTIVE_RECEIVED = "Type of finance Amounts received"
DIRECTIVE_GEQ = "Sum of GEQ"
DIRECTIVE_POSITIVE_GEQ = "Sum of postive GEQ"  # spelled as in the rules workbook
DIRECTIVE_NEGATIVE_GEQ = "Sum of negative GEQ"
DIRECTIVE_MOBILIZED = "Amounts Mobilized"


@dataclass(frozen=True)
class Aggregate:
    output: str
    directive: str
    amount: str
    sign: int = 0
    negate: bool = False


AGGREGATES: Tuple[Aggregate, ...] = (
    Aggregate("1121", DIRECTIVE_GRANTS, COL_EXTENDED),
    Aggregate("1122", DIRECTIVE_NON_GRANTS, COL_EXTENDED),
    Aggregate("1130", DIRECTIVE_RECEIVED, COL_RECEIVED, negate=True),
    Aggregate("1151", DIRECTIVE_GRANTS, COL_COMMITMENTS),
    Aggregate("1152", DIRECTIVE_NON_GRANTS, COL_COMMITMENTS),
    Aggregate("1160", DIRECTIVE_GEQ, COL_GEQ),
    Aggregate("Positive_Grant_Equivalent", DIRECTIVE_POSITIVE_GEQ, COL_GEQ, sign=1),
    Aggregate("Negative_Grant_Equivalent", DIRECTIVE_NEGATIVE_GEQ, COL_GEQ, sign=-1),
    Aggregate("Amounts_mobilized", DIRECTIVE_MOBILIZED, COL_MOBILIZED),
)

RESULT_ID = "ID"


def directive_columns(aggregates: Iterable[Aggregate] = AGGREGATES) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(a.directive for a in aggregates))


def result_columns(aggregates: Iterable[Aggregate] = AGGREGATES) -> List[str]:
    return [RESULT_ID] + [a.output for a in aggregates]


# ======================================================
# RULE PARSING
# ======================================================

@dataclass(frozen=True)
class Rule:
    """
    One parsed rule row.

    filters holds (CRS column, Clause) pairs in column-mapping order.
    directives maps a directive column to its Clause, or to None when the
    rule table asks to skip that aggregate.
    """
    rule_id: object
    filters: Tuple[Tuple[str, Clause], ...]
    directives: Mapping[str, Optional[Clause]]


def _rule_id(value: object) -> object:
    if value is None:
        return None
    if not isinstance(value, str) and pd.isna(value):
        return None
    return value


def _is_placeholder(value: object, placeholder: str) -> bool:
    return isinstance(value, str) and value.strip() == placeholder


def parse_rule(
    row: Mapping[str, object],
    column_mapping: Mapping[str, str] = DEFAULT_COLUMN_MAPPING,
    placeholder: str = PLACEHOLDER,
    directives: Sequence[str] = directive_columns(),
    warnings: Optional[List[str]] = None,
) -> Rule:
    """
    Parse a raw rule-table row.

    Columns of the mapping or directive columns that are absent from the row
    are reported to `warnings` and treated as empty cells.
    """
    rule_id = _rule_id(row.get(RESULT_ID))

    expected = list(column_mapping) + [d for d in directives if d not in column_mapping]
    missing = [c for c in expected if c not in row]
    if missing and warnings is not None:
        warnings.append(f"Rule {rule_id}: missing rule columns in input: {', '.join(missing)}")

    filters = []
    for rule_column, data_column in column_mapping.items():
        clause = parse_clause(row.get(rule_column))
        if not clause.is_empty:
            filters.append((data_column, clause))

    parsed: Dict[str, Optional[Clause]] = {}
    for column in directives:
        raw = row.get(column)
        parsed[column] = None if _is_placeholder(raw, placeholder) else parse_clause(raw)

    return Rule(rule_id=rule_id, filters=tuple(filters), directives=parsed)


# ======================================================
# EVALUATION
# ======================================================

def nullable_sum(values: pd.Series) -> Optional[float]:
    """Sum ignoring nulls; None when there is no non-null value at all."""
    present = values.dropna()
    if present.empty:
        return None
    return float(present.sum())


def validate_schema(
    records: pd.DataFrame,
    column_mapping: Mapping[str, str] = DEFAULT_COLUMN_MAPPING,
    finance_field: str = COL_FINANCE_TYPE,
    aggregates: Iterable[Aggregate] = AGGREGATES,
) -> None:
    """
    Check that every column the rule table refers to exists in the records.

    Raises:
        RuleConfigurationError: on the first class of mismatch found
    """
    columns = set(records.columns)

    missing = [c for c in dict.fromkeys(column_mapping.values()) if c not in columns]
    if finance_field not in columns:
        missing.append(finance_field)
    if missing:
        raise RuleConfigurationError(f"Mapped columns missing from CRS data: {missing}")

    amounts = list(dict.fromkeys(a.amount for a in aggregates))
    missing_amounts = [c for c in amounts if c not in columns]
    if missing_amounts:
        raise RuleConfigurationError(f"Amount columns missing from CRS data: {missing_amounts}")

    non_numeric = [c for c in amounts if not pd.api.types.is_numeric_dtype(records[c])]
    if non_numeric:
        raise RuleConfigurationError(f"Amount columns are not numeric: {non_numeric}")


def match_rule(rule: Rule, records: pd.DataFrame) -> pd.DataFrame:
    """Step A: records satisfying every categorical clause of the rule."""
    filtered = records
    for data_column, clause in rule.filters:
        if data_column not in filtered.columns:
            raise RuleConfigurationError(
                f"Rule {rule.rule_id}: column {data_column!r} missing from CRS data"
            )
        filtered = clause.apply(filtered, data_column)
    return filtered


def evaluate_rule(
    rule: Rule,
    records: pd.DataFrame,
    finance_field: str = COL_FINANCE_TYPE,
    aggregates: Iterable[Aggregate] = AGGREGATES,
) -> Dict[str, object]:
    """
    Evaluate one rule against the expanded records.

    Returns:
        {"ID": rule id, <aggregate output>: float or None, ...}
    """
    matched = match_rule(rule, records)

    result: Dict[str, object] = {RESULT_ID: rule.rule_id}
    for agg in aggregates:
        clause = rule.directives.get(agg.directive, EMPTY_CLAUSE)
        if clause is None:
            result[agg.output] = None
            continue

        if agg.amount not in matched.columns:
            raise RuleConfigurationError(
                f"Rule {rule.rule_id}: amount column {agg.amount!r} missing from CRS data"
            )

        values = clause.apply(matched, finance_field)[agg.amount]
        if agg.sign > 0:
            values = values[values > 0]
        elif agg.sign < 0:
            values = values[values < 0]

        total = nullable_sum(values)
        if agg.negate and total is not None:
            total = 0.0 - total
        result[agg.output] = total

    return result


def skip_mask(rules: Sequence[Rule], aggregates: Iterable[Aggregate] = AGGREGATES) -> pd.DataFrame:
    """
    Boolean frame aligned with the evaluate_rules() result: True where the
    rule table asks to skip that aggregate (placeholder directive).

    A null result under an active directive means "nothing matched"; only
    this mask tells the two apart.
    """
    aggregates = list(aggregates)
    rows = []
    for rule in rules:
        row: Dict[str, object] = {RESULT_ID: rule.rule_id}
        for agg in aggregates:
            row[agg.output] = rule.directives.get(agg.directive, EMPTY_CLAUSE) is None
        rows.append(row)

    columns = result_columns(aggregates)
    out = pd.DataFrame(rows, columns=columns)
    out[columns[1:]] = out[columns[1:]].astype(bool)
    return out


def evaluate_rules(
    rules: Union[pd.DataFrame, Sequence[Mapping[str, object]]],
    records: pd.DataFrame,
    column_mapping: Mapping[str, str] = DEFAULT_COLUMN_MAPPING,
    placeholder: str = PLACEHOLDER,
    warnings: Optional[List[str]] = None,
    max_workers: int = 1,
    finance_field: str = COL_FINANCE_TYPE,
    aggregates: Sequence[Aggregate] = AGGREGATES,
    return_skipped: bool = False,
):
    """
    Evaluate every rule row and collect one result row per rule.

    Args:
        rules: rule table (DataFrame or sequence of row mappings), cells as strings
        records: expanded CRS records
        column_mapping: rule column -> CRS column
        placeholder: directive value meaning "skip this aggregate"
        warnings: optional list receiving data-quality messages
        max_workers: > 1 evaluates rules on a thread pool
        return_skipped: also return skip_mask() of the parsed rules

    Returns:
        DataFrame with "ID" plus one float column per aggregate (NaN = null),
        rows in rule-table order.
        With return_skipped, a (result, skipped) tuple.

    Raises:
        RuleConfigurationError: if the rule table references columns the
            records do not have, or an amount column is not numeric
    """
    validate_schema(records, column_mapping, finance_field, aggregates)

    rows = rules.to_dict("records") if isinstance(rules, pd.DataFrame) else list(rules)
    names = directive_columns(aggregates)
    parsed = [parse_rule(row, column_mapping, placeholder, names, warnings) for row in rows]

    if max_workers > 1 and len(parsed) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(evaluate_rule, rule, records, finance_field, aggregates)
                for rule in parsed
            ]
            results = [f.result() for f in futures]
    else:
        results = [evaluate_rule(rule, records, finance_field, aggregates) for rule in parsed]

    columns = result_columns(aggregates)
    out = pd.DataFrame(results, columns=columns)
    outputs = columns[1:]
    out[outputs] = out[outputs].astype(float)
    if return_skipped:
        return out, skip_mask(parsed, aggregates)
    return out
