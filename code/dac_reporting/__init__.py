"""
DAC1b reporting: classifies CRS disbursement records into DAC1b buckets
using the spreadsheet rule table, and aggregates amounts per bucket.
"""

from .match_terms import Clause, Exact, Excluded, Prefix, parse_clause
from .rule_engine import (
    AGGREGATES,
    Aggregate,
    Rule,
    RuleConfigurationError,
    evaluate_rule,
    evaluate_rules,
    match_rule,
    parse_rule,
    skip_mask,
)
from .purpose_codes import expand, expand_purpose_codes
from .post_processing import post_process_result
from .template import fill_excel_template

__all__ = [
    "Clause",
    "Exact",
    "Excluded",
    "Prefix",
    "parse_clause",
    "AGGREGATES",
    "Aggregate",
    "Rule",
    "RuleConfigurationError",
    "evaluate_rule",
    "evaluate_rules",
    "match_rule",
    "parse_rule",
    "skip_mask",
    "expand",
    "expand_purpose_codes",
    "post_process_result",
    "fill_excel_template",
]
