"""
match_terms.py

Filter-clause language used by the DAC1b rule table.

A clause is a comma-separated list of match terms:
- "G"     exact term: field must equal "G"
- "<>G"   exclusion term: field must not equal "G"
- "42x"   prefix term: field must start with "42"

Combination inside one clause:
- exact and prefix terms are OR-combined
- exclusion terms are AND-combined on top of them
- a clause made only of exclusions keeps every record that is not excluded,
  including records whose field is null or empty

Clauses are parsed once and evaluated column-wise against a pandas Series.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

import pandas as pd

EXCLUSION_MARKER = "<>"
WILDCARD_MARKER = "x"
TERM_SEPARATOR = ","


@dataclass(frozen=True)
class Exact:
    value: str


@dataclass(frozen=True)
class Excluded:
    value: str


@dataclass(frozen=True)
class Prefix:
    value: str


Term = Union[Exact, Excluded, Prefix]


def parse_term(raw: str) -> Term:
    token = raw.strip()
    if token.startswith(EXCLUSION_MARKER):
        return Excluded(token[len(EXCLUSION_MARKER):])
    if token.endswith(WILDCARD_MARKER):
        return Prefix(token[: -len(WILDCARD_MARKER)])
    return Exact(token)


@dataclass(frozen=True)
class Clause:
    terms: Tuple[Term, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.terms

    @property
    def exclusion_only(self) -> bool:
        return bool(self.terms) and all(isinstance(t, Excluded) for t in self.terms)

    def mask(self, series: pd.Series) -> pd.Series:
        """
        Boolean mask of the rows of `series` satisfying this clause.

        Null values never satisfy an exact or prefix term. An empty clause
        keeps every row.
        """
        if self.is_empty:
            return pd.Series(True, index=series.index)

        present = series.notna()
        text = series.where(present, "").astype(str)

        include = pd.Series(False, index=series.index)
        exclude = pd.Series(False, index=series.index)

        for term in self.terms:
            if isinstance(term, Excluded):
                exclude |= present & (text == term.value)
            elif isinstance(term, Prefix):
                # An empty prefix matches nothing
                if term.value:
                    include |= present & text.str.startswith(term.value)
            else:
                include |= present & (text == term.value)

        if self.exclusion_only:
            return ~exclude | ~present | (text == "")
        return include & ~exclude

    def apply(self, df: pd.DataFrame, field: str) -> pd.DataFrame:
        if self.is_empty:
            return df
        return df[self.mask(df[field])]


EMPTY_CLAUSE = Clause()


def parse_clause(raw: object) -> Clause:
    """Parse a raw rule-table cell into a Clause. Null or blank cells give the empty clause."""
    if raw is None or (not isinstance(raw, str) and pd.isna(raw)):
        return EMPTY_CLAUSE
    text = str(raw).strip()
    if not text:
        return EMPTY_CLAUSE

    terms = tuple(
        parse_term(part)
        for part in text.split(TERM_SEPARATOR)
        if part.strip()
    )
    return Clause(terms)
