#!/usr/bin/env python3
"""
test_post_processing.py

Unit tests for DAC1b result adjustments (dac_reporting.post_processing)

Tests:
- Grant equivalent / mobilized overrides
- Overrides honour the skip mask (active directive without data writes 0)
- Row 420 / 425 received adjustments
- MDRI row recomputation from CRS titles
- Summary rows and final ID ordering
"""

import unittest
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add code directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "code"))

from dac_reporting.config import (
    COL_COMMITMENTS,
    COL_EXTENDED,
    COL_GEQ,
    COL_MOBILIZED,
    COL_PROJECT_TITLE,
    COL_RECEIVED,
    PLACEHOLDER,
)
from dac_reporting.post_processing import add_summary_rows, post_process_result
from dac_reporting.rule_engine import evaluate_rules, result_columns


def make_result(rows):
    """rows: list of dicts with ID and any subset of result columns."""
    return pd.DataFrame(rows, columns=result_columns()).astype(
        {c: float for c in result_columns()[1:]}
    )


def make_crs():
    return pd.DataFrame({
        COL_PROJECT_TITLE: ["MDRI relief", "MDRI HIPC initiative", None, "Water"],
        COL_EXTENDED: [10.0, 99.0, 1000.0, 5.0],
        COL_GEQ: [5.0, 99.0, 1000.0, 5.0],
    })


def row_for(result, rid):
    return result[result["ID"] == rid].iloc[0]


class TestPostProcessing(unittest.TestCase):
    """Test the post-processing steps."""

    def test_grant_equivalent_overrides(self):
        result = make_result([
            {"ID": "500", "1160": 7.0, "Positive_Grant_Equivalent": 3.0},
            {"ID": "501", "1160": 7.0, "Negative_Grant_Equivalent": -2.0},
            {"ID": "502", "1160": 7.0, "1122": 1.0, "Amounts_mobilized": 9.0},
        ])

        out = post_process_result(result, make_crs(), summary_rows={})

        self.assertEqual(row_for(out, 500)["1160"], 3.0)
        self.assertEqual(row_for(out, 501)["1160"], -2.0)
        self.assertEqual(row_for(out, 502)["1160"], 7.0)
        self.assertEqual(row_for(out, 502)["1122"], 9.0)

    def test_received_rows(self):
        """Row 420 moves 1160 to 1130 (negated); row 425 nets it from 1121."""
        result = make_result([
            {"ID": "420", "1160": 50.0},
            {"ID": "425", "1121": 300.0},
        ])

        out = post_process_result(result, make_crs(), summary_rows={})

        self.assertEqual(row_for(out, 420)["1130"], -50.0)
        self.assertTrue(pd.isna(row_for(out, 420)["1160"]))
        self.assertEqual(row_for(out, 425)["1121"], 350.0)

    def test_received_rows_without_420(self):
        result = make_result([{"ID": "425", "1121": 300.0}])

        out = post_process_result(result, make_crs(), summary_rows={})

        self.assertEqual(row_for(out, 425)["1121"], 300.0)

    def test_mdri_row(self):
        result = make_result([{"ID": "2902", "1121": 1.0, "1160": 1.0}])

        out = post_process_result(result, make_crs(), summary_rows={})

        self.assertEqual(row_for(out, 2902)["1121"], 10.0)
        self.assertEqual(row_for(out, 2902)["1160"], 5.0)

    def test_mdri_without_title_column_warns(self):
        result = make_result([{"ID": "2902", "1121": 1.0}])
        warnings = []

        out = post_process_result(
            result, make_crs().drop(columns=[COL_PROJECT_TITLE]), summary_rows={}, warnings=warnings
        )

        self.assertEqual(row_for(out, 2902)["1121"], 1.0)
        self.assertEqual(len(warnings), 1)

    def test_summary_rows(self):
        result = make_result([
            {"ID": 10301, "1121": 1.0},
            {"ID": 10302, "1121": 2.0, "1160": np.nan},
            {"ID": 20701, "1121": 4.0},
        ])

        out = add_summary_rows(result)

        self.assertEqual(row_for(out, 1030)["1121"], 3.0)
        self.assertEqual(row_for(out, 1030)["1160"], 0.0)
        self.assertEqual(row_for(out, 207)["1121"], 4.0)
        self.assertEqual(row_for(out, 3102)["1121"], 0.0)

    def test_ids_sorted_as_integers(self):
        result = make_result([
            {"ID": "10301", "1121": 1.0},
            {"ID": "500", "1121": 1.0},
            {"ID": "420", "1160": 2.0},
        ])

        out = post_process_result(result, make_crs())

        self.assertEqual(str(out["ID"].dtype), "Int64")
        self.assertEqual(
            out["ID"].tolist(),
            [207, 420, 500, 1030, 3102, 10301],
        )

    def test_non_integer_id_warns_and_sorts_last(self):
        result = make_result([
            {"ID": "abc", "1121": 1.0},
            {"ID": "500", "1121": 1.0},
        ])
        warnings = []

        out = post_process_result(result, make_crs(), summary_rows={}, warnings=warnings)

        self.assertEqual(out["ID"].iloc[0], 500)
        self.assertTrue(pd.isna(out["ID"].iloc[1]))
        self.assertEqual(len(warnings), 1)
        self.assertIn("abc", warnings[0])

    def test_input_not_modified(self):
        result = make_result([{"ID": "420", "1160": 50.0}])
        original = result.copy()

        post_process_result(result, make_crs())

        pd.testing.assert_frame_equal(result, original)

class TestOverridesWithSkipMask(unittest.TestCase):
    """Test overrides when the skip mask from rule evaluation is passed along."""

    DIRECTIVES = {
        "Type of finance grants": "",
        "Type of finance non grants": "",
        "Type of finance Amounts received": "",
        "Sum of GEQ": "",
        "Sum of postive GEQ": "",
        "Sum of negative GEQ": "",
        "Amounts Mobilized": "",
    }

    def _records(self):
        return pd.DataFrame({
            "Type_of_finance": ["421", "421"],
            COL_EXTENDED: [500.0, 300.0],
            COL_RECEIVED: [0.0, 0.0],
            COL_COMMITMENTS: [0.0, 0.0],
            COL_GEQ: [-30.0, -20.0],
            COL_MOBILIZED: [np.nan, np.nan],
            COL_PROJECT_TITLE: ["Loan", "Loan"],
        })

    def _evaluate(self, **directives):
        row = dict(self.DIRECTIVES, ID="600")
        row.update(directives)
        records = self._records()
        result, skipped = evaluate_rules([row], records, {}, PLACEHOLDER, return_skipped=True)
        return result, skipped, records

    def test_active_override_without_data_writes_zero(self):
        """Positive GEQ active but only negative data: 1160 is 0, not the signed total."""
        result, skipped, records = self._evaluate(**{"Sum of negative GEQ": PLACEHOLDER})
        self.assertEqual(result.loc[0, "1160"], -50.0)

        out = post_process_result(result, records, summary_rows={}, skipped=skipped)

        self.assertEqual(row_for(out, 600)["1160"], 0.0)
        self.assertEqual(row_for(out, 600)["1122"], 0.0)

    def test_skipped_overrides_keep_values(self):
        result, skipped, records = self._evaluate(**{
            "Sum of postive GEQ": PLACEHOLDER,
            "Sum of negative GEQ": PLACEHOLDER,
            "Amounts Mobilized": PLACEHOLDER,
        })

        out = post_process_result(result, records, summary_rows={}, skipped=skipped)

        self.assertEqual(row_for(out, 600)["1160"], -50.0)
        self.assertEqual(row_for(out, 600)["1122"], 800.0)

    def test_negative_override_applied_last(self):
        result, skipped, records = self._evaluate(**{"Amounts Mobilized": PLACEHOLDER})

        out = post_process_result(result, records, summary_rows={}, skipped=skipped)

        self.assertEqual(row_for(out, 600)["1160"], -50.0)
        self.assertEqual(row_for(out, 600)["1122"], 800.0)

    def test_mismatched_skip_mask_raises(self):
        result, skipped, records = self._evaluate()

        with self.assertRaises(ValueError):
            post_process_result(result, records, skipped=skipped.iloc[0:0])



if __name__ == "__main__":
    unittest.main(verbosity=2)
