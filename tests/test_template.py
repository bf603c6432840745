#!/usr/bin/env python3
"""
test_template.py

Unit tests for DAC1b Excel template filling (dac_reporting.template)

Tests:
- Values written by ID row and header column
- USD sheet converted with the exchange rate
- Null values and unknown IDs / columns skipped
- Error handling (missing template, missing sheet, bad rate)
"""

import unittest
import tempfile
import shutil
import sys
from pathlib import Path

import numpy as np
import pandas as pd
from openpyxl import Workbook, load_workbook

# Add code directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "code"))

from dac_reporting.template import fill_excel_template, to_usd_millions

SHEET_LC = "DAC1b_E_1000_LC"
SHEET_USD = "DAC1b_E_Mio_USD"


def build_template(path, sheets=(SHEET_LC, SHEET_USD)):
    wb = Workbook()
    wb.remove(wb.active)
    for name in sheets:
        ws = wb.create_sheet(name)
        ws.cell(row=5, column=2, value="ID")
        ws.cell(row=5, column=3, value="1121")
        ws.cell(row=5, column=4, value=1160)
        ws.cell(row=6, column=2, value=420)
        ws.cell(row=7, column=2, value="1030")
    wb.save(path)


class TestTemplate(unittest.TestCase):
    """Test template filling."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.template = Path(self.test_dir) / "template.xlsx"
        self.output = Path(self.test_dir) / "out" / "filled.xlsx"
        build_template(self.template)

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _result(self):
        return pd.DataFrame({
            "ID": pd.array([420, 1030, 9999], dtype="Int64"),
            "1121": [100.0, np.nan, 5.0],
            "1160": [-20.0, 30.0, 5.0],
            "1999": [1.0, 1.0, 1.0],
        })

    def test_values_written(self):
        written = fill_excel_template(
            self._result(), self.template, self.output, SHEET_LC, SHEET_USD, 0.8
        )

        # 420: 1121 + 1160, 1030: 1160 only; in both sheets
        self.assertEqual(written, 6)

        wb = load_workbook(self.output)
        lc = wb[SHEET_LC]
        self.assertEqual(lc.cell(row=6, column=3).value, 100.0)
        self.assertEqual(lc.cell(row=6, column=4).value, -20.0)
        self.assertIsNone(lc.cell(row=7, column=3).value)
        self.assertEqual(lc.cell(row=7, column=4).value, 30.0)

        usd = wb[SHEET_USD]
        self.assertAlmostEqual(usd.cell(row=6, column=3).value, 100.0 / 0.8 / 1000)
        self.assertAlmostEqual(usd.cell(row=7, column=4).value, 30.0 / 0.8 / 1000)

    def test_value_written_on_id_row(self):
        """Rows 1-4 are empty in the template; row numbers are sheet rows."""
        result = pd.DataFrame({
            "ID": pd.array([420], dtype="Int64"),
            "1121": [12.0],
        })

        fill_excel_template(result, self.template, self.output, SHEET_LC, SHEET_USD, 0.8)

        lc = load_workbook(self.output)[SHEET_LC]
        self.assertEqual(lc.cell(row=6, column=3).value, 12.0)
        self.assertIsNone(lc.cell(row=7, column=3).value)

    def test_template_not_modified(self):
        fill_excel_template(self._result(), self.template, self.output, SHEET_LC, SHEET_USD, 0.8)

        wb = load_workbook(self.template)
        self.assertIsNone(wb[SHEET_LC].cell(row=6, column=3).value)

    def test_to_usd_millions(self):
        self.assertAlmostEqual(to_usd_millions(898.5, 0.8985), 1.0)

    def test_missing_template(self):
        with self.assertRaises(FileNotFoundError):
            fill_excel_template(
                self._result(), Path(self.test_dir) / "nope.xlsx", self.output,
                SHEET_LC, SHEET_USD, 0.8,
            )

    def test_missing_sheet(self):
        build_template(self.template, sheets=(SHEET_LC,))

        with self.assertRaises(ValueError) as ctx:
            fill_excel_template(self._result(), self.template, self.output, SHEET_LC, SHEET_USD, 0.8)
        self.assertIn(SHEET_USD, str(ctx.exception))

    def test_invalid_exchange_rate(self):
        with self.assertRaises(ValueError):
            fill_excel_template(self._result(), self.template, self.output, SHEET_LC, SHEET_USD, 0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
