"""
template.py

Writes the post-processed DAC1b results into the reporting template.

The template workbook holds two pre-built sheets:
- local currency sheet (values in 1000 LC, written as-is)
- USD sheet (values in million USD: value / exchange_rate / 1000)

Cells are addressed by content, not by position:
- row: the row whose ID column (column B by default) holds the result ID
- column: the column whose header row (row 5 by default) holds the result
  column name (e.g. "1121")

Results without a matching row or column are skipped, as are null values.

Assumed template layout:
- header_row and id_column are worksheet coordinates (row 1 is the first
  sheet row, empty leading rows included)
- each value goes on the row that carries its ID label, in the column that
  carries its bucket header
Templates whose value cells sit one row below the ID label need a different
layout; pass header_row / id_column for templates that move the header or
the ID column.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Tuple

import pandas as pd
from openpyxl import load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from .rule_engine import RESULT_ID

HEADER_ROW = 5
ID_COLUMN = 2


def to_usd_millions(value: float, exchange_rate: float) -> float:
    return value / exchange_rate / 1000


def _cell_key(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _locate(ws: Worksheet, header_row: int, id_column: int) -> Tuple[Dict[str, int], Dict[str, int]]:
    rows: Dict[str, int] = {}
    for r in range(1, ws.max_row + 1):
        v = ws.cell(row=r, column=id_column).value
        if v is not None:
            rows.setdefault(_cell_key(v), r)

    cols: Dict[str, int] = {}
    for c in range(1, ws.max_column + 1):
        v = ws.cell(row=header_row, column=c).value
        if v is not None:
            cols.setdefault(_cell_key(v), c)

    return rows, cols


def _write_sheet(
    ws: Worksheet,
    result: pd.DataFrame,
    convert: Callable[[float], float],
    header_row: int,
    id_column: int,
) -> int:
    rows, cols = _locate(ws, header_row, id_column)
    written = 0
    for record in result.to_dict("records"):
        rid = record.get(RESULT_ID)
        if rid is None or pd.isna(rid):
            continue
        r = rows.get(_cell_key(rid))
        if r is None:
            continue

        for col_name, value in record.items():
            if col_name == RESULT_ID or value is None or pd.isna(value):
                continue
            c = cols.get(_cell_key(col_name))
            if c is None:
                continue
            ws.cell(row=r, column=c, value=convert(float(value)))
            written += 1
    return written


def fill_excel_template(
    result: pd.DataFrame,
    template_xlsx: Path,
    output_xlsx: Path,
    sheet_lc: str,
    sheet_usd: str,
    exchange_rate: float,
    header_row: int = HEADER_ROW,
    id_column: int = ID_COLUMN,
) -> int:
    """
    Fill both template sheets and save the workbook to output_xlsx.

    Returns:
        Number of cells written across both sheets.

    Raises:
        FileNotFoundError: if the template does not exist
        ValueError: if a target sheet is missing or the exchange rate is not positive
    """
    if not Path(template_xlsx).exists():
        raise FileNotFoundError(f"Template file not found: {template_xlsx}")
    if exchange_rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {exchange_rate}")

    wb = load_workbook(template_xlsx)
    missing = [s for s in (sheet_lc, sheet_usd) if s not in wb.sheetnames]
    if missing:
        raise ValueError(f"Template is missing sheets: {missing}")

    written = _write_sheet(wb[sheet_lc], result, lambda v: v, header_row, id_column)
    written += _write_sheet(
        wb[sheet_usd],
        result,
        lambda v: to_usd_millions(v, exchange_rate),
        header_row,
        id_column,
    )

    output_path = Path(output_xlsx)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return written
