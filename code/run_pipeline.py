#!/usr/bin/env python3
"""
run_pipeline.py

Single entrypoint to fill the DAC1b table from CRS data:
load rules -> load + expand CRS data -> apply rules -> post-process
-> result.csv -> rule coverage diagnostics -> fill Excel template.

Design:
- code/.env is the single source of truth for paths (DAC_* variables).
- Configuration errors (rule table vs CRS schema) abort the run.
- Data-quality warnings never abort; they are summarised at the end.
- Template filling is optional (skipped if the template file is missing).

Environment Variables:
- DAC_CRS_CSV, DAC_CHANNEL_CSV, DAC_RULES_XLSX, DAC_TEMPLATE_XLSX, DAC_OUTPUT_DIR
- Optional: DAC_RULES_SHEET, DAC_SHEET_LC, DAC_SHEET_USD, DAC_EXCHANGE_RATE,
  DAC_PLACEHOLDER, DAC_MAX_WORKERS
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pandas as pd

from dac_reporting.config import DEFAULT_COLUMN_MAPPING, Settings
from dac_reporting.diagnostics import (
    generate_rule_impact_summary,
    print_console_summary,
    unmatched_records,
    write_impact_summary,
)
from dac_reporting.io import ensure_dirs, load_crs_data, load_rules, load_settings, save_result_csv
from dac_reporting.post_processing import post_process_result
from dac_reporting.rule_engine import RuleConfigurationError, evaluate_rules
from dac_reporting.template import fill_excel_template


def print_warning_summary(warnings: List[str], limit: int = 20) -> None:
    if not warnings:
        print("\n[OK] No data-quality warnings")
        return
    print(f"\n[WARNING] {len(warnings)} data-quality warning(s):")
    for msg in warnings[:limit]:
        print(f"  - {msg}")
    if len(warnings) > limit:
        print(f"  ... {len(warnings) - limit} more")


def run(settings: Settings, warnings: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Run the full pipeline for the given settings.

    Returns:
        Post-processed result table (one row per DAC1b ID)

    Raises:
        FileNotFoundError: if CRS, channel or rules input is missing
        RuleConfigurationError: if the rule table and CRS columns disagree
    """
    if warnings is None:
        warnings = []

    ensure_dirs(settings)

    print("...Loading rules...")
    rules = load_rules(settings.rules_xlsx, settings.rules_sheet)
    print(f"[INFO] Loaded {len(rules)} rules from {settings.rules_xlsx}")

    print("...Loading and preparing CRS data...")
    crs_data = load_crs_data(settings.crs_csv, settings.channel_csv, warnings=warnings)
    print(f"[INFO] {len(crs_data)} CRS records after purpose code expansion")

    print("...Applying rules...")
    result, skipped = evaluate_rules(
        rules,
        crs_data,
        column_mapping=DEFAULT_COLUMN_MAPPING,
        placeholder=settings.placeholder,
        warnings=warnings,
        max_workers=settings.max_workers,
        return_skipped=True,
    )

    print("...Performing post-processing...")
    result = post_process_result(result, crs_data, warnings=warnings, skipped=skipped)

    save_result_csv(result, settings.result_csv)
    print(f"[OK] Saved result to: {settings.result_csv}")

    impact = generate_rule_impact_summary(
        rules, crs_data, DEFAULT_COLUMN_MAPPING, settings.placeholder
    )
    unmatched = unmatched_records(rules, crs_data, DEFAULT_COLUMN_MAPPING, settings.placeholder)
    write_impact_summary(impact, settings.impact_csv)
    print_console_summary(impact, unmatched, len(crs_data), output_path=settings.impact_csv)

    if Path(settings.template_xlsx).exists():
        print("...Filling templates...")
        written = fill_excel_template(
            result,
            settings.template_xlsx,
            settings.filled_xlsx,
            settings.sheet_lc,
            settings.sheet_usd,
            settings.exchange_rate,
        )
        print(f"[OK] Wrote {written} cells to: {settings.filled_xlsx}")
    else:
        print(f"\n→ Skipping template filling (no template found at {settings.template_xlsx})")

    return result


def main() -> None:
    code_dir = Path(__file__).resolve().parent

    try:
        settings = load_settings(code_dir / ".env")
    except ValueError as e:
        print(f"[ERROR] {e}")
        print("  Set the DAC_* variables in code/.env (see code/.env.example)")
        raise

    warnings: List[str] = []
    try:
        run(settings, warnings)
    except RuleConfigurationError as e:
        print(f"\n✗ Configuration error: {e}")
        print("  The rule table and the CRS columns are out of sync.")
        raise
    except FileNotFoundError as e:
        print(f"\n✗ Error: {e}")
        raise
    finally:
        print_warning_summary(warnings)

    print("\nPipeline complete.")


if __name__ == "__main__":
    main()
