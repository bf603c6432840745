import os
from pathlib import Path
from typing import List, Optional

import pandas as pd
from dotenv import find_dotenv, load_dotenv

from .config import AMOUNT_COLUMNS, DEFAULT_RULES_SHEET, Settings, build_settings
from .purpose_codes import expand_purpose_codes

REQUIRED_ENV = {
    "crs_csv": "DAC_CRS_CSV",
    "channel_csv": "DAC_CHANNEL_CSV",
    "rules_xlsx": "DAC_RULES_XLSX",
    "template_xlsx": "DAC_TEMPLATE_XLSX",
    "output_dir": "DAC_OUTPUT_DIR",
}

OPTIONAL_ENV = {
    "rules_sheet": "DAC_RULES_SHEET",
    "sheet_lc": "DAC_SHEET_LC",
    "sheet_usd": "DAC_SHEET_USD",
    "exchange_rate": "DAC_EXCHANGE_RATE",
    "placeholder": "DAC_PLACEHOLDER",
    "max_workers": "DAC_MAX_WORKERS",
}

CHANNEL_KEY_CRS = "Channel_Code"
CHANNEL_KEY_MAPPING = "Channel_ID"


def load_settings(env_file: Optional[Path] = None, **overrides) -> Settings:
    if env_file is not None and Path(env_file).exists():
        load_dotenv(env_file)
    else:
        load_dotenv(find_dotenv(usecwd=True))

    values = {}
    for key, var in {**REQUIRED_ENV, **OPTIONAL_ENV}.items():
        values[key] = overrides.get(key) or os.getenv(var)

    missing = [REQUIRED_ENV[k] for k in REQUIRED_ENV if not values[k]]
    if missing:
        raise ValueError(f"Missing required settings: {', '.join(missing)}")
    return build_settings(**values)


def ensure_dirs(s: Settings):
    s.output_dir.mkdir(parents=True, exist_ok=True)


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c).replace(" ", "_").replace("/", "_") for c in df.columns]
    return df


def _require_file(path: Path, label: str):
    if not Path(path).exists():
        raise FileNotFoundError(f"{label} file not found: {path}")


def load_channel_mapping(path: Path) -> pd.DataFrame:
    _require_file(path, "Channel mapping")
    channels = pd.read_csv(path, sep=";", dtype=str)
    channels.columns = [str(c).replace(" ", "_") for c in channels.columns]
    return channels


def load_crs_data(
    crs_csv: Path,
    channel_csv: Optional[Path] = None,
    warnings: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Load the CRS extract and prepare it for rule matching.

    - every column read as string (codes keep their formatting)
    - column names cleaned (spaces and slashes -> underscores)
    - amount columns converted to numeric
    - channel parent categories joined on Channel_Code
    - multi purpose code rows expanded
    """
    _require_file(crs_csv, "CRS data")
    crs = pd.read_csv(crs_csv, sep=";", dtype=str)
    crs = clean_column_names(crs)

    for col in AMOUNT_COLUMNS:
        if col in crs.columns:
            crs[col] = pd.to_numeric(crs[col], errors="coerce")

    if channel_csv is not None:
        channels = load_channel_mapping(channel_csv)
        if CHANNEL_KEY_CRS in crs.columns and CHANNEL_KEY_MAPPING in channels.columns:
            crs = crs.merge(
                channels,
                how="left",
                left_on=CHANNEL_KEY_CRS,
                right_on=CHANNEL_KEY_MAPPING,
            )
        elif warnings is not None:
            warnings.append(
                f"Channel join skipped: need {CHANNEL_KEY_CRS} in CRS data "
                f"and {CHANNEL_KEY_MAPPING} in channel mapping"
            )

    return expand_purpose_codes(crs, warnings=warnings)


def load_rules(path: Path, sheet_name: str = DEFAULT_RULES_SHEET) -> pd.DataFrame:
    _require_file(path, "Rules")
    rules = pd.read_excel(path, sheet_name=sheet_name, dtype=str, engine="openpyxl")
    return rules.dropna(how="all").reset_index(drop=True)


def save_result_csv(result: pd.DataFrame, path: Path):
    # Semicolon separated, decimal comma
    result.to_csv(path, sep=";", decimal=",", index=False)
