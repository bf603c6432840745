from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

# Cleaned CRS column names (spaces and slashes replaced by underscores)
COL_EXTENDED = "Amounts_extended_1000_CHF"
COL_RECEIVED = "Amounts_received_(for_loans:_only_principals)_1000_CHF"
COL_COMMITMENTS = "Commitments_1000_CHF"
COL_GEQ = "OECD_grant_equivalent_1000_CHF"
COL_MOBILIZED = "Amounts_mobilised_from_the_private_sector_1000_CHF"
COL_PURPOSE_CODE = "Sector_Purpose_Code"
COL_CURRENCY = "Currency"
COL_PSI_FLAG = "PSI_flag"
COL_FINANCE_TYPE = "Type_of_finance"
COL_PROJECT_TITLE = "Short_description___Project_Title"

AMOUNT_COLUMNS = (
    COL_EXTENDED,
    COL_RECEIVED,
    COL_COMMITMENTS,
    COL_GEQ,
    COL_MOBILIZED,
)

PLACEHOLDER = "///////////////////"

# Rule column -> CRS column. Clauses are applied in this order.
DEFAULT_COLUMN_MAPPING: Dict[str, str] = {
    "Bi Multi": "Bi_Multi",
    "Type of flow": "Type_of_flow",
    "Co-operation modality": "Type_of_aid",
    "Channel Code": "Channel_Code",
    "Channel Category": "Channel_Parent_Category",
    "PSI flag": "PSI_flag",
    "Investment": "Investment_project",
    "PBA": "PBA",
    "FTC": "FTC",
    "Type of blended finance": "Type_of_blended_finance",
    "Purpose code": "Sector_Purpose_Code",
}

DEFAULT_RULES_SHEET = "DAC1b_input"
DEFAULT_SHEET_LC = "DAC1b_E_1000_LC"
DEFAULT_SHEET_USD = "DAC1b_E_Mio_USD"
DEFAULT_EXCHANGE_RATE = 0.8985


@dataclass(frozen=True)
class Settings:
    crs_csv: Path
    channel_csv: Path
    rules_xlsx: Path
    template_xlsx: Path
    output_dir: Path
    rules_sheet: str = DEFAULT_RULES_SHEET
    sheet_lc: str = DEFAULT_SHEET_LC
    sheet_usd: str = DEFAULT_SHEET_USD
    exchange_rate: float = DEFAULT_EXCHANGE_RATE
    placeholder: str = PLACEHOLDER
    max_workers: int = 1

    @property
    def result_csv(self) -> Path:
        return self.output_dir / "result.csv"

    @property
    def impact_csv(self) -> Path:
        return self.output_dir / "rule_impact_summary.csv"

    @property
    def filled_xlsx(self) -> Path:
        return self.output_dir / f"{self.template_xlsx.stem}_filled.xlsx"


def build_settings(
    crs_csv: str,
    channel_csv: str,
    rules_xlsx: str,
    template_xlsx: str,
    output_dir: str,
    rules_sheet: Optional[str] = None,
    sheet_lc: Optional[str] = None,
    sheet_usd: Optional[str] = None,
    exchange_rate: Optional[str] = None,
    placeholder: Optional[str] = None,
    max_workers: Optional[str] = None,
) -> Settings:
    return Settings(
        crs_csv=Path(crs_csv),
        channel_csv=Path(channel_csv),
        rules_xlsx=Path(rules_xlsx),
        template_xlsx=Path(template_xlsx),
        output_dir=Path(output_dir),
        rules_sheet=rules_sheet or DEFAULT_RULES_SHEET,
        sheet_lc=sheet_lc or DEFAULT_SHEET_LC,
        sheet_usd=sheet_usd or DEFAULT_SHEET_USD,
        exchange_rate=float(exchange_rate) if exchange_rate else DEFAULT_EXCHANGE_RATE,
        placeholder=placeholder or PLACEHOLDER,
        max_workers=int(max_workers) if max_workers else 1,
    )
