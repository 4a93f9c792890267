"""Expected column sets of the CSV shapes the column mapper understands."""

from claimflow.models.claims import CANONICAL_FIELDS, MAPPING_REQUIRED_FIELDS
from claimflow.models.mapping import CSVSchemaType
from claimflow.pipeline.carriers import KNOWN_CARRIERS

_MONTHS = [
    ("Jan", "January"),
    ("Feb", "February"),
    ("Mar", "March"),
    ("Apr", "April"),
    ("May", "May"),
    ("Jun", "June"),
    ("Jul", "July"),
    ("Aug", "August"),
    ("Sep", "September"),
    ("Oct", "October"),
    ("Nov", "November"),
    ("Dec", "December"),
]
REPORT_YEAR = 2024


def _month_aliases(short: str, long: str, year: int, sep: str, suffix: str = "") -> list[str]:
    """Spellings of one month column other than ``short{sep}year``."""
    other = "_" if sep == "-" else "-"
    aliases = [f"{short} {year}{suffix.replace('_', ' ')}", f"{short}{other}{year}{suffix.replace('_', other)}"]
    if long != short:
        aliases.insert(1, f"{long} {year}{suffix.replace('_', ' ')}")
        aliases.append(f"{long}-{year}{suffix.replace('_', '-')}")
    return aliases


# Monthly cost summary: one row per category, one column per month
HEALTHCARE_COST_COLUMNS: list[str] = ["Category"] + [f"{short}-{REPORT_YEAR}" for short, _ in _MONTHS]
HEALTHCARE_COST_REQUIRED: list[str] = HEALTHCARE_COST_COLUMNS[:7]

_CLAIMANT_MONTHS = [f"{short}_{REPORT_YEAR}" for short, _ in _MONTHS[:-1]] + [f"Dec_{REPORT_YEAR}_Proj"]

# High-cost claimant report: one row per claimant
HIGH_COST_CLAIMANT_COLUMNS: list[str] = [
    "Claimant_ID",
    "Member_Type",
    "Age_Band",
    "Gender",
    "Primary_Diagnosis",
    "Secondary_Diagnosis",
    "ICD10_Primary",
    "ICD10_Secondary",
    "Claim_Start_Date",
    "Current_Status",
    "Total_Paid_YTD",
    "Total_Pending",
    "Total_Projected",
    "Prior_Year_Claims",
    "Provider_Network",
    "Primary_Facility",
    "Treatment_Category",
    "Stop_Loss_Threshold",
    "Amount_Over_Threshold",
    "Stop_Loss_Recovery",
    "Case_Management_Status",
    "Risk_Score",
    "Months_Active",
    *_CLAIMANT_MONTHS,
]
HIGH_COST_CLAIMANT_REQUIRED: list[str] = ["Claimant_ID", "Total_Paid_YTD", "Jan_2024", "Feb_2024", "Mar_2024"]

# Line-level claims: the canonical claim fields
CLAIMS_COLUMNS: list[str] = list(CANONICAL_FIELDS)
CLAIMS_REQUIRED: list[str] = list(MAPPING_REQUIRED_FIELDS)


def _claims_aliases() -> dict[str, list[str]]:
    """Field-name vocabulary of every registered carrier, plus generic names."""
    aliases: dict[str, list[str]] = {
        "totalAmount": ["total_amount", "total_paid", "total_cost"],
        "icdCode": ["icd_code", "diagnosis_code", "icd10", "dx_code"],
        "medicalDesc": ["medical_description", "diagnosis_description", "description"],
        "laymanTerm": ["layman_term", "plain_description"],
        "provider": ["provider_name", "rendering_provider"],
        "location": ["facility", "place_of_service", "state"],
    }
    for carrier in KNOWN_CARRIERS:
        for field, patterns in carrier.field_patterns.items():
            known = aliases.setdefault(field, [])
            known.extend(p for p in patterns if p not in known)
    return aliases


COLUMN_ALIASES: dict[str, list[str]] = {
    **{
        f"{short}-{REPORT_YEAR}": _month_aliases(short, long, REPORT_YEAR, "-")
        for short, long in _MONTHS
    },
    "Claimant_ID": ["Member_ID", "ID", "MemberID", "ClaimantID"],
    "Total_Paid_YTD": ["Total Paid YTD", "Total_Allowed", "Total Allowed", "Member_Paid", "Plan_Paid"],
    **{
        f"{short}_{REPORT_YEAR}": _month_aliases(short, long, REPORT_YEAR, "_")
        for short, long in _MONTHS[:-1]
    },
    f"Dec_{REPORT_YEAR}_Proj": _month_aliases("Dec", "December", REPORT_YEAR, "_", "_Proj"),
    **_claims_aliases(),
}

_EXPECTED: dict[CSVSchemaType, list[str]] = {
    CSVSchemaType.HEALTHCARE_COSTS: HEALTHCARE_COST_COLUMNS,
    CSVSchemaType.HIGH_COST_CLAIMANTS: HIGH_COST_CLAIMANT_COLUMNS,
    CSVSchemaType.CLAIMS: CLAIMS_COLUMNS,
}

_REQUIRED: dict[CSVSchemaType, list[str]] = {
    CSVSchemaType.HEALTHCARE_COSTS: HEALTHCARE_COST_REQUIRED,
    CSVSchemaType.HIGH_COST_CLAIMANTS: HIGH_COST_CLAIMANT_REQUIRED,
    CSVSchemaType.CLAIMS: CLAIMS_REQUIRED,
}


def expected_columns(schema_type: CSVSchemaType) -> list[str]:
    """Target columns of a schema, in display order. Empty for UNKNOWN."""
    return list(_EXPECTED.get(schema_type, []))


def required_columns(schema_type: CSVSchemaType) -> list[str]:
    return list(_REQUIRED.get(schema_type, []))


def aliases_for(column: str) -> list[str]:
    return list(COLUMN_ALIASES.get(column, []))
