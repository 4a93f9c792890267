"""Models for canonical claim records and validation results."""

from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from claimflow.models.base import CamelModel

# A raw CSV row keyed by header, values as produced by the reader.
RawRow = dict[str, str | int | float | None]

CANONICAL_FIELDS: tuple[str, ...] = (
    "claimantId",
    "claimDate",
    "serviceType",
    "medicalAmount",
    "pharmacyAmount",
    "totalAmount",
    "icdCode",
    "medicalDesc",
    "laymanTerm",
    "provider",
    "location",
)

# Fields counted in DataQualityStats.missing_required.
REQUIRED_FIELDS: tuple[str, ...] = (
    "claimantId",
    "claimDate",
    "serviceType",
    "medicalAmount",
    "pharmacyAmount",
)

OPTIONAL_FIELDS: tuple[str, ...] = tuple(f for f in CANONICAL_FIELDS if f not in REQUIRED_FIELDS)

# Minimum set a mapping needs before rows can be normalized.
MAPPING_REQUIRED_FIELDS: tuple[str, ...] = ("claimantId", "claimDate", "serviceType")


class Severity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


class FieldMapping(CamelModel):
    """Canonical claim field -> source column name. Every field is optional."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    claimant_id: str | None = Field(None, description="Member / claimant identifier column")
    claim_date: str | None = Field(None, description="Service or claim date column")
    service_type: str | None = Field(None, description="Service category column")
    medical_amount: str | None = Field(None, description="Medical paid amount column")
    pharmacy_amount: str | None = Field(None, description="Pharmacy paid amount column")
    total_amount: str | None = Field(None, description="Explicit total amount column")
    icd_code: str | None = Field(None, description="ICD-9/ICD-10 diagnosis code column")
    medical_desc: str | None = Field(None, description="Clinical description column")
    layman_term: str | None = Field(None, description="Plain-language description column")
    provider: str | None = Field(None, description="Provider name column")
    location: str | None = Field(None, description="Location column")

    def source_for(self, field: str) -> str | None:
        """Return the mapped source column for a canonical (camelCase) field."""
        attr = _FIELD_ATTRS.get(field)
        if attr is None:
            raise KeyError(f"Unknown canonical field: {field}")
        return getattr(self, attr) or None

    def with_source(self, field: str, column: str | None) -> "FieldMapping":
        """Return a copy with one canonical field remapped."""
        return self.model_copy(update={_FIELD_ATTRS[field]: column})

    def to_dict(self) -> dict[str, str]:
        """Mapped fields only, keyed by canonical name."""
        return self.model_dump(by_alias=True, exclude_none=True)


_FIELD_ATTRS: dict[str, str] = {to_camel(name): name for name in FieldMapping.model_fields}


class ValidationIssue(CamelModel):
    """A single problem found in a row (error) or a suspicious value (warning)."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(..., ge=1, description="1-based row number in the data set")
    field: str = Field(..., description="Canonical field the issue refers to")
    value: Any = Field(None, description="Raw value that triggered the issue")
    message: str = Field(..., description="Human-readable description")
    severity: Severity = Field(..., description="error or warning")


class DataQualityStats(CamelModel):
    """Aggregate counters over one validation pass."""

    model_config = ConfigDict(frozen=True)

    row_count: int = Field(0, ge=0)
    valid_rows: int = Field(0, ge=0)
    invalid_rows: int = Field(0, ge=0)
    missing_required: dict[str, int] = Field(default_factory=dict)
    invalid_dates: int = Field(0, ge=0)
    duplicate_ids: int = Field(0, ge=0)
    data_completeness: float = Field(0.0, ge=0, le=100, description="valid_rows / row_count, percent")


class ValidationResult(CamelModel):
    """Errors and statistics from validate_data."""

    errors: list[ValidationIssue] = Field(default_factory=list)
    stats: DataQualityStats = Field(default_factory=DataQualityStats)


class ValidationOptions(CamelModel):
    """Options accepted by validate_data / normalize_data."""

    strict_mode: bool = False
    skip_invalid_rows: bool = True
    max_errors: int = Field(1000, ge=0)
    date_formats: list[str] | None = None
    amount_formats: list[str] | None = None


class ClaimRecord(CamelModel):
    """Canonical normalized claim, one per valid raw row."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="claimantId-rowIndex; unique within one file only")
    claimant_id: str
    claim_date: str = Field(..., description="ISO-8601 timestamp")
    month_key: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    service_type: str
    medical_amount: float = Field(0.0, ge=0)
    pharmacy_amount: float = Field(0.0, ge=0)
    total_amount: float = Field(0.0, ge=0)
    icd_code: str | None = None
    medical_desc: str | None = None
    layman_term: str | None = None
    provider: str | None = None
    location: str | None = None
    original_row: dict[str, Any] = Field(default_factory=dict)


class ProcessingResult(CamelModel):
    """Outcome of processing a whole file."""

    claims: list[ClaimRecord] = Field(default_factory=list, description="Preview slice of stored claims")
    errors: list[ValidationIssue] = Field(default_factory=list)
    stats: DataQualityStats
    mapping: FieldMapping
    carrier: str | None = None
    confidence: int | None = None
