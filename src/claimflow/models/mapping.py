"""Models for schema-driven column mapping."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from claimflow.models.base import CamelModel


class CSVSchemaType(str, Enum):
    """Known shapes of uploaded CSV files."""

    HEALTHCARE_COSTS = "healthcare_costs"
    HIGH_COST_CLAIMANTS = "high_cost_claimants"
    CLAIMS = "claims"
    UNKNOWN = "unknown"


class ColumnMapping(CamelModel):
    """One source column assigned to one target column."""

    source: str = Field(..., description="Column name in the uploaded file")
    target: str = Field("", description="Expected column of the schema, empty when unassigned")
    confidence: float = Field(0.0, ge=0, le=1, description="Similarity score (0-1)")
    is_required: bool = Field(False, description="Whether the target is required by the schema")
    is_perfect_match: bool = Field(False, description="Source equals target ignoring case and punctuation")


class MappingResult(CamelModel):
    """Best-guess mapping of a file's columns onto a schema."""

    mappings: list[ColumnMapping] = Field(default_factory=list)
    missing_required: list[str] = Field(default_factory=list)
    extra_columns: list[str] = Field(default_factory=list, description="Source columns left unmapped")
    confidence: float = Field(0.0, ge=0, le=1, description="Mean confidence of the mappings")


class MappingValidation(CamelModel):
    """Whether every required target has a source column."""

    is_valid: bool
    missing_required: list[str] = Field(default_factory=list)


class MappingPreferences(CamelModel):
    """Saved column mappings for one schema type."""

    schema_type: CSVSchemaType
    mappings: list[ColumnMapping] = Field(default_factory=list)
    saved_at: datetime = Field(..., description="When the preferences were stored")
