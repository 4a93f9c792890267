"""Models for carrier format descriptors and detection results."""

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import ConfigDict, Field, field_serializer, field_validator

from claimflow.models.base import CamelModel
from claimflow.models.claims import FieldMapping


class CarrierPattern(CamelModel):
    """Static descriptor of a known claims-data source."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique carrier identifier")
    aliases: tuple[str, ...] = Field(default=(), description="Alternate names used in headers and file names")
    header_patterns: tuple[str, ...] = Field(default=(), description="Substrings typical of this carrier's headers")
    field_patterns: Mapping[str, tuple[str, ...]] = Field(
        default_factory=dict, description="Canonical field -> header substrings"
    )
    required_columns: tuple[str, ...] = Field(default=(), description="Columns expected in every export")
    date_formats: tuple[str, ...] = Field(default=(), description="Date format hints, preferred first")
    amount_formats: tuple[str, ...] = Field(default=(), description="Amount format hints, preferred first")
    default_mapping: FieldMapping = Field(default_factory=FieldMapping)

    @field_validator("field_patterns", mode="after")
    @classmethod
    def _read_only_patterns(cls, value: Mapping[str, tuple[str, ...]]) -> Mapping[str, tuple[str, ...]]:
        return MappingProxyType(dict(value))

    @field_serializer("field_patterns")
    def _serialize_patterns(self, value: Mapping[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
        return dict(value)


class CarrierDetectionResult(CamelModel):
    """A ranked carrier candidate for an uploaded file.

    ``confidence`` is relative to the best-scoring candidate of the same
    detection call, not an absolute probability.
    """

    carrier: str = Field(..., description="Carrier name")
    confidence: int = Field(..., ge=0, le=100, description="Call-local confidence (0-100)")
    indicators: list[str] = Field(default_factory=list, description="Evidence for the match")
    suggested_mapping: FieldMapping = Field(default_factory=FieldMapping)
    date_format: str | None = Field(None, description="Preferred date format of the carrier")
    amount_format: str | None = Field(None, description="Preferred amount format of the carrier")


class MappingCheck(CamelModel):
    """Completeness of a field mapping against a file's headers."""

    is_valid: bool
    missing_fields: list[str] = Field(default_factory=list, description="Required fields with no column")
    invalid_fields: list[str] = Field(default_factory=list, description="Required fields mapped to absent columns")
