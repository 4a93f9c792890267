"""Pydantic models for claimflow."""

from claimflow.models.carriers import CarrierDetectionResult, CarrierPattern, MappingCheck
from claimflow.models.claims import (
    CANONICAL_FIELDS,
    MAPPING_REQUIRED_FIELDS,
    OPTIONAL_FIELDS,
    REQUIRED_FIELDS,
    ClaimRecord,
    DataQualityStats,
    FieldMapping,
    ProcessingResult,
    RawRow,
    Severity,
    ValidationIssue,
    ValidationOptions,
    ValidationResult,
)
from claimflow.models.mapping import (
    ColumnMapping,
    CSVSchemaType,
    MappingPreferences,
    MappingResult,
    MappingValidation,
)
from claimflow.models.upload import (
    PreviewIssue,
    ProcessResponse,
    UploadResponse,
    UploadSession,
    UploadStatus,
)

__all__ = [
    # Claim models
    "CANONICAL_FIELDS",
    "MAPPING_REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "REQUIRED_FIELDS",
    "ClaimRecord",
    "DataQualityStats",
    "FieldMapping",
    "ProcessingResult",
    "RawRow",
    "Severity",
    "ValidationIssue",
    "ValidationOptions",
    "ValidationResult",
    # Carrier models
    "CarrierDetectionResult",
    "CarrierPattern",
    "MappingCheck",
    # Column mapping models
    "ColumnMapping",
    "CSVSchemaType",
    "MappingPreferences",
    "MappingResult",
    "MappingValidation",
    # Upload models
    "PreviewIssue",
    "ProcessResponse",
    "UploadResponse",
    "UploadSession",
    "UploadStatus",
]
