"""Models for upload sessions and their lifecycle."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, computed_field

from claimflow.models.base import CamelModel
from claimflow.models.claims import FieldMapping, ProcessingResult, Severity


class UploadStatus(str, Enum):
    """Lifecycle of one uploaded file."""

    RECEIVED = "received"
    PARSING = "parsing"
    FORMAT_KNOWN = "format_known"
    FORMAT_UNKNOWN = "format_unknown"
    MAPPING_CONFIRMED = "mapping_confirmed"
    VALIDATING = "validating"
    NORMALIZING = "normalizing"
    STORED = "stored"
    REPORTED = "reported"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({UploadStatus.STORED, UploadStatus.REPORTED, UploadStatus.FAILED})

# Allowed edges; FAILED is reachable from every non-terminal state.
TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.RECEIVED: frozenset({UploadStatus.PARSING}),
    UploadStatus.PARSING: frozenset({UploadStatus.FORMAT_KNOWN, UploadStatus.FORMAT_UNKNOWN}),
    UploadStatus.FORMAT_KNOWN: frozenset({UploadStatus.MAPPING_CONFIRMED, UploadStatus.PARSING}),
    UploadStatus.FORMAT_UNKNOWN: frozenset({UploadStatus.MAPPING_CONFIRMED, UploadStatus.PARSING}),
    UploadStatus.MAPPING_CONFIRMED: frozenset({UploadStatus.VALIDATING}),
    UploadStatus.VALIDATING: frozenset({UploadStatus.NORMALIZING, UploadStatus.REPORTED}),
    UploadStatus.NORMALIZING: frozenset({UploadStatus.STORED, UploadStatus.REPORTED}),
    UploadStatus.STORED: frozenset(),
    UploadStatus.REPORTED: frozenset(),
    UploadStatus.FAILED: frozenset(),
}


def can_transition(current: UploadStatus, target: UploadStatus) -> bool:
    """Check whether a session may move from ``current`` to ``target``."""
    if target == UploadStatus.FAILED:
        return current not in TERMINAL_STATUSES
    return target in TRANSITIONS[current]


class UploadSession(CamelModel):
    """Tracking record for one uploaded file."""

    file_id: str = Field(..., description="Unique upload identifier")
    filename: str = Field(..., description="Original filename")
    file_size: int = Field(..., ge=0, description="Size in bytes")
    status: UploadStatus = Field(UploadStatus.RECEIVED)
    total_rows: int = Field(0, ge=0, description="Estimated or exact data rows")
    processed_rows: int = Field(0, ge=0)
    failed_rows: int = Field(0, ge=0, description="Error-severity issues found")
    carrier: str | None = None
    confidence: int | None = None
    field_mapping: FieldMapping | None = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @computed_field
    @property
    def progress(self) -> int:
        """Percent complete, for progress streams."""
        if self.status == UploadStatus.STORED or self.status == UploadStatus.REPORTED:
            return 100
        if self.status == UploadStatus.FAILED:
            return 0
        return round(self.processed_rows / (self.total_rows or 1) * 100)


class PreviewIssue(CamelModel):
    """Trimmed validation issue returned by the upload endpoint."""

    row: int
    message: str
    severity: Severity


class UploadResponse(CamelModel):
    """Response of the upload (preview) step."""

    success: bool
    file_id: str
    message: str
    preview_data: list[dict[str, Any]] = Field(default_factory=list)
    carrier: str | None = None
    confidence: int | None = None
    record_count: int = 0
    errors: list[PreviewIssue] = Field(default_factory=list)


class ProcessResponse(CamelModel):
    """Response of the full processing step."""

    success: bool
    message: str
    result: ProcessingResult
