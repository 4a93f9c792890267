"""API routes for claimflow."""

import base64
import binascii
import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, File, Form, HTTPException, UploadFile, status
from pydantic import Field

from claimflow.api.dependencies import FileIdDep, OrchestratorDep, PreferencesDep
from claimflow.models.base import CamelModel
from claimflow.models.carriers import CarrierDetectionResult, CarrierPattern
from claimflow.models.claims import FieldMapping, ValidationOptions
from claimflow.models.mapping import (
    ColumnMapping,
    CSVSchemaType,
    MappingPreferences,
    MappingResult,
    MappingValidation,
)
from claimflow.models.upload import ProcessResponse, UploadResponse, UploadSession
from claimflow.pipeline import (
    change_mapping_target,
    detect_format,
    detect_format_from_file,
    detect_schema_type,
    generate_mappings,
    get_all_supported_carriers,
    get_carrier_info,
    get_suggestions,
    to_field_mapping,
    validate_mappings,
)
from claimflow.utils.validation import (
    validate_field_mapping,
    validate_mapping_preferences,
    validate_process_request,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================


class ProcessRequest(CamelModel):
    """Body of the process endpoints, after schema validation."""

    file_id: str
    file_data: str | None = None
    mapping: FieldMapping | None = None
    options: ValidationOptions | None = None

    def content(self) -> bytes | None:
        """Decode ``file_data``; a data-URL prefix is accepted."""
        if not self.file_data:
            return None
        data = self.file_data
        if data.startswith("data:") and "," in data:
            data = data.split(",", 1)[1]
        return base64.b64decode(data, validate=True)


class DetectRequest(CamelModel):
    """Request to detect the carrier of a set of headers."""

    headers: list[str] = Field(..., min_length=1, description="CSV header row")
    sample_rows: list[dict[str, Any]] | None = Field(None, description="First data rows")
    filename: str | None = Field(None, description="Original file name, used for alias hints")
    min_confidence: int = Field(10, ge=0, le=100)
    max_candidates: int = Field(3, ge=1)


class CarrierListResponse(CamelModel):
    carriers: list[str]


class GenerateMappingsRequest(CamelModel):
    """Request to map source columns onto a CSV schema."""

    source_columns: list[str] = Field(..., min_length=1)
    schema_type: CSVSchemaType | None = Field(None, description="Detected from the columns when omitted")
    threshold: float = Field(0.6, ge=0, le=1)
    include_aliases: bool = True


class GenerateMappingsResponse(MappingResult):
    """Generated mappings plus what is needed for manual review."""

    schema_type: CSVSchemaType
    suggestions: list[ColumnMapping] = Field(default_factory=list)
    saved_mappings: list[ColumnMapping] | None = Field(None, description="Saved preferences for the schema")
    field_mapping: FieldMapping | None = Field(None, description="Claims-schema mappings as a FieldMapping")


class ValidateMappingsRequest(CamelModel):
    mappings: list[ColumnMapping]
    schema_type: CSVSchemaType


class ChangeTargetRequest(CamelModel):
    """Request to reassign one mapping's target."""

    mappings: list[ColumnMapping]
    index: int = Field(..., ge=0)
    new_target: str = Field(..., description="Target column, empty to unassign")
    schema_type: CSVSchemaType | None = None


class ClearPreferencesResponse(CamelModel):
    schema_type: CSVSchemaType
    deleted: bool


# =============================================================================
# Helpers
# =============================================================================


def parse_process_request(body: dict[str, Any]) -> tuple[ProcessRequest, bytes | None]:
    """
    Validate a process request body and decode its file data.

    Raises:
        HTTPException: 422 if the body or the file data is invalid
    """
    errors = validate_process_request(body)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Invalid process request", "errors": errors},
        )

    request = ProcessRequest.model_validate(body)
    try:
        content = request.content()
    except (binascii.Error, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "fileData is not valid base64", "errors": [str(e)]},
        ) from e
    return request, content


# =============================================================================
# Uploads
# =============================================================================


@router.post("/uploads", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    orchestrator: OrchestratorDep,
    file: Annotated[UploadFile, File(description="CSV file to upload")],
    mapping: Annotated[str | None, Form(description="Optional field mapping as JSON")] = None,
) -> UploadResponse:
    """Upload a claims file, detect its carrier and validate a preview."""
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )

    field_mapping = None
    if mapping:
        try:
            mapping_data = json.loads(mapping)
        except json.JSONDecodeError as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"message": "Mapping is not valid JSON", "errors": [str(e)]},
            ) from e
        errors = validate_field_mapping(mapping_data)
        if errors:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"message": "Invalid field mapping", "errors": errors},
            )
        field_mapping = FieldMapping.model_validate(mapping_data)

    content = await file.read()

    return orchestrator.preview_upload(file.filename, content, field_mapping)


@router.get("/uploads/{file_id}", response_model=UploadSession)
async def get_upload(file_id: FileIdDep, orchestrator: OrchestratorDep) -> UploadSession:
    """Get the state of an upload."""
    return orchestrator.get_session(file_id)


@router.post("/process", response_model=ProcessResponse)
async def process_file(
    orchestrator: OrchestratorDep,
    body: Annotated[dict[str, Any], Body(...)],
) -> ProcessResponse:
    """
    Validate, normalize and store a whole uploaded file.

    The file is taken from ``fileData`` (base64) when present, otherwise
    from the stored upload.
    """
    request, content = parse_process_request(body)

    result = orchestrator.process_file(
        request.file_id,
        content=content,
        mapping=request.mapping,
        options=request.options,
    )

    stored = orchestrator.get_session(request.file_id).processed_rows
    return ProcessResponse(
        success=True,
        message=f"Successfully processed and stored {stored} claims",
        result=result,
    )


# =============================================================================
# Carrier detection
# =============================================================================


@router.post("/detect", response_model=list[CarrierDetectionResult])
async def detect_carrier(request: DetectRequest) -> list[CarrierDetectionResult]:
    """Rank carrier formats for a header row."""
    options = {"min_confidence": request.min_confidence, "max_candidates": request.max_candidates}
    if request.filename:
        return detect_format_from_file(request.filename, request.headers, request.sample_rows, **options)
    return detect_format(request.headers, request.sample_rows, **options)


@router.get("/carriers", response_model=CarrierListResponse)
async def list_carriers() -> CarrierListResponse:
    """List supported carrier names."""
    return CarrierListResponse(carriers=get_all_supported_carriers())


@router.get("/carriers/{name}", response_model=CarrierPattern)
async def get_carrier(name: str) -> CarrierPattern:
    """Get one carrier's detection patterns."""
    carrier = get_carrier_info(name)
    if carrier is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Carrier {name} not found",
        )
    return carrier


# =============================================================================
# Column mapping
# =============================================================================


@router.post("/mappings/generate", response_model=GenerateMappingsResponse)
async def generate_column_mappings(
    request: GenerateMappingsRequest,
    preferences: PreferencesDep,
) -> GenerateMappingsResponse:
    """Map source columns onto a schema, detecting the schema when needed."""
    schema_type = request.schema_type or detect_schema_type(request.source_columns)
    result = generate_mappings(
        request.source_columns,
        schema_type,
        threshold=request.threshold,
        include_aliases=request.include_aliases,
    )

    saved = None
    if schema_type != CSVSchemaType.UNKNOWN:
        saved = preferences.load_mappings(schema_type)

    return GenerateMappingsResponse(
        **result.model_dump(),
        schema_type=schema_type,
        suggestions=get_suggestions(request.source_columns, schema_type),
        saved_mappings=saved,
        field_mapping=to_field_mapping(result.mappings) if schema_type == CSVSchemaType.CLAIMS else None,
    )


@router.post("/mappings/validate", response_model=MappingValidation)
async def validate_column_mappings(request: ValidateMappingsRequest) -> MappingValidation:
    """Check that every required column of the schema is mapped."""
    return validate_mappings(request.mappings, request.schema_type)


@router.post("/mappings/change-target", response_model=list[ColumnMapping])
async def change_target(request: ChangeTargetRequest) -> list[ColumnMapping]:
    """Reassign one mapping's target, swapping with any mapping that held it."""
    try:
        return change_mapping_target(
            request.mappings,
            request.index,
            request.new_target,
            request.schema_type,
        )
    except IndexError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e


@router.get("/mappings/preferences/{schema_type}", response_model=MappingPreferences)
async def get_preferences(schema_type: CSVSchemaType, preferences: PreferencesDep) -> MappingPreferences:
    """Get saved mappings for a schema type."""
    saved = preferences.load(schema_type)
    if saved is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No saved mappings for {schema_type.value}",
        )
    return saved


@router.put("/mappings/preferences/{schema_type}", response_model=MappingPreferences)
async def save_preferences(
    schema_type: CSVSchemaType,
    preferences: PreferencesDep,
    body: Annotated[dict[str, Any], Body(...)],
) -> MappingPreferences:
    """Save mappings for a schema type, replacing earlier ones."""
    errors = validate_mapping_preferences(body)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Invalid mapping preferences", "errors": errors},
        )

    mappings = [ColumnMapping.model_validate(m) for m in body["mappings"]]
    saved = preferences.save_mappings(schema_type, mappings)
    logger.info(f"Saved {len(mappings)} column mappings for {schema_type.value}")
    return saved


@router.delete("/mappings/preferences/{schema_type}", response_model=ClearPreferencesResponse)
async def clear_preferences(schema_type: CSVSchemaType, preferences: PreferencesDep) -> ClearPreferencesResponse:
    """Delete saved mappings for a schema type."""
    return ClearPreferencesResponse(schema_type=schema_type, deleted=preferences.clear(schema_type))
