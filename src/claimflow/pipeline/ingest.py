"""Upload orchestration: preview, full processing and streamed processing."""

import logging
import uuid
from collections.abc import Iterator, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from claimflow.config import Settings
from claimflow.errors import (
    EmptyFileError,
    FileTooLargeError,
    IngestionError,
    InvalidFileFormatError,
    InvalidTransitionError,
    MappingRequiredError,
    UploadStateError,
)
from claimflow.models.carriers import CarrierDetectionResult
from claimflow.models.claims import (
    ClaimRecord,
    FieldMapping,
    ProcessingResult,
    RawRow,
    Severity,
    ValidationIssue,
    ValidationOptions,
    ValidationResult,
)
from claimflow.models.upload import (
    TERMINAL_STATUSES,
    PreviewIssue,
    UploadResponse,
    UploadSession,
    UploadStatus,
    can_transition,
)
from claimflow.pipeline.detect_format import detect_format, detect_format_from_file, validate_mapping
from claimflow.pipeline.read_csv import count_rows, iter_csv_chunks, read_csv, read_preview
from claimflow.pipeline.validate_data import (
    generate_data_quality_report,
    merge_validation_results,
    normalize_data,
    validate_data,
)
from claimflow.utils.storage import UploadStorage

logger = logging.getLogger(__name__)

PROCESSABLE_STATUSES = frozenset({UploadStatus.FORMAT_KNOWN, UploadStatus.FORMAT_UNKNOWN})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _error_count(issues: Sequence[ValidationIssue]) -> int:
    return sum(1 for issue in issues if issue.severity == Severity.ERROR)


class IngestionOrchestrator:
    """
    Drives an uploaded file through detection, validation and storage.

    Every step moves the upload session along its state machine and
    persists it, so progress can be observed while a file is processed.
    """

    def __init__(self, storage: UploadStorage, settings: Settings) -> None:
        self.storage = storage
        self.settings = settings

    # -------------------------------------------------------------------------
    # Session state
    # -------------------------------------------------------------------------

    def _transition(self, session: UploadSession, target: UploadStatus, **changes: Any) -> UploadSession:
        """Move a session to ``target`` and persist it."""
        if not can_transition(session.status, target):
            raise InvalidTransitionError(
                f"Cannot move upload {session.file_id} from {session.status.value} to {target.value}",
                context={"file_id": session.file_id, "from": session.status.value, "to": target.value},
            )

        now = _now()
        update: dict[str, Any] = {"status": target, "updated_at": now, **changes}
        if target in TERMINAL_STATUSES:
            update["completed_at"] = now

        updated = session.model_copy(update=update)
        self.storage.save_session(updated)
        logger.debug(f"Upload {session.file_id}: {session.status.value} -> {target.value}")
        return updated

    def _update(self, session: UploadSession, **changes: Any) -> UploadSession:
        updated = session.model_copy(update={"updated_at": _now(), **changes})
        self.storage.save_session(updated)
        return updated

    def _fail(self, session: UploadSession, error: Exception) -> UploadSession:
        if session.status in TERMINAL_STATUSES:
            return session
        details: dict[str, Any] = {"error": type(error).__name__}
        if isinstance(error, IngestionError):
            details.update(code=error.code, **error.context)
        logger.error(f"Upload {session.file_id} failed: {error}")
        return self._transition(
            session,
            UploadStatus.FAILED,
            error_message=str(error),
            error_details=details,
        )

    def get_session(self, file_id: str) -> UploadSession:
        return self.storage.get_session(file_id)

    # -------------------------------------------------------------------------
    # Upload (preview)
    # -------------------------------------------------------------------------

    def _check_file(self, filename: str, content: bytes) -> None:
        suffix = Path(filename).suffix.lower()
        if suffix not in self.settings.allowed_extensions:
            raise InvalidFileFormatError(
                "Only CSV files are allowed",
                context={"filename": filename, "allowed": list(self.settings.allowed_extensions)},
            )
        if len(content) > self.settings.max_upload_size:
            limit_mb = self.settings.max_upload_size // (1024 * 1024)
            raise FileTooLargeError(
                f"File size exceeds {limit_mb}MB limit",
                context={"size": len(content), "limit": self.settings.max_upload_size},
            )
        if not content.strip():
            raise EmptyFileError("Uploaded file is empty", context={"filename": filename})

    def preview_upload(
        self,
        filename: str,
        content: bytes,
        mapping: FieldMapping | None = None,
    ) -> UploadResponse:
        """
        Register an uploaded file and inspect its first rows.

        The carrier is detected from headers, sample data and file name. The
        preview rows are validated with the supplied mapping, or else the
        best candidate's suggested mapping, so problems show up before the
        whole file is processed.

        Raises:
            InvalidFileFormatError: If the file is not a CSV
            FileTooLargeError: If the file exceeds the upload limit
            EmptyFileError: If the file has no header or no data rows
            CSVParsingError: If the preview cannot be parsed
        """
        self._check_file(filename, content)

        now = _now()
        session = UploadSession(
            file_id=str(uuid.uuid4()),
            filename=Path(filename).name,
            file_size=len(content),
            created_at=now,
            updated_at=now,
        )
        self.storage.create_upload(session, content)
        session = self._transition(session, UploadStatus.PARSING)

        try:
            preview = read_preview(content, self.settings.preview_rows)
            if not preview.rows:
                raise EmptyFileError("CSV file has no data rows", context={"headers": preview.headers})

            candidates = detect_format_from_file(filename, preview.headers, preview.rows)
            best = candidates[0] if candidates else None
            effective_mapping = mapping or (best.suggested_mapping if best else None)

            issues: list[ValidationIssue] = []
            if effective_mapping is not None:
                validation = validate_data(
                    preview.rows,
                    effective_mapping,
                    ValidationOptions(max_errors=self.settings.preview_max_errors),
                )
                issues = validation.errors

            session = self._transition(
                session,
                UploadStatus.FORMAT_KNOWN if best else UploadStatus.FORMAT_UNKNOWN,
                total_rows=preview.total_rows,
                carrier=best.carrier if best else None,
                confidence=best.confidence if best else None,
                field_mapping=effective_mapping,
                failed_rows=_error_count(issues),
            )
        except Exception as e:
            self._fail(session, e)
            raise

        if best:
            message = f"File uploaded. Detected {best.carrier} format with {best.confidence}% confidence"
        else:
            message = "File uploaded. Carrier format not recognized, manual column mapping required"

        return UploadResponse(
            success=True,
            file_id=session.file_id,
            message=message,
            preview_data=preview.rows[: self.settings.preview_response_rows],
            carrier=session.carrier,
            confidence=session.confidence,
            record_count=preview.total_rows,
            errors=[
                PreviewIssue(row=issue.row, message=issue.message, severity=issue.severity)
                for issue in issues[: self.settings.preview_error_limit]
            ],
        )

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def _load_processable(self, file_id: str) -> UploadSession:
        session = self.storage.get_session(file_id)
        if session.status not in PROCESSABLE_STATUSES:
            raise UploadStateError(
                f"Upload {file_id} cannot be processed in state {session.status.value}",
                context={"file_id": file_id, "status": session.status.value},
            )
        return session

    def _resolve_mapping(
        self,
        session: UploadSession,
        headers: Sequence[str],
        sample_rows: Sequence[RawRow],
        mapping: FieldMapping | None,
    ) -> tuple[UploadSession, FieldMapping, CarrierDetectionResult | None]:
        """
        Settle the mapping for a file and confirm it on the session.

        A mapping passed in wins, then the one recorded on the session at
        upload. Only without either is the best detection candidate's
        suggestion used. A mapping lacking any of the minimum required fields is
        rejected; fields mapped to columns the file lacks are only logged.
        """
        best: CarrierDetectionResult | None = None
        if mapping is None:
            mapping = session.field_mapping
        if mapping is None:
            candidates = detect_format(headers, sample_rows)
            best = candidates[0] if candidates else None
            mapping = best.suggested_mapping if best else None

        session = self._transition(
            session,
            UploadStatus.FORMAT_KNOWN if best or session.carrier else UploadStatus.FORMAT_UNKNOWN,
            carrier=best.carrier if best else session.carrier,
            confidence=best.confidence if best else session.confidence,
        )

        if mapping is None:
            raise MappingRequiredError("No field mapping provided and auto-detection failed")

        check = validate_mapping(mapping, headers)
        if check.missing_fields:
            raise MappingRequiredError(
                f"Field mapping is missing required fields: {', '.join(check.missing_fields)}",
                context={"missing_fields": check.missing_fields},
            )
        if check.invalid_fields:
            logger.warning(
                f"Upload {session.file_id}: mapped columns not found in headers for {check.invalid_fields}"
            )

        session = self._transition(session, UploadStatus.MAPPING_CONFIRMED, field_mapping=mapping)
        return session, mapping, best

    def _process_options(self, options: ValidationOptions | None, default_max_errors: int) -> ValidationOptions:
        options = options or ValidationOptions()
        if "max_errors" not in options.model_fields_set:
            options = options.model_copy(update={"max_errors": default_max_errors})
        return options

    def _store(self, session: UploadSession, claims: Sequence[ClaimRecord]) -> UploadSession:
        """Write claims in batches, recording progress after each batch."""
        batch_size = self.settings.store_batch_size
        stored = 0
        for start in range(0, len(claims), batch_size):
            stored += self.storage.append_claims(session.file_id, claims[start : start + batch_size])
            session = self._update(session, processed_rows=stored)
        return session

    def process_file(
        self,
        file_id: str,
        content: bytes | None = None,
        mapping: FieldMapping | None = None,
        options: ValidationOptions | None = None,
    ) -> ProcessingResult:
        """
        Validate, normalize and store a whole uploaded file.

        Args:
            file_id: Upload to process
            content: File bytes; the stored upload is used when None
            mapping: Field mapping; detected from the first rows when None
            options: Validation options

        Returns:
            ProcessingResult with a preview slice of the stored claims

        Raises:
            UploadNotFoundError: If the upload does not exist
            UploadStateError: If the upload was already processed
            MappingRequiredError: If no usable mapping is available
            IngestionError: For any other failure; the session ends failed
        """
        session = self._load_processable(file_id)
        content = content if content is not None else self.storage.get_content(file_id)
        options = self._process_options(options, self.settings.process_max_errors)

        try:
            session = self._transition(session, UploadStatus.PARSING)
            table = read_csv(content)
            if not table.rows:
                raise EmptyFileError("CSV file has no data rows", context={"headers": table.headers})
            session = self._update(session, total_rows=len(table.rows), processed_rows=0)

            sample = table.rows[: self.settings.detection_sample_rows]
            session, mapping, best = self._resolve_mapping(session, table.headers, sample, mapping)

            session = self._transition(session, UploadStatus.VALIDATING)
            validation = validate_data(table.rows, mapping, options)
            self.storage.store_report(file_id, self._report(validation))

            if validation.stats.valid_rows == 0:
                session = self._transition(
                    session,
                    UploadStatus.REPORTED,
                    failed_rows=_error_count(validation.errors),
                )
                return self._result([], validation, mapping, session)

            session = self._transition(session, UploadStatus.NORMALIZING)
            claims = normalize_data(table.rows, mapping, options)

            self.storage.clear_claims(file_id)
            session = self._store(session, claims)
            session = self._transition(
                session,
                UploadStatus.STORED if claims else UploadStatus.REPORTED,
                processed_rows=len(claims),
                failed_rows=_error_count(validation.errors),
            )
            logger.info(f"Upload {file_id}: stored {len(claims)} of {len(table.rows)} rows")
            return self._result(claims, validation, mapping, session)

        except IngestionError as e:
            self._fail(session, e)
            raise
        except Exception as e:
            self._fail(session, e)
            raise IngestionError(f"Processing failed: {e}", context={"file_id": file_id}) from e

    def _report(self, validation: ValidationResult) -> dict[str, Any]:
        return {
            "stats": validation.stats.to_json_dict(),
            "errors": [issue.to_json_dict() for issue in validation.errors],
            "report": generate_data_quality_report(validation.stats),
        }

    def _result(
        self,
        claims: Sequence[ClaimRecord],
        validation: ValidationResult,
        mapping: FieldMapping,
        session: UploadSession,
    ) -> ProcessingResult:
        return ProcessingResult(
            claims=list(claims[: self.settings.claims_preview_rows]),
            errors=validation.errors,
            stats=validation.stats,
            mapping=mapping,
            carrier=session.carrier or None,
            confidence=session.confidence or None,
        )

    # -------------------------------------------------------------------------
    # Streamed processing
    # -------------------------------------------------------------------------

    def stream_process(
        self,
        file_id: str,
        content: bytes | None = None,
        mapping: FieldMapping | None = None,
        options: ValidationOptions | None = None,
    ) -> Iterator[dict[str, Any]]:
        """
        Process a file chunk by chunk, yielding progress frames.

        Each chunk is validated and normalized on its own; counts in the
        frames are running totals over the chunks seen so far. The last
        frame has type ``complete``, or ``error`` if processing stopped.
        """
        try:
            session = self._load_processable(file_id)
        except IngestionError as e:
            yield {"type": "error", "message": e.message, "code": e.code}
            return

        options = self._process_options(options, self.settings.stream_max_errors)
        processed = 0
        valid_claims = 0
        results: list[ValidationResult] = []
        preview: list[ClaimRecord] = []

        try:
            content = content if content is not None else self.storage.get_content(file_id)
            session = self._transition(session, UploadStatus.PARSING)
            total = count_rows(content)
            if total == 0:
                raise EmptyFileError("CSV file has no data rows")
            session = self._update(session, total_rows=total, processed_rows=0)
            self.storage.clear_claims(file_id)

            for chunk in iter_csv_chunks(content, self.settings.stream_chunk_rows):
                if session.status == UploadStatus.PARSING:
                    sample = chunk.rows[: self.settings.detection_sample_rows]
                    session, mapping, _ = self._resolve_mapping(session, chunk.headers, sample, mapping)
                    session = self._transition(session, UploadStatus.VALIDATING)

                chunk_result = validate_data(chunk.rows, mapping, options)
                results.append(chunk_result)
                claims = normalize_data(chunk.rows, mapping, options, start_index=chunk.start_index)

                if claims and session.status == UploadStatus.VALIDATING:
                    session = self._transition(session, UploadStatus.NORMALIZING)
                self.storage.append_claims(file_id, claims)
                preview.extend(claims[: self.settings.claims_preview_rows - len(preview)])

                processed += len(chunk.rows)
                valid_claims += len(claims)
                session = self._update(session, processed_rows=processed)

                yield {
                    "type": "progress",
                    "processed": processed,
                    "total": total,
                    "validClaims": valid_claims,
                    "errors": sum(len(r.errors) for r in results),
                    "progress": round(processed / total * 100, 2),
                }

            merged = merge_validation_results(results)
            self.storage.store_report(file_id, self._report(merged))
            session = self._transition(
                session,
                UploadStatus.STORED if valid_claims else UploadStatus.REPORTED,
                processed_rows=processed,
                failed_rows=_error_count(merged.errors),
            )

            yield {
                "type": "complete",
                "processed": processed,
                "total": total,
                "validClaims": valid_claims,
                "invalidClaims": processed - valid_claims,
                "errors": len(merged.errors),
                "progress": 100,
                "stats": merged.stats.to_json_dict(),
                "claims": [claim.to_json_dict() for claim in preview],
            }

        except Exception as e:
            self._fail(session, e)
            message = e.message if isinstance(e, IngestionError) else f"Processing failed: {e}"
            yield {"type": "error", "message": message}
