"""Exception hierarchy for file-level ingestion failures.

Row-level data problems never raise; they are reported as validation issues.
These exceptions cover the structural cases where a file cannot be
processed at all, or where processing needs the user to step in.
"""

from typing import Any

USER_MESSAGES: dict[str, str] = {
    "FILE_TOO_LARGE": "The file you uploaded is too large. Please ensure your file is under the upload limit.",
    "INVALID_FILE_FORMAT": "The file format is not supported. Please upload a CSV file.",
    "EMPTY_FILE": "The file you uploaded has no data rows.",
    "PARSING_ERROR": "There was an error reading your CSV file. Please check the file format and try again.",
    "VALIDATION_ERROR": "The data in your file contains errors. Please review and correct the issues.",
    "FORMAT_DETECTION_FAILED": "We couldn't automatically detect the format of your file. Please try manual mapping.",
    "UPLOAD_NOT_FOUND": "The upload could not be found. Please upload the file again.",
    "INVALID_UPLOAD_STATE": "This upload has already been processed. Please upload the file again to reprocess it.",
    "SERVER_ERROR": "A server error occurred. Please try again in a few moments.",
}


class IngestionError(Exception):
    """Base error for a file that cannot be ingested."""

    default_code = "PROCESSING_ERROR"
    default_status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status_code
        self.retryable = retryable
        self.context = context or {}

    @property
    def user_message(self) -> str:
        """Human-friendly explanation for the error code."""
        return USER_MESSAGES.get(
            self.code,
            "An unexpected error occurred. Please try again or contact support.",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "success": False,
            "message": self.message,
            "code": self.code,
            "user_message": self.user_message,
            "context": self.context,
        }


class FileTooLargeError(IngestionError):
    default_code = "FILE_TOO_LARGE"
    default_status_code = 413


class InvalidFileFormatError(IngestionError):
    default_code = "INVALID_FILE_FORMAT"
    default_status_code = 400


class EmptyFileError(IngestionError):
    default_code = "EMPTY_FILE"
    default_status_code = 400


class CSVParsingError(IngestionError):
    default_code = "PARSING_ERROR"
    default_status_code = 400


class MappingRequiredError(IngestionError):
    """No usable field mapping; the user has to map columns manually."""

    default_code = "FORMAT_DETECTION_FAILED"
    default_status_code = 400


class UploadNotFoundError(IngestionError):
    default_code = "UPLOAD_NOT_FOUND"
    default_status_code = 404


class InvalidTransitionError(IngestionError):
    """An upload session was moved along an edge the state machine lacks."""

    default_code = "SERVER_ERROR"
    default_status_code = 500


class UploadStateError(IngestionError):
    """The upload is not in a state that allows the requested step."""

    default_code = "INVALID_UPLOAD_STATE"
    default_status_code = 409
