"""Utility modules for claimflow."""

from claimflow.utils.storage import UploadStorage
from claimflow.utils.validation import (
    validate_field_mapping,
    validate_mapping_preferences,
    validate_process_request,
    validate_validation_options,
)

__all__ = [
    "UploadStorage",
    "validate_field_mapping",
    "validate_process_request",
    "validate_validation_options",
    "validate_mapping_preferences",
]
