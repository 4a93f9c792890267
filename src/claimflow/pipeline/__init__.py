"""Pipeline modules for claimflow."""

from claimflow.pipeline.carriers import KNOWN_CARRIERS, get_carrier, list_carrier_names
from claimflow.pipeline.column_mapper import (
    change_mapping_target,
    detect_schema_type,
    generate_mappings,
    get_suggestions,
    to_field_mapping,
    validate_mappings,
)
from claimflow.pipeline.detect_format import (
    detect_format,
    detect_format_from_file,
    get_all_supported_carriers,
    get_carrier_info,
    validate_mapping,
)
from claimflow.pipeline.ingest import IngestionOrchestrator
from claimflow.pipeline.normalizers import parse_amount, parse_date
from claimflow.pipeline.read_csv import iter_csv_chunks, read_csv, read_preview
from claimflow.pipeline.validate_data import (
    create_validation_rules,
    generate_data_quality_report,
    merge_validation_results,
    normalize_data,
    normalize_row,
    validate_data,
    validate_row,
)

__all__ = [
    "parse_date",
    "parse_amount",
    "KNOWN_CARRIERS",
    "get_carrier",
    "list_carrier_names",
    "detect_format",
    "detect_format_from_file",
    "validate_mapping",
    "get_carrier_info",
    "get_all_supported_carriers",
    "detect_schema_type",
    "generate_mappings",
    "validate_mappings",
    "change_mapping_target",
    "get_suggestions",
    "to_field_mapping",
    "create_validation_rules",
    "validate_row",
    "validate_data",
    "normalize_row",
    "normalize_data",
    "generate_data_quality_report",
    "merge_validation_results",
    "read_csv",
    "read_preview",
    "iter_csv_chunks",
    "IngestionOrchestrator",
]
