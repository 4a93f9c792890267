"""Row validation, data-quality statistics and normalization of claim rows."""

import logging
import math
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any

from dateutil.relativedelta import relativedelta

from claimflow.models.claims import (
    REQUIRED_FIELDS,
    ClaimRecord,
    DataQualityStats,
    FieldMapping,
    RawRow,
    Severity,
    ValidationIssue,
    ValidationOptions,
    ValidationResult,
)
from claimflow.pipeline.normalizers import is_negative_amount, parse_amount, parse_date

logger = logging.getLogger(__name__)

MAX_CLAIMANT_ID_LENGTH = 50
MAX_FUTURE_YEARS = 1
MAX_PAST_YEARS = 10
HIGH_AMOUNT_THRESHOLD = 1_000_000

ICD10_PATTERN = re.compile(r"^[A-Z]\d{2}(\.\d{1,4})?$")
ICD9_PATTERN = re.compile(r"^\d{3}(\.\d{1,2})?$")

DEFAULT_SERVICE_TYPE = "Unknown"


def _percent(part: int, whole: int) -> float:
    """Percentage to 2 decimals, halves rounded up."""
    if not whole:
        return 0.0
    return math.floor(part / whole * 100 * 100 + 0.5) / 100


# Human labels used in amount messages
_AMOUNT_LABELS = {
    "medicalAmount": "medical",
    "pharmacyAmount": "pharmacy",
    "totalAmount": "total",
}

Validator = Callable[[Any, RawRow, int], ValidationIssue | None]


@dataclass(frozen=True)
class ValidationRule:
    """A check applied to one canonical field of every row."""

    field: str
    validator: Validator
    required: bool = False


def _text(value: Any) -> str:
    """Trimmed string form of a raw cell; missing cells become empty."""
    if value is None:
        return ""
    return str(value).strip()


def _issue(index: int, field: str, value: Any, message: str, severity: Severity) -> ValidationIssue:
    return ValidationIssue(row=index + 1, field=field, value=value, message=message, severity=severity)


def validate_claimant_id(value: Any, row: RawRow, index: int) -> ValidationIssue | None:
    text = _text(value)
    if not text:
        return _issue(index, "claimantId", value, "Claimant ID is required", Severity.ERROR)
    if len(text) > MAX_CLAIMANT_ID_LENGTH:
        return _issue(
            index,
            "claimantId",
            value,
            f"Claimant ID too long (max {MAX_CLAIMANT_ID_LENGTH} characters)",
            Severity.WARNING,
        )
    return None


def validate_claim_date(
    value: Any,
    row: RawRow,
    index: int,
    date_formats: Sequence[str] | None = None,
    now: datetime | None = None,
) -> ValidationIssue | None:
    parsed = parse_date(value, date_formats)
    if parsed is None:
        return _issue(index, "claimDate", value, "Invalid or missing claim date", Severity.ERROR)

    now = now or datetime.now()
    if parsed > now + relativedelta(years=MAX_FUTURE_YEARS):
        return _issue(index, "claimDate", value, "Claim date is too far in the future", Severity.WARNING)
    if parsed < now - relativedelta(years=MAX_PAST_YEARS):
        return _issue(
            index,
            "claimDate",
            value,
            f"Claim date is very old (more than {MAX_PAST_YEARS} years)",
            Severity.WARNING,
        )
    return None


def validate_service_type(value: Any, row: RawRow, index: int) -> ValidationIssue | None:
    if not _text(value):
        return _issue(index, "serviceType", value, "Service type is required", Severity.ERROR)
    return None


def validate_amount(value: Any, row: RawRow, index: int, field: str) -> ValidationIssue | None:
    """
    Flag suspicious amounts.

    parse_amount drops the sign, so negatives are detected on the raw text.
    """
    label = _AMOUNT_LABELS.get(field, field)
    if is_negative_amount(value):
        return _issue(index, field, value, f"Negative {label} amount", Severity.WARNING)

    amount = parse_amount(value)
    if amount > HIGH_AMOUNT_THRESHOLD:
        return _issue(index, field, value, f"Unusually high {label} amount: ${amount:,.2f}", Severity.WARNING)
    return None


def validate_icd_code(value: Any, row: RawRow, index: int) -> ValidationIssue | None:
    text = _text(value)
    if not text:
        return None
    if not ICD10_PATTERN.match(text) and not ICD9_PATTERN.match(text):
        return _issue(index, "icdCode", value, "Invalid ICD code format", Severity.WARNING)
    return None


def create_validation_rules(options: ValidationOptions | None = None) -> list[ValidationRule]:
    """Build the fixed rule set, parameterized by the options' date formats."""
    options = options or ValidationOptions()
    date_formats = options.date_formats

    return [
        ValidationRule("claimantId", validate_claimant_id, required=True),
        ValidationRule("claimDate", partial(validate_claim_date, date_formats=date_formats), required=True),
        ValidationRule("serviceType", validate_service_type, required=True),
        ValidationRule("medicalAmount", partial(validate_amount, field="medicalAmount")),
        ValidationRule("pharmacyAmount", partial(validate_amount, field="pharmacyAmount")),
        ValidationRule("totalAmount", partial(validate_amount, field="totalAmount")),
        ValidationRule("icdCode", validate_icd_code),
    ]


def validate_row(
    row: RawRow,
    index: int,
    mapping: FieldMapping,
    rules: Sequence[ValidationRule],
) -> list[ValidationIssue]:
    """
    Run every rule against one row.

    A rule whose field is not mapped yields a single "not mapped" error when
    the rule is required and is skipped otherwise.

    Args:
        row: Raw row keyed by source column
        index: 0-based position of the row in its data set
        mapping: Canonical field -> source column
        rules: Rules from create_validation_rules

    Returns:
        Issues in rule order; empty when the row is clean
    """
    issues: list[ValidationIssue] = []

    for rule in rules:
        column = mapping.source_for(rule.field)
        if not column:
            if rule.required:
                issues.append(
                    _issue(index, rule.field, None, f"Required field '{rule.field}' not mapped", Severity.ERROR)
                )
            continue

        issue = rule.validator(row.get(column), row, index)
        if issue is not None:
            issues.append(issue)

    return issues


def validate_data(
    rows: Sequence[RawRow],
    mapping: FieldMapping,
    options: ValidationOptions | None = None,
) -> ValidationResult:
    """
    Validate rows and compute data-quality statistics.

    Rows are processed in order until ``max_errors`` issues have been
    collected. Processing then stops for statistics too: ``row_count``
    counts only the rows that were looked at, so ``valid_rows +
    invalid_rows == row_count``. The issue list never exceeds
    ``max_errors``.

    A row counts as invalid when it has at least one error-severity issue;
    rows with only warnings are valid. A repeated claimant ID is a warning
    on every occurrence after the first.

    Args:
        rows: Raw rows keyed by source column
        mapping: Canonical field -> source column
        options: Validation options (defaults apply when None)

    Returns:
        ValidationResult with issues and statistics
    """
    options = options or ValidationOptions()
    rules = create_validation_rules(options)
    max_errors = options.max_errors

    errors: list[ValidationIssue] = []
    valid_rows = 0
    invalid_rows = 0
    duplicate_ids = 0
    invalid_dates = 0
    processed = 0
    seen_ids: set[str] = set()
    missing_required = {field: 0 for field in REQUIRED_FIELDS}

    claimant_column = mapping.source_for("claimantId")
    date_column = mapping.source_for("claimDate")

    for index, row in enumerate(rows):
        if len(errors) >= max_errors:
            break
        processed += 1

        row_issues = validate_row(row, index, mapping, rules)

        if claimant_column:
            claimant_id = _text(row.get(claimant_column))
            if claimant_id:
                if claimant_id in seen_ids:
                    duplicate_ids += 1
                    row_issues.append(
                        _issue(index, "claimantId", claimant_id, "Duplicate claimant ID", Severity.WARNING)
                    )
                else:
                    seen_ids.add(claimant_id)

        for field in REQUIRED_FIELDS:
            column = mapping.source_for(field)
            if not column or not _text(row.get(column)):
                missing_required[field] += 1

        if date_column and parse_date(row.get(date_column), options.date_formats) is None:
            invalid_dates += 1

        if any(issue.severity == Severity.ERROR for issue in row_issues):
            invalid_rows += 1
        else:
            valid_rows += 1

        errors.extend(row_issues[: max_errors - len(errors)])

    completeness = _percent(valid_rows, processed)

    stats = DataQualityStats(
        row_count=processed,
        valid_rows=valid_rows,
        invalid_rows=invalid_rows,
        missing_required=missing_required,
        invalid_dates=invalid_dates,
        duplicate_ids=duplicate_ids,
        data_completeness=completeness,
    )
    return ValidationResult(errors=errors, stats=stats)


def _optional_text(row: RawRow, column: str | None) -> str | None:
    if not column:
        return None
    return _text(row.get(column)) or None


def normalize_row(
    row: RawRow,
    mapping: FieldMapping,
    index: int,
    date_formats: Sequence[str] | None = None,
) -> ClaimRecord | None:
    """
    Turn one raw row into a canonical ClaimRecord.

    Returns None when the claimant ID is empty or the claim date does not
    parse; no detail is attached. Missing amounts count as zero. An explicit
    total replaces the medical + pharmacy sum only when it parses to a value
    greater than zero.
    """
    claimant_column = mapping.source_for("claimantId")
    date_column = mapping.source_for("claimDate")
    if not claimant_column or not date_column:
        return None

    claimant_id = _text(row.get(claimant_column))
    claim_date = parse_date(row.get(date_column), date_formats)
    if not claimant_id or claim_date is None:
        return None

    service_column = mapping.source_for("serviceType")
    service_type = (_text(row.get(service_column)) if service_column else "") or DEFAULT_SERVICE_TYPE

    medical_column = mapping.source_for("medicalAmount")
    pharmacy_column = mapping.source_for("pharmacyAmount")
    medical_amount = parse_amount(row.get(medical_column)) if medical_column else 0.0
    pharmacy_amount = parse_amount(row.get(pharmacy_column)) if pharmacy_column else 0.0

    total_amount = medical_amount + pharmacy_amount
    total_column = mapping.source_for("totalAmount")
    if total_column:
        explicit_total = parse_amount(row.get(total_column))
        if explicit_total > 0:
            total_amount = explicit_total

    return ClaimRecord(
        id=f"{claimant_id}-{index}",
        claimant_id=claimant_id,
        claim_date=claim_date.replace(tzinfo=timezone.utc).isoformat(),
        month_key=claim_date.strftime("%Y-%m"),
        service_type=service_type,
        medical_amount=medical_amount,
        pharmacy_amount=pharmacy_amount,
        total_amount=total_amount,
        icd_code=_optional_text(row, mapping.source_for("icdCode")),
        medical_desc=_optional_text(row, mapping.source_for("medicalDesc")),
        layman_term=_optional_text(row, mapping.source_for("laymanTerm")),
        provider=_optional_text(row, mapping.source_for("provider")),
        location=_optional_text(row, mapping.source_for("location")),
        original_row=dict(row),
    )


def normalize_data(
    rows: Sequence[RawRow],
    mapping: FieldMapping,
    options: ValidationOptions | None = None,
    start_index: int = 0,
) -> list[ClaimRecord]:
    """
    Normalize every row, dropping those that cannot be normalized.

    Dropped rows are logged when ``skip_invalid_rows`` is False. Record ids
    use ``start_index + position`` so chunked callers keep ids distinct.
    """
    options = options or ValidationOptions()
    records: list[ClaimRecord] = []

    for offset, row in enumerate(rows):
        index = start_index + offset
        record = normalize_row(row, mapping, index, options.date_formats)
        if record is not None:
            records.append(record)
        elif not options.skip_invalid_rows:
            logger.warning(f"Failed to normalize row {index + 1}")

    return records


def generate_data_quality_report(stats: DataQualityStats) -> str:
    """Render statistics as a plain-text report."""
    valid_share = stats.valid_rows / stats.row_count * 100 if stats.row_count else 0.0
    lines = [
        "Data Quality Report",
        "===================",
        f"Total Rows: {stats.row_count:,}",
        f"Valid Rows: {stats.valid_rows:,} ({valid_share:.1f}%)",
        f"Invalid Rows: {stats.invalid_rows:,}",
        f"Data Completeness: {stats.data_completeness:g}%",
        "",
    ]

    if stats.missing_required:
        lines.append("Missing Required Fields:")
        lines.extend(
            f"  {field}: {count:,} rows" for field, count in stats.missing_required.items() if count > 0
        )
        lines.append("")

    if stats.invalid_dates > 0:
        lines.append(f"Invalid Dates: {stats.invalid_dates:,} rows")
    if stats.duplicate_ids > 0:
        lines.append(f"Duplicate IDs: {stats.duplicate_ids:,} occurrences")

    return "\n".join(lines)


def merge_validation_results(results: Iterable[ValidationResult]) -> ValidationResult:
    """
    Combine chunk-level results into one file-level result.

    Counters are summed and issue lists concatenated; completeness is
    recomputed from the summed counts.
    """
    errors: list[ValidationIssue] = []
    row_count = valid_rows = invalid_rows = invalid_dates = duplicate_ids = 0
    missing = {field: 0 for field in REQUIRED_FIELDS}

    for result in results:
        stats = result.stats
        errors.extend(result.errors)
        row_count += stats.row_count
        valid_rows += stats.valid_rows
        invalid_rows += stats.invalid_rows
        invalid_dates += stats.invalid_dates
        duplicate_ids += stats.duplicate_ids
        for field, count in stats.missing_required.items():
            missing[field] = missing.get(field, 0) + count

    completeness = _percent(valid_rows, row_count)
    return ValidationResult(
        errors=errors,
        stats=DataQualityStats(
            row_count=row_count,
            valid_rows=valid_rows,
            invalid_rows=invalid_rows,
            missing_required=missing,
            invalid_dates=invalid_dates,
            duplicate_ids=duplicate_ids,
            data_completeness=completeness,
        ),
    )
