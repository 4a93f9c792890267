"""Carrier format detection for uploaded claims files."""

import logging
import math
import re
from collections.abc import Sequence
from typing import Any

from claimflow.models.carriers import CarrierDetectionResult, CarrierPattern, MappingCheck
from claimflow.models.claims import MAPPING_REQUIRED_FIELDS, FieldMapping, RawRow
from claimflow.pipeline.carriers import KNOWN_CARRIERS, get_carrier, list_carrier_names
from claimflow.pipeline.normalizers import matches_amount_format, matches_date_format

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 10
DEFAULT_MAX_CANDIDATES = 3

# Weights for header-level evidence
HEADER_PATTERN_WEIGHT = 2
ALIAS_WEIGHT = 3
FIELD_PATTERN_WEIGHT = 1

# Bonuses for data-level evidence
REQUIRED_COLUMN_BONUS = 10
DATE_FORMAT_BONUS = 5
AMOUNT_FORMAT_BONUS = 3
FILENAME_ALIAS_BONUS = 10

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class _Score:
    """Running score and evidence for one carrier."""

    def __init__(self, carrier: str, score: int = 0, indicators: list[str] | None = None):
        self.carrier = carrier
        self.score = score
        self.indicators = indicators or []


def normalize_token(text: str) -> str:
    """Lowercase and strip everything but letters and digits."""
    return _NON_ALNUM.sub("", text.lower())


def string_score(text: str, patterns: Sequence[str]) -> int:
    """Sum of the lengths of the normalized patterns contained in ``text``."""
    normalized = normalize_token(text)
    score = 0
    for pattern in patterns:
        token = normalize_token(pattern)
        if token in normalized:
            score += len(token)
    return score


def _score_headers(carrier: CarrierPattern, headers: Sequence[str]) -> _Score:
    result = _Score(carrier.name)

    for header in headers:
        header_score = string_score(header, carrier.header_patterns)
        if header_score > 0:
            result.score += header_score * HEADER_PATTERN_WEIGHT
            result.indicators.append(f"Header match: {header}")

        alias_score = string_score(header, carrier.aliases)
        if alias_score > 0:
            result.score += alias_score * ALIAS_WEIGHT
            result.indicators.append(f"Alias match: {header}")

    for field, patterns in carrier.field_patterns.items():
        for header in headers:
            field_score = string_score(header, patterns)
            if field_score > 0:
                result.score += field_score * FIELD_PATTERN_WEIGHT
                result.indicators.append(f"Field pattern match: {header} -> {field}")

    return result


def _score_data(carrier: CarrierPattern, headers: Sequence[str], first_row: RawRow) -> _Score:
    result = _Score(carrier.name)

    normalized_headers = [normalize_token(h) for h in headers]
    present = [
        required
        for required in carrier.required_columns
        if any(normalize_token(required) in header for header in normalized_headers)
    ]
    if present:
        result.score += len(present) * REQUIRED_COLUMN_BONUS
        result.indicators.append(f"Required columns present: {', '.join(present)}")

    # Only string values are sniffed; the reader may have coerced numerics.
    for header in headers:
        value = first_row.get(header)
        if not value or not isinstance(value, str):
            continue

        for date_format in carrier.date_formats:
            if matches_date_format(value, date_format):
                result.score += DATE_FORMAT_BONUS
                result.indicators.append(f"Date format match: {value} matches {date_format}")
                break

        for amount_format in carrier.amount_formats:
            if matches_amount_format(value, amount_format):
                result.score += AMOUNT_FORMAT_BONUS
                result.indicators.append(f"Amount format match: {value} matches {amount_format}")
                break

    return result


def _ranked(scores: list[_Score]) -> list[_Score]:
    """Positive scores only, highest first; ties keep registry order."""
    return sorted((s for s in scores if s.score > 0), key=lambda s: s.score, reverse=True)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def generate_mapping(carrier: CarrierPattern, headers: Sequence[str]) -> FieldMapping:
    """
    Suggest a field mapping for ``headers`` starting from the carrier default.

    A field is remapped to a header when the header scores strictly higher
    against the field's patterns than the currently mapped column does.
    """
    mapping = carrier.default_mapping
    for field, patterns in carrier.field_patterns.items():
        for header in headers:
            score = string_score(header, patterns)
            if score <= 0:
                continue
            current = mapping.source_for(field)
            if not current or score > string_score(current, patterns):
                mapping = mapping.with_source(field, header)
    return mapping


def detect_format(
    headers: Sequence[str],
    sample_rows: Sequence[RawRow] | None = None,
    min_confidence: int = DEFAULT_MIN_CONFIDENCE,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
    carriers: Sequence[CarrierPattern] | None = None,
) -> list[CarrierDetectionResult]:
    """
    Rank known carriers by how well they explain a file's headers and data.

    Header evidence (pattern, alias and field-name substrings) and data
    evidence (required columns present, date/amount shapes of the first
    sample row) are summed per carrier. Carriers scoring below
    ``min_confidence`` are dropped. Confidence is the score relative to the
    best score of this call, so it is only comparable within one result.

    Args:
        headers: Column names of the file
        sample_rows: Parsed data rows; only the first one is inspected
        min_confidence: Minimum raw score for a carrier to be kept
        max_candidates: Maximum number of results
        carriers: Registry override (defaults to KNOWN_CARRIERS)

    Returns:
        Candidates sorted by confidence, best first. Empty when nothing matches.
    """
    registry = KNOWN_CARRIERS if carriers is None else tuple(carriers)

    header_scores = _ranked([_score_headers(c, headers) for c in registry])
    data_scores: list[_Score] = []
    if sample_rows:
        data_scores = _ranked([_score_data(c, headers, sample_rows[0]) for c in registry])

    combined: dict[str, _Score] = {}
    for result in header_scores:
        combined[result.carrier] = _Score(result.carrier, result.score, list(result.indicators))
    for result in data_scores:
        existing = combined.get(result.carrier)
        if existing:
            existing.score += result.score
            existing.indicators.extend(result.indicators)
        else:
            combined[result.carrier] = _Score(result.carrier, result.score, list(result.indicators))

    if not combined:
        return []

    max_score = max(r.score for r in combined.values())
    by_name = {c.name: c for c in registry}

    results: list[CarrierDetectionResult] = []
    for name, result in combined.items():
        if result.score < min_confidence:
            continue
        carrier = by_name[name]
        confidence = _round_half_up(result.score / max_score * 100) if max_score > 0 else 0
        results.append(
            CarrierDetectionResult(
                carrier=name,
                confidence=confidence,
                indicators=result.indicators,
                suggested_mapping=generate_mapping(carrier, headers),
                date_format=carrier.date_formats[0] if carrier.date_formats else None,
                amount_format=carrier.amount_formats[0] if carrier.amount_formats else None,
            )
        )

    results.sort(key=lambda r: r.confidence, reverse=True)
    return results[:max_candidates]


def detect_format_from_file(
    filename: str,
    headers: Sequence[str],
    sample_rows: Sequence[RawRow] | None = None,
    **options: Any,
) -> list[CarrierDetectionResult]:
    """
    Detect the carrier of an uploaded file, using its name as extra evidence.

    Each carrier alias found in the lower-cased file name adds a bonus to that
    candidate's confidence (capped at 100). Detection errors are logged and
    reported as no match.
    """
    try:
        results = detect_format(headers, sample_rows, **options)

        lowered = filename.lower()
        boosted: list[CarrierDetectionResult] = []
        for result in results:
            carrier = get_carrier(result.carrier)
            confidence = result.confidence
            indicators = list(result.indicators)
            if carrier:
                for alias in carrier.aliases:
                    if alias.lower() in lowered:
                        confidence = min(100, confidence + FILENAME_ALIAS_BONUS)
                        indicators.append(f"Filename contains: {alias}")
            boosted.append(result.model_copy(update={"confidence": confidence, "indicators": indicators}))

        boosted.sort(key=lambda r: r.confidence, reverse=True)
        return boosted
    except Exception as e:
        logger.error(f"Format detection failed for {filename}: {e}")
        return []


def validate_mapping(mapping: FieldMapping, headers: Sequence[str]) -> MappingCheck:
    """
    Check that the minimum required fields are mapped to existing columns.

    Args:
        mapping: Field mapping to check
        headers: Column names actually present in the file

    Returns:
        MappingCheck listing unmapped fields and fields mapped to absent columns
    """
    missing: list[str] = []
    invalid: list[str] = []
    header_set = set(headers)

    for field in MAPPING_REQUIRED_FIELDS:
        column = mapping.source_for(field)
        if not column:
            missing.append(field)
        elif column not in header_set:
            invalid.append(field)

    return MappingCheck(
        is_valid=not missing and not invalid,
        missing_fields=missing,
        invalid_fields=invalid,
    )


def get_carrier_info(name: str) -> CarrierPattern | None:
    """Registry entry for a carrier, or None if unknown."""
    return get_carrier(name)


def get_all_supported_carriers() -> list[str]:
    return list_carrier_names()
