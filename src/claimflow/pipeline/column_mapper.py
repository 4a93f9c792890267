"""Schema-driven column mapping with fuzzy header matching."""

from collections.abc import Sequence
from typing import Any

from claimflow.models.claims import CANONICAL_FIELDS, FieldMapping
from claimflow.models.mapping import ColumnMapping, CSVSchemaType, MappingResult, MappingValidation
from claimflow.pipeline.csv_schemas import (
    aliases_for,
    expected_columns,
    required_columns,
)
from claimflow.pipeline.detect_format import normalize_token

DEFAULT_THRESHOLD = 0.6
SUGGESTION_THRESHOLD = 0.3

# Confidence given to a target picked by hand
MANUAL_CONFIDENCE = 0.8


def levenshtein_distance(s1: str, s2: str) -> int:
    """Number of single-character edits turning ``s1`` into ``s2``."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)
    if not s2:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def similarity(a: str, b: str) -> float:
    """
    Similarity of two column names in [0, 1].

    Both names are compared with case and punctuation removed, so
    ``Member_ID`` and ``member id`` are identical.
    """
    left, right = normalize_token(a), normalize_token(b)
    if left == right:
        return 1.0 if left else 0.0
    longest = max(len(left), len(right))
    return 1.0 - levenshtein_distance(left, right) / longest


def is_perfect_match(source: str, target: str) -> bool:
    return bool(target) and normalize_token(source) == normalize_token(target)


def detect_schema_type(columns: Sequence[str]) -> CSVSchemaType:
    """
    Guess which known CSV shape a set of columns belongs to.

    The schema with the most exact (case-insensitive) column matches wins.
    Ties are broken by indicator columns: a ``category`` column points to
    cost summaries, a claimant or member id to claimant reports.
    """
    lowered = {c.lower().strip() for c in columns}
    counts = {
        schema: sum(1 for target in expected_columns(schema) if target.lower() in lowered)
        for schema in (CSVSchemaType.HEALTHCARE_COSTS, CSVSchemaType.HIGH_COST_CLAIMANTS, CSVSchemaType.CLAIMS)
    }
    best = max(counts.values())
    leaders = [schema for schema, count in counts.items() if count == best]
    if best > 0 and len(leaders) == 1:
        return leaders[0]

    if any("category" in c for c in lowered):
        return CSVSchemaType.HEALTHCARE_COSTS
    if any("claimant" in c or ("member" in c and "id" in c) for c in lowered):
        return CSVSchemaType.HIGH_COST_CLAIMANTS
    return CSVSchemaType.UNKNOWN


def _best_score(source: str, target: str, include_aliases: bool) -> float:
    candidates = [target, *aliases_for(target)] if include_aliases else [target]
    return max(similarity(source, candidate) for candidate in candidates)


def generate_mappings(
    source_columns: Sequence[str],
    schema_type: CSVSchemaType,
    threshold: float = DEFAULT_THRESHOLD,
    include_aliases: bool = True,
) -> MappingResult:
    """
    Propose a mapping of a file's columns onto a schema's expected columns.

    Targets equal to a source ignoring case and punctuation are paired first.
    Every remaining target then takes the most similar unused source,
    provided the similarity reaches ``1 - threshold``; a lower threshold
    is stricter. No target or source is used twice.

    Args:
        source_columns: Column names of the uploaded file
        schema_type: Schema to map onto
        threshold: Tolerance between 0 (exact only) and 1 (anything goes)
        include_aliases: Also compare against known spellings of each target

    Returns:
        MappingResult with mappings sorted by confidence, best first
    """
    targets = expected_columns(schema_type)
    required = required_columns(schema_type)

    if not targets:
        return MappingResult(
            mappings=[],
            missing_required=required,
            extra_columns=list(source_columns),
            confidence=0.0,
        )

    mappings: list[ColumnMapping] = []
    used_sources: set[str] = set()
    used_targets: set[str] = set()

    for source in source_columns:
        target = next((t for t in targets if t not in used_targets and is_perfect_match(source, t)), None)
        if target is None or source in used_sources:
            continue
        mappings.append(
            ColumnMapping(
                source=source,
                target=target,
                confidence=1.0,
                is_required=target in required,
                is_perfect_match=True,
            )
        )
        used_sources.add(source)
        used_targets.add(target)

    min_similarity = 1.0 - threshold
    for target in targets:
        if target in used_targets:
            continue
        best_source: str | None = None
        best_score = 0.0
        for source in source_columns:
            if source in used_sources:
                continue
            score = _best_score(source, target, include_aliases)
            if score > best_score:
                best_source, best_score = source, score
        if best_source is None or best_score < min_similarity:
            continue
        mappings.append(
            ColumnMapping(
                source=best_source,
                target=target,
                confidence=round(best_score, 4),
                is_required=target in required,
                is_perfect_match=False,
            )
        )
        used_sources.add(best_source)
        used_targets.add(target)

    missing = [column for column in required if column not in used_targets]
    extra = [source for source in source_columns if source not in used_sources]
    confidence = sum(m.confidence for m in mappings) / len(mappings) if mappings else 0.0

    mappings.sort(key=lambda m: m.confidence, reverse=True)
    return MappingResult(
        mappings=mappings,
        missing_required=missing,
        extra_columns=extra,
        confidence=round(confidence, 4),
    )


def validate_mappings(mappings: Sequence[ColumnMapping], schema_type: CSVSchemaType) -> MappingValidation:
    """Check that every required target of the schema has a source column."""
    mapped = {m.target for m in mappings if m.target}
    missing = [column for column in required_columns(schema_type) if column not in mapped]
    return MappingValidation(is_valid=not missing, missing_required=missing)


def change_mapping_target(
    mappings: Sequence[ColumnMapping],
    index: int,
    new_target: str,
    schema_type: CSVSchemaType | None = None,
) -> list[ColumnMapping]:
    """
    Assign ``new_target`` to the mapping at ``index``.

    If another mapping already uses that target, the two swap targets, so a
    target is never assigned twice. Returns a new list.

    Raises:
        IndexError: If ``index`` is out of range
    """
    if not 0 <= index < len(mappings):
        raise IndexError(f"Mapping index out of range: {index}")

    updated = list(mappings)
    current = updated[index]
    required = set(required_columns(schema_type)) if schema_type else None

    def _required(target: str, fallback: bool) -> bool:
        return target in required if required is not None else fallback

    if new_target:
        for i, other in enumerate(updated):
            if i != index and other.target == new_target:
                updated[i] = other.model_copy(
                    update={
                        "target": current.target,
                        "is_required": _required(current.target, current.is_required),
                    }
                )
                break

    updated[index] = current.model_copy(
        update={
            "target": new_target,
            "is_perfect_match": False,
            "confidence": 1.0 if new_target == current.source else MANUAL_CONFIDENCE,
            "is_required": _required(new_target, current.is_required),
        }
    )
    return updated


def remove_mapping(mappings: Sequence[ColumnMapping], index: int) -> list[ColumnMapping]:
    if not 0 <= index < len(mappings):
        raise IndexError(f"Mapping index out of range: {index}")
    return [m for i, m in enumerate(mappings) if i != index]


def add_mapping(mappings: Sequence[ColumnMapping], source: str) -> list[ColumnMapping]:
    """Append an unassigned mapping for ``source``."""
    return [*mappings, ColumnMapping(source=source)]


def apply_mappings(rows: Sequence[dict[str, Any]], mappings: Sequence[ColumnMapping]) -> list[dict[str, Any]]:
    """Rename row keys from source to target columns; unmapped keys are kept."""
    renames = {m.source: m.target for m in mappings if m.target}
    return [{renames.get(key, key): value for key, value in row.items()} for row in rows]


def get_suggestions(
    source_columns: Sequence[str],
    schema_type: CSVSchemaType,
    threshold: float = SUGGESTION_THRESHOLD,
) -> list[ColumnMapping]:
    """Mappings worth showing for manual review, at a stricter threshold."""
    result = generate_mappings(source_columns, schema_type, threshold=threshold)
    return [m for m in result.mappings if m.confidence >= threshold]


def to_field_mapping(mappings: Sequence[ColumnMapping]) -> FieldMapping:
    """Turn claims-schema mappings into a FieldMapping; other targets are ignored."""
    mapping = FieldMapping()
    for m in mappings:
        if m.target in CANONICAL_FIELDS:
            mapping = mapping.with_source(m.target, m.source)
    return mapping
