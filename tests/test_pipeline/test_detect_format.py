"""Tests for carrier format detection."""

import importlib

import pytest

from claimflow.models.carriers import CarrierPattern
from claimflow.models.claims import FieldMapping
from claimflow.pipeline.carriers import KNOWN_CARRIERS, get_carrier
from claimflow.pipeline.detect_format import (
    detect_format,
    detect_format_from_file,
    generate_mapping,
    get_all_supported_carriers,
    get_carrier_info,
    normalize_token,
    string_score,
    validate_mapping,
)


@pytest.fixture
def scenario_headers() -> list[str]:
    return ["member_id", "service_date", "paid_amount"]


@pytest.fixture
def scenario_rows() -> list[dict[str, str]]:
    return [{"member_id": "123", "service_date": "01/15/2024", "paid_amount": "$500.00"}]


def test_normalize_token() -> None:
    assert normalize_token("Member_ID ") == "memberid"
    assert normalize_token("Rx-Paid ($)") == "rxpaid"


def test_string_score_sums_pattern_lengths() -> None:
    assert string_score("Member_ID", ["member_id"]) == 8
    assert string_score("anthem_member_id", ["anthem", "member"]) == 12
    assert string_score("claim_no", ["member"]) == 0


def test_member_id_headers_detected(scenario_headers: list[str], scenario_rows: list[dict[str, str]]) -> None:
    """Generic member/service/paid headers still yield a usable mapping."""
    results = detect_format(scenario_headers, scenario_rows)

    assert results
    top = results[0]
    assert top.carrier == "Anthem"
    assert top.confidence == 100
    assert top.suggested_mapping.claimant_id == "member_id"
    assert top.date_format == "MM/DD/YYYY"


def test_results_sorted_and_capped(scenario_headers: list[str], scenario_rows: list[dict[str, str]]) -> None:
    results = detect_format(scenario_headers, scenario_rows)

    assert len(results) <= 3
    confidences = [r.confidence for r in results]
    assert confidences == sorted(confidences, reverse=True)
    assert all(0 <= c <= 100 for c in confidences)


def test_max_candidates(scenario_headers: list[str], scenario_rows: list[dict[str, str]]) -> None:
    assert len(detect_format(scenario_headers, scenario_rows, max_candidates=1)) == 1


def test_confidence_is_relative_to_best(scenario_headers: list[str]) -> None:
    """The best candidate of every call has confidence 100."""
    results = detect_format(scenario_headers)
    assert results[0].confidence == 100


def test_no_match_returns_empty() -> None:
    assert detect_format(["foo", "bar"], [{"foo": "x", "bar": "y"}]) == []
    assert detect_format([]) == []


def test_min_confidence_filters(scenario_headers: list[str], scenario_rows: list[dict[str, str]]) -> None:
    assert detect_format(scenario_headers, scenario_rows, min_confidence=10_000) == []


def test_indicators_explain_match(scenario_headers: list[str], scenario_rows: list[dict[str, str]]) -> None:
    top = detect_format(scenario_headers, scenario_rows)[0]
    assert "Header match: member_id" in top.indicators
    assert any(i.startswith("Required columns present:") for i in top.indicators)
    assert any(i.startswith("Date format match: 01/15/2024") for i in top.indicators)


def test_express_scripts_headers() -> None:
    headers = ["member_id", "fill_date", "drug_category", "total_paid", "prescription_number"]
    rows = [{"member_id": "A1", "fill_date": "20240115", "drug_category": "Statin", "total_paid": "12.50"}]

    results = detect_format(headers, rows)
    assert results[0].carrier == "ESI"
    assert results[0].suggested_mapping.claim_date == "fill_date"


def test_custom_registry() -> None:
    acme = CarrierPattern(
        name="Acme",
        header_patterns=("acme",),
        field_patterns={"claimantId": ("acme_member",)},
        default_mapping=FieldMapping(claimant_id="acme_member"),
    )
    results = detect_format(["acme_member", "acme_date"], carriers=[acme])
    assert [r.carrier for r in results] == ["Acme"]


def test_generate_mapping_prefers_better_header() -> None:
    carrier = get_carrier("Anthem")
    mapping = generate_mapping(carrier, ["subscriber_id", "date_of_service", "paid_amount"])

    assert mapping.claimant_id == "subscriber_id"
    assert mapping.claim_date == "date_of_service"
    assert mapping.medical_amount == "medical_paid"


def test_filename_alias_boost() -> None:
    headers = ["member_id", "service_date", "service_type", "paid_amount", "pharmacy_paid"]
    plain = {r.carrier: r.confidence for r in detect_format(headers)}
    boosted = {r.carrier: r.confidence for r in detect_format_from_file("aetna_q1.csv", headers)}

    assert boosted["Aetna"] == min(100, plain["Aetna"] + 10)
    assert boosted["Anthem"] == plain["Anthem"]


def test_filename_boost_is_capped() -> None:
    results = detect_format_from_file("anthem.csv", ["member_id", "service_date", "paid_amount"])
    anthem = next(r for r in results if r.carrier == "Anthem")
    assert anthem.confidence == 100
    assert "Filename contains: anthem" in anthem.indicators


def test_detection_errors_yield_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(*args: object, **kwargs: object) -> list:
        raise RuntimeError("boom")

    # The package re-exports detect_format, shadowing the submodule attribute
    module = importlib.import_module("claimflow.pipeline.detect_format")
    monkeypatch.setattr(module, "detect_format", broken)
    assert detect_format_from_file("anthem.csv", ["member_id"]) == []


class TestValidateMapping:
    """Tests for validate_mapping."""

    def test_complete_mapping(self) -> None:
        mapping = FieldMapping(claimant_id="id", claim_date="dt", service_type="type")
        check = validate_mapping(mapping, ["id", "dt", "type"])
        assert check.is_valid
        assert check.missing_fields == []
        assert check.invalid_fields == []

    def test_missing_fields(self) -> None:
        check = validate_mapping(FieldMapping(claimant_id="id"), ["id"])
        assert not check.is_valid
        assert check.missing_fields == ["claimDate", "serviceType"]

    def test_invalid_fields(self) -> None:
        mapping = FieldMapping(claimant_id="id", claim_date="date", service_type="type")
        check = validate_mapping(mapping, ["id", "type"])
        assert not check.is_valid
        assert check.invalid_fields == ["claimDate"]

    def test_empty_string_is_missing(self) -> None:
        mapping = FieldMapping(claimant_id="", claim_date="dt", service_type="type")
        assert validate_mapping(mapping, ["dt", "type"]).missing_fields == ["claimantId"]


def test_carrier_lookups() -> None:
    assert "Cigna" in get_all_supported_carriers()
    assert get_carrier_info("Cigna").required_columns == ("customer_id", "service_date", "benefit_paid")
    assert get_carrier_info("Nope") is None


def _raw_score(carrier: str, headers: list[str], rows: list[dict[str, str]] | None = None) -> int:
    """Highest min_confidence that still keeps ``carrier``, i.e. its raw score."""
    low, high = 0, 10_000
    while low < high:
        mid = (low + high + 1) // 2
        kept = detect_format(headers, rows, min_confidence=mid, max_candidates=len(KNOWN_CARRIERS))
        if any(r.carrier == carrier for r in kept):
            low = mid
        else:
            high = mid - 1
    return low


@pytest.mark.parametrize("carrier", [c.name for c in KNOWN_CARRIERS])
def test_score_grows_with_more_evidence(carrier: str) -> None:
    pattern = get_carrier(carrier)
    required = list(pattern.required_columns)
    superset = required + [f"{alias}_export" for alias in pattern.aliases] + ["notes"]

    for size in range(len(required) + 1):
        subset = required[:size]
        assert _raw_score(carrier, superset) >= _raw_score(carrier, subset)


def test_score_grows_with_sample_rows(scenario_headers: list[str], scenario_rows: list[dict[str, str]]) -> None:
    assert _raw_score("Anthem", scenario_headers, scenario_rows) >= _raw_score("Anthem", scenario_headers)
