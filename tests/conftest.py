"""Pytest configuration and fixtures."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from claimflow.api.dependencies import get_preference_store
from claimflow.config import Settings, get_settings
from claimflow.main import app
from claimflow.models.claims import FieldMapping
from claimflow.pipeline.ingest import IngestionOrchestrator
from claimflow.preferences import MemoryPreferenceStore
from claimflow.utils.storage import UploadStorage


@pytest.fixture
def uploads_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the application at a temporary uploads directory."""
    path = tmp_path / "uploads"
    monkeypatch.setenv("UPLOADS_PATH", str(path))
    get_settings.cache_clear()
    yield path
    get_settings.cache_clear()


@pytest.fixture
def settings(uploads_path: Path) -> Settings:
    return get_settings()


@pytest.fixture
def preference_store() -> MemoryPreferenceStore:
    return MemoryPreferenceStore()


@pytest.fixture
def client(uploads_path: Path, preference_store: MemoryPreferenceStore) -> Iterator[TestClient]:
    """Create a test client backed by temporary storage."""
    app.dependency_overrides[get_preference_store] = lambda: preference_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def temp_storage(uploads_path: Path) -> UploadStorage:
    """Create a temporary storage for testing."""
    return UploadStorage(uploads_path)


@pytest.fixture
def orchestrator(temp_storage: UploadStorage, settings: Settings) -> IngestionOrchestrator:
    return IngestionOrchestrator(temp_storage, settings)


@pytest.fixture
def anthem_csv() -> bytes:
    """Small Anthem-style export with one bad row."""
    return (
        b"member_id,service_date,service_type,medical_paid,rx_paid,diagnosis_code\n"
        b"M001,01/15/2024,Inpatient,1200.00,50.00,E11.9\n"
        b"M002,02/03/2024,Outpatient,$350.25,0,I10\n"
        b"M003,invalid,Pharmacy,0,75.10,\n"
        b"M001,03/22/2024,Office Visit,\"1,050.00\",12.50,Z00.00\n"
    )


@pytest.fixture
def unknown_csv() -> bytes:
    """Export whose headers match no registered carrier."""
    return b"foo,bar,baz\nx,y,z\nq,r,s\n"


@pytest.fixture
def claim_mapping() -> FieldMapping:
    return FieldMapping(
        claimant_id="member_id",
        claim_date="service_date",
        service_type="service_type",
        medical_amount="medical_paid",
        pharmacy_amount="rx_paid",
        icd_code="diagnosis_code",
    )
