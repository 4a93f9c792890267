"""Tests for the claimflow HTTP API."""

import base64
import json

import pytest
from fastapi.testclient import TestClient

from claimflow.models.claims import FieldMapping


def _upload(client: TestClient, content: bytes, filename: str = "anthem_claims.csv", **data: str) -> dict:
    response = client.post(
        "/api/v1/uploads",
        files={"file": (filename, content, "text/csv")},
        data=data or None,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "version" in data

    def test_liveness(self, client: TestClient) -> None:
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness(self, client: TestClient) -> None:
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["storage"]["details"]["writable"] is True
        assert data["checks"]["carriers"]["details"]["count"] == 5

    def test_detailed(self, client: TestClient) -> None:
        response = client.get("/health/detailed")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["preferences"]["details"]["backend"] == "memory"
        assert data["config"]["preferences_backend"] == "memory"

    def test_root(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Claimflow API"


class TestUploadEndpoints:
    """Tests for the upload (preview) step."""

    def test_upload_detects_carrier(self, client: TestClient, anthem_csv: bytes) -> None:
        data = _upload(client, anthem_csv)

        assert data["success"] is True
        assert data["fileId"]
        assert data["carrier"] == "Anthem"
        assert data["confidence"] == 100
        assert data["recordCount"] > 0
        assert data["previewData"][0]["member_id"] == "M001"
        assert any(issue["row"] == 3 and issue["severity"] == "error" for issue in data["errors"])

    def test_upload_unknown_format(self, client: TestClient, unknown_csv: bytes) -> None:
        data = _upload(client, unknown_csv, filename="export.csv")

        assert data["carrier"] is None
        assert "manual column mapping" in data["message"]

    def test_upload_with_mapping(self, client: TestClient, unknown_csv: bytes) -> None:
        mapping = {"claimantId": "foo", "claimDate": "bar", "medicalAmount": "baz"}
        data = _upload(client, unknown_csv, filename="export.csv", mapping=json.dumps(mapping))

        session = client.get(f"/api/v1/uploads/{data['fileId']}").json()
        assert session["fieldMapping"]["claimantId"] == "foo"

    def test_upload_rejects_non_csv(self, client: TestClient, anthem_csv: bytes) -> None:
        response = client.post(
            "/api/v1/uploads",
            files={"file": ("claims.txt", anthem_csv, "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_FILE_FORMAT"

    def test_upload_rejects_empty_file(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/uploads",
            files={"file": ("claims.csv", b"", "text/csv")},
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "EMPTY_FILE"

    @pytest.mark.parametrize("mapping", ["{not json", '{"claimantId": 5}', '{"memberId": "x"}'])
    def test_upload_rejects_bad_mapping(self, client: TestClient, anthem_csv: bytes, mapping: str) -> None:
        response = client.post(
            "/api/v1/uploads",
            files={"file": ("anthem_claims.csv", anthem_csv, "text/csv")},
            data={"mapping": mapping},
        )
        assert response.status_code == 422

    def test_get_upload(self, client: TestClient, anthem_csv: bytes) -> None:
        file_id = _upload(client, anthem_csv)["fileId"]

        response = client.get(f"/api/v1/uploads/{file_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["fileId"] == file_id
        assert data["status"] == "format_known"
        assert data["progress"] == 0
        assert data["filename"] == "anthem_claims.csv"

    def test_get_upload_not_found(self, client: TestClient) -> None:
        response = client.get("/api/v1/uploads/missing")
        assert response.status_code == 404


class TestProcessEndpoint:
    """Tests for full processing."""

    def test_process_stored_upload(self, client: TestClient, anthem_csv: bytes) -> None:
        file_id = _upload(client, anthem_csv)["fileId"]

        response = client.post("/api/v1/process", json={"fileId": file_id})
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Successfully processed and stored 3 claims"
        assert [c["claimantId"] for c in data["result"]["claims"]] == ["M001", "M002", "M001"]
        assert data["result"]["carrier"] == "Anthem"
        assert data["result"]["stats"]["rowCount"] == 4

        session = client.get(f"/api/v1/uploads/{file_id}").json()
        assert session["status"] == "stored"
        assert session["progress"] == 100

    def test_process_with_file_data(self, client: TestClient, unknown_csv: bytes, anthem_csv: bytes) -> None:
        file_id = _upload(client, unknown_csv, filename="export.csv")["fileId"]
        encoded = base64.b64encode(anthem_csv).decode()

        response = client.post(
            "/api/v1/process",
            json={"fileId": file_id, "fileData": f"data:text/csv;base64,{encoded}"},
        )
        assert response.status_code == 200, response.text
        assert response.json()["message"] == "Successfully processed and stored 3 claims"

    def test_process_with_mapping(
        self, client: TestClient, anthem_csv: bytes, claim_mapping: FieldMapping
    ) -> None:
        file_id = _upload(client, anthem_csv)["fileId"]

        response = client.post(
            "/api/v1/process",
            json={"fileId": file_id, "mapping": claim_mapping.to_json_dict()},
        )
        assert response.status_code == 200
        assert response.json()["result"]["mapping"]["icdCode"] == "diagnosis_code"

    def test_process_unknown_format_needs_mapping(self, client: TestClient, unknown_csv: bytes) -> None:
        file_id = _upload(client, unknown_csv, filename="export.csv")["fileId"]

        response = client.post("/api/v1/process", json={"fileId": file_id})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "FORMAT_DETECTION_FAILED"

    def test_process_twice_conflicts(self, client: TestClient, anthem_csv: bytes) -> None:
        file_id = _upload(client, anthem_csv)["fileId"]
        assert client.post("/api/v1/process", json={"fileId": file_id}).status_code == 200

        response = client.post("/api/v1/process", json={"fileId": file_id})
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_UPLOAD_STATE"
        assert "already been processed" in response.json()["detail"]["user_message"]

    def test_process_missing_upload(self, client: TestClient) -> None:
        response = client.post("/api/v1/process", json={"fileId": "missing"})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UPLOAD_NOT_FOUND"

    @pytest.mark.parametrize(
        "body",
        [{}, {"fileId": 5}, {"fileId": "abc", "extra": True}, {"fileId": "abc", "fileData": "not base64!"}],
    )
    def test_process_invalid_body(self, client: TestClient, body: dict) -> None:
        response = client.post("/api/v1/process", json=body)
        assert response.status_code == 422
        assert response.json()["detail"]["errors"]


class TestCarrierEndpoints:
    """Tests for carrier detection and lookup."""

    def test_detect(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/detect",
            json={
                "headers": ["member_id", "service_date", "paid_amount"],
                "sampleRows": [{"member_id": "123", "service_date": "01/15/2024", "paid_amount": "$500.00"}],
            },
        )
        assert response.status_code == 200
        results = response.json()
        assert results[0]["carrier"] == "Anthem"
        assert results[0]["confidence"] == 100
        assert results[0]["suggestedMapping"]["claimantId"] == "member_id"

    def test_detect_max_candidates(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/detect",
            json={"headers": ["member_id", "service_date", "paid_amount"], "maxCandidates": 1},
        )
        assert len(response.json()) == 1

    def test_detect_requires_headers(self, client: TestClient) -> None:
        response = client.post("/api/v1/detect", json={"headers": []})
        assert response.status_code == 422

    def test_list_carriers(self, client: TestClient) -> None:
        response = client.get("/api/v1/carriers")
        assert response.status_code == 200
        assert response.json()["carriers"] == ["Anthem", "ESI", "UnitedHealthcare", "Aetna", "Cigna"]

    def test_get_carrier(self, client: TestClient) -> None:
        response = client.get("/api/v1/carriers/Anthem")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Anthem"
        assert "fieldPatterns" in data

    def test_get_carrier_not_found(self, client: TestClient) -> None:
        response = client.get("/api/v1/carriers/Nope")
        assert response.status_code == 404


class TestMappingEndpoints:
    """Tests for schema column mapping."""

    def test_generate_claims_mappings(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/mappings/generate",
            json={
                "sourceColumns": ["member_id", "service_date", "service_type", "paid_amount"],
                "schemaType": "claims",
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["schemaType"] == "claims"
        assert data["missingRequired"] == []
        assert data["fieldMapping"]["claimantId"] == "member_id"
        assert data["savedMappings"] is None

    def test_generate_cost_mappings(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/mappings/generate",
            json={"sourceColumns": ["Categry", "Jan-2024"], "schemaType": "healthcare_costs"},
        )
        data = response.json()
        assert [m["source"] for m in data["mappings"]] == ["Jan-2024", "Categry"]
        assert data["fieldMapping"] is None
        assert "Feb-2024" in data["missingRequired"]

    def test_generate_includes_saved_mappings(self, client: TestClient) -> None:
        saved = {"mappings": [{"source": "cat", "target": "Category", "confidence": 0.9}]}
        client.put("/api/v1/mappings/preferences/healthcare_costs", json=saved)

        response = client.post(
            "/api/v1/mappings/generate",
            json={"sourceColumns": ["cat", "Jan-2024"], "schemaType": "healthcare_costs"},
        )
        assert response.json()["savedMappings"][0]["target"] == "Category"

    def test_validate(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/mappings/validate",
            json={
                "mappings": [
                    {"source": "id", "target": "Claimant_ID"},
                    {"source": "paid", "target": "Total_Paid_YTD"},
                ],
                "schemaType": "high_cost_claimants",
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["isValid"] is False
        assert data["missingRequired"] == ["Jan_2024", "Feb_2024", "Mar_2024"]

    def test_change_target_swaps(self, client: TestClient) -> None:
        mappings = [
            {"source": "A", "target": "Category", "confidence": 0.9, "isRequired": True},
            {"source": "B", "target": "Jan-2024", "confidence": 0.7, "isRequired": True},
        ]
        response = client.post(
            "/api/v1/mappings/change-target",
            json={"mappings": mappings, "index": 0, "newTarget": "Jan-2024", "schemaType": "healthcare_costs"},
        )
        assert response.status_code == 200
        data = response.json()
        assert [m["target"] for m in data] == ["Jan-2024", "Category"]
        assert data[0]["confidence"] == 0.8

    def test_change_target_bad_index(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/mappings/change-target",
            json={"mappings": [{"source": "A"}], "index": 3, "newTarget": "Category"},
        )
        assert response.status_code == 422


class TestPreferenceEndpoints:
    """Tests for saved mapping preferences."""

    def test_save_load_clear(self, client: TestClient) -> None:
        body = {"mappings": [{"source": "cat", "target": "Category", "confidence": 0.9, "isRequired": True}]}

        response = client.put("/api/v1/mappings/preferences/healthcare_costs", json=body)
        assert response.status_code == 200
        assert response.json()["schemaType"] == "healthcare_costs"
        assert "savedAt" in response.json()

        response = client.get("/api/v1/mappings/preferences/healthcare_costs")
        assert response.status_code == 200
        assert response.json()["mappings"][0]["source"] == "cat"

        response = client.delete("/api/v1/mappings/preferences/healthcare_costs")
        assert response.json() == {"schemaType": "healthcare_costs", "deleted": True}

        response = client.get("/api/v1/mappings/preferences/healthcare_costs")
        assert response.status_code == 404

    def test_save_rejects_invalid_body(self, client: TestClient) -> None:
        response = client.put(
            "/api/v1/mappings/preferences/claims",
            json={"mappings": [{"target": "claimantId"}]},
        )
        assert response.status_code == 422

    def test_unknown_schema_type(self, client: TestClient) -> None:
        response = client.get("/api/v1/mappings/preferences/invoices")
        assert response.status_code == 422
