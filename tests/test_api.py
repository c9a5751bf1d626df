"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from dump_migrator.api.deps import get_config, get_datastore
from dump_migrator.api.main import app
from dump_migrator.datastores import InMemoryDatastore
from dump_migrator.models.migration import MigrationConfig

from .conftest import ANN_BO_DUMP, PATIENT_MAPPING, patient_dump


@pytest.fixture
def datastore():
    return InMemoryDatastore()


@pytest.fixture
def client(datastore):
    app.dependency_overrides[get_datastore] = lambda: datastore
    app.dependency_overrides[get_config] = lambda: MigrationConfig()
    yield TestClient(app)
    app.dependency_overrides.clear()


def execute_payload(**overrides):
    payload = {
        "dump": ANN_BO_DUMP,
        "target": "patients",
        "mapping": dict(PATIENT_MAPPING),
        "acting_user_id": "user-1",
    }
    payload.update(overrides)
    return payload


class TestTargets:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "healthy"}

    def test_list_targets(self, client):
        response = client.get("/api/targets")

        assert response.status_code == 200
        assert response.json() == {"targets": ["patients", "lab_results"], "total": 2}

    def test_get_target(self, client):
        data = client.get("/api/targets/lab_results").json()

        assert data["dedup_key"] == ["test_number"]
        assert data["fields"][0]["case_sensitive"] is False

    def test_unknown_target(self, client):
        response = client.get("/api/targets/invoices")

        assert response.status_code == 404
        assert response.json()["kind"] == "unknown_target"


class TestPreview:

    def test_preview(self, client, datastore):
        response = client.post("/api/preview", json={"dump": ANN_BO_DUMP, "target": "patients"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_rows"] == 2
        assert data["suggested_mapping"] == PATIENT_MAPPING
        assert datastore.writes == 0

    def test_dump_without_rows(self, client):
        response = client.post("/api/preview", json={"dump": "-- empty", "target": "patients"})

        assert response.status_code == 400
        assert response.json()["kind"] == "parse_error"


class TestExecute:

    def test_execute(self, client, datastore):
        response = client.post("/api/migrations/execute", json=execute_payload())

        assert response.status_code == 200
        data = response.json()
        assert data["recordsInserted"] == 1
        assert data["recordsSkipped"] == 1
        assert data["success"] is False
        assert data["perRowErrors"][0]["position"] == 2
        assert data["perRowErrors"][0]["errors"][0]["error_type"] == "pattern"
        assert datastore.count("patients") == 1

    def test_invalid_mapping(self, client, datastore):
        payload = execute_payload(mapping={"first_name": "fname"})

        response = client.post("/api/migrations/execute", json=payload)

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_mapping"
        assert datastore.writes == 0

    def test_unknown_target(self, client):
        response = client.post("/api/migrations/execute", json=execute_payload(target="invoices"))

        assert response.status_code == 404

    def test_lost_connection(self, client, datastore):
        datastore.fail_after_writes = 2

        response = client.post("/api/migrations/execute", json=execute_payload(dump=patient_dump(5)))

        assert response.status_code == 503
        data = response.json()
        assert data["kind"] == "datastore_connection_error"
        assert data["details"]["result"]["recordsInserted"] == 2
        assert data["details"]["result"]["completed"] is False

    def test_request_validation(self, client):
        response = client.post("/api/migrations/execute", json={"target": "patients"})

        assert response.status_code == 422


class TestConfiguration:

    def test_bad_environment_value_is_a_structured_error(self, datastore, monkeypatch):
        monkeypatch.setenv("DUMP_MIGRATOR_SAMPLE_SIZE", "lots")
        get_config.cache_clear()
        app.dependency_overrides[get_datastore] = lambda: datastore
        try:
            response = TestClient(app).get("/api/targets")
        finally:
            app.dependency_overrides.clear()
            get_config.cache_clear()

        assert response.status_code == 500
        assert response.json()["kind"] == "config_error"
        assert "DUMP_MIGRATOR_SAMPLE_SIZE" in response.json()["message"]
