"""Tests for the datastore layer."""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from dump_migrator.datastores import (
    DedupKey,
    InMemoryDatastore,
    KeyLocks,
    RestDatastore,
    create_datastore,
)
from dump_migrator.errors import DatastoreConnectionError, DatastoreRowError
from dump_migrator.executor import MigrationExecutor
from dump_migrator.models.migration import MigrationConfig


def lab_key(text):
    return DedupKey("lab_results", (("test_number", text),), frozenset({"test_number"}))


def patient_key(text):
    return DedupKey("patients", (("identification_card_number", text),))


def fake_response(status=200, payload=None, text=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    response.text = text if text is not None else ("" if payload is None else "x")
    response.reason = "reason"
    return response


class TestDedupKey:

    def test_case_insensitive_match(self):
        assert lab_key("lab-001").matches({"test_number": "LAB-001"})
        assert not patient_key("abc").matches({"identification_card_number": "ABC"})

    def test_numbers_match_their_text(self):
        key = DedupKey("lab_results", (("patient_id", "42"),))

        assert key.matches({"patient_id": 42})
        assert not key.matches({"patient_id": None})

    def test_token_is_normalised(self):
        assert lab_key("lab-001").token == lab_key("LAB-001").token
        assert patient_key("a").token != patient_key("A").token

    def test_key_locks_serialise_one_key(self):
        locks = KeyLocks()
        inside = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with locks.hold("a"):
                inside.set()
                release.wait(5)
                order.append("first")

        def second():
            with locks.hold("a"):
                order.append("second")

        t1 = threading.Thread(target=first)
        t1.start()
        inside.wait(5)
        t2 = threading.Thread(target=second)
        t2.start()
        release.set()
        t1.join()
        t2.join()

        assert order == ["first", "second"]
        assert len(locks) == 0

    def test_key_locks_are_released_after_use(self):
        locks = KeyLocks()

        with locks.hold("a"):
            with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_key_lock_is_released_on_error(self):
        locks = KeyLocks()

        with pytest.raises(DatastoreRowError):
            with locks.hold("a"):
                raise DatastoreRowError("rejected")
        assert len(locks) == 0


class TestInMemoryDatastore:

    def test_insert_find_update(self):
        store = InMemoryDatastore()
        record_id = store.insert("patients", {"identification_card_number": "1"}, "u1")

        found = store.find_by_key("patients", patient_key("1"))
        store.update("patients", record_id, {"first_name": "Ann"}, "u2")

        assert found.id == record_id
        stored = store.records("patients")[0]
        assert stored["first_name"] == "Ann"
        assert stored["created_by"] == "u1"
        assert stored["updated_by"] == "u2"
        assert store.writes == 2

    def test_scope_filters_lookups(self):
        store = InMemoryDatastore()
        store.seed("patients", {"identification_card_number": "1", "hospital_id": "h1"})

        assert store.find_by_key("patients", patient_key("1"), {"hospital_id": "h1"}) is not None
        assert store.find_by_key("patients", patient_key("1"), {"hospital_id": "h2"}) is None

    def test_found_record_is_a_copy(self):
        store = InMemoryDatastore()
        store.seed("patients", {"identification_card_number": "1"})

        store.find_by_key("patients", patient_key("1")).data["identification_card_number"] = "2"

        assert store.records("patients")[0]["identification_card_number"] == "1"

    def test_unavailable_store(self):
        store = InMemoryDatastore()
        store.available = False

        with pytest.raises(DatastoreConnectionError):
            store.find_by_key("patients", patient_key("1"))
        assert not store.check_connection()

    def test_update_of_missing_record(self):
        with pytest.raises(DatastoreRowError):
            InMemoryDatastore().update("patients", "99", {}, "u1")

    def test_log_activity(self):
        store = InMemoryDatastore()
        store.log_activity("u1", "DATA_MIGRATION", {"recordsInserted": 1})

        assert store.activities[0]["details"] == {"recordsInserted": 1}


class TestCreateDatastore:

    def test_in_memory_without_url(self):
        assert isinstance(create_datastore(MigrationConfig()), InMemoryDatastore)

    def test_rest_with_url(self):
        config = MigrationConfig(datastore_url="https://db.example.com/", datastore_api_key="k")

        datastore = create_datastore(config)

        assert isinstance(datastore, RestDatastore)
        assert datastore.base_url == "https://db.example.com"


class TestRestDatastore:

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def store(self, session):
        return RestDatastore("https://db.example.com", api_key="k", timeout=5, session=session)

    def test_session_headers(self):
        store = RestDatastore("https://db.example.com", api_key="secret", schema="legacy")
        headers = store._session.headers

        assert headers["apikey"] == "secret"
        assert headers["Authorization"] == "Bearer secret"
        assert headers["Accept-Profile"] == "legacy"
        assert headers["Content-Profile"] == "legacy"

    def test_find_by_key_exact(self, store, session):
        session.request.return_value = fake_response(payload=[{"id": 7, "first_name": "Ann"}])

        found = store.find_by_key("patients", patient_key("1234"), {"hospital_id": "h1"})

        assert found.id == "7"
        assert found.data == {"first_name": "Ann"}
        method, url = session.request.call_args.args
        params = session.request.call_args.kwargs["params"]
        assert (method, url) == ("GET", "https://db.example.com/rest/v1/patients")
        assert params["identification_card_number"] == "eq.1234"
        assert params["hospital_id"] == "eq.h1"
        assert params["limit"] == "1"
        assert session.request.call_args.kwargs["timeout"] == 5

    def test_find_by_key_case_insensitive(self, store, session):
        session.request.return_value = fake_response(payload=[])

        assert store.find_by_key("lab_results", lab_key("lab_1%")) is None

        params = session.request.call_args.kwargs["params"]
        assert params["test_number"] == "ilike.lab\\_1\\%"

    def test_find_by_key_without_id(self, store, session):
        session.request.return_value = fake_response(payload=[{"first_name": "Ann"}])

        with pytest.raises(DatastoreRowError):
            store.find_by_key("patients", patient_key("1"))

    def test_insert_returns_id(self, store, session):
        session.request.return_value = fake_response(201, payload=[{"id": 12}])

        record_id = store.insert("patients", {"first_name": "Ann"}, "u1")

        assert record_id == "12"
        kwargs = session.request.call_args.kwargs
        assert kwargs["json"] == {"first_name": "Ann"}
        assert kwargs["headers"] == {"Prefer": "return=representation"}

    def test_update_patches_by_id(self, store, session):
        session.request.return_value = fake_response(204)

        store.update("patients", "12", {"first_name": "Ann"}, "u1")

        assert session.request.call_args.args[0] == "PATCH"
        assert session.request.call_args.kwargs["params"] == {"id": "eq.12"}

    def test_conflict_is_a_row_error(self, store, session):
        session.request.return_value = fake_response(409, payload={"message": "duplicate key"})

        with pytest.raises(DatastoreRowError) as exc_info:
            store.insert("patients", {}, "u1")

        assert exc_info.value.message == "duplicate key"

    @pytest.mark.parametrize("status", [401, 403, 500, 503])
    def test_store_level_statuses(self, store, session, status):
        session.request.return_value = fake_response(status, payload={"error": "nope"})

        with pytest.raises(DatastoreConnectionError):
            store.insert("patients", {}, "u1")

    def test_network_failure(self, store, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(DatastoreConnectionError):
            store.find_by_key("patients", patient_key("1"))
        assert not store.check_connection()

    def test_log_activity(self, store, session):
        session.request.return_value = fake_response(201)

        store.log_activity("u1", "DATA_MIGRATION", {"recordsInserted": 3})

        assert session.request.call_args.args[1] == "https://db.example.com/rest/v1/user_activities"
        assert session.request.call_args.kwargs["json"] == {
            "user_id": "u1",
            "action": "DATA_MIGRATION",
            "details": {"recordsInserted": 3},
            "metadata": {},
        }

    def test_non_json_body_is_a_row_error(self, store, session):
        response = fake_response(payload=None, text="<html>proxy</html>")
        response.json.side_effect = ValueError("Expecting value")
        session.request.return_value = response

        with pytest.raises(DatastoreRowError) as exc_info:
            store.find_by_key("patients", patient_key("1"))
        with pytest.raises(DatastoreRowError):
            store.insert("patients", {}, "u1")

        assert exc_info.value.details["body"] == "<html>proxy</html>"

    @pytest.mark.parametrize("error", [
        requests.exceptions.ChunkedEncodingError("broken"),
        requests.exceptions.TooManyRedirects("loop"),
        requests.exceptions.InvalidURL("bad"),
    ])
    def test_any_transport_failure_is_a_connection_error(self, store, session, error):
        session.request.side_effect = error

        with pytest.raises(DatastoreConnectionError):
            store.insert("patients", {}, "u1")


class TestRestDatastoreInMigration:
    """Failures of a REST store end up in the MigrationResult, never as raw exceptions."""

    def test_non_json_reply_skips_rows(self, ann_bo_dump, patient_mapping):
        session = MagicMock()
        response = fake_response(payload=None, text="<html>proxy</html>")
        response.json.side_effect = ValueError("Expecting value")
        session.request.return_value = response
        executor = MigrationExecutor(RestDatastore("https://db.example.com", session=session))

        result = executor.execute(ann_bo_dump, "patients", patient_mapping, "user-1")

        assert result.completed
        assert result.records_skipped == 2
        assert result.row_errors[0].errors[0].error_type == "datastore"

    def test_broken_transfer_aborts_the_run(self, ann_dump, patient_mapping):
        session = MagicMock()
        session.request.side_effect = requests.exceptions.ChunkedEncodingError("broken")
        executor = MigrationExecutor(RestDatastore("https://db.example.com", session=session))

        result = executor.execute(ann_dump, "patients", patient_mapping, "user-1")

        assert not result.completed
        assert result.error["kind"] == "datastore_connection_error"
