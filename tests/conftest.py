"""Shared fixtures for the dump migrator tests."""

import pytest

from dump_migrator.datastores import InMemoryDatastore
from dump_migrator.executor import MigrationEngine, MigrationExecutor
from dump_migrator.models.migration import MigrationConfig
from dump_migrator.services.schema_catalog import SchemaCatalog


ANN_BO_DUMP = (
    "INSERT INTO legacy_patients (fname, lname, icn) VALUES "
    "('Ann','Lee','1234567890123456'), ('Bo','Ng','bad-icn');"
)

ANN_DUMP = (
    "INSERT INTO legacy_patients (fname, lname, icn) VALUES "
    "('Ann','Lee','1234567890123456');"
)

PATIENT_MAPPING = {
    "first_name": "fname",
    "last_name": "lname",
    "identification_card_number": "icn",
}


def patient_dump(count: int, start: int = 0) -> str:
    """A dump of `count` valid patient rows with distinct ICNs."""
    tuples = ", ".join(
        f"('Name{i}', 'Surname{i}', '{1000000000000000 + i}')"
        for i in range(start, start + count)
    )
    return f"INSERT INTO legacy_patients (fname, lname, icn) VALUES {tuples};"


@pytest.fixture
def ann_bo_dump():
    return ANN_BO_DUMP


@pytest.fixture
def ann_dump():
    return ANN_DUMP


@pytest.fixture
def patient_mapping():
    return dict(PATIENT_MAPPING)


@pytest.fixture
def catalog():
    return SchemaCatalog()


@pytest.fixture
def config():
    return MigrationConfig()


@pytest.fixture
def datastore():
    return InMemoryDatastore()


@pytest.fixture
def executor(datastore, catalog, config):
    return MigrationExecutor(datastore, catalog, config)


@pytest.fixture
def engine(datastore, catalog, config):
    return MigrationEngine(datastore, catalog, config)
