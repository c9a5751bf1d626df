"""Datastores the migration engine writes into."""

from .base import Datastore, DedupKey, KeyLocks, StoredRecord
from .memory import InMemoryDatastore
from .rest import RestDatastore

__all__ = [
    "Datastore",
    "DedupKey",
    "KeyLocks",
    "StoredRecord",
    "InMemoryDatastore",
    "RestDatastore",
    "create_datastore",
]


def create_datastore(config) -> Datastore:
    """Create the datastore a MigrationConfig points at (in-memory without a URL)."""
    if config.datastore_url:
        return RestDatastore(
            base_url=config.datastore_url,
            api_key=config.datastore_api_key,
            schema=config.datastore_schema,
            timeout=config.datastore_timeout,
            activity_table=config.activity_table,
        )
    return InMemoryDatastore()
