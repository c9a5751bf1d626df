"""Shared dependencies for API routes."""

import logging
import threading
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from ..datastores import Datastore, create_datastore
from ..executor import MigrationEngine
from ..models.migration import MigrationConfig

logger = logging.getLogger(__name__)

_datastore: Optional[Datastore] = None
_datastore_lock = threading.Lock()


@lru_cache()
def get_config() -> MigrationConfig:
    """Configuration from DUMP_MIGRATOR_* environment variables."""
    return MigrationConfig.from_env()


def get_datastore(config: MigrationConfig = Depends(get_config)) -> Datastore:
    """One datastore handle per process, so per-key locks are shared."""
    global _datastore
    with _datastore_lock:
        if _datastore is None:
            if not config.datastore_url:
                logger.warning("No datastore URL configured; using an in-memory datastore")
            _datastore = create_datastore(config)
        return _datastore


def get_engine(
    datastore: Datastore = Depends(get_datastore),
    config: MigrationConfig = Depends(get_config)
) -> MigrationEngine:
    return MigrationEngine(datastore, config=config)
