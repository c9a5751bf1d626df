"""Migration configuration."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
import json
import os

from ..errors import ConfigError

ENV_PREFIX = "DUMP_MIGRATOR_"


@dataclass
class MigrationConfig:
    """Configuration for previews and migration runs."""
    # Preview
    sample_size: int = 10

    # Execution options
    workers: int = 1  # Threads used for validation; writes stay sequential
    validation_chunk_size: int = 200
    preserve_unmapped: bool = False  # Keep unmapped columns in the metadata field
    default_scope: Optional[str] = None  # Organisational unit, e.g. a hospital id

    # Datastore
    datastore_url: Optional[str] = None
    datastore_api_key: Optional[str] = None
    datastore_schema: str = "public"
    datastore_timeout: float = 30.0
    activity_table: str = "user_activities"

    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "sample_size": self.sample_size,
            "workers": self.workers,
            "validation_chunk_size": self.validation_chunk_size,
            "preserve_unmapped": self.preserve_unmapped,
            "default_scope": self.default_scope,
            "datastore_url": self.datastore_url,
            "datastore_schema": self.datastore_schema,
            "datastore_timeout": self.datastore_timeout,
            "activity_table": self.activity_table,
            "extra": self.extra,
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        sources: Optional[Dict[str, str]] = None
    ) -> "MigrationConfig":
        """
        Create from dictionary representation.

        Args:
            data: Config values
            sources: Where each key came from (e.g. an environment variable),
                used to name the culprit when a value is unusable

        Raises:
            ConfigError: if a numeric setting cannot be converted
        """
        def number(key: str, default: Any, convert: Callable[[Any], Any]) -> Any:
            value = data.get(key, default)
            try:
                return convert(value)
            except (TypeError, ValueError) as e:
                name = (sources or {}).get(key, key)
                raise ConfigError(
                    f"Invalid value for {name}: {value!r}",
                    {"setting": name, "value": str(value)},
                ) from e

        return cls(
            sample_size=number("sample_size", 10, int),
            workers=number("workers", 1, int),
            validation_chunk_size=number("validation_chunk_size", 200, int),
            preserve_unmapped=bool(data.get("preserve_unmapped", False)),
            default_scope=data.get("default_scope"),
            datastore_url=data.get("datastore_url"),
            datastore_api_key=data.get("datastore_api_key"),
            datastore_schema=data.get("datastore_schema", "public"),
            datastore_timeout=number("datastore_timeout", 30.0, float),
            activity_table=data.get("activity_table", "user_activities"),
            extra=data.get("extra", {}),
        )

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "MigrationConfig":
        """Create from DUMP_MIGRATOR_* environment variables."""
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        sources: Dict[str, str] = {}

        mapping = {
            "DATASTORE_URL": "datastore_url",
            "API_KEY": "datastore_api_key",
            "DATASTORE_SCHEMA": "datastore_schema",
            "DATASTORE_TIMEOUT": "datastore_timeout",
            "SCOPE": "default_scope",
            "WORKERS": "workers",
            "SAMPLE_SIZE": "sample_size",
        }
        for env_name, key in mapping.items():
            value = environ.get(f"{ENV_PREFIX}{env_name}")
            if value:
                data[key] = value
                sources[key] = f"{ENV_PREFIX}{env_name}"

        preserve = environ.get(f"{ENV_PREFIX}PRESERVE_UNMAPPED")
        if preserve:
            data["preserve_unmapped"] = preserve.lower() in ("1", "true", "yes")

        return cls.from_dict(data, sources)

    @classmethod
    def from_json_file(cls, file_path: str, environ: Optional[Dict[str, str]] = None) -> "MigrationConfig":
        """Load config from a JSON file, on top of environment defaults."""
        env_config = cls.from_env(environ)
        base = env_config.to_dict()
        base["datastore_api_key"] = env_config.datastore_api_key

        with open(file_path, 'r', encoding="utf-8") as f:
            data = json.load(f)

        base.update(data)
        return cls.from_dict(base)
