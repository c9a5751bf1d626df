"""REST datastore for PostgREST-style backends (e.g. Supabase)."""

import logging
import re
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import DatastoreConnectionError, DatastoreRowError
from .base import Datastore, DedupKey, StoredRecord

logger = logging.getLogger(__name__)

# Status codes that mean the store itself is unusable, not the record
CONNECTION_STATUS_CODES = (401, 403)


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so ilike behaves as a case-insensitive equals."""
    return re.sub(r"([\\%_*])", r"\\\1", text)


class RestDatastore(Datastore):
    """
    Datastore over a PostgREST HTTP API.

    Tables are reached at ``<base_url>/rest/v1/<table>``. Reads are
    retried with backoff; writes are sent once so a retry can never
    insert twice.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        schema: str = "public",
        timeout: float = 30.0,
        activity_table: str = "user_activities",
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the REST datastore.

        Args:
            base_url: Project URL, without the /rest/v1 suffix
            api_key: Service key sent as apikey and bearer token
            schema: Database schema (Accept-Profile / Content-Profile)
            timeout: Per-request timeout in seconds
            activity_table: Table receiving audit entries
            max_retries: Retries for idempotent reads
            backoff_factor: Backoff between read retries
            session: Custom requests session
        """
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.schema = schema
        self.timeout = timeout
        self.activity_table = activity_table
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with auth headers and read retries."""
        session = requests.Session()

        retries = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.api_key:
            session.headers["apikey"] = self.api_key
            session.headers["Authorization"] = f"Bearer {self.api_key}"
        session.headers["Content-Type"] = "application/json"
        session.headers["Accept-Profile"] = self.schema
        session.headers["Content-Profile"] = self.schema

        return session

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request and translate failures into datastore errors."""
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise DatastoreConnectionError(f"Datastore unreachable: {e}") from e

        status = response.status_code
        if status >= 500 or status in CONNECTION_STATUS_CODES:
            raise DatastoreConnectionError(
                f"Datastore returned {status}: {self._error_message(response)}",
                {"status": status},
            )
        if status >= 400:
            raise DatastoreRowError(self._error_message(response), {"status": status})

        return response

    def _json(self, response: requests.Response, what: str) -> Any:
        """Decode a successful reply. A body that is not JSON rejects the record."""
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DatastoreRowError(
                f"{what} returned a body that is not JSON",
                {"status": response.status_code, "body": response.text[:200]},
            ) from e

    def _error_message(self, response: requests.Response) -> str:
        try:
            error_data = response.json()
        except ValueError:
            return response.text or response.reason or str(response.status_code)
        if isinstance(error_data, dict):
            return error_data.get("message") or error_data.get("error") or str(error_data)
        return str(error_data)

    def find_by_key(
        self,
        target: str,
        key: DedupKey,
        scope: Optional[Dict[str, Any]] = None
    ) -> Optional[StoredRecord]:
        params: Dict[str, str] = {"select": "*", "limit": "1"}
        for name, text in key.values:
            if name in key.case_insensitive:
                params[name] = f"ilike.{_escape_like(text)}"
            else:
                params[name] = f"eq.{text}"
        for name, value in (scope or {}).items():
            params[name] = f"eq.{value}"

        response = self._request("GET", self._table_url(target), params=params)
        rows = self._json(response, f"{target} lookup") or []
        if not rows:
            return None
        if not isinstance(rows, list) or not isinstance(rows[0], dict):
            raise DatastoreRowError(f"{target} lookup returned an unexpected body")

        row = dict(rows[0])
        record_id = row.pop("id", None)
        if record_id is None:
            raise DatastoreRowError(f"{target} lookup returned a row without an id")
        return StoredRecord(id=str(record_id), data=row)

    def insert(self, target: str, record: Dict[str, Any], acting_user_id: str) -> str:
        # Tables carry no author columns; the acting user lands in the audit entry
        response = self._request(
            "POST",
            self._table_url(target),
            json=record,
            headers={"Prefer": "return=representation"},
        )
        data = self._json(response, f"{target} insert") or []
        row = data[0] if isinstance(data, list) and data else data
        if not isinstance(row, dict) or row.get("id") is None:
            raise DatastoreRowError(f"{target} insert did not return an id")
        return str(row["id"])

    def update(self, target: str, record_id: str, record: Dict[str, Any], acting_user_id: str) -> None:
        self._request(
            "PATCH",
            self._table_url(target),
            params={"id": f"eq.{record_id}"},
            json=record,
            headers={"Prefer": "return=minimal"},
        )

    def log_activity(self, user_id: str, action: str, details: Dict[str, Any]) -> None:
        self._request(
            "POST",
            self._table_url(self.activity_table),
            json={"user_id": user_id, "action": action, "details": details, "metadata": {}},
            headers={"Prefer": "return=minimal"},
        )

    def check_connection(self) -> bool:
        """Validate connection to the REST endpoint."""
        try:
            self._request("GET", f"{self.base_url}/rest/v1/")
            return True
        except (DatastoreConnectionError, DatastoreRowError) as e:
            logger.error(f"Datastore connection validation failed: {e}")
            return False
