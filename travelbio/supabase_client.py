"""
Data store gateway for the hosted store's REST API.

The hosted store exposes its tables through PostgREST under
``{SUPABASE_URL}/rest/v1``. This client adds:
- Retry with exponential backoff on connection errors and timeouts (tenacity)
- A shared circuit breaker per backend (pybreaker)
- Pydantic parsing of every returned row
- Structured logging and latency metrics
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

import pybreaker
import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from travelbio.circuit_breaker import get_circuit_breaker
from travelbio.config import Settings
from travelbio.errors import DataStoreError, NotFoundError
from travelbio.gateway import PROFILE_SEARCH_LIMIT, DataStoreGateway, parse_rows
from travelbio.logging_config import get_logger, log_store_call
from travelbio.models import Country, EntityId, Profile, RatingRecord

# Logger
logger = get_logger("supabase")

# Rows requested per page when reading whole tables
PAGE_SIZE = 1000

# Table names
RECORDS_TABLE = "user_locations"
COUNTRIES_TABLE = "countries"
PROFILES_TABLE = "profiles"


def create_retry_decorator(attempts: int = 3, wait_multiplier: float = 1.0) -> Callable:
    """
    Create a retry decorator for store calls.

    Only connection failures and timeouts are retried; HTTP error
    responses are returned to the caller on the first attempt.
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=wait_multiplier, min=0, max=8),
        retry=retry_if_exception_type((
            requests.ConnectionError,
            requests.Timeout,
        )),
        before_sleep=before_sleep_log(logger, logging.INFO),
        reraise=True,
    )


def _in_filter(values: Iterable[EntityId]) -> str:
    """Format a PostgREST ``in.(...)`` filter."""
    return "in.(" + ",".join(f'"{v}"' if isinstance(v, str) else str(v) for v in values) + ")"


def _ilike_pattern(query: str) -> str:
    """Escape PostgREST reserved characters in a search term."""
    cleaned = "".join(ch for ch in query if ch not in ",()*")
    return f"*{cleaned}*"


class SupabaseGateway(DataStoreGateway):
    """Gateway reading and writing the hosted store over HTTP."""

    name = "supabase"

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: int = 15,
        session: Optional[requests.Session] = None,
        retry_attempts: int = 3,
        retry_wait: float = 1.0
    ):
        """
        Initialize the REST gateway.

        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            api_key: Anonymous (public) API key
            timeout: Per-request timeout in seconds
            session: Optional requests session (for connection reuse)
            retry_attempts: Attempts per call on connection errors
            retry_wait: Exponential backoff multiplier in seconds
        """
        if not url or not api_key:
            raise ValueError("SupabaseGateway needs both a URL and an API key")

        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        })
        self.circuit_breaker = get_circuit_breaker(self.name)
        self._attempt = create_retry_decorator(retry_attempts, retry_wait)(self._attempt_once)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseGateway":
        """Create a gateway from resolved settings."""
        return cls(
            url=settings.supabase_url,
            api_key=settings.supabase_key,
            timeout=settings.request_timeout,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> List[Dict[str, Any]]:
        """Make one HTTP request; raises on HTTP error status."""
        response = self.session.request(
            method,
            f"{self.base_url}/{table}",
            params=params,
            json=json_body,
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        if not response.content:
            return []
        return response.json()

    def _attempt_once(self, *args, **kwargs) -> List[Dict[str, Any]]:
        return self.circuit_breaker.call(self._send, *args, **kwargs)

    def _request(self, method: str, table: str, **kwargs) -> List[Dict[str, Any]]:
        """
        Make a request with retry and circuit breaking.

        Raises:
            DataStoreError: On open circuit, HTTP error or network failure
        """
        try:
            return self._attempt(method, table, **kwargs)
        except pybreaker.CircuitBreakerError as e:
            logger.warning(f"Circuit breaker '{self.name}' is open, rejecting call")
            raise DataStoreError(f"Circuit breaker '{self.name}' is open") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error(
                f"Store returned HTTP {status} for {table}",
                extra={"table": table, "status_code": status}
            )
            raise DataStoreError(
                f"Store returned HTTP {status} for {table}", status_code=status
            ) from e
        except requests.RequestException as e:
            logger.error(
                f"Store request failed for {table}: {e}",
                extra={"table": table, "error_type": type(e).__name__}
            )
            raise DataStoreError(f"Store request failed for {table}: {e}") from e

    def _select(self, table: str, **params: Any) -> List[Dict[str, Any]]:
        return self._request("GET", table, params={"select": "*", **params})

    def _select_all(self, table: str, **params: Any) -> List[Dict[str, Any]]:
        """Read every matching row, one page at a time."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self._select(table, limit=PAGE_SIZE, offset=offset, **params)
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    # ------------------------------------------------------------------
    # Gateway operations
    # ------------------------------------------------------------------

    @log_store_call("supabase")
    def fetch_records_for_country(self, country_id: EntityId) -> List[RatingRecord]:
        rows = self._select_all(RECORDS_TABLE, country_id=f"eq.{country_id}")
        return parse_rows(RatingRecord, rows)

    @log_store_call("supabase")
    def fetch_records_for_user(self, user_id: EntityId) -> List[RatingRecord]:
        rows = self._select_all(
            RECORDS_TABLE, user_id=f"eq.{user_id}", order="created_at.desc"
        )
        return parse_rows(RatingRecord, rows)

    @log_store_call("supabase")
    def fetch_all_countries(self) -> List[Country]:
        return parse_rows(Country, self._select_all(COUNTRIES_TABLE, order="name"))

    @log_store_call("supabase")
    def fetch_profiles_by_ids(self, ids: Iterable[EntityId]) -> List[Profile]:
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        return parse_rows(Profile, self._select(PROFILES_TABLE, id=_in_filter(ids)))

    @log_store_call("supabase")
    def fetch_all_records(self) -> List[RatingRecord]:
        return parse_rows(RatingRecord, self._select_all(RECORDS_TABLE, order="id"))

    @log_store_call("supabase")
    def fetch_country_by_code(self, code: str) -> Country:
        rows = self._select(COUNTRIES_TABLE, code=f"eq.{code.upper()}", limit=1)
        if not rows:
            raise NotFoundError(f"Country not found: {code}")
        return parse_rows(Country, rows)[0]

    @log_store_call("supabase")
    def fetch_profile_by_username(self, username: str) -> Profile:
        rows = self._select(PROFILES_TABLE, username=f"eq.{username}", limit=1)
        if not rows:
            raise NotFoundError(f"Profile not found: {username}")
        return parse_rows(Profile, rows)[0]

    @log_store_call("supabase")
    def search_profiles(
        self,
        query: str,
        limit: int = PROFILE_SEARCH_LIMIT
    ) -> List[Profile]:
        if not query.strip():
            return []
        pattern = _ilike_pattern(query.strip())
        rows = self._select(
            PROFILES_TABLE,
            **{"or": f"(username.ilike.{pattern},full_name.ilike.{pattern})"},
            limit=limit,
        )
        return parse_rows(Profile, rows)

    @log_store_call("supabase")
    def add_record(self, record: RatingRecord) -> RatingRecord:
        body = record.model_dump(by_alias=True, exclude_none=True, mode="json")
        rows = self._request(
            "POST",
            RECORDS_TABLE,
            json_body=body,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            return record
        return parse_rows(RatingRecord, rows)[0]
