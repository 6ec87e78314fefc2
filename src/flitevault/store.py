"""Data client for the hosted relational store.

The export/restore engine only needs a handful of set-oriented operations,
described by ``SnapshotStore``. ``PostgrestStore`` implements them over the
PostgREST HTTP protocol used by the portal's hosted database.
"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

from flitevault.config import Settings
from flitevault.config import settings as default_settings
from flitevault.errors import ConfigurationError, FliteVaultError
from flitevault.tables import get_table, is_known_table
from flitevault.utils.resilience import RetryConfig, retry

log = structlog.get_logger()

Row = dict[str, Any]

PERMISSION_DENIED_CODE = "42501"
SCHEMA_MISMATCH_CODES = frozenset({"PGRST204", "42703"})
_MISSING_COLUMN_PHRASES = ("not found", "could not find", "does not exist")
_CONTENT_RANGE = re.compile(r"^(?:\d+-\d+|\*)/(\d+)$")


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an export or restore."""

    email: str | None
    auth_id: str | None = None
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or self.email or "Admin"


class StoreError(FliteVaultError):
    """Error reported by the store or raised while talking to it."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        detail: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(
            message,
            details={"code": code, "status_code": status_code, "detail": detail, "hint": hint},
        )
        self.code = code
        self.status_code = status_code
        self.detail = detail
        self.hint = hint

    @property
    def is_permission_denied(self) -> bool:
        return self.code == PERMISSION_DENIED_CODE or self.status_code == 403

    @property
    def is_schema_mismatch(self) -> bool:
        if self.code in SCHEMA_MISMATCH_CODES:
            return True
        text = self.message.lower()
        return "column" in text and any(phrase in text for phrase in _MISSING_COLUMN_PHRASES)


class StoreTransportError(StoreError):
    """Connection failure or timeout; safe to retry for reads."""


class SnapshotStore(Protocol):
    """Operations the engine needs from the target store."""

    async def fetch_all(self, table: str) -> list[Row]:
        """Return every row of ``table``."""
        ...

    async def fetch_columns(self, table: str, columns: Sequence[str]) -> list[Row]:
        """Return every row of ``table`` restricted to ``columns``."""
        ...

    async def upsert(self, table: str, rows: Sequence[Row]) -> None:
        """Insert rows, merging on primary key."""
        ...

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        """Delete rows whose columns equal ``filters``."""
        ...

    async def get_actor(self) -> Actor:
        """Return the identity the store authenticates requests as."""
        ...


READ_RETRY = RetryConfig(
    max_attempts=3,
    base_delay=0.5,
    max_delay=5.0,
    retryable_exceptions=(StoreTransportError,),
)


def page_order(table: str) -> str:
    """Stable PostgREST ordering on the table's primary key."""
    columns = get_table(table).primary_key if is_known_table(table) else ("id",)
    return ",".join(f"{column}.asc" for column in columns)


def _error_from_response(response: httpx.Response) -> StoreError:
    """Build a StoreError from a PostgREST / auth error body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        text = response.text or response.reason_phrase
        return StoreError(text, status_code=response.status_code)

    message = next(
        (
            body[key]
            for key in ("message", "error_description", "msg", "error")
            if isinstance(body.get(key), str)
        ),
        response.text,
    )
    code = body.get("code", body.get("error_code"))
    return StoreError(
        message,
        code=str(code) if code is not None else None,
        status_code=response.status_code,
        detail=body.get("details"),
        hint=body.get("hint"),
    )


class PostgrestStore:
    """``SnapshotStore`` over the PostgREST REST API.

    Full-table reads page through the table with ``limit``/``offset`` in
    primary-key order and stop at the row count reported in ``Content-Range``,
    so a server-side ``max-rows`` cap cannot silently truncate a snapshot.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str,
        access_token: str | None = None,
        page_size: int = 1000,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the store client.

        Args:
            base_url: Project URL; ``/rest/v1`` and ``/auth/v1`` are appended.
            api_key: Key sent in the ``apikey`` header.
            access_token: User token for ``Authorization`` (defaults to api_key).
            page_size: Rows per page for full-table reads.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests).
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token or api_key
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _default_headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._default_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PostgrestStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise StoreTransportError(
                f"Request timed out after {self.timeout}s", code="transport", detail=str(e)
            ) from e
        except httpx.TransportError as e:
            raise StoreTransportError(
                f"Cannot connect to store at {self.base_url}", code="transport", detail=str(e)
            ) from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    @retry(config=READ_RETRY)
    async def _fetch_page(self, table: str, select: str, offset: int) -> tuple[list[Row], int | None]:
        response = await self._request(
            "GET",
            f"/rest/v1/{table}",
            params={
                "select": select,
                "order": page_order(table),
                "limit": self.page_size,
                "offset": offset,
            },
            headers={"Prefer": "count=exact"},
        )
        match = _CONTENT_RANGE.match(response.headers.get("Content-Range", ""))
        total = int(match.group(1)) if match else None
        return response.json(), total

    async def _fetch(self, table: str, select: str) -> list[Row]:
        rows: list[Row] = []
        offset = 0
        while True:
            page, total = await self._fetch_page(table, select, offset)
            rows.extend(page)
            offset += len(page)
            if not page:
                break
            if total is not None:
                if offset >= total:
                    break
            elif len(page) < self.page_size:
                break
        log.debug("Fetched table", table=table, rows=len(rows))
        return rows

    async def fetch_all(self, table: str) -> list[Row]:
        return await self._fetch(table, "*")

    async def fetch_columns(self, table: str, columns: Sequence[str]) -> list[Row]:
        return await self._fetch(table, ",".join(columns))

    async def upsert(self, table: str, rows: Sequence[Row]) -> None:
        """Merge-upsert ``rows``; columns a row omits take their database default."""
        if not rows:
            return
        columns: dict[str, None] = {}
        for row in rows:
            columns.update(dict.fromkeys(row))
        await self._request(
            "POST",
            f"/rest/v1/{table}",
            params={"columns": ",".join(columns)},
            json=list(rows),
            headers={"Prefer": "resolution=merge-duplicates,missing=default,return=minimal"},
        )

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        if not filters:
            raise ValueError(f"Refusing to delete from {table} without filters")
        await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params={column: f"eq.{value}" for column, value in filters.items()},
        )

    async def get_actor(self) -> Actor:
        response = await self._request("GET", "/auth/v1/user")
        data = response.json()
        email = data.get("email")
        return Actor(email=email, auth_id=data.get("id"), label=email)


def create_store(
    settings: Settings | None = None, *, access_token: str | None = None
) -> PostgrestStore:
    """Build a PostgrestStore from configuration.

    Args:
        settings: Settings override (defaults to the global settings).
        access_token: Per-request user token, e.g. forwarded by the API.
    """
    cfg = settings or default_settings
    if not cfg.supabase_url:
        raise ConfigurationError("Store URL not configured. Set FLITEVAULT_SUPABASE_URL.")
    return PostgrestStore(
        cfg.supabase_url,
        api_key=cfg.supabase_key.get_secret_value(),
        access_token=access_token or cfg.bearer_token,
        page_size=cfg.page_size,
        timeout=cfg.request_timeout,
    )
