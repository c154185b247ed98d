"""
HTTP client for the hosted Table Store.

The backend exposes every table through a PostgREST endpoint:
- GET    /rest/v1/{table}?col=op.value  - select
- POST   /rest/v1/{table}               - insert
- PATCH  /rest/v1/{table}?col=op.value  - update matching rows
- DELETE /rest/v1/{table}?col=op.value  - delete matching rows

Inserts send ``Prefer: return=representation`` so the new row comes back
in the body. Updates and deletes send ``Prefer: count=exact`` and report
the total from the ``Content-Range`` header, which does not depend on the
caller being allowed to read the affected rows back.
"""

import logging
from typing import Any, Optional, Sequence

import httpx

from clinic_booking.config import get_settings
from clinic_booking.infra.table_store import (
    Filter,
    ForeignKeyViolation,
    Order,
    PermissionDenied,
    RecordNotFound,
    StoreError,
    StoreUnavailable,
    TableStore,
    UniqueViolation,
)

logger = logging.getLogger(__name__)

# Postgres / PostgREST error codes
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_INSUFFICIENT_PRIVILEGE = "42501"
PGRST_NO_ROWS = "PGRST116"

COUNT_PREFER = "return=minimal,count=exact"


def _format_value(value: Any) -> str:
    """Render a filter value the way PostgREST expects it in a query string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_params(
    filters: Sequence[Filter] = (),
    columns: Optional[str] = None,
    order: Sequence[Order] = (),
    limit: Optional[int] = None,
) -> list[tuple[str, str]]:
    """Translate filters into PostgREST query parameters.

    A list of pairs is returned because the same column may be filtered
    more than once (e.g. a date range).
    """
    params: list[tuple[str, str]] = []

    if columns:
        params.append(("select", columns))

    for f in filters:
        if f.op == "in":
            rendered = ",".join(_format_value(v) for v in f.value)
            params.append((f.column, f"in.({rendered})"))
        elif f.value is None and f.op in ("eq", "neq"):
            prefix = "is" if f.op == "eq" else "not.is"
            params.append((f.column, f"{prefix}.null"))
        else:
            params.append((f.column, f"{f.op}.{_format_value(f.value)}"))

    if order:
        params.append((
            "order",
            ",".join(f"{o.column}.{'asc' if o.ascending else 'desc'}" for o in order),
        ))

    if limit is not None:
        params.append(("limit", str(limit)))

    return params


def affected_count(response: httpx.Response) -> int:
    """Rows affected by a write, from ``Content-Range: <range>/<total>``.

    Falls back to the size of the returned representation when the
    header carries no total.
    """
    content_range = response.headers.get("Content-Range", "")
    span, _, total = content_range.partition("/")
    if total.isdigit():
        return int(total)
    if "-" in span:
        first, _, last = span.partition("-")
        if first.isdigit() and last.isdigit():
            return int(last) - int(first) + 1

    if response.status_code == 204 or not response.content:
        return 0
    data = response.json()
    return len(data) if isinstance(data, list) else 1


def classify_error(response: httpx.Response) -> StoreError:
    """Map an error response onto the store error taxonomy."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    code = body.get("code")
    message = body.get("message") or response.text or f"HTTP {response.status_code}"
    status_code = response.status_code

    if code == PG_UNIQUE_VIOLATION:
        return UniqueViolation(message, code=code, status_code=status_code)
    if code == PG_FOREIGN_KEY_VIOLATION:
        return ForeignKeyViolation(message, code=code, status_code=status_code)
    if code == PG_INSUFFICIENT_PRIVILEGE or status_code in (401, 403):
        return PermissionDenied(message, code=code, status_code=status_code)
    if code == PGRST_NO_ROWS:
        return RecordNotFound(message, code=code, status_code=status_code)
    if status_code >= 500:
        return StoreUnavailable(message, code=code, status_code=status_code)
    return StoreError(message, code=code, status_code=status_code)


class PostgrestTableStore(TableStore):
    """
    Table Store backed by the PostgREST HTTP API.

    One httpx.AsyncClient is shared by every store bound to a different
    access token (see with_access_token), so admin requests reuse the same
    connection pool as public ones.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize store.

        Args:
            base_url: REST root (defaults to settings.rest_url)
            api_key: Project API key sent as ``apikey``
            access_token: Bearer token; defaults to the API key itself
            timeout: Request timeout in seconds
            client: Shared HTTP client (the store then does not own it)
        """
        settings = get_settings()
        self.base_url = base_url or settings.rest_url
        self.api_key = api_key if api_key is not None else settings.supabase_anon_key
        self.access_token = access_token or self.api_key
        self.timeout = timeout or settings.store_timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client if this store created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def with_access_token(self, access_token: str) -> "PostgrestTableStore":
        """Return a store acting as another user, sharing the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return PostgrestTableStore(
            base_url=self.base_url,
            api_key=self.api_key,
            access_token=access_token,
            timeout=self.timeout,
            client=self._client,
        )

    def _headers(self, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(
        self,
        method: str,
        table: str,
        params: Optional[list[tuple[str, str]]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        """Send a request and return the response, raising StoreError."""
        client = await self._get_client()

        try:
            response = await client.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=self._headers(prefer),
            )
        except httpx.TimeoutException as e:
            logger.error(f"{method} {table} timed out: {e}")
            raise StoreUnavailable(f"Request to {table} timed out") from e
        except httpx.TransportError as e:
            logger.error(f"{method} {table} failed: {e}")
            raise StoreUnavailable(f"Unable to reach the data store: {e}") from e

        if response.status_code >= 400:
            error = classify_error(response)
            logger.debug(
                f"{method} {table} -> {response.status_code} "
                f"({error.code}): {error.message}"
            )
            raise error

        return response

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[list[tuple[str, str]]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """Send a request and return the decoded body."""
        response = await self._send(method, table, params=params, json=json, prefer=prefer)
        if response.status_code == 204 or not response.content:
            return []
        return response.json()

    # === Reads ===

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return rows matching every filter."""
        data = await self._request(
            "GET",
            table,
            params=build_params(filters, columns=columns, order=order, limit=limit),
        )
        return data if isinstance(data, list) else [data]

    # === Writes ===

    async def insert(self, table: str, record: dict) -> dict:
        """Insert a row and read it back.

        Raises PermissionDenied when row-level security blocks the insert
        or its read-back; the caller decides what that means.
        """
        data = await self._request(
            "POST",
            table,
            json=record,
            prefer="return=representation",
        )
        rows = data if isinstance(data, list) else [data]
        if not rows:
            raise PermissionDenied(
                f"Inserted {table} row could not be read back",
                code="empty_representation",
            )
        return rows[0]

    async def update(
        self,
        table: str,
        patch: dict,
        filters: Sequence[Filter],
    ) -> int:
        """Patch matching rows; returns how many rows changed."""
        if not filters:
            raise ValueError("Refusing to update without filters")

        response = await self._send(
            "PATCH",
            table,
            params=build_params(filters),
            json=patch,
            prefer=COUNT_PREFER,
        )
        return affected_count(response)

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        """Delete matching rows; returns how many rows were removed."""
        if not filters:
            raise ValueError("Refusing to delete without filters")

        response = await self._send(
            "DELETE",
            table,
            params=build_params(filters),
            prefer=COUNT_PREFER,
        )
        return affected_count(response)
