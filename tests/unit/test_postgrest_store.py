"""Tests for the PostgREST Table Store client."""

import pytest
from unittest.mock import AsyncMock
import httpx

from clinic_booking.infra.postgrest import (
    PostgrestTableStore,
    affected_count,
    build_params,
    classify_error,
)
from clinic_booking.infra.table_store import (
    ForeignKeyViolation,
    Order,
    PermissionDenied,
    RecordNotFound,
    StoreError,
    StoreUnavailable,
    UniqueViolation,
    eq,
    gte,
    in_,
    neq,
)


class TestBuildParams:
    """Test filter translation."""

    def test_eq_boolean(self):
        assert build_params([eq("is_available", True)]) == [("is_available", "eq.true")]

    def test_null_checks(self):
        params = build_params([eq("deleted_at", None), neq("deleted_at", None)])

        assert params == [("deleted_at", "is.null"), ("deleted_at", "not.is.null")]

    def test_in_list(self):
        assert build_params([in_("id", ["a", "b"])]) == [("id", "in.(a,b)")]

    def test_full_query(self):
        params = build_params(
            [eq("doctor_id", "doc-1"), gte("date", "2024-01-15")],
            columns="*",
            order=[Order("date"), Order("start_time", ascending=False)],
            limit=5,
        )

        assert params == [
            ("select", "*"),
            ("doctor_id", "eq.doc-1"),
            ("date", "gte.2024-01-15"),
            ("order", "date.asc,start_time.desc"),
            ("limit", "5"),
        ]


class TestClassifyError:
    """Test error taxonomy mapping."""

    def test_unique_violation(self):
        error = classify_error(httpx.Response(409, json={"code": "23505", "message": "dup"}))

        assert isinstance(error, UniqueViolation)
        assert error.message == "dup"
        assert error.status_code == 409

    def test_foreign_key_violation(self):
        error = classify_error(httpx.Response(409, json={"code": "23503", "message": "fk"}))

        assert isinstance(error, ForeignKeyViolation)

    def test_permission_by_code(self):
        error = classify_error(httpx.Response(400, json={"code": "42501", "message": "rls"}))

        assert isinstance(error, PermissionDenied)

    def test_permission_by_status(self):
        assert isinstance(classify_error(httpx.Response(401, text="no")), PermissionDenied)
        assert isinstance(classify_error(httpx.Response(403, json={})), PermissionDenied)

    def test_no_rows(self):
        error = classify_error(httpx.Response(406, json={"code": "PGRST116", "message": "0 rows"}))

        assert isinstance(error, RecordNotFound)

    def test_server_error(self):
        assert isinstance(classify_error(httpx.Response(502, text="bad gateway")), StoreUnavailable)

    def test_other_client_error(self):
        error = classify_error(httpx.Response(400, json={"code": "22P02", "message": "bad uuid"}))

        assert type(error) is StoreError
        assert error.code == "22P02"


class TestAffectedCount:
    """Test reading write counts from responses."""

    def test_total_from_content_range(self):
        assert affected_count(httpx.Response(200, headers={"Content-Range": "0-2/3"})) == 3

    def test_range_without_total(self):
        assert affected_count(httpx.Response(200, headers={"Content-Range": "0-1/*"})) == 2

    def test_no_header_counts_body(self):
        assert affected_count(httpx.Response(200, json=[{"id": "a"}])) == 1
        assert affected_count(httpx.Response(204)) == 0


class TestPostgrestTableStore:
    """Test PostgrestTableStore requests."""

    @pytest.fixture
    def store(self):
        return PostgrestTableStore(
            base_url="http://test/rest/v1",
            api_key="anon-key",
            timeout=5.0,
        )

    @pytest.fixture
    def mock_httpx_client(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_select(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(
            return_value=httpx.Response(200, json=[{"id": "slot-1"}])
        )
        store._client = mock_httpx_client

        rows = await store.select("time_slots", [eq("is_available", True)], limit=1)

        assert rows == [{"id": "slot-1"}]
        args = mock_httpx_client.request.call_args
        assert args.args == ("GET", "/time_slots")
        assert ("is_available", "eq.true") in args.kwargs["params"]
        assert ("limit", "1") in args.kwargs["params"]
        assert args.kwargs["headers"]["apikey"] == "anon-key"
        assert args.kwargs["headers"]["Authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_insert_returns_row(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(
            return_value=httpx.Response(201, json=[{"id": "appt-1", "status": "pending"}])
        )
        store._client = mock_httpx_client

        row = await store.insert("appointments", {"status": "pending"})

        assert row["id"] == "appt-1"
        kwargs = mock_httpx_client.request.call_args.kwargs
        assert kwargs["headers"]["Prefer"] == "return=representation"
        assert kwargs["json"] == {"status": "pending"}

    @pytest.mark.asyncio
    async def test_insert_hidden_row(self, store, mock_httpx_client):
        """An empty representation means row-level security hid the row."""
        mock_httpx_client.request = AsyncMock(return_value=httpx.Response(201, json=[]))
        store._client = mock_httpx_client

        with pytest.raises(PermissionDenied):
            await store.insert("appointments", {"status": "pending"})

    @pytest.mark.asyncio
    async def test_insert_constraint_error(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(
            return_value=httpx.Response(409, json={"code": "23505", "message": "dup"})
        )
        store._client = mock_httpx_client

        with pytest.raises(UniqueViolation):
            await store.insert("appointments", {})

    @pytest.mark.asyncio
    async def test_conditional_update_count(self, store, mock_httpx_client):
        """A lost claim reports zero affected rows."""
        mock_httpx_client.request = AsyncMock(
            return_value=httpx.Response(204, headers={"Content-Range": "*/0"})
        )
        store._client = mock_httpx_client

        claimed = await store.update(
            "time_slots",
            {"is_available": False},
            [eq("id", "slot-1"), eq("is_available", True)],
        )

        assert claimed == 0
        args = mock_httpx_client.request.call_args
        assert args.args == ("PATCH", "/time_slots")
        assert args.kwargs["params"] == [("id", "eq.slot-1"), ("is_available", "eq.true")]
        assert args.kwargs["headers"]["Prefer"] == "return=minimal,count=exact"

    @pytest.mark.asyncio
    async def test_claim_counted_without_read_back(self, store, mock_httpx_client):
        """The count comes from Content-Range even when no rows are returned."""
        mock_httpx_client.request = AsyncMock(
            return_value=httpx.Response(204, headers={"Content-Range": "*/1"})
        )
        store._client = mock_httpx_client

        claimed = await store.update(
            "time_slots",
            {"is_available": False},
            [eq("id", "slot-1"), eq("is_available", True)],
        )

        assert claimed == 1

    @pytest.mark.asyncio
    async def test_update_requires_filters(self, store):
        with pytest.raises(ValueError):
            await store.update("time_slots", {"is_available": False}, [])

    @pytest.mark.asyncio
    async def test_delete_count(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(
            return_value=httpx.Response(200, json=[{"id": "a"}, {"id": "b"}])
        )
        store._client = mock_httpx_client

        assert await store.delete("appointments", [eq("doctor_id", "doc-1")]) == 2

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        store._client = mock_httpx_client

        with pytest.raises(StoreUnavailable, match="timed out"):
            await store.select("doctors")

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
        store._client = mock_httpx_client

        with pytest.raises(StoreUnavailable):
            await store.select("doctors")

    @pytest.mark.asyncio
    async def test_select_one_not_found(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(return_value=httpx.Response(200, json=[]))
        store._client = mock_httpx_client

        with pytest.raises(RecordNotFound):
            await store.select_one("doctors", [eq("id", "missing")])

    @pytest.mark.asyncio
    async def test_with_access_token_shares_client(self, store, mock_httpx_client):
        mock_httpx_client.request = AsyncMock(return_value=httpx.Response(200, json=[]))
        store._client = mock_httpx_client

        admin_store = store.with_access_token("user-jwt")
        await admin_store.select("admin_users")

        headers = mock_httpx_client.request.call_args.kwargs["headers"]
        assert admin_store._client is mock_httpx_client
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer user-jwt"

        await admin_store.close()
        mock_httpx_client.aclose.assert_not_called()
