"""Unit tests for the GraphQL adapter."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp import test_utils
from gql.transport.exceptions import TransportServerError

from livesync.adapters import GraphQLGateway, build_poll_query
from livesync.adapters.graphql import graphql_literal
from livesync.polling import CursorDiscovery, CursorKind
from livesync.polling.cursor import TIMESTAMP_TYPES


WIDGET_TYPE = {
    "__type": {
        "fields": [
            {"name": "id", "type": {"kind": "NON_NULL", "name": None, "ofType": {"kind": "SCALAR", "name": "bigint"}}},
            {"name": "name", "type": {"kind": "SCALAR", "name": "String"}},
            {"name": "logged", "type": {"kind": "SCALAR", "name": "timestamptz"}},
            {"name": "history", "type": {"kind": "LIST", "name": None, "ofType": {"kind": "SCALAR", "name": "timestamptz"}}},
            {"name": "status", "type": {"kind": "ENUM", "name": "widget_status"}},
            {"name": "owner", "type": {"kind": "OBJECT", "name": "users"}},
        ]
    }
}


class TestBuildPollQuery:
    """Test poll query rendering."""

    def test_with_cursor(self):
        """Test a query filtered and ordered by the cursor field."""
        query = build_poll_query(
            "widgets", ["id", "updated_at"], "updated_at", "2024-01-01T00:00:00Z", "desc", 50
        )

        assert query == (
            'query Poll { widgets(where: {updated_at: {_gt: "2024-01-01T00:00:00Z"}}, '
            "order_by: {updated_at: desc}, limit: 50) { id updated_at } }"
        )

    def test_first_poll_has_no_filter(self):
        """Test a query without a last cursor value."""
        query = build_poll_query("widgets", ["id"], "updated_at", None)

        assert query == "query Poll { widgets(order_by: {updated_at: desc}, limit: 50) { id } }"

    def test_without_cursor_field(self):
        """Test a query for a resource without a cursor."""
        query = build_poll_query("notes", ["body"], limit=10)

        assert query == "query Poll { notes(limit: 10) { body } }"

    def test_invalid_order(self):
        """Test that unknown orderings raise."""
        with pytest.raises(ValueError):
            build_poll_query("widgets", ["id"], "id", order="random")

    def test_literals(self):
        """Test cursor value rendering."""
        assert graphql_literal(42) == "42"
        assert graphql_literal(True) == "true"
        assert graphql_literal('say "hi"') == '"say \\"hi\\""'
        assert graphql_literal(datetime(2024, 1, 1, tzinfo=timezone.utc)) == '"2024-01-01T00:00:00+00:00"'


class TestGraphQLGateway:
    """Test GraphQLGateway with a mocked transport."""

    @pytest.fixture
    def gateway(self):
        """Provide a gateway whose execute is mocked."""
        gateway = GraphQLGateway("http://hasura.local/v1/graphql", retry_delay=0)
        gateway.execute = AsyncMock(return_value=WIDGET_TYPE)
        return gateway

    @pytest.mark.asyncio
    async def test_fields_by_type(self, gateway):
        """Test that only non-list scalar fields of matching type are returned."""
        assert await gateway.fields_by_type("widgets", TIMESTAMP_TYPES) == ["logged"]
        assert await gateway.fields_by_type("widgets", ["BIGINT"]) == ["id"]

    @pytest.mark.asyncio
    async def test_type_metadata_cached(self, gateway):
        """Test that the type is introspected once per resource."""
        assert await gateway.column_exists("widgets", "owner")
        assert not await gateway.column_exists("widgets", "updated_at")

        gateway.execute.assert_awaited_once()
        assert gateway.execute.await_args.args[1] == {"name": "widgets"}

    @pytest.mark.asyncio
    async def test_type_name_mapping(self, gateway):
        """Test resources whose GraphQL type name differs."""
        gateway.type_names = {"widgets": "widget"}

        await gateway.column_exists("widgets", "id")

        assert gateway.execute.await_args.args[1] == {"name": "widget"}

    @pytest.mark.asyncio
    async def test_serves_cursor_discovery(self, gateway):
        """Test the gateway as the metadata service of cursor discovery."""
        cursor = await CursorDiscovery(gateway).resolve("widgets")

        assert cursor.name == "logged"
        assert cursor.kind is CursorKind.TIMESTAMP

    @pytest.mark.asyncio
    async def test_query(self, gateway):
        """Test fetching one page of records."""
        rows = [{"id": 2, "logged": "2024-01-01T00:00:02Z"}]
        gateway.execute.side_effect = [WIDGET_TYPE, {"widgets": rows}]

        result = await gateway.query(
            "widgets", cursor_field="logged", cursor_value="2024-01-01T00:00:01Z", limit=5
        )

        assert result == rows
        query_string = gateway.execute.await_args.args[0]
        assert "widgets(where: {logged: {_gt: \"2024-01-01T00:00:01Z\"}}" in query_string
        assert "{ id name logged status }" in query_string

    @pytest.mark.asyncio
    async def test_query_without_fields(self, gateway):
        """Test that a type without selectable fields raises."""
        gateway.execute.return_value = {"__type": None}

        with pytest.raises(ValueError):
            await gateway.query("ghosts")


class TestGraphQLExecute:
    """Test execute retries and the shared session."""

    @pytest.mark.asyncio
    async def test_retries_transport_errors(self):
        """Test that a transient server error is retried."""
        gateway = GraphQLGateway("http://hasura.local/v1/graphql", max_retries=2, retry_delay=0)
        session = MagicMock()
        session.execute = AsyncMock(side_effect=[TransportServerError("unavailable", 503), {"ok": 1}])
        gateway._ensure_session = AsyncMock(return_value=session)

        result = await gateway.execute("query { ok }")

        assert result == {"ok": 1}
        assert session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_raises_after_retries(self):
        """Test that the last error propagates."""
        gateway = GraphQLGateway("http://hasura.local/v1/graphql", max_retries=1, retry_delay=0)
        session = MagicMock()
        session.execute = AsyncMock(side_effect=TransportServerError("unavailable", 503))
        gateway._ensure_session = AsyncMock(return_value=session)

        with pytest.raises(TransportServerError):
            await gateway.execute("query { ok }")

        assert session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_close(self):
        """Test that close disconnects the session."""
        gateway = GraphQLGateway("http://hasura.local/v1/graphql")
        client = MagicMock()
        client.close_async = AsyncMock()
        gateway.client = client
        gateway.session = MagicMock()
        gateway.transport = MagicMock()

        await gateway.close()
        await gateway.close()

        client.close_async.assert_awaited_once()
        assert gateway.session is None
        assert gateway.client is None
        assert gateway.transport is None


class TestGraphQLConcurrency:
    """Test one gateway serving overlapping callers over HTTP."""

    @pytest.fixture
    async def server(self):
        """Provide a slow GraphQL endpoint answering type and poll queries."""
        served = []

        async def graphql_handler(request: web.Request) -> web.Response:
            body = await request.json()
            await asyncio.sleep(0.05)
            served.append(body["query"])
            if "__type" in body["query"]:
                return web.json_response({"data": WIDGET_TYPE})
            return web.json_response({"data": {"widgets": [{"id": 1, "logged": "2024-01-01T00:00:01Z"}]}})

        app = web.Application()
        app.router.add_post("/graphql", graphql_handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        server.served = served
        yield server
        await server.close()

    @pytest.mark.asyncio
    async def test_overlapping_calls_share_session(self, server):
        """Test that concurrent polls and metadata lookups all succeed."""
        gateway = GraphQLGateway(str(server.make_url("/graphql")), max_retries=0)

        rows, exists, fields = await asyncio.gather(
            gateway.query("widgets", cursor_field="logged"),
            gateway.column_exists("gadgets", "logged"),
            gateway.fields_by_type("sprockets", TIMESTAMP_TYPES),
        )

        assert rows == [{"id": 1, "logged": "2024-01-01T00:00:01Z"}]
        assert exists
        assert fields == ["logged"]
        assert len(server.served) == 4

        await gateway.close()
        assert gateway.session is None
