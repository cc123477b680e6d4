"""GraphQL-backed resource query and schema introspection."""

import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog
from gql import Client, gql
from gql.client import AsyncClientSession
from gql.transport.aiohttp import AIOHTTPTransport
from gql.transport.exceptions import TransportQueryError, TransportServerError


logger = structlog.get_logger(__name__)


TYPE_FIELDS_QUERY = """
query TypeFields($name: String!) {
    __type(name: $name) {
        fields {
            name
            type {
                name
                kind
                ofType {
                    name
                    kind
                    ofType {
                        name
                        kind
                    }
                }
            }
        }
    }
}
"""


def graphql_literal(value: Any) -> str:
    """Render a cursor value as an inline GraphQL literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if hasattr(value, "isoformat"):
        value = value.isoformat()
    return json.dumps(str(value))


def build_poll_query(
    resource: str,
    fields: Sequence[str],
    cursor_field: Optional[str] = None,
    cursor_value: Any = None,
    order: str = "desc",
    limit: int = 50,
) -> str:
    """Build a Hasura/pg_graphql style query for one page of records."""
    if order not in ("asc", "desc"):
        raise ValueError(f"Unsupported order: {order!r}")

    arguments = []
    if cursor_field and cursor_value is not None:
        arguments.append(
            f"where: {{{cursor_field}: {{_gt: {graphql_literal(cursor_value)}}}}}"
        )
    if cursor_field:
        arguments.append(f"order_by: {{{cursor_field}: {order}}}")
    arguments.append(f"limit: {int(limit)}")

    selection = " ".join(fields)
    return f"query Poll {{ {resource}({', '.join(arguments)}) {{ {selection} }} }}"


def _unwrap_type(type_ref: Mapping[str, Any]) -> Dict[str, Any]:
    """Strip NON_NULL wrappers; report LIST wrappers."""
    is_list = False
    current: Optional[Mapping[str, Any]] = type_ref
    while current is not None and current.get("kind") in ("NON_NULL", "LIST"):
        if current.get("kind") == "LIST":
            is_list = True
        current = current.get("ofType")
    current = current or {}
    return {"type_name": current.get("name"), "kind": current.get("kind"), "is_list": is_list}


class GraphQLGateway:
    """Async GraphQL client serving polls and schema metadata.

    Implements both the resource query and the schema introspection
    interfaces for endpoints that expose tables as root query fields
    (Hasura, pg_graphql).
    """

    def __init__(
        self,
        url: str,
        timeout: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        type_names: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Initialize the GraphQL gateway.

        Args:
            url: GraphQL endpoint URL
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            retry_delay: Base delay of the exponential retry backoff
            type_names: Resource name -> GraphQL type name, when they differ
            headers: Extra HTTP headers, e.g. authorization
        """
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.type_names = dict(type_names or {})
        self.headers = dict(headers or {})

        self.transport: Optional[AIOHTTPTransport] = None
        self.client: Optional[Client] = None
        self.session: Optional[AsyncClientSession] = None
        self._connect_lock = asyncio.Lock()
        self._fields: Dict[str, List[Dict[str, Any]]] = {}

        logger.info(
            "Initialized GraphQL gateway",
            url=self.url,
            timeout=timeout,
            max_retries=max_retries
        )

    async def _ensure_session(self) -> AsyncClientSession:
        """Connect the shared session once; concurrent callers reuse it."""
        async with self._connect_lock:
            if self.session is None:
                self.transport = AIOHTTPTransport(
                    url=self.url,
                    headers=self.headers or None,
                    timeout=self.timeout
                )
                self.client = Client(
                    transport=self.transport,
                    fetch_schema_from_transport=False
                )
                self.session = await self.client.connect_async()
                logger.debug("Connected GraphQL session", url=self.url)

        return self.session

    async def execute(self, query_string: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL query with retry logic.

        Args:
            query_string: GraphQL query string
            variables: Query variables

        Returns:
            Query result data

        Raises:
            Exception: If query fails after all retries
        """
        session = await self._ensure_session()
        query_obj = gql(query_string)

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(
                    "Executing GraphQL query",
                    url=self.url,
                    attempt=attempt + 1,
                    query=query_string[:100] + "..." if len(query_string) > 100 else query_string
                )

                return await session.execute(query_obj, variable_values=variables)

            except (TransportQueryError, TransportServerError) as e:
                logger.warning(
                    "GraphQL query failed",
                    url=self.url,
                    attempt=attempt + 1,
                    error=str(e),
                    will_retry=attempt < self.max_retries
                )

                if attempt == self.max_retries:
                    raise

                await asyncio.sleep(self.retry_delay * 2 ** attempt)

            except Exception as e:
                logger.error(
                    "Unexpected error during GraphQL query",
                    url=self.url,
                    attempt=attempt + 1,
                    error=str(e)
                )

                if attempt == self.max_retries:
                    raise

                await asyncio.sleep(self.retry_delay * 2 ** attempt)

        raise RuntimeError("Query failed after all retries")

    async def _type_fields(self, resource: str) -> List[Dict[str, Any]]:
        """Fetch and cache the fields of a resource's GraphQL type."""
        if resource in self._fields:
            return self._fields[resource]

        type_name = self.type_names.get(resource, resource)
        result = await self.execute(TYPE_FIELDS_QUERY, {"name": type_name})
        type_info = result.get("__type") or {}

        fields = []
        for raw in type_info.get("fields") or []:
            unwrapped = _unwrap_type(raw.get("type") or {})
            fields.append({"name": raw["name"], **unwrapped})

        if not fields:
            logger.warning("GraphQL type has no fields", resource=resource, type_name=type_name)

        self._fields[resource] = fields
        return fields

    async def column_exists(self, resource: str, field: str) -> bool:
        """Check whether a resource exposes a field."""
        fields = await self._type_fields(resource)
        return any(f["name"] == field for f in fields)

    async def fields_by_type(self, resource: str, types: Sequence[str]) -> List[str]:
        """List scalar fields whose type name is one of ``types`` (case-insensitive)."""
        wanted = {t.lower() for t in types}
        fields = await self._type_fields(resource)
        return [
            f["name"] for f in fields
            if f["kind"] == "SCALAR" and not f["is_list"]
            and (f["type_name"] or "").lower() in wanted
        ]

    async def query(
        self,
        resource: str,
        *,
        cursor_field: Optional[str] = None,
        cursor_value: Any = None,
        order: str = "desc",
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of records of a resource."""
        fields = await self._type_fields(resource)
        selection = [f["name"] for f in fields if f["kind"] in ("SCALAR", "ENUM") and not f["is_list"]]
        if not selection:
            raise ValueError(f"No selectable fields for resource '{resource}'")

        query_string = build_poll_query(
            resource, selection, cursor_field, cursor_value, order, limit
        )
        result = await self.execute(query_string)
        return list(result.get(resource) or [])

    async def close(self) -> None:
        """Close the GraphQL client and cleanup resources."""
        async with self._connect_lock:
            if self.client is not None and self.session is not None:
                await self.client.close_async()

            self.session = None
            self.client = None
            self.transport = None

        logger.debug("Closed GraphQL gateway", url=self.url)
