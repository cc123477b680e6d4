"""Discovery of the field used to order polled queries."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import structlog

from ..errors import CursorDiscoveryError

logger = structlog.get_logger(__name__)

# Probed in order; first match wins
CANDIDATE_FIELDS = (
    "updated_at",
    "created_at",
    "timestamp",
    "date",
    "modified_at",
    "last_modified",
    "updated",
    "created",
    "modification_date",
    "creation_date",
)

TIMESTAMP_TYPES = ("timestamp", "timestamptz", "date", "datetime", "time")
SEQUENCE_TYPES = ("integer", "bigint", "int", "smallint", "serial", "bigserial")


class SchemaIntrospection(Protocol):
    """Metadata service describing the fields of a resource."""

    async def column_exists(self, resource: str, field: str) -> bool: ...

    async def fields_by_type(self, resource: str, types: Sequence[str]) -> List[str]: ...


class CursorKind(Enum):
    """How much ordering a cursor field guarantees."""

    TIMESTAMP = "timestamp"
    SEQUENCE = "sequence"
    IDENTIFIER = "identifier"


@dataclass(frozen=True)
class CursorField:
    """A field usable for ordering polled queries."""

    name: str
    kind: CursorKind

    @property
    def is_ordered(self) -> bool:
        """Identifiers are not monotonic and cannot filter by last value."""
        return self.kind is not CursorKind.IDENTIFIER


class _NoCursor:
    """Sentinel: the resource has no field that can order a query."""

    _instance: Optional["_NoCursor"] = None

    def __new__(cls) -> "_NoCursor":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_CURSOR"

    def __bool__(self) -> bool:
        return False


NO_CURSOR = _NoCursor()

CursorResolution = Union[CursorField, _NoCursor]


class CursorDiscovery:
    """Resolves and caches the cursor field of each resource.

    The cache lives as long as the discovery object. Concurrent resolutions
    for the same resource may both query metadata; they produce the same
    answer, so the last write wins harmlessly.
    """

    def __init__(
        self,
        introspection: SchemaIntrospection,
        identifier_field: str = "id",
    ) -> None:
        """Initialize cursor discovery.

        Args:
            introspection: Schema metadata service
            identifier_field: Field used as the weakest fallback
        """
        self.introspection = introspection
        self.identifier_field = identifier_field
        self._cache: Dict[str, CursorResolution] = {}

    def cached(self, resource: str) -> Optional[CursorResolution]:
        """Return the cached resolution for a resource, if any."""
        return self._cache.get(resource)

    async def resolve(self, resource: str) -> CursorResolution:
        """Find the cursor field for a resource.

        Args:
            resource: Resource name

        Returns:
            The discovered CursorField, or NO_CURSOR

        Raises:
            CursorDiscoveryError: If a metadata call failed; nothing is cached
        """
        cached = self._cache.get(resource)
        if cached is not None:
            return cached

        try:
            result = await self._discover(resource)
        except Exception as e:
            logger.warning(
                "Cursor discovery failed, will retry",
                resource=resource,
                error=str(e),
            )
            raise CursorDiscoveryError(resource, e) from e

        self._cache[resource] = result
        if result is NO_CURSOR:
            logger.warning("No cursor field found", resource=resource)
        else:
            logger.info(
                "Discovered cursor field",
                resource=resource,
                field=result.name,
                kind=result.kind.value,
            )
        return result

    async def _discover(self, resource: str) -> CursorResolution:
        for name in CANDIDATE_FIELDS:
            if await self.introspection.column_exists(resource, name):
                return CursorField(name, CursorKind.TIMESTAMP)

        fields = await self.introspection.fields_by_type(resource, TIMESTAMP_TYPES)
        if fields:
            return CursorField(fields[0], CursorKind.TIMESTAMP)

        # Integer columns are usually sequences or serial ids
        fields = await self.introspection.fields_by_type(resource, SEQUENCE_TYPES)
        if fields:
            return CursorField(fields[0], CursorKind.SEQUENCE)

        if await self.introspection.column_exists(resource, self.identifier_field):
            return CursorField(self.identifier_field, CursorKind.IDENTIFIER)

        return NO_CURSOR

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "cached_resources": len(self._cache),
            "without_cursor": sum(1 for r in self._cache.values() if r is NO_CURSOR),
        }
