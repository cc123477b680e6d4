"""Polling fallback: cursor discovery and poll engines."""

from .cursor import (
    CANDIDATE_FIELDS,
    NO_CURSOR,
    CursorDiscovery,
    CursorField,
    CursorKind,
    SchemaIntrospection,
)
from .engine import PollEngine, ResourceQuery
from .state import PollState

__all__ = [
    "CANDIDATE_FIELDS",
    "NO_CURSOR",
    "CursorDiscovery",
    "CursorField",
    "CursorKind",
    "PollEngine",
    "PollState",
    "ResourceQuery",
    "SchemaIntrospection",
]
