"""Pytest configuration and fixtures for livesync tests."""

import asyncio
import itertools
from typing import Any, Dict, List, Optional, Sequence

import pytest

from livesync.config import BackoffConfig, SyncSettings
from livesync.polling import CursorDiscovery
from livesync.subscriptions import SubscriptionRegistry


class FakeChannel:
    """In-memory change channel that tests drive by hand."""

    def __init__(self) -> None:
        self.fail_opens = 0  # upcoming opens to refuse; -1 refuses forever
        self.refused_resources: set = set()
        self.auto_status: Optional[str] = None
        self.open_calls = 0
        self.closed: List[int] = []
        self.listeners: Dict[int, tuple] = {}
        self._ids = itertools.count(1)

    def open(self, resource, event_filter, listener):
        self.open_calls += 1
        if resource in self.refused_resources:
            raise ConnectionError(f"realtime disabled for {resource}")
        if self.fail_opens:
            if self.fail_opens > 0:
                self.fail_opens -= 1
            raise ConnectionError("channel refused")

        handle = next(self._ids)
        self.listeners[handle] = (resource, listener)
        if self.auto_status is not None:
            asyncio.get_running_loop().call_soon(listener.on_status, self.auto_status)
        return handle

    def close(self, handle):
        self.closed.append(handle)
        self.listeners.pop(handle, None)

    def listener_for(self, resource):
        matches = [lst for res, lst in self.listeners.values() if res == resource]
        return matches[-1] if matches else None

    def emit_status(self, resource, status):
        self.listener_for(resource).on_status(status)

    def emit_event(self, resource, payload):
        self.listener_for(resource).on_event(payload)


class FakeQuery:
    """In-memory resource query with strict greater-than cursor filtering."""

    def __init__(self) -> None:
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.fail_next = 0
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def insert(self, resource, record):
        self.records.setdefault(resource, []).append(record)

    async def query(self, resource, *, cursor_field=None, cursor_value=None, order="desc", limit=50):
        self.calls.append(
            {"resource": resource, "cursor_field": cursor_field, "cursor_value": cursor_value}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next -= 1
            raise RuntimeError("query backend unavailable")

        rows = [dict(r) for r in self.records.get(resource, [])]
        if cursor_field and cursor_value is not None:
            rows = [r for r in rows if r.get(cursor_field) is not None and r[cursor_field] > cursor_value]
        if cursor_field:
            # rows without a cursor value come last
            stamped = [r for r in rows if r.get(cursor_field) is not None]
            stamped.sort(key=lambda r: r[cursor_field], reverse=(order == "desc"))
            rows = stamped + [r for r in rows if r.get(cursor_field) is None]
        return rows[:limit]

    async def close(self):
        self.closed = True


class FakeIntrospection:
    """Schema metadata backed by a resource -> {field: type} mapping."""

    def __init__(self, columns: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self.columns = columns or {}
        self.fail = False
        self.calls = 0

    async def column_exists(self, resource: str, field: str) -> bool:
        self.calls += 1
        if self.fail:
            raise RuntimeError("metadata service unavailable")
        return field in self.columns.get(resource, {})

    async def fields_by_type(self, resource: str, types: Sequence[str]) -> List[str]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("metadata service unavailable")
        wanted = {t.lower() for t in types}
        return [f for f, t in self.columns.get(resource, {}).items() if t.lower() in wanted]


WIDGET_COLUMNS = {
    "id": "bigint",
    "name": "text",
    "created_at": "timestamptz",
    "updated_at": "timestamptz",
}


@pytest.fixture
def channel():
    """Provide a controllable change channel."""
    return FakeChannel()


@pytest.fixture
def query():
    """Provide an in-memory resource query."""
    return FakeQuery()


@pytest.fixture
def introspection():
    """Provide schema metadata with a timestamped widgets resource."""
    return FakeIntrospection(
        {
            "widgets": dict(WIDGET_COLUMNS),
            "gadgets": dict(WIDGET_COLUMNS),
        }
    )


@pytest.fixture
def sync_settings():
    """Provide fast settings; poll ticks are driven by hand."""
    return SyncSettings(
        log_level="DEBUG",
        debounce_window=0.01,
        backoff=BackoffConfig(base=0.001, maximum=0.01, max_attempts=3),
        poll_interval=3600,
        poll_on_start=False,
        metrics_enabled=False,
        health_enabled=False,
    )


@pytest.fixture
async def registry(channel, query, introspection, sync_settings):
    """Provide a SubscriptionRegistry wired to the fakes."""
    registry = SubscriptionRegistry(channel, query, introspection, sync_settings)
    yield registry
    registry.cleanup_all()


@pytest.fixture
def discovery(introspection):
    """Provide cursor discovery over the fake schema."""
    return CursorDiscovery(introspection)
