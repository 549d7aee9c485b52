"""In-memory stand-in for the async Supabase client.

Covers the query builder surface the services use: table queries with
filters, ordering and paging, writes returning rows, RPC, edge functions,
auth and realtime channels. Embedded resources are not resolved; tests seed
rows that already carry the nested objects a join would return.
"""

from __future__ import annotations

import copy
import itertools
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable

from postgrest.exceptions import APIError

_BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)

EXPO_URL = "https://push.test/--/api/v2/push/send"


def _lookup(row: dict[str, Any], column: str) -> Any:
    value: Any = row
    for part in column.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, str) or isinstance(right, str):
        return str(left), str(right)
    return left, right


def _parse_or(expression: str) -> list[tuple[str, str]]:
    clauses = []
    for clause in expression.split(","):
        column, _, value = clause.split(".", 2)
        clauses.append((column, value))
    return clauses


class FakeQuery:
    def __init__(self, backend: FakeBackend, table: str):
        self.backend = backend
        self.table = table
        self.action = "select"
        self.payload: Any = None
        self.on_conflict: str | None = None
        self.count_mode: str | None = None
        self.head = False
        self.filters: list[Callable[[dict[str, Any]], bool]] = []
        self.ordering: list[tuple[str, bool]] = []
        self.limit_count: int | None = None
        self.offset = 0

    def select(self, *columns: str, count: str | None = None, head: bool = False) -> FakeQuery:
        self.count_mode = count
        self.head = head
        return self

    def insert(self, payload: Any) -> FakeQuery:
        self.action, self.payload = "insert", payload
        return self

    def upsert(self, payload: Any, on_conflict: str = "id") -> FakeQuery:
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload: dict[str, Any]) -> FakeQuery:
        self.action, self.payload = "update", payload
        return self

    def delete(self) -> FakeQuery:
        self.action = "delete"
        return self

    def _where(self, predicate: Callable[[dict[str, Any]], bool]) -> FakeQuery:
        self.filters.append(predicate)
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        return self._where(lambda row: _lookup(row, column) == value)

    def neq(self, column: str, value: Any) -> FakeQuery:
        return self._where(lambda row: _lookup(row, column) != value)

    def in_(self, column: str, values: list[Any]) -> FakeQuery:
        return self._where(lambda row: _lookup(row, column) in values)

    def _compare(self, column: str, value: Any, op: Callable[[Any, Any], bool]) -> FakeQuery:
        def predicate(row: dict[str, Any]) -> bool:
            current = _lookup(row, column)
            if current is None:
                return False
            return op(*_comparable(current, value))

        return self._where(predicate)

    def gte(self, column: str, value: Any) -> FakeQuery:
        return self._compare(column, value, lambda a, b: a >= b)

    def lte(self, column: str, value: Any) -> FakeQuery:
        return self._compare(column, value, lambda a, b: a <= b)

    def gt(self, column: str, value: Any) -> FakeQuery:
        return self._compare(column, value, lambda a, b: a > b)

    def lt(self, column: str, value: Any) -> FakeQuery:
        return self._compare(column, value, lambda a, b: a < b)

    def or_(self, expression: str) -> FakeQuery:
        clauses = _parse_or(expression)
        return self._where(
            lambda row: any(str(_lookup(row, column)) == value for column, value in clauses)
        )

    def order(self, column: str, desc: bool = False) -> FakeQuery:
        self.ordering.append((column, desc))
        return self

    def limit(self, count: int) -> FakeQuery:
        self.limit_count = count
        return self

    def range(self, start: int, end: int) -> FakeQuery:
        self.offset = start
        self.limit_count = end - start + 1
        return self

    def _matching(self) -> list[dict[str, Any]]:
        return [row for row in self.backend.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    async def execute(self) -> SimpleNamespace:
        self.backend.calls.append((self.table, self.action))
        error = self.backend.failures.get((self.table, self.action))
        if error is not None:
            raise APIError({"message": error, "code": "XX000", "hint": None, "details": None})

        handler = getattr(self, f"_execute_{self.action}")
        return handler()

    def _execute_select(self) -> SimpleNamespace:
        rows = self._matching()
        for column, desc in reversed(self.ordering):
            rows.sort(
                key=lambda row: (_lookup(row, column) is None, _lookup(row, column) or 0),
                reverse=desc,
            )
        count = len(rows) if self.count_mode else None
        rows = rows[self.offset :]
        if self.limit_count is not None:
            rows = rows[: self.limit_count]
        data = [] if self.head else copy.deepcopy(rows)
        return SimpleNamespace(data=data, count=count)

    def _execute_insert(self) -> SimpleNamespace:
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        inserted = [self.backend.add(self.table, row) for row in payload]
        return SimpleNamespace(data=copy.deepcopy(inserted), count=None)

    def _execute_upsert(self) -> SimpleNamespace:
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        written = []
        for row in payload:
            key = self.on_conflict or "id"
            existing = next(
                (r for r in self.backend.tables.setdefault(self.table, []) if key in row and r.get(key) == row[key]),
                None,
            )
            if existing is not None:
                existing.update(copy.deepcopy(row))
                written.append(existing)
            else:
                written.append(self.backend.add(self.table, row))
        return SimpleNamespace(data=copy.deepcopy(written), count=None)

    def _execute_update(self) -> SimpleNamespace:
        rows = self._matching()
        for row in rows:
            row.update(copy.deepcopy(self.payload))
        return SimpleNamespace(data=copy.deepcopy(rows), count=None)

    def _execute_delete(self) -> SimpleNamespace:
        rows = self._matching()
        table = self.backend.tables[self.table]
        self.backend.tables[self.table] = [row for row in table if row not in rows]
        return SimpleNamespace(data=copy.deepcopy(rows), count=None)


class FakeRpc:
    def __init__(self, backend: FakeBackend, name: str, params: dict[str, Any]):
        self.backend = backend
        self.name = name
        self.params = params

    async def execute(self) -> SimpleNamespace:
        self.backend.rpc_calls.append((self.name, self.params))
        result = self.backend.rpc_results.get(self.name)
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result, count=None)


class FakeFunctions:
    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.invocations: list[tuple[str, dict[str, Any]]] = []

    async def invoke(self, name: str, invoke_options: dict[str, Any] | None = None) -> Any:
        self.invocations.append((name, (invoke_options or {}).get("body", {})))
        response = self.responses.get(name, {"success": True})
        if isinstance(response, Exception):
            raise response
        return response


class FakeAuth:
    def __init__(self) -> None:
        self.user_id: str | None = None

    async def get_user(self) -> SimpleNamespace | None:
        if self.user_id is None:
            return None
        return SimpleNamespace(user=SimpleNamespace(id=self.user_id))


class FakeChannel:
    def __init__(self, name: str):
        self.name = name
        self.handlers: list[dict[str, Any]] = []
        self.subscribed = False

    def on_postgres_changes(self, event: str, callback: Callable, **options: Any) -> FakeChannel:
        self.handlers.append({"event": event, "callback": callback, **options})
        return self

    async def subscribe(self) -> FakeChannel:
        self.subscribed = True
        return self

    def emit(self, record: dict[str, Any]) -> None:
        for handler in self.handlers:
            handler["callback"]({"new": record})


class FakeBackend:
    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[tuple[str, str], str] = {}
        self.calls: list[tuple[str, str]] = []
        self.rpc_calls: list[tuple[str, dict[str, Any]]] = []
        self.rpc_results: dict[str, Any] = {}
        self.functions = FakeFunctions()
        self.auth = FakeAuth()
        self.channels: dict[str, FakeChannel] = {}
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)

    def channel(self, name: str) -> FakeChannel:
        channel = FakeChannel(name)
        self.channels[name] = channel
        return channel

    async def remove_channel(self, channel: FakeChannel) -> None:
        self.channels.pop(channel.name, None)

    def add(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Store a row, filling ``id`` and ``created_at`` like the database would."""
        n = next(self._ids)
        stored = {
            "id": f"{table}-{n}",
            "created_at": (_BASE_TIME + timedelta(seconds=n)).isoformat(),
            **copy.deepcopy(row),
        }
        self.tables.setdefault(table, []).append(stored)
        return stored

    def seed(self, table: str, *rows: dict[str, Any]) -> list[dict[str, Any]]:
        return [self.add(table, row) for row in rows]

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    def fail(self, table: str, action: str = "select", message: str = "boom") -> None:
        """Make every ``action`` on ``table`` raise a PostgREST APIError."""
        self.failures[(table, action)] = message
