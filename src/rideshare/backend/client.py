"""Thin helpers around the async Supabase client.

Services build queries with the vendor query builder directly and hand the
builder to one of the helpers here, which own the error translation into
the ``core.exceptions`` hierarchy.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from postgrest.exceptions import APIError
from supabase import acreate_client

from rideshare.core.exceptions import BackendError

if TYPE_CHECKING:
    from supabase import AsyncClient

    from rideshare.settings import BackendSettings

logger = logging.getLogger(__name__)

RowCallback = Callable[[dict[str, Any]], Any]
Unsubscribe = Callable[[], Awaitable[None]]


async def create_backend_client(settings: "BackendSettings") -> "AsyncClient":
    """Create the async Supabase client for the configured project."""
    return await acreate_client(settings.url, settings.key)


async def execute(query: Any, operation: str = "query") -> Any:
    """Run a query builder and translate vendor errors into BackendError."""
    try:
        return await query.execute()
    except APIError as e:
        raise BackendError(
            f"{operation} failed: {e.message}",
            code=e.code,
            details={"hint": e.hint, "details": e.details},
        ) from e


async def fetch_rows(query: Any, operation: str = "query") -> list[dict[str, Any]]:
    response = await execute(query, operation)
    return list(response.data or [])


async def fetch_first(query: Any, operation: str = "query") -> dict[str, Any] | None:
    """Return the first row of a query or None when nothing matched."""
    rows = await fetch_rows(query.limit(1), operation)
    return rows[0] if rows else None


async def fetch_count(query: Any, operation: str = "count") -> int:
    response = await execute(query, operation)
    return response.count or 0


async def invoke_function(
    client: "AsyncClient", name: str, body: dict[str, Any]
) -> dict[str, Any]:
    """Invoke an edge function and return its JSON body."""
    try:
        data = await client.functions.invoke(
            name, invoke_options={"body": body, "responseType": "json"}
        )
    except Exception as e:
        raise BackendError(f"Edge function {name} failed: {e}") from e

    if not isinstance(data, dict):
        raise BackendError(f"Edge function {name} returned a non-object body")
    return data


async def call_rpc(
    client: "AsyncClient", name: str, params: dict[str, Any]
) -> Any:
    response = await execute(client.rpc(name, params), f"rpc {name}")
    return response.data


async def current_user_id(client: "AsyncClient") -> str | None:
    """Id of the user signed into the client session, if any."""
    response = await client.auth.get_user()
    if response is None or response.user is None:
        return None
    return response.user.id


def _extract_record(payload: dict[str, Any]) -> dict[str, Any] | None:
    # Realtime payloads carry the row either as "new" or under data.record
    if payload.get("new"):
        return payload["new"]
    data = payload.get("data") or {}
    return data.get("record")


async def subscribe_to_changes(
    client: "AsyncClient",
    channel_name: str,
    table: str,
    callback: RowCallback,
    row_filter: str | None = None,
    event: str = "*",
) -> Unsubscribe:
    """Subscribe to postgres changes on a table.

    The callback receives the changed row. Returns a coroutine function that
    removes the channel.
    """

    def _on_change(payload: dict[str, Any]) -> None:
        record = _extract_record(payload)
        if record:
            callback(record)

    channel = client.channel(channel_name)
    channel.on_postgres_changes(
        event, callback=_on_change, table=table, schema="public", filter=row_filter
    )
    await channel.subscribe()
    logger.debug(f"Subscribed to {table} changes on channel {channel_name}")

    async def unsubscribe() -> None:
        await client.remove_channel(channel)

    return unsubscribe
