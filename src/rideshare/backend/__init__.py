"""Managed backend access (tables, RPC, edge functions, realtime)."""

from .client import (
    call_rpc,
    create_backend_client,
    current_user_id,
    execute,
    fetch_count,
    fetch_first,
    fetch_rows,
    invoke_function,
    subscribe_to_changes,
)

__all__ = [
    "call_rpc",
    "create_backend_client",
    "current_user_id",
    "execute",
    "fetch_count",
    "fetch_first",
    "fetch_rows",
    "invoke_function",
    "subscribe_to_changes",
]
