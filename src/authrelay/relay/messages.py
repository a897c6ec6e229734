"""JSON-RPC error codes and response builders used by the relay."""

from __future__ import annotations

from typing import Any

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
# Transport failure talking to the remote, or an unexpected relay fault
FORWARD_ERROR = -32000
# Authentication failure, or the remote refusing the request after retry
AUTH_ERROR = -32001


def request_id_of(payload: Any) -> Any:
    """The request's id, or None when the payload carries none."""
    if isinstance(payload, dict):
        return payload.get("id")
    return None


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def parse_error() -> dict[str, Any]:
    return error_response(None, PARSE_ERROR, "Parse error")
