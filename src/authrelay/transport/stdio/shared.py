import json
from typing import Any


def parse_json_message(line: str) -> Any:
    """Parse a line as one JSON value.

    Args:
        line: Raw line from stdin, surrounding whitespace allowed

    Returns:
        The decoded JSON value

    Raises:
        ValueError: If the line is not valid JSON
    """
    try:
        return json.loads(line.strip())
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e


def serialize_message(message: Any) -> str:
    """Serialize message to a single-line JSON string.

    Args:
        message: JSON-RPC message (or batch) to serialize

    Returns:
        Compact JSON string without embedded newlines

    Raises:
        ValueError: If message cannot be serialized
    """
    try:
        return json.dumps(message, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to serialize message to JSON: {e}") from e
