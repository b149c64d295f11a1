"""
fn-bridge tools — Cloud Functions tool definitions and execution engine.

Provides the hardcoded allowlist of tools exposed to the assistant, their
JSON input schemas, and an execution engine that dispatches calls to a
FunctionsManager through an explicit if/elif chain (never getattr).
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any

from fnbridge.config import MAX_RESPONSE_BYTES
from fnbridge.errors import LocalValidationError, ToolNotAllowedError
from fnbridge.functions import (
    DEFAULT_ERROR_LIMIT,
    DEFAULT_LOG_LIMIT,
    DEFAULT_METRICS_HOURS,
    FunctionsManager,
)

logger = logging.getLogger("fn-bridge.tools")


# ---------------------------------------------------------------------------
# Allowlist — tool name -> description
# ---------------------------------------------------------------------------

TOOL_ALLOWLIST: dict[str, str] = {
    "list-cloud-functions": (
        "List all Cloud Functions in the configured project and region"
    ),
    "get-cloud-function-details": (
        "Get runtime, entry point, trigger, memory and environment details "
        "for a Cloud Function"
    ),
    "get-cloud-function-source": (
        "Find where a Cloud Function's source code lives: source repository, "
        "storage archive, or a generated download URL"
    ),
    "get-cloud-function-logs": (
        "Get the most recent log entries for a Cloud Function, newest first"
    ),
    "get-cloud-function-errors": (
        "Get the most recent error log entries (severity >= ERROR) for a "
        "Cloud Function, including stack traces when present"
    ),
    "test-http-function": (
        "Invoke an HTTP-triggered Cloud Function with a JSON POST body and "
        "return the status code and response"
    ),
    "get-cloud-function-metrics": (
        "Approximate execution count, error count and success rate for a "
        "Cloud Function over the last N hours, derived from log entries"
    ),
}


# ---------------------------------------------------------------------------
# Tool schemas — parameter definitions for each tool
# ---------------------------------------------------------------------------

_FUNCTION_NAME = {
    "type": "string",
    "description": "Bare function name, e.g. 'process-image'",
}

_TOOL_SCHEMAS: dict[str, dict] = {
    "list-cloud-functions": {
        "type": "object",
        "properties": {},
    },
    "get-cloud-function-details": {
        "type": "object",
        "properties": {"functionName": _FUNCTION_NAME},
        "required": ["functionName"],
    },
    "get-cloud-function-source": {
        "type": "object",
        "properties": {"functionName": _FUNCTION_NAME},
        "required": ["functionName"],
    },
    "get-cloud-function-logs": {
        "type": "object",
        "properties": {
            "functionName": _FUNCTION_NAME,
            "limit": {
                "type": "integer",
                "minimum": 1,
                "default": DEFAULT_LOG_LIMIT,
                "description": "Maximum number of log entries to return",
            },
        },
        "required": ["functionName"],
    },
    "get-cloud-function-errors": {
        "type": "object",
        "properties": {
            "functionName": _FUNCTION_NAME,
            "limit": {
                "type": "integer",
                "minimum": 1,
                "default": DEFAULT_ERROR_LIMIT,
                "description": "Maximum number of error entries to return",
            },
        },
        "required": ["functionName"],
    },
    "test-http-function": {
        "type": "object",
        "properties": {
            "functionName": _FUNCTION_NAME,
            "payload": {
                "type": "object",
                "default": {},
                "description": "JSON body to POST to the function",
            },
        },
        "required": ["functionName"],
    },
    "get-cloud-function-metrics": {
        "type": "object",
        "properties": {
            "functionName": _FUNCTION_NAME,
            "hours": {
                "type": "number",
                "exclusiveMinimum": 0,
                "default": DEFAULT_METRICS_HOURS,
                "description": "Size of the look-back window in hours",
            },
        },
        "required": ["functionName"],
    },
}


def build_tool_definitions() -> list[dict]:
    """Build the list of tool definition dicts (name, description, input_schema)."""
    tools: list[dict] = []
    for name, description in TOOL_ALLOWLIST.items():
        schema = _TOOL_SCHEMAS.get(name, {"type": "object", "properties": {}})
        tools.append({
            "name": name,
            "description": description,
            "input_schema": schema,
        })
    return tools


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _serialize_value(obj: Any) -> Any:
    """Recursively convert an object to JSON-serializable form."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, bytes):
        return "<binary data omitted>"
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return _serialize_value(obj.to_dict())
    if isinstance(obj, dict):
        return {str(k): _serialize_value(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize_value(item) for item in obj]

    # Fallback
    return str(obj)


def _serialize_response(response: Any, max_bytes: int = MAX_RESPONSE_BYTES) -> str:
    """Serialize a tool result to a JSON string, with truncation."""
    serialized = _serialize_value(response)
    text = json.dumps(serialized, indent=2, default=str)

    if len(text.encode("utf-8")) > max_bytes:
        truncated = text.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")
        truncated += f"\n\n... [TRUNCATED — response exceeded {max_bytes} bytes]"
        return truncated

    return text


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate(tool_name: str) -> None:
    if tool_name not in TOOL_ALLOWLIST:
        raise ToolNotAllowedError(f"Unknown tool: {tool_name}")


def _function_name(tool_input: dict) -> str:
    name = tool_input.get("functionName")
    if not isinstance(name, str) or not name:
        raise LocalValidationError("functionName is required and must be a non-empty string")
    return name


# ---------------------------------------------------------------------------
# Execution — explicit dispatch
# ---------------------------------------------------------------------------

def call_tool(
    manager: FunctionsManager,
    tool_name: str,
    tool_input: dict | None,
    max_bytes: int = MAX_RESPONSE_BYTES,
) -> str:
    """Execute a tool call and return the serialized result string.

    Errors propagate to the caller.
    """
    _validate(tool_name)
    tool_input = tool_input or {}
    logger.debug("Executing %s with %s", tool_name, tool_input)

    if tool_name == "list-cloud-functions":
        result = manager.list_functions()
    elif tool_name == "get-cloud-function-details":
        result = manager.get_function_details(_function_name(tool_input))
    elif tool_name == "get-cloud-function-source":
        result = manager.get_function_source(_function_name(tool_input))
    elif tool_name == "get-cloud-function-logs":
        result = manager.get_function_logs(
            _function_name(tool_input),
            limit=tool_input.get("limit", DEFAULT_LOG_LIMIT),
        )
    elif tool_name == "get-cloud-function-errors":
        result = manager.get_function_errors(
            _function_name(tool_input),
            limit=tool_input.get("limit", DEFAULT_ERROR_LIMIT),
        )
    elif tool_name == "test-http-function":
        result = manager.test_http_function(
            _function_name(tool_input),
            payload=tool_input.get("payload", {}),
        )
    elif tool_name == "get-cloud-function-metrics":
        result = manager.get_function_metrics(
            _function_name(tool_input),
            hours=tool_input.get("hours", DEFAULT_METRICS_HOURS),
        )
    else:
        raise ToolNotAllowedError(f"Tool not implemented: {tool_name}")

    return _serialize_response(result, max_bytes)

