#!/usr/bin/env python3
"""
fn-bridge — Cloud Functions tools for AI assistants over MCP.

Usage:
    fn-bridge                       Serve the tools over MCP stdio
    fn-bridge serve                 Same as above
    fn-bridge tools                 Print the tool definitions as JSON
    fn-bridge call TOOL [JSON]      Run one tool and print its JSON result

Options (serve / call):
    --project PROJECT   GCP project (default: env, config file, or gcloud ADC)
    --region REGION     Functions region (default: us-central1)
    --config PATH       YAML config file (default: ~/.fn-bridge/config.yaml)
    --timeout SECONDS   Timeout applied to every outbound call
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from fnbridge.config import configure_logging, load_config
from fnbridge.errors import wrap_upstream_error

logger = logging.getLogger("fn-bridge")

_KNOWN_COMMANDS = ("serve", "tools", "call")
_OPTIONS = {
    "--project": "project_id",
    "--region": "region",
    "--timeout": "timeout",
    "--config": "path",
}


class UsageError(Exception):
    """Raised for malformed command lines."""


def _parse_options(args: list[str]) -> tuple[dict, list[str]]:
    """Split ``--flag value`` pairs from positional arguments."""
    options: dict = {}
    positional: list[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        flag, sep, inline = arg.partition("=")
        if flag in _OPTIONS:
            if sep:
                value = inline
            elif i + 1 < len(args):
                i += 1
                value = args[i]
            else:
                raise UsageError(f"Missing value for {flag}")
            options[_OPTIONS[flag]] = value
        elif arg.startswith("--"):
            raise UsageError(f"Unknown option: {arg}")
        else:
            positional.append(arg)
        i += 1
    return options, positional


def _load(options: dict):
    path = options.pop("path", None)
    config = load_config(path, **options)
    configure_logging(config.log_level)
    return config


def _error(message: str) -> None:
    print(f"\033[1;31mError:\033[0m {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Dispatch to the appropriate sub-command and return the exit code."""
    args = list(sys.argv[1:] if argv is None else argv)
    command = "serve"
    if args and args[0] in _KNOWN_COMMANDS:
        command = args.pop(0)
    elif args and not args[0].startswith("--"):
        _error(f"Unknown command: {args[0]}")
        print(__doc__, file=sys.stderr)
        return 2

    try:
        options, positional = _parse_options(args)
    except UsageError as exc:
        _error(str(exc))
        print(__doc__, file=sys.stderr)
        return 2

    if command == "tools":
        return _cmd_tools()
    elif command == "call":
        return _cmd_call(options, positional)
    return _cmd_serve(options)


# ---------------------------------------------------------------------------
# fn-bridge serve
# ---------------------------------------------------------------------------

def _cmd_serve(options: dict) -> int:
    from fnbridge.server import FunctionsMCPServer

    try:
        config = _load(options)
        server = FunctionsMCPServer(config)
    except Exception as exc:
        error = wrap_upstream_error(exc)
        _error(f"Cannot start server: {error}")
        return 1

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as exc:
        logger.debug("Server loop failed", exc_info=True)
        _error(f"Server stopped: {wrap_upstream_error(exc)}")
        return 1
    return 0


# ---------------------------------------------------------------------------
# fn-bridge tools
# ---------------------------------------------------------------------------

def _cmd_tools() -> int:
    from fnbridge.tools import build_tool_definitions

    print(json.dumps(build_tool_definitions(), indent=2))
    return 0


# ---------------------------------------------------------------------------
# fn-bridge call TOOL [JSON]
# ---------------------------------------------------------------------------

def _cmd_call(options: dict, positional: list[str]) -> int:
    from fnbridge.functions import FunctionsManager
    from fnbridge.tools import call_tool

    if not positional or len(positional) > 2:
        _error("Usage: fn-bridge call TOOL [JSON]")
        return 2

    tool_name = positional[0]
    tool_input: dict = {}
    if len(positional) == 2:
        try:
            tool_input = json.loads(positional[1])
        except json.JSONDecodeError as exc:
            _error(f"Tool input is not valid JSON: {exc}")
            return 2
        if not isinstance(tool_input, dict):
            _error("Tool input must be a JSON object")
            return 2

    try:
        config = _load(options)
        manager = FunctionsManager(config)
        result = call_tool(manager, tool_name, tool_input, config.max_response_bytes)
    except Exception as exc:
        # Client construction raises google.auth errors when ADC is missing.
        error = wrap_upstream_error(exc)
        print(json.dumps({"error": str(error), "kind": error.kind}), file=sys.stderr)
        return 1

    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
