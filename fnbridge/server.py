"""
MCP stdio server exposing the Cloud Functions tools.

The blocking Google client calls run in a worker thread so the event loop
keeps serving other requests while a call is in flight.  Tool failures are
raised; the MCP layer turns them into tool-call error results.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from fnbridge import tools
from fnbridge.config import BridgeConfig
from fnbridge.functions import FunctionsManager

logger = logging.getLogger("fn-bridge.server")

SERVER_NAME = "fn-bridge"


class FunctionsMCPServer:
    """MCP server for one project/region's Cloud Functions."""

    def __init__(self, config: BridgeConfig, manager: FunctionsManager | None = None):
        self.config = config
        self.manager = manager or FunctionsManager(config)
        self.server = Server(SERVER_NAME)
        self._register_tools()

    def _register_tools(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> List[Tool]:
            return self.list_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            return await self.call_tool(name, arguments)

    def list_tools(self) -> List[Tool]:
        return [
            Tool(
                name=definition["name"],
                description=definition["description"],
                inputSchema=definition["input_schema"],
            )
            for definition in tools.build_tool_definitions()
        ]

    async def call_tool(self, name: str, arguments: Dict[str, Any] | None) -> List[TextContent]:
        logger.info("Tool call: %s", name)
        text = await asyncio.to_thread(
            tools.call_tool,
            self.manager,
            name,
            arguments or {},
            self.config.max_response_bytes,
        )
        return [TextContent(type="text", text=text)]

    async def run(self) -> None:
        """Serve MCP over stdin/stdout until the client disconnects."""
        logger.info(
            "Serving Cloud Functions tools for %s (%s)",
            self.config.project_id,
            self.config.region,
        )
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )
