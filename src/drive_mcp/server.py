"""MCP stdio server exposing SharePoint/OneDrive tools.

The dispatcher is independent of the MCP SDK so it can be driven directly in
tests; ``create_server`` wires it into the low-level ``mcp`` server.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from drive_mcp import __version__
from drive_mcp.config import AppConfig, load_config
from drive_mcp.graph.client import GraphClient
from drive_mcp.session import Session
from drive_mcp.tools.handlers import DriveTools
from drive_mcp.tools.schemas import TOOL_SCHEMAS

logger = logging.getLogger(__name__)

SERVER_NAME = "drive-mcp"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Tools callable before sign-in.
UNGUARDED_TOOLS = frozenset({"authenticate_sharepoint", "authenticate_device_code"})
# Tools that operate on the selected SharePoint site.
SITE_TOOLS = frozenset({"search_files", "get_folder_structure"})


class UnknownToolError(Exception):
    """Raised when a tool name is not registered."""


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]
    handler: Callable[[dict[str, Any]], Any]
    requires_auth: bool = True
    requires_site: bool = False


@dataclass(frozen=True)
class ToolReply:
    text: str
    is_error: bool = False


class ToolDispatcher:
    """Routes tool calls to handlers after checking the session guards."""

    def __init__(self, session: Session, specs: list[ToolSpec]) -> None:
        self.session = session
        self._specs = {spec.name: spec for spec in specs}

    @property
    def specs(self) -> list[ToolSpec]:
        return list(self._specs.values())

    async def dispatch(self, name: str, arguments: dict[str, Any] | None) -> ToolReply:
        """Run one tool call.

        Args:
            name: Registered tool name.
            arguments: Tool arguments from the host; ``None`` means none.

        Returns:
            The reply text, flagged as an error when a guard fails or the
            handler raises.

        Raises:
            UnknownToolError: If no tool with this name is registered.
        """
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownToolError(f"Unknown tool: {name}")

        if spec.requires_auth:
            guard = self.session.check_authenticated()
            if not guard.ok:
                return ToolReply(text=f"Error: {guard.error}", is_error=True)
        if spec.requires_site:
            guard = self.session.check_site()
            if not guard.ok:
                return ToolReply(text=f"Error: {guard.error}", is_error=True)

        args = arguments or {}
        try:
            if inspect.iscoroutinefunction(spec.handler):
                result = await spec.handler(args)
            else:
                result = await asyncio.to_thread(spec.handler, args)
        except Exception as exc:
            logger.exception("[dispatch] tool failed; tool:%s", name)
            return ToolReply(text=f"Error: {exc}", is_error=True)

        if isinstance(result, str):
            return ToolReply(text=result)
        return ToolReply(text=json.dumps(result, indent=2))


def build_dispatcher(config: AppConfig, session: Session | None = None) -> ToolDispatcher:
    """Create the session, Graph client and tool registry for one process."""
    session = session or Session()
    graph = GraphClient(session.access_token, timeout=config.download_timeout_seconds)
    tools = DriveTools(session, config, graph)
    specs = []
    for name, (description, schema) in TOOL_SCHEMAS.items():
        specs.append(
            ToolSpec(
                name=name,
                description=description,
                input_schema=schema,
                handler=getattr(tools, name),
                requires_auth=name not in UNGUARDED_TOOLS,
                requires_site=name in SITE_TOOLS,
            )
        )
    return ToolDispatcher(session, specs)


def create_server(dispatcher: ToolDispatcher) -> Server:
    server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema)
            for spec in dispatcher.specs
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        reply = await dispatcher.dispatch(name, arguments)
        if reply.is_error:
            # The SDK reports exceptions raised here as an isError result.
            raise RuntimeError(reply.text)
        return [TextContent(type="text", text=reply.text)]

    return server


async def run_stdio(config: AppConfig) -> None:
    dispatcher = build_dispatcher(config)
    server = create_server(dispatcher)
    logger.info("[run_stdio] server starting; tools:%d", len(dispatcher.specs))
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    config = load_config()
    # stdout carries the protocol; logs go to stderr.
    logging.basicConfig(stream=sys.stderr, level=config.log_level, format=LOG_FORMAT)
    asyncio.run(run_stdio(config))


if __name__ == "__main__":
    main()
