"""
IntelliCode MCP Server

Exposes the tool catalog over MCP stdio and offers a small command line:

    intellicode-mcp serve                         # MCP server (default)
    intellicode-mcp workflow <type> [files...]    # run one workflow, print JSON
    intellicode-mcp initialize-memory-bank        # seed .intellicode/memory

stdout carries the MCP stream in serve mode; everything else is logged to
file (see mcp_logger).
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import Config, load_config
from .errors import handle_error
from .file_watcher import build_file_watcher
from .mcp_logger import configure_logging, log_error, log_info
from .memory_initializer import initialize_memory_bank
from .scheduler import build_scheduler
from .tool_registry import ToolRouter
from .tools import build_router

SERVER_NAME = "IntelliCodeMCP"
SERVER_VERSION = "2.1.0"

WORKFLOW_TYPES = ["full_analysis", "quick_check", "context_condensing", "daily_digest", "generate_memory_map"]


def to_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, indent=2, default=str)


async def call_tool_text(router: ToolRouter, name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
    """Invoke a tool; failures become an error text instead of a protocol error."""
    try:
        result = await router.invoke(name, arguments or {})
    except Exception as e:
        log_error(f"Tool {name} failed", str(e))
        return [TextContent(type="text", text=f"Error executing {name}: {e}")]
    return [TextContent(type="text", text=to_text(result))]


def create_server(router: ToolRouter) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List all registered IntelliCode tools."""
        return [
            Tool(name=d.name, description=d.description, inputSchema=d.schema())
            for d in router.registry.descriptors()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        return await call_tool_text(router, name, arguments)

    return server


# === Commands ===

async def serve(config: Config) -> None:
    initialize_memory_bank(config)
    log_info("Memory bank initialization checked and completed if necessary.")

    router = build_router(config)
    server = create_server(router)

    scheduler = None
    if config.scheduler.enabled:
        scheduler = build_scheduler(router, config.scheduler)
        asyncio.create_task(scheduler.maintenance_loop())
        log_info("Daily digest/audit and weekly memory map scheduled.")

    watcher = None
    if config.watcher.enabled:
        watcher = build_file_watcher(router, config.watcher)
        asyncio.create_task(watcher.watch_loop())

    log_info(f"{SERVER_NAME} {SERVER_VERSION} starting with {len(router.registry)} tools")
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if scheduler:
            scheduler.stop()
        if watcher:
            watcher.stop()


async def run_workflow(config: Config, workflow_type: str, target_files: List[str]) -> Any:
    router = build_router(config)
    log_info(f"Executing roo_code_workflow: {workflow_type} with target files: {', '.join(target_files)}")
    args: Dict[str, Any] = {"workflow_type": workflow_type}
    if target_files:
        args["target_files"] = target_files
    return await router.invoke("roo_code_workflow", args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="intellicode-mcp", description="IntelliCode MCP tool server")
    parser.add_argument("--config", help="Path to code-intelligence.yaml")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the MCP server over stdio (default)")

    workflow = sub.add_parser("workflow", help="Run a single workflow and print its result")
    workflow.add_argument("workflow_type", choices=WORKFLOW_TYPES)
    workflow.add_argument("target_files", nargs="*")

    sub.add_parser("initialize-memory-bank", help="Create the memory bank tree and default documents")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except Exception as e:
        handle_error("Server initialization failed", e)
        return 1
    configure_logging(config.logging.log_dir, config.logging.level)

    command = args.command or "serve"
    try:
        if command == "workflow":
            result = asyncio.run(run_workflow(config, args.workflow_type, args.target_files))
            print(to_text(result))
        elif command == "initialize-memory-bank":
            created = initialize_memory_bank(config)
            print(f"Memory bank ready at {config.memory.root_dir} ({len(created)} files created)")
        else:
            asyncio.run(serve(config))
    except KeyboardInterrupt:
        log_info("Interrupted, shutting down")
    except Exception as e:
        handle_error(f"Command '{command}' failed", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
