from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Any, List, Tuple

from langchain_mcp_adapters.client import MultiServerMCPClient


def repo_path(*parts: str) -> str:
    root = Path(__file__).resolve().parent.parent
    return str((root / Path(*parts)).resolve())


def _substitute_env(value: str) -> str:
    for key, env_value in os.environ.items():
        value = value.replace(f"${{{key}}}", env_value)
    return value


def build_connections(config: Dict[str, Any]) -> Dict[str, Any]:
    """Translate an `mcpServers` config block into MultiServerMCPClient connections."""
    connections: Dict[str, Any] = {}
    for name, server in (config.get("mcpServers", {}) or {}).items():
        if server.get("url"):
            connections[name] = {
                "url": _substitute_env(server["url"]),
                "transport": server.get("transport", "streamable_http"),
            }
            continue

        connections[name] = {
            "command": server.get("command"),
            "args": [_substitute_env(arg) for arg in server.get("args", [])],
            "transport": "stdio",
        }
        replaced_env = {k: _substitute_env(v) for k, v in (server.get("env", {}) or {}).items()}
        if replaced_env:
            connections[name]["env"] = replaced_env
    return connections


async def load_mcp_tools(config_path: str) -> Tuple[List[Any], Dict[str, Any]]:
    path = Path(config_path)
    if not path.is_absolute() and not path.exists():
        path = Path(repo_path(config_path))
    if not path.exists():
        raise RuntimeError(f"MCP server config not found: {config_path}")

    connections = build_connections(json.loads(path.read_text(encoding="utf-8")))
    if not connections:
        raise RuntimeError(f"No MCP servers defined in {path}")

    client = MultiServerMCPClient(connections)
    try:
        tools = await client.get_tools()
    except Exception as e:
        raise RuntimeError(
            "Failed to load MCP tools. One or more MCP servers failed to start.\n"
            "Common causes:\n"
            "- Tool backend not running or unreachable\n"
            "- Missing environment variables referenced in the server config\n\n"
            f"Original error:\n{e}"
        ) from e

    return tools, connections
