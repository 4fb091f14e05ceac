"""HTTP transport for the gift-calc MCP server.

Exposes a single ``/mcp`` endpoint accepting ``POST`` requests carrying
JSON-RPC 2.0 messages, plus ``/health`` for liveness checks. Protocol
handling is delegated to :class:`gift_calc.mcp_server.MCPServer`; this module
only deals with HTTP concerns (content negotiation, status codes).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

from aiohttp import web

from .mcp_server import INVALID_REQUEST, PARSE_ERROR, PROTOCOL_VERSION, MCPServer

LOGGER = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = (PROTOCOL_VERSION, "2025-03-26")


class MCPApplication:
    """Encapsulates the aiohttp application and MCP handlers."""

    def __init__(self, server: Optional[MCPServer] = None) -> None:
        self.server = server or MCPServer()
        self.app = web.Application()
        self.app.router.add_route("POST", "/mcp", self.handle_post)
        self.app.router.add_get("/health", self.handle_health)

    def _validate_headers(self, request: web.Request) -> None:
        content_type = request.headers.get("Content-Type", "").split(";")[0].strip()
        if content_type != "application/json":
            raise web.HTTPUnsupportedMediaType(text="Content-Type must be application/json")

        protocol_version = request.headers.get("MCP-Protocol-Version")
        if protocol_version and protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise web.HTTPBadRequest(text="Unsupported protocol version")

        accept = request.headers.get("Accept", "application/json")
        if "application/json" not in accept and "*/*" not in accept:
            raise web.HTTPNotAcceptable(text="Accept header must allow application/json")

    async def handle_post(self, request: web.Request) -> web.Response:
        self._validate_headers(request)

        try:
            payload = await request.json()
        except json.JSONDecodeError as exc:
            return self._jsonrpc_error(None, PARSE_ERROR, f"Parse error: {exc.msg}")

        if isinstance(payload, list):
            return self._jsonrpc_error(None, INVALID_REQUEST, "Invalid Request: batches are not supported")

        response = await self.server.handle_jsonrpc(payload)
        if response is None:
            return web.Response(status=202)
        return web.json_response(response)

    async def handle_health(self, request: web.Request) -> web.Response:
        """Basic health check."""

        return web.json_response({"status": "ok"})

    def _jsonrpc_error(self, request_id: Any, code: int, message: str, *, status: int = 200) -> web.Response:
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}
        return web.json_response(payload, status=status)


def create_app(server: Optional[MCPServer] = None) -> web.Application:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    return MCPApplication(server).app


def main() -> None:
    app = create_app()
    host = os.getenv("MCP_HOST", "127.0.0.1")
    port = int(os.getenv("MCP_PORT", "8000"))
    LOGGER.info("Starting gift-calc MCP HTTP server on %s:%s", host, port)
    web.run_app(app, host=host, port=port)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
