"""
MCP Server Module
JSON-RPC 2.0 tool server exposing gift calculation over STDIO
"""

import asyncio
import json
import logging
import math
import sys
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TextIO

from . import __version__
from .argument_parser import ArgumentError
from .calculator import GiftCalculator, RandomSource
from .config import ConfigStore, GiftConfig, load_environment_overrides, resolve_defaults
from .naughty_list import NaughtyList, format_entry
from .spending_log import SpendingLog, format_matched_gift
from .spendings import format_spendings_output, summarize_spendings, validate_date

LOGGER = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-06-18"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass
class ToolDefinition:
    handler: ToolHandler
    description: str
    input_schema: Dict[str, Any]
    read_only: bool = True


def _text_content(text: str, **extra: Any) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], **extra}


def _number_argument(
    arguments: Dict[str, Any], key: str, low: Optional[float] = None, high: Optional[float] = None
) -> Optional[float]:
    value = arguments.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ArgumentError(f"{key} must be a number")
    if low is not None and high is not None and (value < low or value > high):
        raise ArgumentError(f"{key} must be between {low:g} and {high:g}")
    return value


def _string_argument(arguments: Dict[str, Any], key: str, required: bool = False) -> Optional[str]:
    value = arguments.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ArgumentError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ArgumentError(f"{key} must be a string")
    return value.strip()


class MCPServer:
    """MCP JSON-RPC 2.0 server implementation"""

    def __init__(
        self,
        config_store: Optional[ConfigStore] = None,
        naughty_list: Optional[NaughtyList] = None,
        spending_log: Optional[SpendingLog] = None,
        random_source: Optional[RandomSource] = None,
    ):
        self.config_store = config_store or ConfigStore()
        self.naughty_list = naughty_list or NaughtyList()
        self.spending_log = spending_log or SpendingLog()
        self.calculator = GiftCalculator(random_source)

        self.tool_definitions: Dict[str, ToolDefinition] = {
            "calculate_gift_amount": ToolDefinition(
                handler=self.tool_calculate_gift_amount,
                description="Calculate a gift amount with variation, friend score and nice score influences",
                input_schema={
                    "type": "object",
                    "properties": {
                        "baseValue": {"type": "number", "exclusiveMinimum": 0, "description": "Base value for the calculation"},
                        "variation": {"type": "number", "minimum": 0, "maximum": 100, "description": "Variation percentage"},
                        "friendScore": {"type": "number", "minimum": 1, "maximum": 10, "description": "Friend score (1-10)"},
                        "niceScore": {"type": "number", "minimum": 0, "maximum": 10, "description": "Nice score (0-10). 0 = no gift, 1-3 = fixed reductions"},
                        "currency": {"type": "string", "description": "Currency code to display"},
                        "decimals": {"type": "integer", "minimum": 0, "maximum": 10, "description": "Decimal places"},
                        "recipientName": {"type": "string", "description": "Gift recipient"},
                        "useMaximum": {"type": "boolean", "description": "Force base + variation"},
                        "useMinimum": {"type": "boolean", "description": "Force base - variation"},
                    },
                    "additionalProperties": False,
                },
            ),
            "check_naughty_list": ToolDefinition(
                handler=self.tool_check_naughty_list,
                description="Check whether a person is on the naughty list",
                input_schema={
                    "type": "object",
                    "properties": {"name": {"type": "string", "description": "Name to check"}},
                    "required": ["name"],
                    "additionalProperties": False,
                },
            ),
            "add_to_naughty_list": ToolDefinition(
                handler=self.tool_add_to_naughty_list,
                description="Add a person to the naughty list",
                input_schema={
                    "type": "object",
                    "properties": {"name": {"type": "string", "description": "Name to add"}},
                    "required": ["name"],
                    "additionalProperties": False,
                },
                read_only=False,
            ),
            "remove_from_naughty_list": ToolDefinition(
                handler=self.tool_remove_from_naughty_list,
                description="Remove a person from the naughty list",
                input_schema={
                    "type": "object",
                    "properties": {"name": {"type": "string", "description": "Name to remove"}},
                    "required": ["name"],
                    "additionalProperties": False,
                },
                read_only=False,
            ),
            "list_naughty_list": ToolDefinition(
                handler=self.tool_list_naughty_list,
                description="List everybody on the naughty list",
                input_schema={"type": "object", "properties": {}, "additionalProperties": False},
            ),
            "match_previous_gift": ToolDefinition(
                handler=self.tool_match_previous_gift,
                description="Find the last logged gift, overall or for one recipient, to give a matching amount",
                input_schema={
                    "type": "object",
                    "properties": {
                        "recipientName": {"type": "string", "description": "Match the last gift to this recipient"},
                    },
                    "additionalProperties": False,
                },
            ),
            "get_spendings": ToolDefinition(
                handler=self.tool_get_spendings,
                description="Total logged gift spendings between two dates",
                input_schema={
                    "type": "object",
                    "properties": {
                        "fromDate": {"type": "string", "description": "Start date (YYYY-MM-DD)"},
                        "toDate": {"type": "string", "description": "End date (YYYY-MM-DD)"},
                    },
                    "required": ["fromDate", "toDate"],
                    "additionalProperties": False,
                },
            ),
        }
        self.tools = {name: definition.handler for name, definition in self.tool_definitions.items()}

    async def handle_jsonrpc(self, request: Any) -> Optional[Dict[str, Any]]:
        """
        Handle JSON-RPC 2.0 request

        Args:
            request: Decoded JSON-RPC message

        Returns:
            JSON-RPC response dict, or None for notifications
        """
        if not isinstance(request, dict):
            return self._error_response(None, INVALID_REQUEST, "Invalid Request: expected object")

        if request.get("jsonrpc") != "2.0":
            return self._error_response(
                request.get("id"),
                INVALID_REQUEST,
                "Invalid Request: jsonrpc must be 2.0"
            )

        if "method" not in request:
            return self._error_response(
                request.get("id"),
                INVALID_REQUEST,
                "Invalid Request: method is required"
            )

        method = request["method"]
        params = request.get("params") or {}

        if "id" not in request:
            LOGGER.debug("Notification received: %s", method)
            return None
        request_id = request["id"]

        if method == "initialize":
            return self._success_response(request_id, self.initialize_result(params))
        elif method == "ping":
            return self._success_response(request_id, {})
        elif method == "tools/list":
            return self._success_response(request_id, await self.list_tools())
        elif method == "tools/call":
            return await self.call_tool(params, request_id)
        else:
            return self._error_response(
                request_id,
                METHOD_NOT_FOUND,
                f"Method not found: {method}"
            )

    def initialize_result(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": "gift-calc-mcp", "version": __version__},
        }

    async def list_tools(self) -> Dict[str, Any]:
        """List available tools"""
        return {
            "tools": [
                {
                    "name": name,
                    "description": definition.description,
                    "inputSchema": definition.input_schema,
                    "annotations": {"readOnlyHint": definition.read_only},
                }
                for name, definition in self.tool_definitions.items()
            ]
        }

    async def call_tool(self, params: Dict[str, Any], request_id: Any) -> Dict[str, Any]:
        """
        Call a specific tool

        Args:
            params: Tool call parameters
            request_id: JSON-RPC request ID

        Returns:
            JSON-RPC response
        """
        if not isinstance(params, dict):
            return self._error_response(
                request_id,
                INVALID_PARAMS,
                "Invalid params: must be object"
            )

        tool_name = params.get("name")
        arguments = params.get("arguments") or {}

        if tool_name not in self.tools:
            return self._error_response(
                request_id,
                INVALID_PARAMS,
                f"Unknown tool: {tool_name}"
            )
        if not isinstance(arguments, dict):
            return self._error_response(request_id, INVALID_PARAMS, "Invalid params: arguments must be object")

        try:
            result = await self.tools[tool_name](arguments)
            return self._success_response(request_id, result)
        except ValueError as e:
            return self._error_response(request_id, INVALID_PARAMS, f"Invalid params: {e}")
        except Exception as e:
            LOGGER.exception("Tool %s failed", tool_name)
            return self._error_response(
                request_id,
                INTERNAL_ERROR,
                f"Internal error: {str(e)}"
            )

    def _config_from_arguments(self, args: Dict[str, Any]) -> GiftConfig:
        defaults = resolve_defaults(self.config_store.load(), load_environment_overrides())
        changes: Dict[str, Any] = {}

        base_value = _number_argument(args, "baseValue")
        if base_value is not None:
            if base_value <= 0:
                raise ArgumentError("baseValue must be greater than 0")
            changes["base_value"] = float(base_value)
        for key, field_name, low, high in (
            ("variation", "variation", 0, 100),
            ("friendScore", "friend_score", 1, 10),
            ("niceScore", "nice_score", 0, 10),
        ):
            value = _number_argument(args, key, low, high)
            if value is not None:
                changes[field_name] = float(value)

        decimals = _number_argument(args, "decimals", 0, 10)
        if decimals is not None:
            if float(decimals) != int(decimals):
                raise ArgumentError("decimals must be a whole number")
            changes["decimals"] = int(decimals)

        currency = _string_argument(args, "currency")
        if currency:
            if len(currency.split()) > 1:
                raise ArgumentError("currency must not contain spaces")
            changes["currency"] = currency.upper()
        changes["recipient_name"] = _string_argument(args, "recipientName")

        use_maximum = bool(args.get("useMaximum", False))
        use_minimum = bool(args.get("useMinimum", False))
        if use_maximum and use_minimum:
            raise ArgumentError("useMaximum and useMinimum cannot both be true")
        changes["use_maximum"] = use_maximum
        changes["use_minimum"] = use_minimum

        return defaults.with_changes(**changes)

    async def tool_calculate_gift_amount(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Handle calculate_gift_amount tool call"""
        config = self._config_from_arguments(args)
        if config.recipient_name and self.naughty_list.contains(config.recipient_name):
            result = self.calculator.naughty_result(config)
        else:
            result = self.calculator.calculate(config)

        return _text_content(
            result.display,
            structuredContent={
                "amount": float(result.amount),
                "currency": result.currency,
                "recipientName": result.recipient_name,
                "onNaughtyList": result.on_naughty_list,
            },
        )

    async def tool_check_naughty_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _string_argument(args, "name", required=True)
        on_list = self.naughty_list.contains(name)
        status = "is on the naughty list" if on_list else "is not on the naughty list"
        return _text_content(f"{name} {status}", structuredContent={"name": name, "onNaughtyList": on_list})

    async def tool_add_to_naughty_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        outcome = self.naughty_list.add(_string_argument(args, "name", required=True))
        return _text_content(outcome.message, isError=not outcome.success)

    async def tool_remove_from_naughty_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        outcome = self.naughty_list.remove(_string_argument(args, "name", required=True))
        return _text_content(outcome.message, isError=not outcome.success)

    async def tool_list_naughty_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        entries = self.naughty_list.list_entries()
        if not entries:
            return _text_content("Naughty list is empty.")
        return _text_content("\n".join(format_entry(entry) for entry in entries))

    async def tool_match_previous_gift(self, args: Dict[str, Any]) -> Dict[str, Any]:
        """Handle match_previous_gift tool call; read-only, nothing is logged"""
        recipient_name = _string_argument(args, "recipientName")
        entry = self.spending_log.last_entry(recipient_name)
        if entry is None:
            text = (
                f"No previous gift found for {recipient_name}"
                if recipient_name
                else "No previous gifts found in calculation history"
            )
            return _text_content(text, structuredContent={"found": False})

        naughty = bool(entry.recipient_name) and self.naughty_list.contains(entry.recipient_name)
        result = self.calculator.matched_result(
            entry.amount, entry.currency, entry.recipient_name, on_naughty_list=naughty
        )
        lines = [result.display, f"Matched previous gift: {format_matched_gift(entry)}"]
        if naughty:
            lines.append(f"Override: {entry.recipient_name} is on the naughty list - amount set to 0")
        return _text_content(
            "\n".join(lines),
            structuredContent={
                "found": True,
                "amount": float(result.amount),
                "currency": result.currency,
                "recipientName": result.recipient_name,
                "date": entry.timestamp.date().isoformat(),
                "onNaughtyList": naughty,
            },
        )

    async def tool_get_spendings(self, args: Dict[str, Any]) -> Dict[str, Any]:
        from_date = _string_argument(args, "fromDate", required=True)
        to_date = _string_argument(args, "toDate", required=True)
        if validate_date(from_date) > validate_date(to_date):
            raise ArgumentError("fromDate must be before or equal to toDate")

        summary = summarize_spendings(self.spending_log, from_date, to_date)
        return _text_content(
            format_spendings_output(summary, from_date, to_date),
            structuredContent={
                "hasData": summary.has_data,
                "totals": {currency: float(total) for currency, total in summary.currency_totals.items()},
            },
        )

    async def handle_line(self, line: str) -> Optional[Dict[str, Any]]:
        """Decode one STDIO message and dispatch it"""
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            return self._error_response(None, PARSE_ERROR, f"Parse error: {e.msg}")
        return await self.handle_jsonrpc(request)

    async def serve_stdio(self, reader: TextIO = sys.stdin, writer: TextIO = sys.stdout) -> None:
        """Read newline-delimited JSON-RPC messages until EOF"""
        LOGGER.info("gift-calc MCP server listening on stdio")
        while True:
            line = await asyncio.to_thread(reader.readline)
            if not line:
                break
            if not line.strip():
                continue
            response = await self.handle_line(line)
            if response is not None:
                writer.write(json.dumps(response, ensure_ascii=False) + "\n")
                writer.flush()
        LOGGER.info("stdin closed, shutting down MCP server")

    def _success_response(self, request_id: Any, result: Any) -> Dict[str, Any]:
        """Create success response"""
        return {
            "jsonrpc": "2.0",
            "result": result,
            "id": request_id
        }

    def _error_response(self, request_id: Any, code: int, message: str) -> Dict[str, Any]:
        """Create error response"""
        return {
            "jsonrpc": "2.0",
            "error": {
                "code": code,
                "message": message
            },
            "id": request_id
        }


def main() -> None:
    # stdout carries protocol messages, so logs go to stderr
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    asyncio.run(MCPServer().serve_stdio())


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
