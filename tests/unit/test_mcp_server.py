"""
Test Suite: MCP JSON-RPC server
"""

import io
import json

import pytest

from gift_calc.mcp_server import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    MCPServer,
)
from gift_calc.spending_log import SpendingLog


def _call(name, arguments=None, request_id=1):
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments or {}},
    }


@pytest.fixture
def server():
    return MCPServer(random_source=lambda: 0.5)


class TestProtocol:

    @pytest.mark.asyncio
    async def test_initialize(self, server):
        response = await server.handle_jsonrpc({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": PROTOCOL_VERSION},
        })

        result = response["result"]
        assert response["id"] == 1
        assert result["protocolVersion"] == PROTOCOL_VERSION
        assert result["serverInfo"]["name"] == "gift-calc-mcp"
        assert "tools" in result["capabilities"]

    @pytest.mark.asyncio
    async def test_notification_has_no_response(self, server):
        assert await server.handle_jsonrpc({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None

    @pytest.mark.asyncio
    async def test_ping(self, server):
        response = await server.handle_jsonrpc({"jsonrpc": "2.0", "id": "p", "method": "ping"})
        assert response == {"jsonrpc": "2.0", "result": {}, "id": "p"}

    @pytest.mark.asyncio
    async def test_tools_list(self, server):
        response = await server.handle_jsonrpc({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})

        tools = {tool["name"]: tool for tool in response["result"]["tools"]}
        assert set(tools) == {
            "calculate_gift_amount",
            "check_naughty_list",
            "add_to_naughty_list",
            "remove_from_naughty_list",
            "list_naughty_list",
            "get_spendings",
            "match_previous_gift",
        }
        assert tools["calculate_gift_amount"]["annotations"]["readOnlyHint"] is True
        assert tools["add_to_naughty_list"]["annotations"]["readOnlyHint"] is False
        assert tools["get_spendings"]["inputSchema"]["required"] == ["fromDate", "toDate"]
        assert tools["match_previous_gift"]["annotations"]["readOnlyHint"] is True

    @pytest.mark.asyncio
    async def test_unknown_method(self, server):
        response = await server.handle_jsonrpc({"jsonrpc": "2.0", "id": 3, "method": "resources/list"})

        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert response["error"]["message"] == "Method not found: resources/list"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_body", [
        {"jsonrpc": "1.0", "id": 1, "method": "ping"},
        {"jsonrpc": "2.0", "id": 1},
        ["not", "an", "object"],
    ])
    async def test_invalid_request(self, server, request_body):
        response = await server.handle_jsonrpc(request_body)
        assert response["error"]["code"] == INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        response = await server.handle_jsonrpc(_call("delete_everything"))

        assert response["error"]["code"] == INVALID_PARAMS
        assert response["error"]["message"] == "Unknown tool: delete_everything"

    @pytest.mark.asyncio
    async def test_tool_failure_is_internal_error(self, server, monkeypatch):
        def _boom():
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(server.naughty_list, "list_entries", _boom)

        response = await server.handle_jsonrpc(_call("list_naughty_list"))

        assert response["error"]["code"] == INTERNAL_ERROR
        assert "disk on fire" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_handle_line_parse_error(self, server):
        response = await server.handle_line("{not json")

        assert response["error"]["code"] == PARSE_ERROR
        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_serve_stdio(self, server):
        reader = io.StringIO(
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"}) + "\n"
            + "\n"
            + json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}) + "\n"
            + json.dumps(_call("calculate_gift_amount", {"baseValue": 100, "useMaximum": True}, request_id=2)) + "\n"
        )
        writer = io.StringIO()

        await server.serve_stdio(reader, writer)

        responses = [json.loads(line) for line in writer.getvalue().splitlines()]
        assert [response["id"] for response in responses] == [1, 2]
        assert responses[1]["result"]["content"][0]["text"] == "120 SEK"


class TestCalculateTool:

    @pytest.mark.asyncio
    async def test_maximum(self, server):
        response = await server.handle_jsonrpc(
            _call("calculate_gift_amount", {"baseValue": 100, "useMaximum": True, "decimals": 0})
        )

        result = response["result"]
        assert result["content"] == [{"type": "text", "text": "120 SEK"}]
        assert result["structuredContent"]["amount"] == 120.0
        assert result["structuredContent"]["onNaughtyList"] is False

    @pytest.mark.asyncio
    async def test_recipient_and_currency(self, server):
        response = await server.handle_jsonrpc(_call("calculate_gift_amount", {
            "baseValue": 50,
            "useMinimum": True,
            "currency": "eur",
            "recipientName": "Alice",
        }))
        assert response["result"]["content"][0]["text"] == "40 EUR for Alice"

    @pytest.mark.asyncio
    async def test_zero_nice_score(self, server):
        response = await server.handle_jsonrpc(_call("calculate_gift_amount", {"niceScore": 0}))
        assert response["result"]["structuredContent"]["amount"] == 0

    @pytest.mark.asyncio
    async def test_config_file_defaults(self, server):
        server.config_store.save({"baseValue": 200, "currency": "NOK"})

        response = await server.handle_jsonrpc(_call("calculate_gift_amount", {"useMaximum": True}))

        assert response["result"]["content"][0]["text"] == "240 NOK"

    @pytest.mark.asyncio
    async def test_naughty_recipient(self, server):
        server.naughty_list.add("Kevin")

        response = await server.handle_jsonrpc(
            _call("calculate_gift_amount", {"baseValue": 100, "recipientName": "kevin"})
        )

        result = response["result"]
        assert result["content"][0]["text"] == "0 SEK for kevin (on naughty list!)"
        assert result["structuredContent"]["onNaughtyList"] is True

    @pytest.mark.asyncio
    async def test_does_not_write_log(self, server):
        await server.handle_jsonrpc(_call("calculate_gift_amount", {"baseValue": 100}))
        assert not SpendingLog().exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments, message", [
        ({"variation": 150}, "variation must be between 0 and 100"),
        ({"friendScore": 0}, "friendScore must be between 1 and 10"),
        ({"niceScore": 11}, "niceScore must be between 0 and 10"),
        ({"baseValue": "abc"}, "baseValue must be a number"),
        ({"baseValue": -5}, "baseValue must be greater than 0"),
        ({"decimals": 1.5}, "decimals must be a whole number"),
        ({"useMaximum": True, "useMinimum": True}, "useMaximum and useMinimum cannot both be true"),
        ({"recipientName": 42}, "recipientName must be a string"),
    ])
    async def test_invalid_arguments(self, server, arguments, message):
        response = await server.handle_jsonrpc(_call("calculate_gift_amount", arguments))

        assert response["error"]["code"] == INVALID_PARAMS
        assert response["error"]["message"] == f"Invalid params: {message}"


class TestNaughtyListTools:

    @pytest.mark.asyncio
    async def test_add_check_remove(self, server):
        added = await server.handle_jsonrpc(_call("add_to_naughty_list", {"name": "Kevin"}))
        assert added["result"]["content"][0]["text"] == "Kevin added to naughty list"
        assert added["result"]["isError"] is False

        checked = await server.handle_jsonrpc(_call("check_naughty_list", {"name": "KEVIN"}))
        assert checked["result"]["content"][0]["text"] == "KEVIN is on the naughty list"
        assert checked["result"]["structuredContent"]["onNaughtyList"] is True

        removed = await server.handle_jsonrpc(_call("remove_from_naughty_list", {"name": "Kevin"}))
        assert removed["result"]["isError"] is False

        checked = await server.handle_jsonrpc(_call("check_naughty_list", {"name": "Kevin"}))
        assert checked["result"]["content"][0]["text"] == "Kevin is not on the naughty list"

    @pytest.mark.asyncio
    async def test_failures_are_tool_errors(self, server):
        await server.handle_jsonrpc(_call("add_to_naughty_list", {"name": "Kevin"}))

        duplicate = await server.handle_jsonrpc(_call("add_to_naughty_list", {"name": "Kevin"}))
        missing = await server.handle_jsonrpc(_call("remove_from_naughty_list", {"name": "Nobody"}))

        assert duplicate["result"]["isError"] is True
        assert missing["result"]["isError"] is True
        assert missing["result"]["content"][0]["text"] == "Nobody is not on the naughty list"

    @pytest.mark.asyncio
    async def test_name_required(self, server):
        response = await server.handle_jsonrpc(_call("check_naughty_list", {}))
        assert response["error"]["message"] == "Invalid params: name is required"

    @pytest.mark.asyncio
    async def test_list(self, server):
        empty = await server.handle_jsonrpc(_call("list_naughty_list"))
        assert empty["result"]["content"][0]["text"] == "Naughty list is empty."

        server.naughty_list.add("Kevin")
        server.naughty_list.add("Alice")
        listed = await server.handle_jsonrpc(_call("list_naughty_list"))

        lines = listed["result"]["content"][0]["text"].splitlines()
        assert [line.split(" (")[0] for line in lines] == ["Kevin", "Alice"]


class TestSpendingsTool:

    @pytest.mark.asyncio
    async def test_totals(self, server):
        server.spending_log.path.parent.mkdir(parents=True)
        server.spending_log.path.write_text(
            "2024-12-01T10:00:00.000Z 85.00 SEK for Alice\n"
            "2024-12-02T11:30:00.000Z 120.75 SEK for Bob\n"
            "2024-11-20T09:15:00.000Z 89.99 USD for David\n"
        )

        response = await server.handle_jsonrpc(
            _call("get_spendings", {"fromDate": "2024-12-01", "toDate": "2024-12-31"})
        )

        result = response["result"]
        assert result["content"][0]["text"].startswith("Total Spending (2024-12-01 to 2024-12-31): 205.75 SEK")
        assert result["structuredContent"] == {"hasData": True, "totals": {"SEK": 205.75}}

    @pytest.mark.asyncio
    async def test_no_data(self, server):
        response = await server.handle_jsonrpc(
            _call("get_spendings", {"fromDate": "2024-12-01", "toDate": "2024-12-31"})
        )

        assert response["result"]["content"][0]["text"] == "No spending data found"
        assert response["result"]["structuredContent"]["hasData"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments, message", [
        ({"fromDate": "2024/12/01", "toDate": "2024-12-31"}, "Invalid date format"),
        ({"fromDate": "2024-12-31", "toDate": "2024-12-01"}, "fromDate must be before or equal to toDate"),
        ({"fromDate": "2024-12-01"}, "toDate is required"),
    ])
    async def test_invalid_range(self, server, arguments, message):
        response = await server.handle_jsonrpc(_call("get_spendings", arguments))

        assert response["error"]["code"] == INVALID_PARAMS
        assert message in response["error"]["message"]


class TestMatchPreviousGiftTool:

    @pytest.fixture
    def history(self, server):
        server.spending_log.path.parent.mkdir(parents=True)
        server.spending_log.path.write_text(
            "2023-12-01T10:00:00.000Z 125.50 USD for Alice\n"
            "2023-12-02T10:00:00.000Z 80.00 SEK for Bob\n"
        )
        return server.spending_log

    @pytest.mark.asyncio
    async def test_match_for_recipient(self, server, history):
        response = await server.handle_jsonrpc(_call("match_previous_gift", {"recipientName": "ALICE"}))

        result = response["result"]
        assert result["content"][0]["text"].splitlines() == [
            "125.5 USD for Alice",
            "Matched previous gift: 125.5 USD for Alice (2023-12-01)",
        ]
        assert result["structuredContent"] == {
            "found": True,
            "amount": 125.5,
            "currency": "USD",
            "recipientName": "Alice",
            "date": "2023-12-01",
            "onNaughtyList": False,
        }

    @pytest.mark.asyncio
    async def test_match_latest_overall_is_read_only(self, server, history):
        response = await server.handle_jsonrpc(_call("match_previous_gift"))

        assert response["result"]["structuredContent"]["recipientName"] == "Bob"
        assert len(history.entries()) == 2

    @pytest.mark.asyncio
    async def test_naughty_override(self, server, history):
        server.naughty_list.add("Bob")

        response = await server.handle_jsonrpc(_call("match_previous_gift", {"recipientName": "Bob"}))

        result = response["result"]
        assert result["structuredContent"]["amount"] == 0
        assert result["structuredContent"]["onNaughtyList"] is True
        assert "Override: Bob is on the naughty list - amount set to 0" in result["content"][0]["text"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments, text", [
        ({"recipientName": "Zed"}, "No previous gift found for Zed"),
        ({}, "No previous gifts found in calculation history"),
    ])
    async def test_not_found(self, server, arguments, text):
        response = await server.handle_jsonrpc(_call("match_previous_gift", arguments))

        assert response["result"]["content"][0]["text"] == text
        assert response["result"]["structuredContent"] == {"found": False}

    @pytest.mark.asyncio
    async def test_recipient_must_be_string(self, server):
        response = await server.handle_jsonrpc(_call("match_previous_gift", {"recipientName": 7}))
        assert response["error"]["message"] == "Invalid params: recipientName must be a string"
