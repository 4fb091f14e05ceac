"""Shared pytest configuration for the project test suite."""
from __future__ import annotations

import asyncio
import sys
import threading
from pathlib import Path
from typing import Callable, Generator, Iterable, Iterator

import freezegun
import pytest
from aiohttp import web

# freezegun's default ignore list contains "gi" (PyGObject), matched as a module-name
# prefix, which would exempt every ``gift_calc`` module from frozen time.
freezegun.configure(
    default_ignore_list=[
        "gi." if name == "gi" else name for name in freezegun.config.DEFAULT_IGNORE_LIST
    ]
)


# Ensure the repository root (which contains the ``gift_calc`` package) is importable.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every file collaborator at a throwaway directory."""

    config_dir = tmp_path / "gift-calc"
    monkeypatch.setenv("GIFT_CALC_CONFIG_DIR", str(config_dir))
    for name in ("GIFT_CALC_BASE_VALUE", "GIFT_CALC_VARIATION", "GIFT_CALC_CURRENCY", "GIFT_CALC_DECIMALS"):
        monkeypatch.delenv(name, raising=False)
    return config_dir


@pytest.fixture
def fixed_random() -> Callable[[Iterable[float]], Callable[[], float]]:
    """Build a random source that replays a fixed sequence of floats."""

    def _factory(values: Iterable[float]) -> Callable[[], float]:
        iterator: Iterator[float] = iter(list(values))
        return lambda: next(iterator)

    return _factory


@pytest.fixture(scope="session")
def mcp_http_server(tmp_path_factory: pytest.TempPathFactory) -> Generator[str, None, None]:
    """Spin up the MCP HTTP transport on 127.0.0.1 and yield its base URL.

    The server gets its own config directory so tests exercising it never
    touch the user's real naughty list or spending log.
    """

    from gift_calc.config import ConfigStore
    from gift_calc.mcp_remote_server import create_app
    from gift_calc.mcp_server import MCPServer
    from gift_calc.naughty_list import NaughtyList
    from gift_calc.spending_log import SpendingLog

    data_dir = tmp_path_factory.mktemp("mcp-http")
    server = MCPServer(
        config_store=ConfigStore(data_dir / ".config.json"),
        naughty_list=NaughtyList(data_dir / "naughty-list.json"),
        spending_log=SpendingLog(data_dir / "gift-calc.log"),
    )

    loop = asyncio.new_event_loop()
    ready = threading.Event()
    state = {}

    def _run() -> None:
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(create_app(server))
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, host="127.0.0.1", port=0)
        loop.run_until_complete(site.start())
        sockets = site._server.sockets  # type: ignore[union-attr]
        assert sockets, "aiohttp site did not expose any sockets"
        port = sockets[0].getsockname()[1]
        state["base_url"] = f"http://127.0.0.1:{port}"
        ready.set()
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(runner.cleanup())
            loop.close()

    thread = threading.Thread(target=_run, name="mcp-test-server", daemon=True)
    thread.start()
    if not ready.wait(timeout=10):
        raise RuntimeError("Timed out starting MCP test server")

    try:
        yield state["base_url"]
    finally:
        if loop.is_running():
            loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=5)
