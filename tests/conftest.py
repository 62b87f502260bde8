"""Shared test fixtures for the loadstage test suite."""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from typing import TYPE_CHECKING

import pytest
from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path


TOKEN = "tok123"

CROCODILES = [
    {"id": 1, "name": "Bert", "sex": "M"},
    {"id": 2, "name": "Ed", "sex": "M"},
]


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture
def propagating_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    """Let caplog see ``loadstage`` records even after setup_logging ran."""
    monkeypatch.setattr(logging.getLogger("loadstage"), "propagate", True)


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Test server handlers
# =============================================================================


async def _echo_handler(request: web.Request) -> web.Response:
    """Echo back request details as JSON."""
    body = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "path": str(request.path),
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": body.decode("utf-8", errors="replace"),
        },
        status=200,
    )


async def _status_handler(request: web.Request) -> web.Response:
    """Respond with the status code given in the path, e.g. ``/status/404``."""
    status = int(request.match_info["code"])
    return web.json_response({"status": status}, status=status)


async def _delay_handler(request: web.Request) -> web.Response:
    """Respond after a configurable delay (query param: ?delay=0.5)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.json_response({"delayed_by": delay})


async def _crocodile_list_handler(request: web.Request) -> web.Response:
    return web.json_response(CROCODILES)


async def _crocodile_handler(request: web.Request) -> web.Response:
    croc_id = int(request.match_info["croc_id"])
    for croc in CROCODILES:
        if croc["id"] == croc_id:
            return web.json_response(croc)
    return web.json_response({"detail": "Not found."}, status=404)


async def _login_handler(request: web.Request) -> web.Response:
    """Issue a token for the ``test``/``test`` form login."""
    form = await request.post()
    if form.get("username") == "test" and form.get("password") == "test":
        return web.json_response({"access": TOKEN, "refresh": "refresh-token"})
    return web.json_response({"detail": "No active account"}, status=401)


async def _my_crocodiles_handler(request: web.Request) -> web.Response:
    """Protected resource requiring ``Authorization: Bearer tok123``."""
    if request.headers.get("Authorization") != f"Bearer {TOKEN}":
        return web.json_response({"detail": "Unauthorized"}, status=401)
    return web.json_response(CROCODILES[:1])


def _create_test_app() -> web.Application:
    """Build the test server app with all routes."""
    app = web.Application()
    app.router.add_route("*", "/echo{path:.*}", _echo_handler)
    app.router.add_route("*", "/status/{code:\\d+}", _status_handler)
    app.router.add_get("/delay", _delay_handler)
    app.router.add_get("/public/crocodiles/", _crocodile_list_handler)
    app.router.add_get("/public/crocodiles/{croc_id:\\d+}/", _crocodile_handler)
    app.router.add_post("/auth/token/login/", _login_handler)
    app.router.add_get("/my/crocodiles/", _my_crocodiles_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def http_server() -> AsyncIterator[str]:
    """In-process aiohttp server on the test's event loop.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    runner = web.AppRunner(_create_test_app())
    await runner.setup()
    port = _get_free_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def closed_url() -> str:
    """A URL on a port nothing listens on, for connection-refused tests."""
    return f"http://127.0.0.1:{_get_free_port()}"


@pytest.fixture
def sync_test_server() -> Iterator[str]:
    """Test server running in a background thread for sync tests.

    Needed where the code under test owns the event loop, such as
    ``LoadTestRunner.run`` and the CLI.
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(_create_test_app())
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)


def _write_crocodiles_yaml(tmp_path: Path, base_url: str, *, stages: str) -> Path:
    """Write the two-group crocodiles scenario as YAML with the given stages."""
    path = tmp_path / "crocodiles.yaml"
    path.write_text(
        f"""\
name: crocodiles
base_url: {base_url}
stages:
{stages}
groups:
  - name: Public endpoints
    steps:
      - name: crocodile 1
        url: /public/crocodiles/1/
        checks:
          - {{name: status is 200, status: 200}}
        think_time: 10ms
  - name: Private endpoints
    steps:
      - name: login
        method: POST
        url: /auth/token/login/
        data: {{username: test, password: test}}
        checks:
          - {{name: login status is 200, status: 200}}
        extract:
          token: access
      - name: my crocodiles
        url: /my/crocodiles/
        headers:
          Authorization: "Bearer ${{token}}"
        checks:
          - {{name: status is 200, status: 200}}
        think_time: 10ms
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def crocodiles_yaml(
    tmp_path: Path,
    sync_test_server: str,
    monkeypatch: pytest.MonkeyPatch,
) -> Path:
    """A short two-group scenario file pointing at the sync test server.

    Ticks are shortened so the sub-second stages actually start users.
    """
    monkeypatch.setenv("LOADSTAGE_TICK_INTERVAL", "0.1")
    monkeypatch.setenv("LOADSTAGE_GRACEFUL_STOP", "2s")
    return _write_crocodiles_yaml(
        tmp_path,
        sync_test_server,
        stages=(
            "  - {duration: 0.5s, target: 2}\n"
            "  - {duration: 0.5s, target: 2}\n"
            "  - {duration: 0.2s, target: 0}"
        ),
    )
