"""Tests for the OAuth loopback callback server."""

import asyncio
import socket

import aiohttp
import pytest

from auth.callback_server import CallbackServer
from auth.errors import AuthorizationTimeoutError, CallbackPortInUseError


async def _get(port: int, path_qs: str):
    async with aiohttp.ClientSession() as session:
        async with session.get(f"http://127.0.0.1:{port}{path_qs}") as response:
            return response.status, response.headers, await response.text()


class TestCallbackServer:

    def test_code_resolves_waiter(self):
        """A redirect carrying a code should answer 200 and hand over the code."""
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            try:
                status, headers, body = await _get(server.bound_port, "/callback?code=abc123&state=x")
                code = await server.wait_for_code(timeout=1)
            finally:
                await server.stop()
            return status, headers, body, code

        status, headers, body, code = asyncio.run(scenario())
        assert status == 200
        assert headers["Content-Type"].startswith("text/html")
        assert headers.get("Connection", "").lower() == "close"
        assert "window.close()" in body
        assert code == "abc123"

    def test_any_path_is_accepted(self):
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            try:
                status, _, _ = await _get(server.bound_port, "/somewhere/else?code=xyz")
                return status, await server.wait_for_code(timeout=1)
            finally:
                await server.stop()

        assert asyncio.run(scenario()) == (200, "xyz")

    def test_error_answers_400_and_signals_nothing(self):
        """A denied authorization should leave the waiter to time out."""
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            try:
                status, _, body = await _get(server.bound_port, "/callback?error=access_denied")
                with pytest.raises(AuthorizationTimeoutError):
                    await server.wait_for_code(timeout=0.2)
            finally:
                await server.stop()
            return status, body

        status, body = asyncio.run(scenario())
        assert status == 400
        assert "Authentication Failed" in body

    def test_code_wins_over_error(self):
        """A redirect with both a code and an error should still deliver the code."""
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            try:
                status, _, _ = await _get(server.bound_port, "/callback?code=abc&error=x")
                return status, await server.wait_for_code(timeout=1)
            finally:
                await server.stop()

        assert asyncio.run(scenario()) == (200, "abc")

    def test_missing_code_answers_400(self):
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            try:
                status, _, _ = await _get(server.bound_port, "/callback")
            finally:
                await server.stop()
            return status

        assert asyncio.run(scenario()) == 400

    def test_listener_closes_after_first_request(self):
        """Only one request is served; the port stops accepting afterwards."""
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            port = server.bound_port
            try:
                await _get(port, "/callback?code=first")
                await asyncio.sleep(0.05)
                with pytest.raises(aiohttp.ClientConnectionError):
                    await _get(port, "/callback?code=second")
                return await server.wait_for_code(timeout=1)
            finally:
                await server.stop()

        assert asyncio.run(scenario()) == "first"

    def test_timeout_message(self):
        async def scenario():
            server = CallbackServer(port=0)
            await server.start()
            try:
                await server.wait_for_code(timeout=0.05)
            finally:
                await server.stop()

        with pytest.raises(AuthorizationTimeoutError, match="Authorization timed out. Please try again."):
            asyncio.run(scenario())

    def test_port_in_use(self, free_port):
        """Binding a taken port should name the port in the error."""
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", free_port))
        blocker.listen(1)
        try:
            with pytest.raises(CallbackPortInUseError, match=f"Failed to bind to port {free_port}"):
                asyncio.run(CallbackServer(port=free_port).start())
        finally:
            blocker.close()
