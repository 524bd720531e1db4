"""
Local OAuth callback server

Answers exactly one browser redirect on the loopback interface. The
authorization code, when present, is handed to the waiting login coroutine
through a one-shot future.
"""
import asyncio
import logging
from typing import Optional

from aiohttp import web

from .errors import AuthorizationTimeoutError, CallbackPortInUseError

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
    <head><title>Authentication Successful</title></head>
    <body style="font-family: system-ui, sans-serif; text-align: center; padding: 50px;">
        <h1>Authentication Successful!</h1>
        <p>You can close this window and return to the terminal.</p>
        <script>window.close();</script>
    </body>
</html>
"""

FAILURE_PAGE = """<!DOCTYPE html>
<html>
    <head><title>Authentication Failed</title></head>
    <body style="font-family: system-ui, sans-serif; text-align: center; padding: 50px;">
        <h1>Authentication Failed</h1>
        <p>The authorization was denied or an error occurred.</p>
        <p>You can close this window and try again.</p>
    </body>
</html>
"""


class CallbackServer:
    """Single-use HTTP listener for the OAuth redirect

    Any path is accepted; only the query string matters. The first request
    ends the server's useful life: later requests are refused and the
    listening socket is closed right after the first response.
    """

    def __init__(self, port: int, host: str = LOOPBACK_HOST):
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._code: Optional[asyncio.Future] = None
        self._served = False
        self._closing: Optional[asyncio.Task] = None

        self.app.router.add_get("/{tail:.*}", self._handle_callback)

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound, useful when constructed with port 0"""
        if self.runner is None or not self.runner.addresses:
            return None
        return self.runner.addresses[0][1]

    async def start(self) -> None:
        """Bind the listener

        Raises:
            CallbackPortInUseError: If the port cannot be bound
        """
        self._code = asyncio.get_running_loop().create_future()
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()

        self._site = web.TCPSite(self.runner, host=self.host, port=self.port)
        try:
            await self._site.start()
        except OSError as e:
            await self.runner.cleanup()
            self.runner = None
            raise CallbackPortInUseError(self.port) from e

        logger.debug(f"OAuth callback server listening on {self.host}:{self.bound_port}")

    async def _handle_callback(self, request: web.Request) -> web.Response:
        if self._served:
            logger.debug("Ignoring extra request to the OAuth callback server")
            return self._page(FAILURE_PAGE, status=400)
        self._served = True
        self._closing = asyncio.ensure_future(self._stop_listening())

        code = request.query.get("code")
        error = request.query.get("error")

        if code:
            if error:
                logger.warning(f"OAuth callback carried both a code and error: {error}")
            if self._code is not None and not self._code.done():
                self._code.set_result(code)
            logger.debug("Authorization code received on callback")
            return self._page(SUCCESS_PAGE, status=200)

        # Nothing is signalled; the waiting side runs into its timeout
        if error:
            logger.warning(f"OAuth provider returned error: {error}")
        else:
            logger.warning(f"OAuth callback without code: {request.path_qs}")
        return self._page(FAILURE_PAGE, status=400)

    @staticmethod
    def _page(html: str, status: int) -> web.Response:
        response = web.Response(text=html, content_type="text/html", status=status)
        response.force_close()
        return response

    async def _stop_listening(self) -> None:
        if self._site is not None:
            await self._site.stop()
            self._site = None

    async def wait_for_code(self, timeout: float) -> str:
        """Wait for the authorization code

        Args:
            timeout: Maximum time to wait in seconds

        Returns:
            The authorization code from the redirect

        Raises:
            AuthorizationTimeoutError: If no code arrived in time
        """
        if self._code is None:
            raise RuntimeError("Callback server has not been started")
        try:
            return await asyncio.wait_for(self._code, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"OAuth callback timeout after {timeout} seconds")
            raise AuthorizationTimeoutError(timeout) from e

    async def stop(self) -> None:
        """Close the listener and release the runner"""
        if self._closing is not None:
            await self._closing
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            self._site = None
