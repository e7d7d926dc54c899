# -*- coding: utf-8 -*-

# SongBridge
# Copyright (C) 2025 SongBridge contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Loopback listener for OAuth redirects.

One listener per provider. It binds a fixed port, catches a single
redirect, hands the authorization code to the flow and shuts itself down.

States:
    IDLE -> STARTING -> LISTENING -> CLOSING -> IDLE

start() outside IDLE is a no-op that returns False, so a second
"Connect" click reuses the listener that is already waiting.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from aiohttp import web
from loguru import logger

from songbridge.exceptions import (
    AuthError,
    CallbackTimeout,
    ListenerStartFailed,
    MissingCallbackCode,
)
from songbridge.models import Provider
from songbridge.providers import ProviderSettings


# on_code(code, error) -> True if the flow completed successfully
OnCode = Callable[[Optional[str], Optional[AuthError]], Awaitable[bool]]


class ListenerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    CLOSING = "closing"


RESULT_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>SongBridge</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 4em;">
<h2>{title}</h2>
<p>{detail}</p>
</body>
</html>
"""


class CallbackListener:
    """
    Ephemeral aiohttp server that receives one OAuth redirect.

    Example:
        >>> listener = CallbackListener(Provider.KICK, port=8889, host="localhost")
        >>> await listener.start(on_code)
        True
        >>> await listener.wait_closed()
    """

    def __init__(
        self,
        provider: Provider,
        port: int,
        host: str = "127.0.0.1",
        path: str = "/callback",
        timeout: Optional[float] = None,
    ):
        """
        Args:
            provider: Provider whose redirect this listener receives
            port: Fixed loopback port registered as the redirect URI
            host: Bind address
            path: Callback path
            timeout: Seconds to wait for the redirect (None = wait forever)
        """
        self.provider = provider
        self.port = port
        self.host = host
        self.path = path
        self.timeout = timeout
        # state sent with the current authorize URL; a mismatch is only logged
        self.expected_state: Optional[str] = None

        self._state = ListenerState.IDLE
        self._on_code: Optional[OnCode] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._timeout_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Future] = None
        self._closed: Optional[asyncio.Event] = None

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "CallbackListener":
        return cls(
            provider=settings.provider,
            port=settings.callback_port,
            host=settings.callback_host,
            path=settings.callback_path,
            timeout=settings.callback_timeout,
        )

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state != ListenerState.IDLE

    async def start(self, on_code: OnCode) -> bool:
        """
        Starts listening for the redirect.

        Args:
            on_code: Async callback invoked once with (code, None) or (None, error)

        Returns:
            True if a socket was bound, False if the listener was already active

        Raises:
            ListenerStartFailed: If the port could not be bound
        """
        if self._state != ListenerState.IDLE:
            logger.debug(f"{self.provider.display_name} callback listener already {self._state.value}, reusing it")
            return False

        self._state = ListenerState.STARTING
        self._on_code = on_code
        self._closed = asyncio.Event()

        app = web.Application()
        app.router.add_get(self.path, self._handle_callback)
        runner = web.AppRunner(app, access_log=None)

        try:
            await runner.setup()
            site = web.TCPSite(runner, self.host, self.port)
            await site.start()
        except OSError as e:
            await runner.cleanup()
            self._state = ListenerState.IDLE
            self._on_code = None
            self._closed.set()
            logger.error(f"Failed to start {self.provider.display_name} callback listener on port {self.port}: {e}")
            raise ListenerStartFailed(
                self.provider,
                f"Could not listen on port {self.port} for the {self.provider.display_name} redirect: {e}",
            ) from e

        self._runner = runner
        self._site = site
        self._state = ListenerState.LISTENING

        if self.timeout:
            self._timeout_task = asyncio.create_task(self._expire())

        logger.info(f"{self.provider.display_name} callback listener started on http://{self.host}:{self.port}{self.path}")
        return True

    async def stop(self) -> None:
        """Stops the listener. Safe to call in any state."""
        if self._state == ListenerState.IDLE:
            return
        self._cancel_timeout()
        self._state = ListenerState.CLOSING
        await self._schedule_shutdown()

    async def wait_closed(self) -> None:
        """Waits until the listener has released its socket."""
        if self._state == ListenerState.IDLE or self._closed is None:
            return
        await self._closed.wait()

    async def _handle_callback(self, request: web.Request) -> web.Response:
        """Handles the single OAuth redirect, then shuts the listener down."""
        if self._state != ListenerState.LISTENING:
            return web.Response(status=503, text="Authorization already handled. You can close this window.")

        self._state = ListenerState.CLOSING
        self._cancel_timeout()
        on_code = self._on_code
        name = self.provider.display_name

        try:
            query = request.query
            code = query.get("code")
            state = query.get("state")

            if self.expected_state and state != self.expected_state:
                logger.warning(f"{name} callback state does not match the latest authorize request")

            if not code:
                reason = query.get("error_description") or query.get("error")
                logger.warning(f"{name} callback missing authorization code" + (f": {reason}" if reason else ""))
                await self._notify(on_code, None, MissingCallbackCode(self.provider, reason))
                return web.Response(status=400, text="Missing authorization code")

            logger.info(f"{name} authorization code received")
            try:
                success = await on_code(code, None)
            except Exception as e:
                logger.exception(f"Unhandled error while completing {name} authorization: {e}")
                success = False

            if success:
                page = RESULT_PAGE.format(
                    title=f"{name} connected",
                    detail="Authentication successful! You can close this window.",
                )
                return web.Response(status=200, text=page, content_type="text/html")

            page = RESULT_PAGE.format(
                title=f"{name} connection failed",
                detail="Authentication failed. Check the application log and try again.",
            )
            return web.Response(status=500, text=page, content_type="text/html")
        finally:
            self._schedule_shutdown()

    async def _notify(self, on_code: Optional[OnCode], code: Optional[str], error: Optional[AuthError]) -> None:
        if on_code is None:
            return
        try:
            await on_code(code, error)
        except Exception as e:
            logger.exception(f"Error in {self.provider.display_name} callback handler: {e}")

    async def _expire(self) -> None:
        await asyncio.sleep(self.timeout)
        if self._state != ListenerState.LISTENING:
            return

        self._timeout_task = None
        self._state = ListenerState.CLOSING
        on_code = self._on_code
        logger.warning(f"{self.provider.display_name} callback listener timed out after {self.timeout:g}s")
        self._schedule_shutdown()
        await self._notify(
            on_code,
            None,
            CallbackTimeout(self.provider, f"No {self.provider.display_name} redirect received within {self.timeout:g} seconds"),
        )

    def _cancel_timeout(self) -> None:
        task = self._timeout_task
        self._timeout_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _schedule_shutdown(self) -> asyncio.Future:
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._teardown())
        return self._shutdown_task

    async def _teardown(self) -> None:
        site, runner = self._site, self._runner
        self._site = None
        self._runner = None
        try:
            if site is not None:
                await site.stop()
            if runner is not None:
                await runner.cleanup()
        except Exception as e:
            logger.warning(f"Error while closing {self.provider.display_name} callback listener: {e}")
        finally:
            self._state = ListenerState.IDLE
            self._on_code = None
            self._shutdown_task = None
            if self._closed is not None:
                self._closed.set()
            logger.debug(f"{self.provider.display_name} callback listener stopped")
