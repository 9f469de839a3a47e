"""Relay server.

One websocket per endpoint. Each connection is registered on arrival, told
its identifier with a `register` envelope, and every frame it sends after that
goes through the router.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from ..net.config import DEFAULT_HOST, DEFAULT_PATH, DEFAULT_PORT, env_flag, env_int
from .registry import SessionRegistry
from .router import RelayRouter


logger = logging.getLogger(__name__)


@dataclass
class ServerOptions:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    path: str = DEFAULT_PATH
    debug: bool = False

    @classmethod
    def from_env(cls) -> "ServerOptions":
        return cls(
            host=os.environ.get("WEBRTC_SIGNALING_HOST", cls.host),
            port=env_int("WEBRTC_SIGNALING_PORT", cls.port),
            path=os.environ.get("WEBRTC_SIGNALING_PATH", cls.path),
            debug=env_flag("WEBRTC_SIGNALING_DEBUG"),
        )


class WebSocketHandle:
    """Connection handle backed by one server-side websocket."""

    def __init__(self, connection: ServerConnection):
        self.connection = connection

    async def send(self, message: str) -> None:
        await self.connection.send(message)


class SignalingServer:
    def __init__(self, options: Optional[ServerOptions] = None, registry: Optional[SessionRegistry] = None):
        self.options = options or ServerOptions()
        self.registry = registry or SessionRegistry()
        self.router = RelayRouter(self.registry)
        self._server: Optional[Server] = None
        self._saved_level: Optional[int] = None

    @property
    def port(self) -> int:
        """Port actually bound (differs from options.port when that is 0)."""

        if self._server is None:
            return self.options.port
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return self.options.port

    @property
    def url(self) -> str:
        return f"ws://{self.options.host}:{self.port}{self.options.path}"

    async def start(self) -> None:
        if self._server is not None:
            return
        if self.options.debug:
            package_logger = logging.getLogger("webrtc_signaling")
            self._saved_level = package_logger.level
            package_logger.setLevel(logging.DEBUG)
        self._server = await serve(
            self._handle,
            self.options.host,
            self.options.port,
            process_request=self._check_path,
        )
        logger.info("web-rtc server start at http://%s:%s%s", self.options.host, self.port, self.options.path)

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        server.close()
        await server.wait_closed()
        await self.router.flush()
        logger.info("web-rtc server stopped")
        if self._saved_level is not None:
            logging.getLogger("webrtc_signaling").setLevel(self._saved_level)
            self._saved_level = None

    async def serve_forever(self) -> None:
        await self.start()
        assert self._server is not None
        await self._server.wait_closed()

    async def __aenter__(self) -> "SignalingServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def _check_path(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        path = request.path.split("?", 1)[0]
        if path != self.options.path:
            logger.debug("web-rtc rejected path=%s", request.path)
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    async def _handle(self, connection: ServerConnection) -> None:
        seed = None
        if connection.request is not None:
            seed = connection.request.headers.get("Sec-WebSocket-Key")

        try:
            identifier = await self.router.connect(WebSocketHandle(connection), seed)
        except ConnectionClosed:
            logger.info("web-rtc socket closed before register remote=%s", connection.remote_address)
            return

        try:
            async for raw in connection:
                await self.router.route(identifier, raw)
        except ConnectionClosed as e:
            logger.info("web-rtc socket error id=%s code=%s", identifier, e.rcvd.code if e.rcvd else None)
        finally:
            self.router.disconnect(identifier)
