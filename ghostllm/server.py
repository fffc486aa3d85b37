"""Connection loop for the raw HTTP front-end.

Each accepted connection runs in its own asyncio task: read, parse, dispatch,
write, close. One request is served per connection. Failures are contained to
the connection they happen on.
"""

import asyncio
from typing import Optional

import httpx

from ghostllm.config import GatewayConfig
from ghostllm.dispatcher import Dispatcher
from ghostllm.errors import GatewayError, PayloadTooLargeError
from ghostllm.provider import build_adapters
from ghostllm.telemetry import logger
from ghostllm.wire import (
    HEADER_TERMINATOR,
    HttpResponse,
    error_response,
    parse_request,
)


class GatewayServer:
    """Accepts connections and feeds them through parser, dispatcher and builder."""

    def __init__(self, config: GatewayConfig, dispatcher: Dispatcher) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self._server: Optional[asyncio.Server] = None

    @property
    def port(self) -> int:
        """The bound port (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            return self.config.port
        return self._server.sockets[0].getsockname()[1]

    async def read_request(self, reader: asyncio.StreamReader) -> bytes:
        """Read one request from ``reader``.

        Starts with a single bounded read. If that read ends before the header
        block is complete, or before a declared Content-Length body is
        complete, keeps reading until it is, or until the peer closes the
        connection. Without a Content-Length, everything read so far is the
        request.

        Raises:
            PayloadTooLargeError: If the request exceeds ``max_request_bytes``.
            ProtocolError: If the request line is blank.
        """
        chunk_size = self.config.recv_buffer_size
        limit = self.config.max_request_bytes

        data = await reader.read(chunk_size)
        while data:
            head_end = data.find(HEADER_TERMINATOR)
            if head_end != -1:
                head = parse_request(data[: head_end + len(HEADER_TERMINATOR)])
                if head.content_length is None:
                    return data
                expected = head_end + len(HEADER_TERMINATOR) + head.content_length
                if expected > limit:
                    raise PayloadTooLargeError("Request too large")
                if len(data) >= expected:
                    return data[:expected]
            elif len(data) > limit:
                raise PayloadTooLargeError("Request too large")

            chunk = await reader.read(chunk_size)
            if not chunk:
                break
            data += chunk
        return data

    async def respond(self, raw: bytes) -> HttpResponse:
        """Parse ``raw`` and dispatch it."""
        try:
            request = parse_request(raw)
        except GatewayError as exc:
            logger.error("Failed to parse HTTP request: %s", exc.message)
            return error_response(exc.status, "Bad Request", exc.kind)

        logger.info("%s %s - Processing request", request.method.value, request.path)
        return await self.dispatcher.dispatch(request)

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        logger.debug("New connection established from %s", peer)
        try:
            try:
                raw = await asyncio.wait_for(
                    self.read_request(reader), timeout=self.config.request_timeout
                )
            except GatewayError as exc:
                response = error_response(exc.status, exc.message, exc.kind)
            else:
                if not raw:
                    logger.warning("Received empty request from %s", peer)
                    return
                logger.debug("Received %d bytes", len(raw))
                response = await self.respond(raw)

            writer.write(response.to_bytes())
            await writer.drain()
        except asyncio.TimeoutError:
            logger.warning("Timed out reading request from %s", peer)
        except (ConnectionError, OSError) as exc:
            logger.warning("Connection error from %s: %s", peer, exc)
        except Exception:
            logger.exception("Error handling connection from %s", peer)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as exc:
                logger.debug("Error closing connection from %s: %s", peer, exc)

    async def start(self) -> asyncio.Server:
        self._server = await asyncio.start_server(
            self.handle_connection, self.config.host, self.config.port
        )
        logger.info(
            "%s server listening on http://%s:%s",
            self.config.service_name,
            self.config.host,
            self.port,
        )
        return self._server

    async def serve_forever(self) -> None:
        server = await self.start()
        async with server:
            await server.serve_forever()

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None


def create_server(
    config: GatewayConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GatewayServer:
    """Wire adapters, dispatcher and connection loop from one config snapshot."""
    dispatcher = Dispatcher(config, build_adapters(config, transport))
    return GatewayServer(config, dispatcher)


def run(config: GatewayConfig) -> None:
    """Serve forever with the raw connection loop."""
    asyncio.run(create_server(config).serve_forever())
