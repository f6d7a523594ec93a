"""
Reactor - the proxy's single control loop

Each iteration:
1. waits (at most the current wake-up delay) for one connection,
2. reads, handles and answers that request, then closes the connection,
3. lets the dispatcher send whatever notifications are due, which also
   yields the next wake-up delay,
4. purges expired subscriptions.

The asyncio server only hands accepted connections over through a queue;
requests are handled strictly one after another by this loop, so the
registry and the dispatcher have a single writer.
"""
import asyncio
import time
from http import HTTPStatus
from typing import Callable, Optional, Tuple

from core.http_codec import HTTPError, RequestTimeout, Response, read_request, write_response
from core.utils import log_info, log_debug, log_warning, log_error
from config import LISTEN_BACKLOG, LISTEN_HOST, LISTEN_PORT, LISTEN_TIMEOUT, REQUEST_TIMEOUT
from proxy.dispatcher import Dispatcher
from proxy.handlers import RequestHandler
from proxy.subscriptions import Registry

Connection = Tuple[asyncio.StreamReader, asyncio.StreamWriter, asyncio.Future]


class Reactor:
    """Accepts, handles and schedules, one request at a time"""

    def __init__(
        self,
        registry: Registry,
        dispatcher: Dispatcher,
        host: str = LISTEN_HOST,
        port: int = LISTEN_PORT,
        backlog: int = LISTEN_BACKLOG,
        max_wait: float = LISTEN_TIMEOUT,
        request_timeout: float = REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._registry = registry
        self._dispatcher = dispatcher
        self._handler = RequestHandler(registry)
        self._host = host
        self._port = port
        self._backlog = backlog
        self._request_timeout = request_timeout
        self._clock = clock

        self._wait = max_wait
        self._connections: "asyncio.Queue[Connection]" = asyncio.Queue()
        self._server: Optional[asyncio.AbstractServer] = None
        self._running = False

    @property
    def wait(self) -> float:
        """Current wake-up delay in seconds"""
        return self._wait

    @property
    def port(self) -> Optional[int]:
        """Port actually bound (useful when started on port 0)"""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self):
        """
        Bind and listen.

        Raises:
            OSError: The port cannot be bound
        """
        self._server = await asyncio.start_server(
            self._on_connection,
            self._host,
            self._port,
            backlog=self._backlog,
            reuse_address=True,
        )
        self._running = True
        log_info("Reactor", f"Listening on {self._host}:{self.port}")

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        done = asyncio.get_running_loop().create_future()
        await self._connections.put((reader, writer, done))
        # Keep the connection open until the loop has answered it
        await done

    async def run(self):
        """Loop until stop()"""
        while self._running:
            await self.run_once()

    async def run_once(self):
        """One Listening -> Handling -> Dispatching -> Purging cycle"""
        try:
            reader, writer, done = await asyncio.wait_for(self._connections.get(), timeout=self._wait)
        except asyncio.TimeoutError:
            pass
        else:
            try:
                await self.handle_connection(reader, writer)
            except Exception as e:
                log_error("Reactor", f"Error while handling connection: {e!r}")
            finally:
                if not done.done():
                    done.set_result(None)

        try:
            self._wait = await self._dispatcher.drain_due(self._clock())
        except Exception as e:
            log_error("Reactor", f"Error while sending notifications: {e!r}")
        try:
            self._registry.purge_expired(self._clock())
        except Exception as e:
            log_error("Reactor", f"Error while purging subscriptions: {e!r}")

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Read one request, answer it and close the connection"""
        peer = writer.get_extra_info("peername")
        remote = peer[0] if peer else "unknown"
        try:
            response = await self._respond(reader, remote)
            await write_response(writer, response)
        except ConnectionError as e:
            log_warning("Reactor", f"Connection from {remote} lost: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _respond(self, reader: asyncio.StreamReader, remote: str) -> Response:
        try:
            request = await asyncio.wait_for(read_request(reader), timeout=self._request_timeout)
        except asyncio.TimeoutError:
            log_warning("Reactor", f"{remote}: request not received in time")
            return Response(RequestTimeout.status, reason="Request not received in time")
        except HTTPError as e:
            log_warning("Reactor", f"{remote}: error while processing request: {e.reason}")
            return Response(e.status, reason=e.reason)

        log_info("Reactor", f"{remote} > {request.method.value} {request.path_string}")
        try:
            response = self._handler.handle(request)
        except Exception as e:
            log_error("Reactor", f"Handler failed for {request.method.value} {request.path_string}: {e!r}")
            return Response(HTTPStatus.INTERNAL_SERVER_ERROR)
        log_debug("Reactor", f"{remote} < {int(response.status)}")
        return response

    async def stop(self):
        """Stop listening and release connections still waiting in the queue"""
        self._running = False
        if self._server is not None:
            self._server.close()
        while not self._connections.empty():
            _, writer, done = self._connections.get_nowait()
            writer.close()
            if not done.done():
                done.set_result(None)
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None
        log_info("Reactor", "Stopped listening")
