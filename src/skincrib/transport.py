"""
Socket.IO transport for the Skincrib merchant API.

Wraps one python-socketio AsyncClient connected to the merchant namespace.
Each SocketTransport owns its connection; nothing is shared at module level.

Requests are correlated through Socket.IO acknowledgements: the server
answers every request by calling the ack with (error, response). call()
turns that into an awaitable with a timeout.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError, SocketIOError

from .errors import RemoteOperationError, RequestTimeoutError, TransportError, error_message
from .models import ResponseEnvelope

logger = logging.getLogger(__name__)


def _is_error(error: Any) -> bool:
    """Servers send an empty object as the error slot on success."""
    if isinstance(error, dict):
        return bool(error.get("message") or error.get("error"))
    return bool(error)


class SocketTransport:
    """
    Owned Socket.IO connection with push subscription and request/response.

    Push handlers registered with on() may be plain functions; several
    handlers can share one event name.
    """

    def __init__(
        self,
        url: str,
        namespace: str = "/merchants",
        request_timeout: float = 15.0,
        sio: Optional[socketio.AsyncClient] = None,
    ):
        """
        Args:
            url: Server base URL (e.g., https://skincrib.com)
            namespace: Socket.IO namespace of the merchant API
            request_timeout: Default seconds to wait for an acknowledgement
            sio: Pre-built AsyncClient (mainly for tests)

        The socket always reconnects by itself; restoring the merchant
        session afterwards is up to the client.
        """
        self.url = url
        self.namespace = namespace
        self.request_timeout = request_timeout
        self.sio = sio if sio is not None else socketio.AsyncClient(reconnection=True, logger=False)

        self._handlers: Dict[str, List[Callable]] = {}
        self._connection_established = asyncio.Event()

        # Stats
        self.requests_sent = 0
        self.requests_failed = 0
        self.requests_timed_out = 0
        self.pushes_received = 0

        self.sio.on("connect", self._on_connect, namespace=self.namespace)
        self.sio.on("disconnect", self._on_disconnect, namespace=self.namespace)

        logger.info(f"Initialized Skincrib socket transport for {url}{namespace}")

    @property
    def connected(self) -> bool:
        return self._connection_established.is_set()

    def on(self, event: str, handler: Callable) -> None:
        """Register a handler for a named push event."""
        if event not in self._handlers:
            self._handlers[event] = []
            if event not in ("connect", "disconnect"):
                self.sio.on(event, self._make_dispatcher(event), namespace=self.namespace)
        self._handlers[event].append(handler)

    async def connect(self) -> None:
        """Open the socket and join the merchant namespace."""
        logger.info(f"Connecting to Skincrib socket: {self.url}{self.namespace}")
        try:
            await self.sio.connect(
                self.url,
                namespaces=[self.namespace],
                transports=["websocket"],
                wait_timeout=self.request_timeout,
            )
        except SocketConnectionError as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e

    async def disconnect(self) -> None:
        logger.info("Disconnecting from Skincrib socket")
        await self.sio.disconnect()
        self._connection_established.clear()

    async def wait_for_connection(self, timeout: float) -> bool:
        """Wait for the namespace connection to be established."""
        try:
            await asyncio.wait_for(self._connection_established.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.error(f"Skincrib socket connection timeout after {timeout}s")
            return False

    async def call(self, event: str, payload: Dict[str, Any],
                   timeout: Optional[float] = None) -> ResponseEnvelope:
        """
        Emit a request and wait for its acknowledgement.

        Waits for the socket to be connected first; the whole call is
        bounded by the timeout.

        Raises:
            RemoteOperationError: the server acknowledged with an error
            RequestTimeoutError: no acknowledgement within the timeout
            TransportError: the socket is down or emitting failed
        """
        timeout = timeout if timeout is not None else self.request_timeout
        loop = asyncio.get_running_loop()
        started = loop.time()

        if not await self.wait_for_connection(timeout):
            self.requests_failed += 1
            raise TransportError(f"Not connected; cannot send '{event}'")

        ack: asyncio.Future = loop.create_future()

        def _on_ack(*args):
            if not ack.done():
                ack.set_result(args)

        self.requests_sent += 1
        logger.debug(f"Sending {event}")
        try:
            await self.sio.emit(event, payload, namespace=self.namespace, callback=_on_ack)
        except SocketIOError as e:
            self.requests_failed += 1
            raise TransportError(f"Failed to send '{event}': {e}") from e

        remaining = max(timeout - (loop.time() - started), 0)
        try:
            args = await asyncio.wait_for(ack, timeout=remaining)
        except asyncio.TimeoutError:
            self.requests_timed_out += 1
            raise RequestTimeoutError(
                f"No acknowledgement for '{event}' within {timeout}s", event=event
            )

        error, response = self._split_ack(args)
        if _is_error(error):
            self.requests_failed += 1
            message = error_message(error)
            logger.warning(f"{event} failed: {message}")
            raise RemoteOperationError(message, event=event)

        if isinstance(response, dict):
            return ResponseEnvelope.model_validate(response)
        return ResponseEnvelope(data=response)

    @staticmethod
    def _split_ack(args: Tuple[Any, ...]) -> Tuple[Any, Any]:
        error = args[0] if len(args) > 0 else None
        response = args[1] if len(args) > 1 else None
        return error, response

    def _make_dispatcher(self, event: str) -> Callable:
        def dispatch(*args):
            self.pushes_received += 1
            self._dispatch(event, *args)
        return dispatch

    def _dispatch(self, event: str, *args) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Error handling '{event}': {e}")

    def _on_connect(self) -> None:
        logger.info("Skincrib socket connected")
        self._connection_established.set()
        self._dispatch("connect")

    def _on_disconnect(self, *args) -> None:
        logger.warning("Skincrib socket disconnected")
        self._connection_established.clear()
        self._dispatch("disconnect", *args)

    def get_stats(self) -> dict:
        """Get transport statistics."""
        return {
            'connected': self.connected,
            'requests_sent': self.requests_sent,
            'requests_failed': self.requests_failed,
            'requests_timed_out': self.requests_timed_out,
            'pushes_received': self.pushes_received,
        }
