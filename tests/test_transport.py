"""
Unit tests for the Socket.IO transport.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from socketio.exceptions import ConnectionError as SocketConnectionError, SocketIOError

from skincrib.errors import RemoteOperationError, RequestTimeoutError, TransportError
from skincrib.transport import SocketTransport


@pytest.fixture
def mock_sio():
    """Create a mock python-socketio AsyncClient."""
    sio = MagicMock()
    sio.connect = AsyncMock()
    sio.disconnect = AsyncMock()
    sio.emit = AsyncMock()
    return sio


def registered_handler(sio, event):
    for call in sio.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"No handler registered for {event}")


def acknowledge_with(*ack_args):
    async def emit(event, data, namespace=None, callback=None):
        callback(*ack_args)
    return emit


class TestSocketTransport:
    """Test SocketTransport functionality."""

    def test_init_registers_connection_handlers(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)

        assert transport.url == "https://test.example.com"
        assert transport.namespace == "/merchants"
        assert transport.connected is False
        registered_handler(mock_sio, "connect")
        registered_handler(mock_sio, "disconnect")

    def test_socket_always_reconnects(self):
        with patch("skincrib.transport.socketio.AsyncClient") as factory:
            SocketTransport("https://test.example.com")

        factory.assert_called_once_with(reconnection=True, logger=False)

    @pytest.mark.asyncio
    async def test_connect(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio, request_timeout=5.0)

        await transport.connect()

        mock_sio.connect.assert_awaited_once_with(
            "https://test.example.com",
            namespaces=["/merchants"],
            transports=["websocket"],
            wait_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_connect_failure(self, mock_sio):
        mock_sio.connect.side_effect = SocketConnectionError("refused")
        transport = SocketTransport("https://test.example.com", sio=mock_sio)

        with pytest.raises(TransportError, match="refused"):
            await transport.connect()

    @pytest.mark.asyncio
    async def test_connect_and_disconnect_events(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        events = []
        transport.on("connect", lambda: events.append("connect"))
        transport.on("disconnect", lambda *args: events.append("disconnect"))

        registered_handler(mock_sio, "connect")()
        assert transport.connected is True

        registered_handler(mock_sio, "disconnect")("transport close")
        assert transport.connected is False
        assert events == ["connect", "disconnect"]

    @pytest.mark.asyncio
    async def test_call_success(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        transport._on_connect()
        mock_sio.emit.side_effect = acknowledge_with(None, {"data": {"inventory": []}, "message": "ok"})

        response = await transport.call("user:loadInventory", {"steamid": "S"})

        assert response.data == {"inventory": []}
        assert response.message == "ok"
        args, kwargs = mock_sio.emit.call_args
        assert args == ("user:loadInventory", {"steamid": "S"})
        assert kwargs["namespace"] == "/merchants"
        assert transport.get_stats()["requests_sent"] == 1

    @pytest.mark.asyncio
    async def test_call_with_empty_error_object(self, mock_sio):
        """An empty error object means success."""
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        transport._on_connect()
        mock_sio.emit.side_effect = acknowledge_with({}, {"data": [1, 2]})

        response = await transport.call("p2p:listings:get", {})

        assert response.data == [1, 2]

    @pytest.mark.asyncio
    async def test_call_server_error(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        transport._on_connect()
        mock_sio.emit.side_effect = acknowledge_with({"message": "Listing not found."})

        with pytest.raises(RemoteOperationError, match="Listing not found.") as exc_info:
            await transport.call("p2p:listings:purchase", {"id": "x"})

        assert exc_info.value.event == "p2p:listings:purchase"
        assert transport.get_stats()["requests_failed"] == 1

    @pytest.mark.asyncio
    async def test_call_timeout(self, mock_sio):
        """A request never acknowledged fails instead of hanging."""
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        transport._on_connect()

        with pytest.raises(RequestTimeoutError):
            await transport.call("p2p:listings:confirm", {"id": "x"}, timeout=0.05)

        assert transport.get_stats()["requests_timed_out"] == 1

    @pytest.mark.asyncio
    async def test_call_when_not_connected(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)

        with pytest.raises(TransportError):
            await transport.call("authenticate", {"key": "k"}, timeout=0.05)

        mock_sio.emit.assert_not_called()

    @pytest.mark.asyncio
    async def test_call_emit_failure(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        transport._on_connect()
        mock_sio.emit.side_effect = SocketIOError("bad namespace")

        with pytest.raises(TransportError, match="bad namespace"):
            await transport.call("authenticate", {"key": "k"})

    def test_push_dispatch(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        first, second = MagicMock(), MagicMock()
        transport.on("p2p:listings:new", first)
        transport.on("p2p:listings:new", second)

        registered_handler(mock_sio, "p2p:listings:new")({"id": "A", "price": 1})

        first.assert_called_once_with({"id": "A", "price": 1})
        second.assert_called_once_with({"id": "A", "price": 1})
        assert transport.get_stats()["pushes_received"] == 1
        # one dispatcher per event name
        assert [c.args[0] for c in mock_sio.on.call_args_list].count("p2p:listings:new") == 1

    def test_handler_error_is_isolated(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        transport.on("p2p:listings:removed", failing)
        transport.on("p2p:listings:removed", healthy)

        registered_handler(mock_sio, "p2p:listings:removed")({"id": "A"})

        healthy.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect(self, mock_sio):
        transport = SocketTransport("https://test.example.com", sio=mock_sio)
        transport._on_connect()

        await transport.disconnect()

        mock_sio.disconnect.assert_awaited_once()
        assert transport.connected is False
