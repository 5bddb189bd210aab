"""Tests for HttpCommandGateway."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from devpair.config import DEFAULT_SERVICE_URL
from devpair.errors import CommandDispatchError, PairingErrorCode
from devpair.pairing.gateway import HttpCommandGateway
from devpair.pairing.types import InitiateResponse


def make_response(status: int = 200, json_data=None, text: str = "") -> AsyncMock:
    response = AsyncMock()
    response.status = status
    response.__aenter__.return_value = response
    response.__aexit__.return_value = None
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    return response


def make_session(response=None) -> MagicMock:
    session = MagicMock(spec=aiohttp.ClientSession)
    session.post = MagicMock(return_value=response or make_response(204))
    session.close = AsyncMock()
    return session


class TestGatewayInit:
    """Tests for gateway construction."""

    def test_defaults(self):
        """Gateway talks to the local service by default."""
        gateway = HttpCommandGateway()

        assert gateway.base_url == DEFAULT_SERVICE_URL

    def test_strips_trailing_slash(self):
        """Base URL trailing slash is stripped."""
        gateway = HttpCommandGateway("http://localhost:9000/")

        assert gateway.base_url == "http://localhost:9000"

    @pytest.mark.asyncio
    async def test_requires_context(self):
        """Commands fail before a session exists."""
        gateway = HttpCommandGateway()

        with pytest.raises(RuntimeError):
            await gateway.accept("s1")


class TestGatewayContextManager:
    """Tests for async context manager."""

    @pytest.mark.asyncio
    async def test_creates_and_closes_owned_session(self):
        """Context manager owns a session it creates."""
        gateway = HttpCommandGateway()

        async with gateway as g:
            assert isinstance(g._session, aiohttp.ClientSession)

        assert gateway._session is None

    @pytest.mark.asyncio
    async def test_does_not_close_external_session(self):
        """An injected session is left open."""
        session = make_session()

        async with HttpCommandGateway(http_session=session):
            pass

        session.close.assert_not_called()


class TestGatewayCommands:
    """Tests for command requests."""

    @pytest.mark.asyncio
    async def test_initiate(self):
        """initiate posts the peer id and parses the session id."""
        session = make_session(make_response(200, {"sessionId": "s1", "success": True}))
        gateway = HttpCommandGateway("http://svc", http_session=session)

        response = await gateway.initiate("peer-9")

        assert response == InitiateResponse(session_id="s1")
        args, kwargs = session.post.call_args
        assert args[0] == "http://svc/pairing/initiate"
        assert kwargs["json"] == {"peerId": "peer-9"}
        assert kwargs["timeout"].total == HttpCommandGateway.REQUEST_TIMEOUT

    @pytest.mark.asyncio
    async def test_initiate_success_implied_by_session_id(self):
        """A response with only a session id counts as success."""
        session = make_session(make_response(200, {"sessionId": "s1"}))
        gateway = HttpCommandGateway(http_session=session)

        response = await gateway.initiate("peer-9")

        assert response.success is True

    @pytest.mark.asyncio
    async def test_initiate_refused(self):
        """An unsuccessful response is returned, not raised."""
        session = make_session(
            make_response(200, {"success": False, "error": "Peer is busy"})
        )
        gateway = HttpCommandGateway(http_session=session)

        response = await gateway.initiate("peer-9")

        assert response.success is False
        assert response.error == "Peer is busy"

    @pytest.mark.asyncio
    async def test_initiate_without_session_id(self):
        """A successful response must carry a session id."""
        session = make_session(make_response(200, {"success": True}))
        gateway = HttpCommandGateway(http_session=session)

        with pytest.raises(CommandDispatchError):
            await gateway.initiate("peer-9")

    @pytest.mark.asyncio
    async def test_initiate_unknown_peer(self):
        """404 on initiate means the peer is unavailable."""
        session = make_session(make_response(404, text="no such peer"))
        gateway = HttpCommandGateway(http_session=session)

        with pytest.raises(CommandDispatchError) as exc_info:
            await gateway.initiate("peer-9")

        assert exc_info.value.code is PairingErrorCode.PEER_UNAVAILABLE

    @pytest.mark.parametrize(
        "call,path,body",
        [
            (lambda g: g.accept("s1"), "accept", {"sessionId": "s1"}),
            (
                lambda g: g.reject("s1", "peer-9"),
                "reject",
                {"sessionId": "s1", "peerId": "peer-9"},
            ),
            (
                lambda g: g.verify_pin("s1", False),
                "verify-pin",
                {"sessionId": "s1", "pinMatches": False},
            ),
            (lambda g: g.cancel("s1"), "cancel", {"sessionId": "s1"}),
        ],
    )
    @pytest.mark.asyncio
    async def test_session_commands(self, call, path, body):
        """Each command posts its JSON body to its own path."""
        session = make_session()
        gateway = HttpCommandGateway("http://svc", http_session=session)

        assert await call(gateway) is None

        args, kwargs = session.post.call_args
        assert args[0] == f"http://svc/pairing/{path}"
        assert kwargs["json"] == body


class TestGatewayErrors:
    """Tests for error mapping."""

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Non-2xx responses raise CommandDispatchError."""
        session = make_session(make_response(500, text="internal error"))
        gateway = HttpCommandGateway(http_session=session)

        with pytest.raises(CommandDispatchError) as exc_info:
            await gateway.accept("s1")

        assert exc_info.value.code is PairingErrorCode.COMMAND_DISPATCH_ERROR
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_404_on_other_commands(self):
        """404 outside initiate is a plain dispatch error."""
        session = make_session(make_response(404))
        gateway = HttpCommandGateway(http_session=session)

        with pytest.raises(CommandDispatchError) as exc_info:
            await gateway.cancel("s1")

        assert exc_info.value.code is PairingErrorCode.COMMAND_DISPATCH_ERROR

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts map to NETWORK_TIMEOUT."""
        session = make_session()
        session.post.side_effect = asyncio.TimeoutError()
        gateway = HttpCommandGateway(http_session=session, request_timeout=1.0)

        with pytest.raises(CommandDispatchError) as exc_info:
            await gateway.verify_pin("s1", True)

        assert exc_info.value.code is PairingErrorCode.NETWORK_TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Transport errors raise CommandDispatchError."""
        session = make_session()
        session.post.side_effect = aiohttp.ClientConnectionError("refused")
        gateway = HttpCommandGateway(http_session=session)

        with pytest.raises(CommandDispatchError) as exc_info:
            await gateway.accept("s1")

        assert exc_info.value.code is PairingErrorCode.COMMAND_DISPATCH_ERROR

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """An unparseable body raises CommandDispatchError."""
        response = make_response(200)
        response.json.side_effect = ValueError("Expecting value")
        gateway = HttpCommandGateway(http_session=make_session(response))

        with pytest.raises(CommandDispatchError):
            await gateway.initiate("peer-9")
