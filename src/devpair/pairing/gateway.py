"""Outbound pairing commands to the peer-networking service."""

import asyncio
import logging
from typing import Any, Optional, Protocol

import aiohttp

from devpair.config import DEFAULT_SERVICE_URL
from devpair.errors import CommandDispatchError, PairingErrorCode
from devpair.pairing.types import InitiateResponse

logger = logging.getLogger(__name__)


class CommandGateway(Protocol):
    """Protocol for the peer-networking service's pairing commands.

    Every call may fail independently. Apart from the session id returned by
    ``initiate``, results carry no state: progress arrives on the event stream.
    """

    async def initiate(self, peer_id: str) -> InitiateResponse:
        """Ask the service to start pairing with a peer."""
        ...

    async def accept(self, session_id: str) -> None:
        """Accept an inbound pairing request."""
        ...

    async def reject(self, session_id: str, peer_id: Optional[str]) -> None:
        """Reject an inbound pairing request."""
        ...

    async def verify_pin(self, session_id: str, matches: bool) -> None:
        """Report whether the user saw matching PINs."""
        ...

    async def cancel(self, session_id: str) -> None:
        """Abandon a pairing session."""
        ...


class HttpCommandGateway:
    """CommandGateway over the service's local HTTP API.

    Each command is a JSON POST to ``{base_url}/pairing/<command>``.
    Transport errors, timeouts and non-2xx responses raise
    CommandDispatchError.

    Usage:
        async with HttpCommandGateway("http://127.0.0.1:42715") as gateway:
            response = await gateway.initiate("peer-9")
    """

    REQUEST_TIMEOUT = 10.0  # seconds

    def __init__(
        self,
        base_url: str = DEFAULT_SERVICE_URL,
        request_timeout: float = REQUEST_TIMEOUT,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize gateway.

        Args:
            base_url: Service URL.
            request_timeout: Per-request timeout in seconds.
            http_session: Optional aiohttp session (for testing).
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = request_timeout
        self._session = http_session
        self._owns_session = http_session is None

    async def __aenter__(self):
        """Enter async context, creating session if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args):
        """Exit async context, closing owned session."""
        await self.close()

    @property
    def base_url(self) -> str:
        """The service URL."""
        return self._base_url

    async def initiate(self, peer_id: str) -> InitiateResponse:
        data = await self._post("initiate", {"peerId": peer_id})
        if not isinstance(data, dict):
            raise CommandDispatchError("Malformed initiate response")

        session_id = data.get("sessionId") or ""
        success = bool(data.get("success", bool(session_id)))
        if success and not session_id:
            raise CommandDispatchError("Initiate response has no sessionId")

        return InitiateResponse(
            session_id=session_id,
            success=success,
            error=data.get("error"),
        )

    async def accept(self, session_id: str) -> None:
        await self._post("accept", {"sessionId": session_id})

    async def reject(self, session_id: str, peer_id: Optional[str]) -> None:
        await self._post("reject", {"sessionId": session_id, "peerId": peer_id})

    async def verify_pin(self, session_id: str, matches: bool) -> None:
        await self._post(
            "verify-pin", {"sessionId": session_id, "pinMatches": matches}
        )

    async def cancel(self, session_id: str) -> None:
        await self._post("cancel", {"sessionId": session_id})

    async def _post(self, command: str, body: dict[str, Any]) -> Any:
        """Send one command.

        Args:
            command: Path segment under /pairing.
            body: JSON body.

        Returns:
            Decoded JSON response, or None for an empty body.

        Raises:
            CommandDispatchError: On any failure.
        """
        if self._session is None:
            raise RuntimeError("Gateway not initialized - use async context manager")

        url = f"{self._base_url}/pairing/{command}"
        try:
            async with self._session.post(
                url,
                json=body,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status == 404 and command == "initiate":
                    raise CommandDispatchError(
                        "Peer not found", code=PairingErrorCode.PEER_UNAVAILABLE
                    )
                if resp.status >= 300:
                    text = await resp.text()
                    raise CommandDispatchError(
                        f"{command} returned {resp.status}: {text[:100]}"
                    )
                if resp.status == 204:
                    return None
                return await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise CommandDispatchError(
                f"{command} timed out after {self._timeout}s",
                code=PairingErrorCode.NETWORK_TIMEOUT,
            ) from None
        except aiohttp.ClientError as e:
            raise CommandDispatchError(f"{command} failed: {e}") from e
        except ValueError as e:
            # Body was not valid JSON
            raise CommandDispatchError(f"{command} returned invalid JSON: {e}") from e

    async def close(self) -> None:
        """Close the HTTP session if owned."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None
