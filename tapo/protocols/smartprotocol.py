"""Implementation of the Tapo SMART request protocol.

Requests are json objects of the form ``{"method": ..., "params": ...}`` and
responses carry an ``error_code`` next to the ``result``.  The protocol owns
the session lifecycle: it authenticates on first use and, when the device
rejects the session, re-authenticates and resends the request exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pprint import pformat as pf
from typing import TYPE_CHECKING, Any

from ..exceptions import (
    RequestError,
    SessionExpiredError,
    SmartErrorCode,
    TapoException,
)
from ..json import dumps as json_dumps
from .protocol import BaseProtocol, mask_mac, redact_data

if TYPE_CHECKING:
    from ..transports import BaseTransport


_LOGGER = logging.getLogger(__name__)


REDACTORS: dict[str, Callable[[Any], Any] | None] = {
    "latitude": lambda x: 0,
    "longitude": lambda x: 0,
    "device_id": lambda x: "REDACTED_" + x[9::],
    "nickname": lambda x: "I01BU0tFRF9OQU1FIw==" if x else "",
    "mac": mask_mac,
    "ssid": lambda x: "I01BU0tFRF9TU0lEIw==" if x else "",
    "bssid": lambda _: "000000000000",
    "oem_id": lambda x: "REDACTED_" + x[9::],
    "hw_id": lambda x: "REDACTED_" + x[9::],
    "fw_id": lambda x: "REDACTED_" + x[9::],
    "ip": lambda x: x,  # don't redact but keep listed here for debugging
}


class SmartProtocol(BaseProtocol):
    """Class for the Tapo SMART protocol."""

    #: Number of times a request is resent after the device rejected the session
    SESSION_EXPIRED_RETRIES = 1

    def __init__(
        self,
        *,
        transport: BaseTransport,
    ) -> None:
        """Create a protocol object."""
        super().__init__(transport=transport)
        self._redact_data = True

    @property
    def authenticated(self) -> bool:
        """Return True if the transport holds a live session."""
        return self._transport.authenticated

    async def ensure_authenticated(self) -> None:
        """Authenticate with the device unless a live session exists."""
        if not self._transport.authenticated:
            await self._transport.perform_handshake()

    def get_smart_request(self, method: str, params: dict | None = None) -> str:
        """Get a request message as a string."""
        request: dict[str, Any] = {"method": method}
        if params is not None:
            request["params"] = params
        return json_dumps(request)

    async def send(self, method: str, params: dict | None = None) -> dict:
        """Send a command to the device and return its result."""
        response = await self.query(self.get_smart_request(method, params))
        return response.get("result") or {}

    async def query(self, request: str | dict) -> dict:
        """Send a raw request and return the full response.

        Only an expired session is recovered from; it is retried once after a
        new handshake.  Any other error propagates to the caller.
        """
        if isinstance(request, dict):
            request = json_dumps(request)

        for retry in range(self.SESSION_EXPIRED_RETRIES + 1):
            try:
                await self.ensure_authenticated()
                return await self._execute_query(request)
            except SessionExpiredError as ex:
                if retry >= self.SESSION_EXPIRED_RETRIES:
                    _LOGGER.debug(
                        "Giving up on %s after %s retries", self._host, retry
                    )
                    raise RequestError(
                        f"Device {self._host} rejected the session again "
                        + "after re-authenticating",
                        status_code=ex.status_code,
                    ) from ex
                _LOGGER.debug(
                    "Session with %s expired, re-authenticating: %s", self._host, ex
                )

        # make mypy happy, this should never be reached..
        raise TapoException("Query reached somehow to unreachable")

    async def _execute_query(self, request: str) -> dict:
        debug_enabled = _LOGGER.isEnabledFor(logging.DEBUG)
        if debug_enabled:
            _LOGGER.debug("%s >> %s", self._host, request)

        response = await self._transport.send(request)

        if debug_enabled:
            data = redact_data(response, REDACTORS) if self._redact_data else response
            _LOGGER.debug("%s << %s", self._host, pf(data))

        self._handle_response_error_code(response, request)
        return response

    def _handle_response_error_code(self, resp_dict: dict, request: str) -> None:
        error_code_raw = resp_dict.get("error_code")
        if error_code_raw == SmartErrorCode.SUCCESS:
            return

        if not isinstance(error_code_raw, int):
            raise RequestError(
                f"Device {self._host} returned a response without an error code "
                + f"to {request}"
            )

        error_code = SmartErrorCode.from_int(error_code_raw)
        msg = f"Device {self._host} returned error code {error_code} to {request}"
        _LOGGER.debug(msg)
        raise RequestError(msg, error_code=error_code)

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()

    async def __aenter__(self) -> SmartProtocol:
        return self

    async def __aexit__(self, exc_t: Any, exc_v: Any, exc_tb: Any) -> None:
        await self.close()
