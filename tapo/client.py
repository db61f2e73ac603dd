"""Client for a single Tapo device.

The client ties detection and the session together:

>>> from tapo import Client
>>> async with Client("192.168.1.100", "user@example.com", "password") as client:
>>>     await client.authenticate()
>>>     info = await client.request("get_device_info")
>>>     print(info["model"])
P110

:meth:`Client.request` authenticates on first use, so calling
:meth:`Client.authenticate` is only needed to fail early on bad credentials.
Interpreting the returned json is left to the caller.

A client holds a single session.  Requests on one client must not be issued
concurrently as every request consumes the next sequence number of the session.
"""

from __future__ import annotations

import logging
from typing import Any

from .credentials import Credentials
from .deviceconfig import DeviceConfig, ProtocolVariant
from .protocoldetector import detect_protocol
from .protocolfactory import get_protocol
from .protocols import SmartProtocol

_LOGGER = logging.getLogger(__name__)


class Client:
    """Authenticated connection to a single Tapo device."""

    def __init__(
        self,
        host: str | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        config: DeviceConfig | None = None,
    ) -> None:
        if config is None:
            if host is None:
                raise TypeError("Either host or config must be given")
            credentials = (
                Credentials(username, password)
                if username is not None and password is not None
                else None
            )
            config = DeviceConfig(host, credentials=credentials)
        self._config = config
        self._protocol: SmartProtocol | None = None
        self._variant: ProtocolVariant | None = None

    @property
    def host(self) -> str:
        """Return the host of the device."""
        return self._config.host

    @property
    def config(self) -> DeviceConfig:
        """Return the connection parameters of the device."""
        return self._config

    @property
    def protocol_variant(self) -> ProtocolVariant | None:
        """Return the detected protocol variant, None before detection."""
        return self._variant

    @property
    def authenticated(self) -> bool:
        """Return True if a live session exists."""
        return self._protocol is not None and self._protocol.authenticated

    async def _get_protocol(self) -> SmartProtocol:
        if self._protocol is None:
            self._variant = await detect_protocol(self._config)
            self._protocol = get_protocol(self._config, self._variant)
        return self._protocol

    async def authenticate(self) -> None:
        """Detect the protocol and establish a session with the device.

        :raises UnsupportedProtocolError: if the device uses the passthrough
            protocol
        :raises ProtocolUndeterminedError: if the host is not a tapo device
        :raises AuthenticationError: if the handshake fails
        """
        protocol = await self._get_protocol()
        await protocol.ensure_authenticated()

    async def request(self, method: str, params: dict | None = None) -> dict:
        """Send a command to the device and return its result."""
        protocol = await self._get_protocol()
        return await protocol.send(method, params)

    async def close(self) -> None:
        """Close the session and release the http connection."""
        protocol, self._protocol = self._protocol, None
        if protocol:
            await protocol.close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_t: Any, exc_v: Any, exc_tb: Any) -> None:
        await self.close()
