"""Discover Tapo devices on the local network.

The main entry point is :func:`Discover.discover()`, which broadcasts a single
discovery packet on UDP port 20002 and returns the addresses of every device
that answered within the timeout:

>>> from tapo import Discover
>>>
>>> found_devices = await Discover.discover()
>>> found_devices
['192.168.1.100', '192.168.1.101']

Discovery can be targeted to a specific broadcast address instead of
the default 255.255.255.255:

>>> found_devices = await Discover.discover(target="192.168.1.255")

The discovery packet is the tdp probe understood by newer TP-Link devices,
a 16 byte header followed by a json body carrying an RSA public key::

    version:u8=2 msg_type:u8=0 op_code:u16=1 msg_size:u16 flags:u8=17
    padding:u8=0 device_serial:u32 crc32:u32

All fields are big endian.  The crc32 is calculated over the whole packet
with the crc field holding a fixed placeholder and then patched in.
"""

from __future__ import annotations

import asyncio
import binascii
import logging
import secrets
import socket
import struct
from asyncio import timeout as asyncio_timeout
from asyncio.transports import DatagramTransport
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypedDict, cast

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .exceptions import DiscoveryError
from .json import dumps_bytes as json_dumps_bytes
from .json import loads as json_loads

_LOGGER = logging.getLogger(__name__)


class DiscoveredMeta(TypedDict):
    """Meta info about discovery response."""

    ip: str
    port: int


class DiscoveredRaw(TypedDict):
    """Raw discovery response of a single device."""

    meta: DiscoveredMeta
    discovery_response: dict | None


OnDiscoveredRawCallable = Callable[[DiscoveredRaw], None]


def generate_public_key_pem(key_size: int = 1024) -> str:
    """Return the PEM of the public half of a freshly generated RSA key."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@dataclass
class DiscoveryPacket:
    """A tdp discovery packet."""

    HEADER = struct.Struct(">BBHHBBII")
    HEADER_SIZE = HEADER.size
    CRC_PLACEHOLDER = 0x5A6B7C8D

    version: int
    msg_type: int
    op_code: int
    msg_size: int
    flags: int
    padding: int
    device_serial: int
    crc32: int
    body: bytes

    @classmethod
    def build(cls, body: bytes, device_serial: int | None = None) -> DiscoveryPacket:
        """Build a probe packet for body with a random device serial."""
        if device_serial is None:
            device_serial = int.from_bytes(secrets.token_bytes(4), "big")
        packet = cls(
            version=2,
            msg_type=0,
            op_code=1,  # probe
            msg_size=len(body),
            flags=17,
            padding=0,
            device_serial=device_serial,
            crc32=cls.CRC_PLACEHOLDER,
            body=body,
        )
        packet.crc32 = packet.expected_crc()
        return packet

    @classmethod
    def parse(cls, data: bytes, *, verify_crc: bool = False) -> DiscoveryPacket:
        """Parse a packet received from a device."""
        if len(data) < cls.HEADER_SIZE:
            raise DiscoveryError(f"Discovery packet too short: {len(data)} bytes")
        (
            version,
            msg_type,
            op_code,
            msg_size,
            flags,
            padding,
            device_serial,
            crc,
        ) = cls.HEADER.unpack_from(data)
        packet = cls(
            version=version,
            msg_type=msg_type,
            op_code=op_code,
            msg_size=msg_size,
            flags=flags,
            padding=padding,
            device_serial=device_serial,
            crc32=crc,
            body=bytes(data[cls.HEADER_SIZE :]),
        )
        if verify_crc and packet.expected_crc() != crc:
            raise DiscoveryError(
                f"Discovery packet crc mismatch: {crc:#010x} != "
                + f"{packet.expected_crc():#010x}"
            )
        return packet

    def expected_crc(self) -> int:
        """Return the crc32 the packet should carry."""
        header = self.HEADER.pack(
            self.version,
            self.msg_type,
            self.op_code,
            self.msg_size,
            self.flags,
            self.padding,
            self.device_serial,
            self.CRC_PLACEHOLDER,
        )
        return binascii.crc32(header + self.body)

    def to_bytes(self) -> bytes:
        """Return the packet as sent on the wire."""
        return (
            self.HEADER.pack(
                self.version,
                self.msg_type,
                self.op_code,
                self.msg_size,
                self.flags,
                self.padding,
                self.device_serial,
                self.crc32,
            )
            + self.body
        )

    def json(self) -> dict:
        """Return the decoded json body."""
        return json_loads(self.body)


def generate_query() -> bytes:
    """Return a discovery probe carrying a fresh RSA public key."""
    body = json_dumps_bytes({"params": {"rsa_key": generate_public_key_pem()}})
    return DiscoveryPacket.build(body).to_bytes()


class _DiscoverProtocol(asyncio.DatagramProtocol):
    """Implementation of the discovery protocol handler.

    This is internal class, use :func:`Discover.discover`: instead.
    """

    DISCOVERY_START_TIMEOUT = 1

    def __init__(
        self,
        *,
        query: bytes,
        target: str = "255.255.255.255",
        port: int | None = None,
        discovery_timeout: float = 5,
        interface: str | None = None,
        on_discovered_raw: OnDiscoveredRawCallable | None = None,
    ) -> None:
        self.transport: DatagramTransport | None = None
        self.query = query
        self.target = target
        self.discovery_port = port or Discover.DISCOVERY_PORT
        self.discovery_timeout = discovery_timeout
        self.interface = interface
        self.on_discovered_raw = on_discovered_raw

        self.discovered: list[str] = []
        self.errors: list[Exception] = []
        self._started_event = asyncio.Event()
        self._closed_event = asyncio.Event()

    def connection_made(self, transport: DatagramTransport) -> None:  # type: ignore[override]
        """Set socket options for broadcasting and send the probe."""
        self.transport = cast(DatagramTransport, transport)

        sock = self.transport.get_extra_info("socket")
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

        # windows does not support SO_BINDTODEVICE
        if self.interface is not None and hasattr(socket, "SO_BINDTODEVICE"):
            sock.setsockopt(
                socket.SOL_SOCKET, socket.SO_BINDTODEVICE, self.interface.encode()
            )

        _LOGGER.debug("[DISCOVERY] Sending probe to %s:%s", *self.target_addr)
        try:
            self.transport.sendto(self.query, self.target_addr)
        except OSError as ex:
            self.error_received(ex)
        self._started_event.set()

    @property
    def target_addr(self) -> tuple[str, int]:
        return self.target, self.discovery_port

    async def wait_for_discovery_to_complete(self) -> None:
        """Listen until the discovery timeout elapses or the socket closes."""
        # Give some time for connection_made event to be received
        try:
            async with asyncio_timeout(self.DISCOVERY_START_TIMEOUT):
                await self._started_event.wait()
        except TimeoutError as ex:
            raise DiscoveryError(
                "Discovery socket did not start within "
                + f"{self.DISCOVERY_START_TIMEOUT} seconds"
            ) from ex
        try:
            async with asyncio_timeout(self.discovery_timeout):
                await self._closed_event.wait()
        except TimeoutError:
            _LOGGER.debug(
                "[DISCOVERY] Listened for %s seconds", self.discovery_timeout
            )

    def datagram_received(
        self,
        data: bytes,
        addr: tuple[str, int],
    ) -> None:
        """Handle discovery responses."""
        ip, port = addr[:2]
        # Prevent multiple entries due to retransmissions
        if ip in self.discovered:
            return
        self.discovered.append(ip)
        _LOGGER.debug("[DISCOVERY] Got response from %s:%s", ip, port)

        if self.on_discovered_raw is not None:
            try:
                info = DiscoveryPacket.parse(data).json()
            except (DiscoveryError, ValueError) as ex:
                _LOGGER.debug("Got invalid response from device %s: %s", ip, ex)
                info = None
            self.on_discovered_raw(
                {"discovery_response": info, "meta": {"ip": ip, "port": port}}
            )

    def error_received(self, ex: Exception) -> None:
        """Handle asyncio.Protocol errors."""
        _LOGGER.error("Got error: %s", ex)
        self.errors.append(ex)

    def connection_lost(self, ex: Exception | None) -> None:
        """Stop listening when the socket closes."""
        self._closed_event.set()


class Discover:
    """Class for discovering devices."""

    DISCOVERY_PORT = 20002
    DEFAULT_TARGET = "255.255.255.255"

    @staticmethod
    async def discover(
        *,
        target: str = DEFAULT_TARGET,
        discovery_timeout: float = 5,
        port: int | None = None,
        interface: str | None = None,
        on_discovered_raw: OnDiscoveredRawCallable | None = None,
    ) -> list[str]:
        """Discover devices answering the tdp probe.

        Sends one discovery packet to target:20002 and collects the address
        of every responder until discovery_timeout elapses.

        :param target: The target address where to send the broadcast discovery
         query if multi-homing (e.g. 192.168.xxx.255).
        :param discovery_timeout: Seconds to listen for responses, defaults to 5
        :param port: Override the discovery port
        :param interface: Bind to specific interface
        :param on_discovered_raw: Optional callback with the decoded response
            of each device
        :return: list of ip addresses in the order they responded
        :raises DiscoveryError: if the discovery socket cannot be opened or
            does not start.  Errors sending the probe or receiving responses
            are only logged and the devices found so far are returned.
        """
        query = generate_query()
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                lambda: _DiscoverProtocol(
                    query=query,
                    target=target,
                    port=port,
                    discovery_timeout=discovery_timeout,
                    interface=interface,
                    on_discovered_raw=on_discovered_raw,
                ),
                local_addr=("0.0.0.0", 0),  # noqa: S104
            )
        except OSError as ex:
            raise DiscoveryError(f"Unable to open discovery socket: {ex}") from ex
        protocol = cast(_DiscoverProtocol, protocol)

        try:
            _LOGGER.debug("Waiting %s seconds for responses...", discovery_timeout)
            await protocol.wait_for_discovery_to_complete()
        finally:
            transport.close()

        _LOGGER.debug("Discovered %s devices", len(protocol.discovered))

        return list(protocol.discovered)
