"""Python interface for TP-Link Tapo smart plugs.

Devices are found with :class:`Discover` and controlled through a
:class:`Client`, which detects the protocol, performs the KLAP handshake and
sends encrypted commands::

>>> from tapo import Client, Discover
>>> hosts = await Discover.discover()
>>> async with Client(hosts[0], "user@example.com", "password") as client:
>>>     await client.request("set_device_info", {"device_on": True})

Errors are raised as `TapoException` subclasses and are expected
to be handled by the user of the library.
"""

from tapo.client import Client
from tapo.credentials import Credentials
from tapo.deviceconfig import DeviceConfig, ProtocolVariant
from tapo.discover import Discover, DiscoveryPacket
from tapo.exceptions import (
    AuthenticationError,
    DecryptionError,
    DeviceError,
    DiscoveryError,
    ProtocolUndeterminedError,
    RequestError,
    SessionExpiredError,
    SmartErrorCode,
    TapoException,
    TimeoutError,
    UnsupportedProtocolError,
)
from tapo.protocoldetector import detect_protocol
from tapo.protocols import BaseProtocol, SmartProtocol
from tapo.transports import KlapCipher, KlapTransport
from tapo.version import __version__

__all__ = [
    "__version__",
    "Client",
    "Discover",
    "DiscoveryPacket",
    "detect_protocol",
    "BaseProtocol",
    "SmartProtocol",
    "KlapCipher",
    "KlapTransport",
    "ProtocolVariant",
    "Credentials",
    "DeviceConfig",
    "TapoException",
    "AuthenticationError",
    "DecryptionError",
    "DeviceError",
    "DiscoveryError",
    "ProtocolUndeterminedError",
    "RequestError",
    "SessionExpiredError",
    "SmartErrorCode",
    "TimeoutError",
    "UnsupportedProtocolError",
]
