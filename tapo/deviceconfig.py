"""Configuration for connecting directly to a device.

A :class:`DeviceConfig` holds everything needed to reach a single device:

>>> from tapo import Credentials, DeviceConfig
>>> config = DeviceConfig(
>>>     "192.168.1.100",
>>>     credentials=Credentials("user@example.com", "great_password"),
>>> )
>>> config.to_dict()
{'host': '192.168.1.100', 'timeout': 5, 'https': False, 'verify_signature': False}

Credentials are never serialized.  Store :attr:`credentials_hash` instead,
which is available from the transport once it has been created.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Self

from aiohttp import ClientSession
from mashumaro import field_options
from mashumaro.config import BaseConfig
from mashumaro.types import SerializationStrategy

from .credentials import Credentials
from .json import DataClassJSONMixin

_LOGGER = logging.getLogger(__name__)


class ProtocolVariant(Enum):
    """Authentication variant spoken by a device."""

    Klap = "KLAP"
    Passthrough = "PASSTHROUGH"
    Unknown = "UNKNOWN"


class _DoNotSerialize(SerializationStrategy):
    def serialize(self, value: Any) -> None:
        return None

    def deserialize(self, value: Any) -> None:
        return None


class _DeviceConfigBaseMixin(DataClassJSONMixin):
    """Base class for serialization mixin."""

    class Config(BaseConfig):
        """Serialization config."""

        omit_none = True


@dataclass
class DeviceConfig(_DeviceConfigBaseMixin):
    """Class to represent paramaters that determine how to connect to devices."""

    DEFAULT_TIMEOUT = 5
    #: IP address or hostname
    host: str
    #: Timeout in seconds for every network operation
    timeout: int | None = DEFAULT_TIMEOUT
    #: Override the default http port to support port forwarding
    port_override: int | None = None
    #: Credentials for the device, never serialized
    credentials: Credentials | None = field(
        default=None,
        compare=False,
        metadata=field_options(serialization_strategy=_DoNotSerialize()),
    )
    #: Credentials hash for the device.
    #: If credentials are also supplied they take precendence over credentials_hash.
    credentials_hash: str | None = None
    #: True to talk to the device over https
    https: bool = False
    #: True to check the signature on device responses before decrypting them
    verify_signature: bool = False

    #: Set a custom http_client for the device to use.
    http_client: ClientSession | None = field(
        default=None,
        compare=False,
        metadata=field_options(serialization_strategy=_DoNotSerialize()),
    )

    def __pre_serialize__(self) -> Self:
        return replace(self, http_client=None, credentials=None)

    @property
    def scheme(self) -> str:
        """Return the url scheme for the device."""
        return "https" if self.https else "http"
