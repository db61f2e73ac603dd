"""Base class for protocols and helpers to keep device data out of the logs."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

if TYPE_CHECKING:
    from tapo.deviceconfig import DeviceConfig
    from tapo.transports import BaseTransport

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


def redact_data(data: _T, redactors: dict[str, Callable[[Any], Any] | None]) -> _T:
    """Redact sensitive data for logging."""
    if not isinstance(data, (dict, list)):
        return data

    if isinstance(data, list):
        return cast(_T, [redact_data(val, redactors) for val in data])

    redacted = {**data}

    for key, value in redacted.items():
        if value is None:
            continue
        if isinstance(value, str) and not value:
            continue
        if key in redactors:
            if redactor := redactors[key]:
                try:
                    redacted[key] = redactor(value)
                except Exception:
                    redacted[key] = "**REDACTEX**"
            else:
                redacted[key] = "**REDACTED**"
        elif isinstance(value, (dict, list)):
            redacted[key] = redact_data(value, redactors)

    return cast(_T, redacted)


def mask_mac(mac: str) -> str:
    """Return mac address with last three octets blanked."""
    delim = ":" if ":" in mac else "-"
    return f"{mac[:8]}{delim}00{delim}00{delim}00"


class BaseProtocol(ABC):
    """Base class for all Tapo communication."""

    def __init__(
        self,
        *,
        transport: BaseTransport,
    ) -> None:
        """Create a protocol object."""
        self._transport = transport

    @property
    def _host(self) -> str:
        return self._transport._host

    @property
    def config(self) -> DeviceConfig:
        """Return the connection parameters the device is using."""
        return self._transport.config

    @property
    def transport(self) -> BaseTransport:
        """Return the underlying transport."""
        return self._transport

    @abstractmethod
    async def send(self, method: str, params: dict | None = None) -> dict:
        """Send a command and return its result.  Abstract method to be overriden."""

    @abstractmethod
    async def close(self) -> None:
        """Close the protocol.  Abstract method to be overriden."""
