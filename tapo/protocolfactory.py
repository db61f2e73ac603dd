"""Module for creating the protocol matching a detected variant."""

from __future__ import annotations

import logging

from .deviceconfig import DeviceConfig, ProtocolVariant
from .exceptions import ProtocolUndeterminedError, UnsupportedProtocolError
from .protocols import SmartProtocol
from .transports import KlapTransport

_LOGGER = logging.getLogger(__name__)


def get_protocol(config: DeviceConfig, variant: ProtocolVariant) -> SmartProtocol:
    """Return the protocol for the variant or raise if it is not supported."""
    if variant is ProtocolVariant.Klap:
        return SmartProtocol(transport=KlapTransport(config=config))

    if variant is ProtocolVariant.Passthrough:
        _LOGGER.debug("Device %s uses the passthrough protocol", config.host)
        raise UnsupportedProtocolError(
            f"Device {config.host} uses the passthrough protocol "
            + "which is not supported",
            host=config.host,
            protocol=variant,
        )

    raise ProtocolUndeterminedError(
        f"Unable to detect the protocol of device {config.host}", host=config.host
    )
