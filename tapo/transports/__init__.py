"""Package containing the supported transports."""

from .basetransport import BaseTransport
from .klaptransport import KlapCipher, KlapSession, KlapTransport, TransportState

__all__ = [
    "BaseTransport",
    "KlapCipher",
    "KlapSession",
    "KlapTransport",
    "TransportState",
]
