"""Detect which authentication variant a device speaks.

An unencrypted ``get_device_info`` request is sent to the device root:

* KLAP devices reject it with a 401, or answer with error code 1003
  (method not found).
* Devices using the passthrough variant answer with any other json.
* Anything else, including html pages and connection errors, is not a
  compatible device.

Detection never raises for an incompatible host, it reports
:attr:`ProtocolVariant.Unknown` instead.
"""

from __future__ import annotations

import logging

from yarl import URL

from .deviceconfig import DeviceConfig, ProtocolVariant
from .exceptions import SmartErrorCode, TapoException
from .httpclient import HttpClient

_LOGGER = logging.getLogger(__name__)

DETECTION_QUERY = {"method": "get_device_info"}


def _detection_url(config: DeviceConfig) -> URL:
    if config.port_override:
        return URL(f"{config.scheme}://{config.host}:{config.port_override}/")
    return URL(f"{config.scheme}://{config.host}/")


def classify_response(status: int, response: dict | None) -> ProtocolVariant:
    """Classify a device from its answer to the detection query."""
    if status == 401:
        return ProtocolVariant.Klap
    if not isinstance(response, dict):
        return ProtocolVariant.Unknown
    if response.get("error_code") == SmartErrorCode.METHOD_NOT_FOUND_ERROR:
        return ProtocolVariant.Klap
    return ProtocolVariant.Passthrough


async def detect_protocol(config: DeviceConfig) -> ProtocolVariant:
    """Probe the device described by config and return its protocol variant."""
    http_client = HttpClient(config)
    try:
        status, response = await http_client.post_json(
            _detection_url(config), DETECTION_QUERY
        )
    except TapoException as ex:
        _LOGGER.debug("Protocol detection error for %s: %s", config.host, ex)
        return ProtocolVariant.Unknown
    finally:
        await http_client.close()

    variant = classify_response(status, response)
    _LOGGER.debug(
        "Detected protocol %s for %s (status %s)", variant.value, config.host, status
    )
    return variant
