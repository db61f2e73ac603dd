import aiohttp
import pytest

from tapo import (
    DeviceConfig,
    ProtocolUndeterminedError,
    ProtocolVariant,
    SmartProtocol,
    UnsupportedProtocolError,
    detect_protocol,
)
from tapo.json import dumps_bytes as json_dumps_bytes
from tapo.protocoldetector import classify_response
from tapo.protocolfactory import get_protocol
from tapo.transports import KlapTransport

from .fakeklapdevice import _mock_response


@pytest.mark.parametrize(
    ("status", "content", "expected"),
    [
        pytest.param(401, b"", ProtocolVariant.Klap, id="unauthorized"),
        pytest.param(
            200,
            json_dumps_bytes({"error_code": 1003}),
            ProtocolVariant.Klap,
            id="method_not_found",
        ),
        pytest.param(
            200,
            json_dumps_bytes({"error_code": 0, "result": {"model": "P100"}}),
            ProtocolVariant.Passthrough,
            id="passthrough",
        ),
        pytest.param(
            200,
            json_dumps_bytes({"error_code": -1010}),
            ProtocolVariant.Passthrough,
            id="passthrough_error_code",
        ),
        pytest.param(
            200,
            b"<html><body>router login</body></html>",
            ProtocolVariant.Unknown,
            id="html",
        ),
        pytest.param(404, b"Not Found", ProtocolVariant.Unknown, id="not_found"),
    ],
)
async def test_detect_protocol(mocker, status, content, expected):
    post = mocker.patch.object(
        aiohttp.ClientSession,
        "post",
        side_effect=lambda *_, **__: _async_response(status, content),
    )

    assert await detect_protocol(DeviceConfig("127.0.0.1")) is expected

    url = post.call_args.args[0]
    assert str(url) == "http://127.0.0.1/"
    assert post.call_args.kwargs["headers"]["Content-Type"] == "application/json"
    assert post.call_args.kwargs["data"] == b'{"method":"get_device_info"}'


async def _async_response(status, content):
    return _mock_response(status, content)


async def test_detect_protocol_port_override(mocker):
    post = mocker.patch.object(
        aiohttp.ClientSession,
        "post",
        side_effect=lambda *_, **__: _async_response(401, b""),
    )
    config = DeviceConfig("127.0.0.1", port_override=8080, https=True)

    await detect_protocol(config)

    assert str(post.call_args.args[0]) == "https://127.0.0.1:8080/"


@pytest.mark.parametrize(
    "error",
    [
        aiohttp.ServerTimeoutError("dummy exception"),
        aiohttp.ClientOSError("dummy exception"),
        Exception("dummy exception"),
    ],
    ids=("ServerTimeoutError", "ClientOSError", "Exception"),
)
async def test_detect_protocol_connection_error(mocker, error):
    mocker.patch.object(aiohttp.ClientSession, "post", side_effect=error)

    assert await detect_protocol(DeviceConfig("127.0.0.1")) is ProtocolVariant.Unknown


def test_classify_response():
    assert classify_response(401, None) is ProtocolVariant.Klap
    assert classify_response(200, None) is ProtocolVariant.Unknown
    assert classify_response(200, {}) is ProtocolVariant.Passthrough


def test_get_protocol_klap(config):
    protocol = get_protocol(config, ProtocolVariant.Klap)

    assert isinstance(protocol, SmartProtocol)
    assert isinstance(protocol.transport, KlapTransport)
    assert protocol.config is config


def test_get_protocol_passthrough(config):
    with pytest.raises(UnsupportedProtocolError) as ex:
        get_protocol(config, ProtocolVariant.Passthrough)

    assert ex.value.host == "127.0.0.1"
    assert ex.value.protocol is ProtocolVariant.Passthrough


def test_get_protocol_unknown(config):
    with pytest.raises(ProtocolUndeterminedError) as ex:
        get_protocol(config, ProtocolVariant.Unknown)

    assert ex.value.host == "127.0.0.1"
