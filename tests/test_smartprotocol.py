import logging

import pytest

from tapo import (
    AuthenticationError,
    RequestError,
    SessionExpiredError,
    SmartErrorCode,
    SmartProtocol,
)
from tapo.protocols.protocol import mask_mac, redact_data
from tapo.protocols.smartprotocol import REDACTORS
from tapo.transports import KlapTransport, TransportState


@pytest.fixture()
async def protocol(config):
    protocol = SmartProtocol(transport=KlapTransport(config=config))
    yield protocol
    await protocol.close()


async def test_send_returns_result(fake_device, protocol):
    result = await protocol.send("get_device_info")

    assert result == fake_device.response["result"]
    assert fake_device.requests[0]["request"] == {"method": "get_device_info"}


async def test_send_with_params(fake_device, protocol):
    await protocol.send("set_device_info", {"device_on": True})

    assert fake_device.requests[0]["request"] == {
        "method": "set_device_info",
        "params": {"device_on": True},
    }


async def test_send_without_result(fake_device, protocol):
    fake_device.response = {"error_code": 0}

    assert await protocol.send("set_device_info", {"device_on": False}) == {}


async def test_query_returns_full_response(fake_device, protocol):
    response = await protocol.query({"method": "get_device_info"})

    assert response == fake_device.response


async def test_ensure_authenticated(fake_device, protocol):
    assert not protocol.authenticated

    await protocol.ensure_authenticated()
    await protocol.ensure_authenticated()

    assert protocol.authenticated
    assert fake_device.handshake1_count == 1


async def test_session_expired_once(fake_device, protocol):
    await protocol.ensure_authenticated()
    first_cipher = protocol.transport.session.cipher
    fake_device.request_statuses = [403]

    result = await protocol.send("get_device_info")

    assert result == fake_device.response["result"]
    assert fake_device.handshake1_count == 2
    assert len(fake_device.requests) == 2
    second_cipher = protocol.transport.session.cipher
    assert second_cipher is not first_cipher
    assert second_cipher.key != first_cipher.key
    # the resent request uses the first sequence number of the new session
    assert fake_device.requests[1]["seq"] == second_cipher.initial_seq + 1
    assert protocol.transport.state is TransportState.AUTHENTICATED


async def test_session_expired_twice(fake_device, protocol):
    fake_device.request_statuses = [403, 403, 403, 403]

    with pytest.raises(RequestError) as ex:
        await protocol.send("get_device_info")

    assert ex.value.status_code == 403
    assert isinstance(ex.value.__cause__, SessionExpiredError)
    assert len(fake_device.requests) == 2
    assert fake_device.handshake1_count == 2
    assert not protocol.authenticated


async def test_no_retry_on_authentication_error(fake_device, protocol):
    fake_device.forge_server_hash = True

    with pytest.raises(AuthenticationError):
        await protocol.send("get_device_info")

    assert fake_device.handshake1_count == 1
    assert fake_device.requests == []


async def test_no_retry_on_request_error(fake_device, protocol):
    fake_device.request_statuses = [500]

    with pytest.raises(RequestError) as ex:
        await protocol.send("get_device_info")

    assert ex.value.status_code == 500
    assert len(fake_device.requests) == 1
    assert protocol.authenticated


@pytest.mark.parametrize(
    ("error_code", "expected"),
    [
        (-1008, SmartErrorCode.PARAMS_ERROR),
        (1003, SmartErrorCode.METHOD_NOT_FOUND_ERROR),
        (-123456, -123456),
    ],
    ids=("params_error", "method_not_found", "unknown_code"),
)
async def test_device_error_code(fake_device, protocol, error_code, expected):
    fake_device.response = {"error_code": error_code}

    with pytest.raises(RequestError) as ex:
        await protocol.send("get_device_info")

    assert ex.value.error_code == expected
    assert ex.value.status_code is None
    assert len(fake_device.requests) == 1
    assert protocol.authenticated


async def test_missing_error_code(fake_device, protocol):
    fake_device.response = {"result": {}}

    with pytest.raises(RequestError, match="without an error code"):
        await protocol.send("get_device_info")


async def test_response_logging_is_redacted(fake_device, protocol, caplog):
    fake_device.response = {
        "error_code": 0,
        "result": {
            "nickname": "TXkgUGx1Zw==",
            "mac": "AA-BB-CC-DD-EE-FF",
            "device_id": "8022ABCDEF0123456789",
        },
    }
    caplog.set_level(logging.DEBUG)

    result = await protocol.send("get_device_info")

    assert result["nickname"] == "TXkgUGx1Zw=="
    assert "TXkgUGx1Zw==" not in caplog.text
    assert "AA-BB-CC-00-00-00" in caplog.text


def test_redact_data():
    data = {
        "ssid": "bXluZXR3b3Jr",
        "mac": "AA:BB:CC:DD:EE:FF",
        "nested": [{"nickname": "bmFtZQ=="}, {"nickname": ""}],
        "device_on": True,
    }

    redacted = redact_data(data, REDACTORS)

    assert redacted["ssid"] == "I01BU0tFRF9TU0lEIw=="
    assert redacted["mac"] == "AA:BB:CC:00:00:00"
    assert redacted["nested"][0]["nickname"] == "I01BU0tFRF9OQU1FIw=="
    assert redacted["nested"][1]["nickname"] == ""
    assert redacted["device_on"] is True
    # the input is left untouched
    assert data["ssid"] == "bXluZXR3b3Jr"


def test_mask_mac():
    assert mask_mac("12:34:56:78:9a:bc") == "12:34:56:00:00:00"
    assert mask_mac("12-34-56-78-9A-BC") == "12-34-56-00-00-00"
