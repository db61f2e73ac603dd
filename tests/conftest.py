from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import aiohttp
import pytest

from tapo import Credentials, DeviceConfig

from .fakeklapdevice import FakeKlapDevice


@pytest.fixture(autouse=True, scope="session")
def asyncio_sleep_fixture():  # noqa: PT004
    """Patch sleep to prevent tests actually waiting."""
    orig_asyncio_sleep = asyncio.sleep

    async def _asyncio_sleep(*_, **__):
        await orig_asyncio_sleep(0)

    with patch("asyncio.sleep", side_effect=_asyncio_sleep):
        yield


@pytest.fixture(autouse=True, scope="session")
def mock_datagram_endpoint():  # noqa: PT004
    """Mock create_datagram_endpoint so it doesn't perform io."""

    async def _create_datagram_endpoint(protocol_factory, *_, **__):
        protocol = protocol_factory()
        transport = MagicMock()
        try:
            return transport, protocol
        finally:
            protocol.connection_made(transport)

    with patch(
        "asyncio.BaseEventLoop.create_datagram_endpoint",
        side_effect=_create_datagram_endpoint,
    ):
        yield


@pytest.fixture()
def credentials():
    return Credentials("user@example.com", "hunter2")


@pytest.fixture()
def config(credentials):
    return DeviceConfig("127.0.0.1", credentials=credentials)


@pytest.fixture()
def fake_device(mocker, credentials):
    """Return a fake KLAP device answering posts made by the http client."""
    device = FakeKlapDevice(credentials)
    mocker.patch.object(aiohttp.ClientSession, "post", side_effect=device.post)
    return device
