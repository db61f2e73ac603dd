"""Module for the aiohttp based HttpClient used by detection and transports."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import aiohttp
from yarl import URL

from .deviceconfig import DeviceConfig
from .exceptions import TapoException, TimeoutError, _ConnectionError
from .json import dumps as json_dumps
from .json import loads as json_loads

_LOGGER = logging.getLogger(__name__)


def get_cookie_jar() -> aiohttp.CookieJar:
    """Return a cookie jar that accepts cookies from bare ip addresses."""
    return aiohttp.CookieJar(unsafe=True, quote_cookie=False)


class HttpClient:
    """Thin wrapper around an aiohttp session bound to a single device."""

    # Some plugs (P100 so far) drop the connection after each request. Once an
    # OS error has been seen, sequential requests are spaced by this delay.
    WAIT_BETWEEN_REQUESTS_ON_OSERROR = 0.25

    def __init__(self, config: DeviceConfig) -> None:
        self._config = config
        self._client_session: aiohttp.ClientSession | None = None
        self._last_url = URL(f"{config.scheme}://{config.host}/")

        self._wait_between_requests = 0.0
        self._last_request_time = 0.0

    @property
    def client(self) -> aiohttp.ClientSession:
        """Return the underlying http client."""
        if self._config.http_client and isinstance(
            self._config.http_client, aiohttp.ClientSession
        ):
            return self._config.http_client

        if not self._client_session:
            self._client_session = aiohttp.ClientSession(cookie_jar=get_cookie_jar())
        return self._client_session

    async def _wait_if_required(self) -> None:
        if not self._wait_between_requests:
            return
        gap = time.monotonic() - self._last_request_time
        if gap < self._wait_between_requests:
            sleep = self._wait_between_requests - gap
            _LOGGER.debug(
                "Device %s waiting %s seconds to send request",
                self._config.host,
                sleep,
            )
            await asyncio.sleep(sleep)

    async def post(
        self,
        url: URL,
        *,
        params: dict[str, Any] | None = None,
        data: bytes | None = None,
        json: dict | None = None,
        headers: dict[str, str] | None = None,
        cookies_dict: dict[str, str] | None = None,
    ) -> tuple[int, bytes]:
        """Send an http post request to the device.

        Returns the status code and the raw response body.  A dict passed as
        *json* is serialized and sent with a json content type.
        """
        await self._wait_if_required()

        if json is not None:
            data = json_dumps(json).encode()
            headers = {"Content-Type": "application/json", **(headers or {})}
        elif headers is None:
            headers = {"Content-Type": "application/octet-stream"}

        _LOGGER.debug("Posting to %s", url)
        self._last_url = url
        # Cookies are passed explicitly per request, the jar only captures
        # the ones set by the latest response.
        self.client.cookie_jar.clear()
        if self._config.timeout is None:
            _LOGGER.warning("Request timeout is set to None.")
        client_timeout = aiohttp.ClientTimeout(total=self._config.timeout)

        try:
            resp = await self.client.post(
                url,
                params=params,
                data=data,
                timeout=client_timeout,
                cookies=cookies_dict,
                headers=headers,
                ssl=False,
            )
            async with resp:
                response_data = await resp.read()
        except (aiohttp.ServerDisconnectedError, aiohttp.ClientOSError) as ex:
            if not self._wait_between_requests:
                _LOGGER.debug(
                    "Device %s received an os error, "
                    "enabling sequential request delay: %s",
                    self._config.host,
                    ex,
                )
                self._wait_between_requests = self.WAIT_BETWEEN_REQUESTS_ON_OSERROR
            self._last_request_time = time.monotonic()
            raise _ConnectionError(
                f"Device connection error: {self._config.host}: {ex}", ex
            ) from ex
        except (aiohttp.ServerTimeoutError, asyncio.TimeoutError) as ex:
            raise TimeoutError(
                "Unable to query the device, "
                + f"timed out: {self._config.host}: {ex}",
                ex,
            ) from ex
        except Exception as ex:
            raise TapoException(
                f"Unable to query the device: {self._config.host}: {ex}", ex
            ) from ex

        if resp.status != 200:
            _LOGGER.debug(
                "Device %s received status code %s with response %r",
                self._config.host,
                resp.status,
                response_data,
            )

        if self._wait_between_requests:
            self._last_request_time = time.monotonic()

        return resp.status, response_data

    async def post_json(self, url: URL, request: dict) -> tuple[int, dict | None]:
        """Post a json request and return the status and the decoded body.

        The body is None when the device answered with something other than json.
        """
        status, response_data = await self.post(url, json=request)
        try:
            return status, json_loads(response_data)
        except ValueError:
            _LOGGER.debug(
                "Device %s response could not be parsed as json", self._config.host
            )
            return status, None

    def get_cookie(self, cookie_name: str) -> str | None:
        """Return the cookie with cookie_name set by the last response."""
        if cookie := self.client.cookie_jar.filter_cookies(self._last_url).get(
            cookie_name
        ):
            return cookie.value
        return None

    async def close(self) -> None:
        """Close the ClientSession."""
        client = self._client_session
        self._client_session = None
        if client:
            await client.close()
