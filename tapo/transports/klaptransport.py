"""Implementation of the TP-Link KLAP protocol used by Tapo plugs.

The protocol works by doing a two stage handshake to obtain an encryption key
and a session id cookie.

Authentication uses an auth_hash which is
sha256(sha1(username) + sha1(password))

handshake1: the client sends a random 16 byte local_seed to the device and
receives a random 16 byte remote_seed, followed by
sha256(local_seed + remote_seed + auth_hash).  It also returns a
TP_SESSIONID in the cookie header.  The client recomputes the hash with its
own auth_hash and aborts if it does not match, as the device then holds
different credentials.

handshake2: the client sends sha256(remote_seed + local_seed + auth_hash) to
the device along with the TP_SESSIONID, proving that it knows the
credentials too.  The device responds with 200 if it accepts the hash.

encryption: local_seed, remote_seed and auth_hash are used to derive an AES
key, an iv and a signature key.  The last 4 bytes of the iv are a sequence
number that is incremented every time the client encrypts a request.  The
sequence number is sent as a url parameter along with the signed, encrypted
payload and the device encrypts its response with the same sequence number.

https://gist.github.com/chriswheeldon/3b17d974db3817613c69191c0480fe55
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import struct
import time
from dataclasses import dataclass
from enum import Enum, auto

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from yarl import URL

from tapo.credentials import Credentials
from tapo.deviceconfig import DeviceConfig
from tapo.exceptions import (
    AuthenticationError,
    DecryptionError,
    RequestError,
    SessionExpiredError,
    TapoException,
)
from tapo.httpclient import HttpClient
from tapo.json import loads as json_loads

from .basetransport import BaseTransport

_LOGGER = logging.getLogger(__name__)


ONE_DAY_SECONDS = 86400
SESSION_EXPIRE_BUFFER_SECONDS = 60 * 20

PACK_SIGNED_LONG = struct.Struct(">i").pack

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def _sha256(payload: bytes) -> bytes:
    return hashlib.sha256(payload).digest()


def _sha1(payload: bytes) -> bytes:
    return hashlib.sha1(payload).digest()  # noqa: S324


class TransportState(Enum):
    """Enum for the KLAP session state."""

    UNAUTHENTICATED = auto()  # No session, handshake needed
    AUTHENTICATING = auto()  # Handshake in progress
    AUTHENTICATED = auto()  # Ready to send requests
    FAILED = auto()  # Last handshake failed


class KlapCipher:
    """Symmetric cipher of a KLAP session.

    Holds the derived key material and the sequence number which the device
    expects to increment with every request.
    """

    BLOCK_SIZE = 16
    SIGNATURE_SIZE = 32

    def __init__(
        self,
        local_seed: bytes,
        remote_seed: bytes,
        auth_hash: bytes,
        *,
        verify_signature: bool = False,
    ) -> None:
        self.local_seed = local_seed
        self.remote_seed = remote_seed
        self.auth_hash = auth_hash
        self.verify_signature = verify_signature
        combined = local_seed + remote_seed + auth_hash

        self.key = _sha256(b"lsk" + combined)[:16]
        # The last 4 bytes of the iv hash form the initial sequence number
        iv_hash = _sha256(b"iv" + combined)
        self.iv_base = iv_hash[:12]
        self.initial_seq = int.from_bytes(iv_hash[-4:], "big", signed=True)
        self.seq = self.initial_seq
        self.signature_key = _sha256(b"ldk" + combined)[:28]

        self._aes = algorithms.AES(self.key)

    def _cipher(self, seq: int) -> Cipher:
        return Cipher(self._aes, modes.CBC(self.iv_base + PACK_SIGNED_LONG(seq)))

    def _signature(self, seq: int, ciphertext: bytes) -> bytes:
        return _sha256(self.signature_key + PACK_SIGNED_LONG(seq) + ciphertext)

    def encrypt(self, msg: str | bytes) -> tuple[bytes, int]:
        """Encrypt the data and increment the sequence number.

        Returns the signed payload and the sequence number it was encrypted
        with.  Every call consumes a sequence number.
        """
        self.seq = self.seq + 1 if self.seq < _INT32_MAX else _INT32_MIN
        seq = self.seq

        if isinstance(msg, str):
            msg = msg.encode("utf-8")

        padder = padding.PKCS7(128).padder()
        padded_data = padder.update(msg) + padder.finalize()
        encryptor = self._cipher(seq).encryptor()
        ciphertext = encryptor.update(padded_data) + encryptor.finalize()

        return self._signature(seq, ciphertext) + ciphertext, seq

    def decrypt(self, msg: bytes, seq: int) -> str:
        """Decrypt a payload encrypted with the given sequence number."""
        signature = msg[: self.SIGNATURE_SIZE]
        ciphertext = msg[self.SIGNATURE_SIZE :]
        if not ciphertext or len(ciphertext) % self.BLOCK_SIZE:
            raise DecryptionError(
                f"Invalid ciphertext length {len(ciphertext)} for seq {seq}"
            )
        if self.verify_signature and not hmac.compare_digest(
            signature, self._signature(seq, ciphertext)
        ):
            raise DecryptionError(f"Signature mismatch for seq {seq}")

        decryptor = self._cipher(seq).decryptor()
        padded_data = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        try:
            plaintext = unpadder.update(padded_data) + unpadder.finalize()
            return plaintext.decode()
        except ValueError as ex:
            raise DecryptionError(f"Unable to decrypt payload for seq {seq}") from ex


@dataclass(frozen=True)
class KlapSession:
    """An authenticated session with a device."""

    cookie: str | None
    cipher: KlapCipher
    url: URL
    expire_at: float

    @property
    def cookies(self) -> dict[str, str] | None:
        """Return the cookies to send with session requests."""
        if self.cookie is None:
            return None
        return {KlapTransport.SESSION_COOKIE_NAME: self.cookie}

    def is_expired(self) -> bool:
        """Return True if the device will have dropped the session."""
        return self.expire_at - time.time() <= 0


class KlapTransport(BaseTransport):
    """Implementation of the KLAP encryption protocol.

    KLAP is the name used in device discovery for TP-Link's encryption
    protocol, used by Tapo plugs with recent firmware.  The transport
    holds at most one session; it is not safe to share one instance between
    concurrent callers as sequence numbers must not interleave.
    """

    DEFAULT_PORT: int = 80
    DEFAULT_HTTPS_PORT: int = 443
    SESSION_COOKIE_NAME = "TP_SESSIONID"
    TIMEOUT_COOKIE_NAME = "TIMEOUT"
    HANDSHAKE1_RESPONSE_SIZE = 48

    def __init__(
        self,
        *,
        config: DeviceConfig,
    ) -> None:
        super().__init__(config=config)

        self._http_client = HttpClient(config)
        if not self._credentials and not self._credentials_hash:
            self._credentials = Credentials()
        if self._credentials:
            self._auth_hash = self.generate_auth_hash(self._credentials)
        else:
            self._auth_hash = base64.b64decode(self._credentials_hash.encode())  # type: ignore[union-attr]

        self._state = TransportState.UNAUTHENTICATED
        self._session: KlapSession | None = None

        self._app_url = URL(f"{config.scheme}://{self._host}:{self._port}/app")
        self._request_url = self._app_url / "request"
        _LOGGER.debug("Created KLAP transport for %s", self._host)

    @property
    def default_port(self) -> int:
        """Default port for the transport."""
        return self.DEFAULT_HTTPS_PORT if self._config.https else self.DEFAULT_PORT

    @property
    def credentials_hash(self) -> str:
        """The hashed credentials used by the transport."""
        return base64.b64encode(self._auth_hash).decode()

    @property
    def state(self) -> TransportState:
        """Return the session state."""
        return self._state

    @property
    def session(self) -> KlapSession | None:
        """Return the live session, if any."""
        return self._session

    @property
    def authenticated(self) -> bool:
        """Return True if a live, unexpired session exists."""
        return self._session is not None and not self._session.is_expired()

    async def perform_handshake1(self) -> tuple[bytes, bytes, bytes]:
        """Perform handshake1 and verify the device knows the credentials."""
        local_seed = secrets.token_bytes(16)
        url = self._app_url / "handshake1"

        try:
            status, response_data = await self._http_client.post(url, data=local_seed)
        except TapoException as ex:
            raise AuthenticationError(
                f"Device {self._host} is not responding to handshake1: {ex}"
            ) from ex

        _LOGGER.debug(
            "Handshake1 posted to %s, response status is %s", self._host, status
        )

        if status != 200:
            raise AuthenticationError(
                f"Device {self._host} responded with {status} to handshake1",
                status_code=status,
            )

        if len(response_data) < self.HANDSHAKE1_RESPONSE_SIZE:
            raise AuthenticationError(
                f"Device {self._host} responded with unexpected klap response "
                + f"{response_data!r} to handshake1"
            )

        remote_seed = response_data[0:16]
        server_hash = response_data[16:48]

        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Handshake1 success for %s, remote_seed is %s, server hash is %s",
                self._host,
                remote_seed.hex(),
                server_hash.hex(),
            )

        local_hash = self.handshake1_seed_auth_hash(
            local_seed, remote_seed, self._auth_hash
        )
        if not hmac.compare_digest(local_hash, server_hash):
            msg = (
                f"Server response doesn't match our challenge on ip {self._host}, "
                + "wrong credentials"
            )
            _LOGGER.debug(msg)
            raise AuthenticationError(msg)

        _LOGGER.debug("handshake1 hashes match with expected credentials")
        return local_seed, remote_seed, self._auth_hash

    async def perform_handshake2(
        self,
        local_seed: bytes,
        remote_seed: bytes,
        auth_hash: bytes,
        cookies: dict[str, str] | None,
    ) -> None:
        """Perform handshake2, proving to the device we know the credentials."""
        url = self._app_url / "handshake2"
        payload = self.handshake2_seed_auth_hash(local_seed, remote_seed, auth_hash)

        try:
            status, _ = await self._http_client.post(
                url, data=payload, cookies_dict=cookies
            )
        except TapoException as ex:
            raise AuthenticationError(
                f"Device {self._host} is not responding to handshake2: {ex}"
            ) from ex

        _LOGGER.debug(
            "Handshake2 posted to %s, response status is %s", self._host, status
        )

        if status != 200:
            raise AuthenticationError(
                f"Device {self._host} responded with {status} to handshake2",
                status_code=status,
            )

    async def perform_handshake(self) -> None:
        """Perform handshake1 and handshake2.

        Sets the session if successful.
        """
        _LOGGER.debug("Starting handshake with %s", self._host)
        self._session = None
        self._state = TransportState.AUTHENTICATING
        try:
            local_seed, remote_seed, auth_hash = await self.perform_handshake1()
            http_client = self._http_client
            cookie = http_client.get_cookie(self.SESSION_COOKIE_NAME)
            cookies = {self.SESSION_COOKIE_NAME: cookie} if cookie else None
            # The device returns a TIMEOUT cookie on handshake1 which
            # it doesn't like to get back so it is only used for the expiry
            timeout = int(
                http_client.get_cookie(self.TIMEOUT_COOKIE_NAME) or ONE_DAY_SECONDS
            )
            await self.perform_handshake2(local_seed, remote_seed, auth_hash, cookies)
        except Exception:
            self._state = TransportState.FAILED
            raise

        # The clock on the device is not always accurate so expire the
        # session a little early
        self._session = KlapSession(
            cookie=cookie,
            cipher=KlapCipher(
                local_seed,
                remote_seed,
                auth_hash,
                verify_signature=self._config.verify_signature,
            ),
            url=self._app_url,
            expire_at=time.time() + timeout - SESSION_EXPIRE_BUFFER_SECONDS,
        )
        self._state = TransportState.AUTHENTICATED
        _LOGGER.debug("Handshake with %s complete", self._host)

    async def send(self, request: str) -> dict:
        """Encrypt and send the request, returning the decrypted response."""
        if not self.authenticated:
            await self.perform_handshake()
        session = self._session
        if session is None:  # pragma: no cover
            raise TapoException(f"No session established with {self._host}")

        payload, seq = session.cipher.encrypt(request)

        status, response_data = await self._http_client.post(
            self._request_url,
            params={"seq": seq},
            data=payload,
            cookies_dict=session.cookies,
        )

        if status == 403:
            # The device dropped the session, a new handshake is required
            _LOGGER.debug(
                "Device %s rejected the session for seq %s", self._host, seq
            )
            self._session = None
            self._state = TransportState.UNAUTHENTICATED
            raise SessionExpiredError(
                f"Got a security error from {self._host} after handshake completed",
                status_code=status,
            )
        if status != 200:
            _LOGGER.error(
                "Query failed after successful authentication, host is %s, "
                + "sequence is %s, response status is %s",
                self._host,
                seq,
                status,
            )
            raise RequestError(
                f"Device {self._host} responded with {status} to "
                + f"request with seq {seq}",
                status_code=status,
            )

        decrypted_response = session.cipher.decrypt(response_data, seq)
        try:
            return json_loads(decrypted_response)
        except ValueError as ex:
            raise RequestError(
                f"Device {self._host} returned invalid json for seq {seq}"
            ) from ex

    async def close(self) -> None:
        """Close the http client and reset internal state."""
        await self.reset()
        await self._http_client.close()

    async def reset(self) -> None:
        """Drop the session so the next request performs a new handshake."""
        self._session = None
        self._state = TransportState.UNAUTHENTICATED

    @staticmethod
    def generate_auth_hash(creds: Credentials) -> bytes:
        """Generate the auth hash for the supplied credentials."""
        un = creds.username
        pw = creds.password

        return _sha256(_sha1(un.encode()) + _sha1(pw.encode()))

    @staticmethod
    def handshake1_seed_auth_hash(
        local_seed: bytes, remote_seed: bytes, auth_hash: bytes
    ) -> bytes:
        """Return the hash the device sends back in handshake1."""
        return _sha256(local_seed + remote_seed + auth_hash)

    @staticmethod
    def handshake2_seed_auth_hash(
        local_seed: bytes, remote_seed: bytes, auth_hash: bytes
    ) -> bytes:
        """Return the hash the client sends to the device in handshake2."""
        return _sha256(remote_seed + local_seed + auth_hash)
