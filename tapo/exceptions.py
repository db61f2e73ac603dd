"""python-tapo exceptions."""

from __future__ import annotations

from asyncio import TimeoutError as _asyncioTimeoutError
from enum import IntEnum
from functools import cache
from typing import Any


class TapoException(Exception):
    """Base exception for library errors."""


class TimeoutError(TapoException, _asyncioTimeoutError):
    """Timeout exception for device errors."""

    def __repr__(self) -> str:
        return TapoException.__repr__(self)

    def __str__(self) -> str:
        return TapoException.__str__(self)


class _ConnectionError(TapoException):
    """Connection exception for device errors."""


class DiscoveryError(TapoException):
    """Exception for failures to broadcast or decode discovery packets."""


class ProtocolUndeterminedError(TapoException):
    """Exception for hosts whose protocol could not be detected."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.host = kwargs.get("host")
        super().__init__(*args)


class UnsupportedProtocolError(TapoException):
    """Exception for devices speaking a protocol this library does not implement."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.host = kwargs.get("host")
        self.protocol = kwargs.get("protocol")
        super().__init__(*args)


class DecryptionError(TapoException):
    """Exception for payloads that cannot be decrypted with the session cipher."""


class DeviceError(TapoException):
    """Base exception for device errors."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.error_code: SmartErrorCode | int | None = kwargs.get("error_code")
        self.status_code: int | None = kwargs.get("status_code")
        super().__init__(*args)

    def __repr__(self) -> str:
        err_code = self.error_code.__repr__() if self.error_code is not None else ""
        return f"{self.__class__.__name__}({err_code})"

    def __str__(self) -> str:
        details = ""
        if isinstance(self.error_code, SmartErrorCode):
            details += f" (error_code={self.error_code.name})"
        elif self.error_code is not None:
            details += f" (error_code={self.error_code})"
        if self.status_code is not None:
            details += f" (status_code={self.status_code})"
        return super().__str__() + details


class AuthenticationError(DeviceError):
    """Exception for failed handshakes."""


class SessionExpiredError(DeviceError):
    """Exception raised when the device rejects the session cookie."""


class RequestError(DeviceError):
    """Exception for requests the device answered with an error."""


class SmartErrorCode(IntEnum):
    """Enum for SMART Error Codes."""

    def __str__(self) -> str:
        return f"{self.name}({self.value})"

    @staticmethod
    @cache
    def from_int(value: int) -> SmartErrorCode | int:
        """Convert an integer to a SmartErrorCode, or return it unchanged."""
        try:
            return SmartErrorCode(value)
        except ValueError:
            return value

    SUCCESS = 0

    # Transport Errors
    SESSION_TIMEOUT_ERROR = 9999
    MULTI_REQUEST_FAILED_ERROR = 1200
    HTTP_TRANSPORT_FAILED_ERROR = 1112
    LOGIN_FAILED_ERROR = 1111
    HAND_SHAKE_FAILED_ERROR = 1100
    #: Returned by klap devices for unencrypted requests
    METHOD_NOT_FOUND_ERROR = 1003
    TRANSPORT_NOT_AVAILABLE_ERROR = 1002
    CMD_COMMAND_CANCEL_ERROR = 1001
    NULL_TRANSPORT_ERROR = 1000

    # Common Method Errors
    COMMON_FAILED_ERROR = -1
    UNSPECIFIC_ERROR = -1001
    UNKNOWN_METHOD_ERROR = -1002
    JSON_DECODE_FAIL_ERROR = -1003
    JSON_ENCODE_FAIL_ERROR = -1004
    AES_DECODE_FAIL_ERROR = -1005
    REQUEST_LEN_ERROR_ERROR = -1006
    CLOUD_FAILED_ERROR = -1007
    PARAMS_ERROR = -1008
    INVALID_PUBLIC_KEY_ERROR = -1010
    SESSION_PARAM_ERROR = -1101

    # Method Specific Errors
    QUICK_SETUP_ERROR = -1201
    DEVICE_ERROR = -1301
    DEVICE_NEXT_EVENT_ERROR = -1302
    FIRMWARE_ERROR = -1401
    FIRMWARE_VER_ERROR_ERROR = -1402
    LOGIN_ERROR = -1501
    TIME_ERROR = -1601
    TIME_SYS_ERROR = -1602
    TIME_SAVE_ERROR = -1603
    WIRELESS_ERROR = -1701
    WIRELESS_UNSUPPORTED_ERROR = -1702
    SCHEDULE_ERROR = -1801
    SCHEDULE_FULL_ERROR = -1802
    SCHEDULE_CONFLICT_ERROR = -1803
    SCHEDULE_SAVE_ERROR = -1804
    SCHEDULE_INDEX_ERROR = -1805
    COUNTDOWN_ERROR = -1901
    COUNTDOWN_CONFLICT_ERROR = -1902
    COUNTDOWN_SAVE_ERROR = -1903
    ANTITHEFT_ERROR = -2001
    ANTITHEFT_CONFLICT_ERROR = -2002
    ANTITHEFT_SAVE_ERROR = -2003
    ACCOUNT_ERROR = -2101
    STAT_ERROR = -2201
    STAT_SAVE_ERROR = -2202
    DST_ERROR = -2301
    DST_SAVE_ERROR = -2302
