"""Error hierarchy for the HiLink client.

Every failure that crosses the public boundary is a ``ClientError``. The
``kind`` attribute tells callers which category they are looking at so they
can decide whether to prompt for credentials, abort, or log and move on.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Category of a client failure."""
    TRANSPORT_FAILURE = "transport_failure"
    DEVICE_BUSY = "device_busy"
    TOKEN_INVALID = "token_invalid"
    NO_TOKEN_AVAILABLE = "no_token_available"
    LOGIN_REQUIRED = "login_required"
    INVALID_CREDENTIALS = "invalid_credentials"
    LOGIN_LOCKED = "login_locked"
    ENCODING_ERROR = "encoding_error"
    DECODING_ERROR = "decoding_error"
    MALFORMED_PAYLOAD = "malformed_payload"
    DEVICE_ERROR = "device_error"

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient device or network state."""
        return self in (ErrorKind.TRANSPORT_FAILURE, ErrorKind.DEVICE_BUSY)


class ClientError(Exception):
    """Base exception for all HiLink client errors"""

    kind: ErrorKind = ErrorKind.DEVICE_ERROR

    def __init__(self, message: str = "", code: Optional[int] = None):
        super().__init__(message or self.kind.value.replace("_", " "))
        self.code = code

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value!r}, code={self.code!r}, message={str(self)!r})"


class TransportFailure(ClientError):
    """Raised when the network exchange fails (DNS, connect, timeout)"""

    kind = ErrorKind.TRANSPORT_FAILURE


class DeviceBusy(ClientError):
    """Raised when the device keeps reporting it is busy"""

    kind = ErrorKind.DEVICE_BUSY


class TokenInvalid(ClientError):
    """Raised when the device rejects a freshly refreshed anti-forgery token"""

    kind = ErrorKind.TOKEN_INVALID


class NoTokenAvailable(ClientError):
    """Raised when priming yields no anti-forgery token"""

    kind = ErrorKind.NO_TOKEN_AVAILABLE


class LoginRequired(ClientError):
    """Raised when the session expired and no cached credentials can restore it"""

    kind = ErrorKind.LOGIN_REQUIRED


class InvalidCredentials(ClientError):
    """Raised when the device explicitly rejects a username or password"""

    kind = ErrorKind.INVALID_CREDENTIALS


class LoginLocked(ClientError):
    """Raised when the device refuses logins after too many attempts"""

    kind = ErrorKind.LOGIN_LOCKED


class EncodingError(ClientError):
    """Raised when a request payload cannot be serialised"""

    kind = ErrorKind.ENCODING_ERROR


class DecodingError(ClientError):
    """Raised when a response payload does not match the expected schema"""

    kind = ErrorKind.DECODING_ERROR


class MalformedPayload(DecodingError):
    """Raised when a response body is not a well-formed HiLink document"""

    kind = ErrorKind.MALFORMED_PAYLOAD


class DeviceError(ClientError):
    """Raised for any other in-band device error code"""

    kind = ErrorKind.DEVICE_ERROR


# In-band HiLink error codes
WRONG_TOKEN = 125001
CSRF_TOKEN_INVALID = 125002
WRONG_SESSION_TOKEN = 125003
NO_RIGHTS = 100003
SYSTEM_BUSY = 100004
SYSTEM_BUSY_ALT = 113018
USERNAME_WRONG = 108001
PASSWORD_WRONG = 108002
ALREADY_LOGGED_IN = 108003
USERNAME_PWD_WRONG = 108006
USERNAME_PWD_OVERRUN = 108007

TOKEN_ERROR_CODES = frozenset({WRONG_TOKEN, CSRF_TOKEN_INVALID, WRONG_SESSION_TOKEN})
BUSY_ERROR_CODES = frozenset({SYSTEM_BUSY, SYSTEM_BUSY_ALT})
CREDENTIAL_ERROR_CODES = frozenset({USERNAME_WRONG, PASSWORD_WRONG, USERNAME_PWD_WRONG})

ERROR_MESSAGES = {
    100001: "Unknown system error",
    100002: "Not supported by firmware or incorrect API path",
    NO_RIGHTS: "No rights (login required)",
    SYSTEM_BUSY: "System busy",
    100005: "Format error",
    100006: "Invalid parameter",
    100009: "Write error",
    USERNAME_WRONG: "Username wrong",
    PASSWORD_WRONG: "Password wrong",
    ALREADY_LOGGED_IN: "Already logged in",
    USERNAME_PWD_WRONG: "Username or password wrong",
    USERNAME_PWD_OVERRUN: "Too many login attempts",
    111001: "Phone number invalid",
    111019: "SMS center number invalid",
    111020: "SMS processing",
    111022: "SMS storage full",
    SYSTEM_BUSY_ALT: "System busy",
    113055: "SMS action already completed",
    115002: "Password change required",
    WRONG_TOKEN: "Wrong token",
    CSRF_TOKEN_INVALID: "CSRF token invalid",
    WRONG_SESSION_TOKEN: "Wrong session token",
}


def describe_code(code: int) -> str:
    """Human readable text for a device error code."""
    return ERROR_MESSAGES.get(code, f"Device error {code}")


def error_for_code(code: int, message: Optional[str] = None) -> ClientError:
    """Map an in-band device error code to the matching exception."""
    text = message or describe_code(code)
    if code in TOKEN_ERROR_CODES:
        return TokenInvalid(text, code=code)
    if code == NO_RIGHTS:
        return LoginRequired(text, code=code)
    if code in BUSY_ERROR_CODES:
        return DeviceBusy(text, code=code)
    if code in CREDENTIAL_ERROR_CODES:
        return InvalidCredentials(text, code=code)
    if code == USERNAME_PWD_OVERRUN:
        return LoginLocked(text, code=code)
    return DeviceError(text, code=code)
