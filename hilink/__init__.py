"""
HiLink LTE Router Client

Async client for the XML-over-HTTP management API exposed by Huawei HiLink
LTE routers and dongles:
- Session cookie and anti-forgery token lifecycle
- Transparent recovery from stale tokens and expired sessions
- Typed device, monitoring, network, SMS and DHCP operations
"""

__version__ = "0.1.0"

from .client import HiLinkClient
from .config import Config, DeviceConfig, RetryConfig, CredentialsConfig, load_config
from .errors import (
    ClientError,
    ErrorKind,
    TransportFailure,
    DeviceBusy,
    TokenInvalid,
    NoTokenAvailable,
    LoginRequired,
    InvalidCredentials,
    LoginLocked,
    EncodingError,
    DecodingError,
    MalformedPayload,
    DeviceError,
)
from .pipeline import ApiRequest

__all__ = [
    "HiLinkClient",
    "ApiRequest",
    "Config",
    "DeviceConfig",
    "RetryConfig",
    "CredentialsConfig",
    "load_config",
    "ClientError",
    "ErrorKind",
    "TransportFailure",
    "DeviceBusy",
    "TokenInvalid",
    "NoTokenAvailable",
    "LoginRequired",
    "InvalidCredentials",
    "LoginLocked",
    "EncodingError",
    "DecodingError",
    "MalformedPayload",
    "DeviceError",
]
