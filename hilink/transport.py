"""HTTP transport for the HiLink API.

The transport performs exactly one exchange and knows nothing about tokens,
sessions or retries. Cookie handling is disabled in aiohttp so that the
session manager is the single owner of the device's SessionID.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when an HTTP exchange could not be completed."""


@dataclass
class TransportResponse:
    """Raw result of one HTTP exchange."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class BaseTransport(ABC):
    """Abstract base class for transports.

    Implementations must be safe to share between concurrent tasks.
    """

    @abstractmethod
    async def send(
        self,
        method: str,
        path: str,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        """Perform one HTTP exchange.

        Args:
            method: HTTP method (GET or POST).
            path: Path relative to the device base URL.
            body: Encoded request body.
            headers: Extra request headers (cookie, token).
            timeout: Total timeout in seconds for this exchange.

        Returns:
            TransportResponse with status, headers, cookies and body.

        Raises:
            TransportError: On DNS, connection or timeout failures.
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass


class HttpTransport(BaseTransport):
    """aiohttp based transport bound to a single device base URL."""

    def __init__(self, base_url: str, timeout: float = 30.0, user_agent: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"X-Requested-With": "XMLHttpRequest"}
            if self.user_agent:
                headers["User-Agent"] = self.user_agent
            self._session = aiohttp.ClientSession(
                headers=headers,
                cookie_jar=aiohttp.DummyCookieJar(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def send(
        self,
        method: str,
        path: str,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        url = f"{self.base_url}{path}"
        request_headers = dict(headers or {})
        if method.upper() == "POST":
            request_headers.setdefault(
                "Content-Type", "application/x-www-form-urlencoded; charset=UTF-8"
            )

        session = self._get_session()
        request_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)
        logger.debug(f"{method} {url}")
        try:
            async with session.request(
                method,
                url,
                data=body or None,
                headers=request_headers,
                timeout=request_timeout,
            ) as response:
                payload = await response.read()
                return TransportResponse(
                    status=response.status,
                    headers={k: v for k, v in response.headers.items()},
                    cookies={name: morsel.value for name, morsel in response.cookies.items()},
                    body=payload,
                )
        except aiohttp.ClientError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"{method} {path} timed out after {timeout or self.timeout}s") from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
