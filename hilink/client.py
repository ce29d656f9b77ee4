"""High level client for a single HiLink device."""

import logging
from typing import Any, Optional

from .api import DeviceApi, DhcpApi, MonitoringApi, NetworkApi, SmsApi
from .codec import XmlCodec
from .config import CredentialsConfig, DeviceConfig
from .pipeline import ApiRequest, RequestPipeline
from .retry import RetryPolicy
from .session import SessionManager
from .transport import BaseTransport, HttpTransport

logger = logging.getLogger(__name__)


class HiLinkClient:
    """Client for one HiLink device.

    Each instance owns its own session, lock and transport, so clients for
    different devices never share tokens.

    Usage:
        async with HiLinkClient.for_url("http://192.168.8.1") as client:
            await client.login("admin", "secret")
            status = await client.monitoring.status()
            await client.sms.send("+15551234567", "hello")
    """

    def __init__(
        self,
        config: Optional[DeviceConfig] = None,
        transport: Optional[BaseTransport] = None,
        codec: Optional[XmlCodec] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.config = config or DeviceConfig()
        self.codec = codec or XmlCodec()
        self.transport = transport or HttpTransport(
            self.config.base_url,
            timeout=self.config.timeout,
            user_agent=self.config.user_agent,
        )
        self.session = SessionManager(self.transport, self.codec, timeout=self.config.timeout)
        self.pipeline = RequestPipeline(
            self.transport,
            self.codec,
            self.session,
            policy or RetryPolicy.from_config(self.config.retry),
            timeout=self.config.timeout,
        )
        self.session.attach(self.pipeline)

        if self.config.credentials is not None:
            self.session.remember_credentials(
                self.config.credentials.username, self.config.credentials.password
            )

        self.device = DeviceApi(self.pipeline)
        self.monitoring = MonitoringApi(self.pipeline)
        self.network = NetworkApi(self.pipeline)
        self.sms = SmsApi(self.pipeline)
        self.dhcp = DhcpApi(self.pipeline)

    @classmethod
    def for_url(
        cls,
        base_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        **kwargs: Any,
    ) -> "HiLinkClient":
        """Build a client from a URL and optional credentials.

        Extra keyword arguments are passed to DeviceConfig (timeout, retry, ...).
        """
        credentials = None
        if password is not None:
            credentials = CredentialsConfig(username=username or "admin", password=password)
        config = DeviceConfig(base_url=base_url, credentials=credentials, **kwargs)
        return cls(config=config)

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    async def __aenter__(self) -> "HiLinkClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    async def prime(self) -> int:
        """Fetch an initial anti-forgery token and session cookie."""
        return await self.session.prime()

    async def login(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        remember: bool = True,
    ) -> None:
        """Log in, falling back to configured credentials."""
        if password is None:
            if self.config.credentials is None:
                raise ValueError("No password given and no credentials configured")
            username = username or self.config.credentials.username
            password = self.config.credentials.password
        await self.session.login(username or "admin", password, remember=remember)

    async def logout(self) -> None:
        await self.session.logout()

    async def execute(self, request: ApiRequest, deadline: Optional[float] = None) -> Any:
        """Run an arbitrary API request through the pipeline."""
        return await self.pipeline.execute(request, deadline=deadline)
