"""Shared fixtures: a scripted in-memory transport and a served MockDevice."""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import pytest_asyncio
import xmltodict
from aiohttp.test_utils import TestServer

from hilink.client import HiLinkClient
from hilink.codec import XmlCodec
from hilink.config import DeviceConfig, RetryConfig
from hilink.mock import MockDevice
from hilink.pipeline import RequestPipeline
from hilink.retry import RetryPolicy
from hilink.session import SessionManager
from hilink.transport import BaseTransport, TransportResponse


def xml_response(
    root: str,
    content: Any,
    status: int = 200,
    headers: Optional[Dict[str, str]] = None,
    cookies: Optional[Dict[str, str]] = None,
) -> TransportResponse:
    body = xmltodict.unparse({root: content}).encode("utf-8")
    return TransportResponse(status=status, headers=headers or {}, cookies=cookies or {}, body=body)


def ok(content: Any = "OK", **kwargs) -> TransportResponse:
    return xml_response("response", content, **kwargs)


def error(code: int, **kwargs) -> TransportResponse:
    return xml_response("error", {"code": str(code), "message": ""}, **kwargs)


@dataclass
class Call:
    method: str
    path: str
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def token(self) -> Optional[str]:
        return self.headers.get("__RequestVerificationToken")

    @property
    def cookie(self) -> Optional[str]:
        return self.headers.get("Cookie")


Reply = Union[TransportResponse, Exception, Callable[[Call], Any]]


class FakeTransport(BaseTransport):
    """In-memory transport answering from per-route scripts.

    Each route holds a list of replies consumed in order; the last reply
    repeats. SesTokInfo is scripted by default to hand out unique tokens
    ``tok-1``, ``tok-2``... with a fixed session cookie.
    """

    def __init__(self, delay: float = 0.0):
        self.calls: List[Call] = []
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.delay = delay
        self.closed = False
        self._counter = itertools.count(1)
        self.on("GET", "/api/webserver/SesTokInfo", self.ses_tok_info)

    def next_token(self) -> str:
        return f"tok-{next(self._counter)}"

    def ses_tok_info(self, call: Call) -> TransportResponse:
        return ok({"SesInfo": "SessionID=sess-1", "TokInfo": self.next_token()})

    def on(self, method: str, path: str, *replies: Reply) -> "FakeTransport":
        self.routes[(method, path)] = list(replies)
        return self

    def calls_to(self, path: str) -> List[Call]:
        return [c for c in self.calls if c.path == path]

    async def send(self, method, path, body=b"", headers=None, timeout=None):
        call = Call(method, path, body, dict(headers or {}))
        self.calls.append(call)
        if self.delay:
            await asyncio.sleep(self.delay)

        replies = self.routes.get((method, path))
        if not replies:
            return TransportResponse(status=404, body=b"")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if callable(reply):
            reply = reply(call)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self):
        self.closed = True


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class SteppingClock:
    """Fake monotonic clock that only moves when its sleep is awaited.

    ``overshoot`` is added to every sleep to mimic a late wakeup.
    """

    def __init__(self, overshoot: float = 0.0):
        self.now = 0.0
        self.overshoot = overshoot
        self.delays: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        self.now += delay + self.overshoot


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleeper():
    return RecordingSleep()


def build_pipeline(
    transport: BaseTransport,
    policy: Optional[RetryPolicy] = None,
    sleep=None,
    timeout: float = 5.0,
    clock=None,
):
    """Wire a SessionManager and RequestPipeline around ``transport``."""
    codec = XmlCodec()
    manager = SessionManager(transport, codec, timeout=timeout)
    extra = {"clock": clock} if clock else {}
    pipeline = RequestPipeline(
        transport,
        codec,
        manager,
        policy or RetryPolicy(jitter=False),
        timeout=timeout,
        sleep=sleep or RecordingSleep(),
        **extra,
    )
    manager.attach(pipeline)
    return manager, pipeline


@pytest.fixture
def pipeline_parts(transport, sleeper):
    return build_pipeline(transport, sleep=sleeper)


@pytest.fixture
def mock_device():
    return MockDevice(username="admin", password="secret")


@pytest_asyncio.fixture
async def mock_server(mock_device):
    server = TestServer(mock_device.create_app())
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def client(mock_server):
    config = DeviceConfig(
        base_url=str(mock_server.make_url("")),
        timeout=5,
        retry=RetryConfig(base_delay=0.01, max_delay=0.05, deadline=5),
    )
    async with HiLinkClient(config) as hilink:
        yield hilink
