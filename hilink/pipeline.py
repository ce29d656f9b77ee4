"""Authenticated request pipeline.

Every API call goes through ``RequestPipeline.execute``::

    encode -> attach cookie/token -> send -> observe -> classify
        Success         -> decode and return
        TokenInvalid    -> drop tokens, re-prime, retry once
        AuthExpired     -> re-login with cached credentials, retry once
        DeviceBusy      -> backoff and retry per RetryPolicy
        TransportFailure-> backoff and retry per RetryPolicy
        MalformedPayload, Rejected -> raise

The session lock is held only for in-memory work; network calls and backoff
sleeps happen outside it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Tuple, Type, Union

from pydantic import BaseModel

from .codec import Outcome, OutcomeKind, XmlCodec
from .errors import (
    ClientError,
    DeviceBusy,
    LoginRequired,
    MalformedPayload,
    TokenInvalid,
    TransportFailure,
    error_for_code,
)
from .models import OkResponse
from .retry import RetryPolicy
from .transport import BaseTransport, TransportError

if TYPE_CHECKING:
    from .session import SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    """One logical API call. Immutable once built."""
    method: str
    path: str
    requires_auth: bool = False
    body: Union[BaseModel, bytes, None] = None
    response_model: Type[BaseModel] = OkResponse

    @property
    def is_write(self) -> bool:
        return self.method.upper() == "POST"

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


class RequestPipeline:
    """Executes ApiRequests with token, session and retry handling."""

    def __init__(
        self,
        transport: BaseTransport,
        codec: XmlCodec,
        session: "SessionManager",
        policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.codec = codec
        self.session = session
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    async def execute(self, request: ApiRequest, deadline: Optional[float] = None) -> Any:
        """Run one API call to completion.

        Args:
            request: The call to make.
            deadline: Optional overall limit in seconds. Expiry cancels any
                in-flight exchange or backoff and raises TransportFailure.

        Returns:
            An instance of ``request.response_model``.

        Raises:
            ClientError: Any failure that could not be recovered.
        """
        if deadline is None:
            return await self._execute(request)
        try:
            return await asyncio.wait_for(self._execute(request), timeout=deadline)
        except asyncio.TimeoutError as e:
            raise TransportFailure(f"{request} exceeded deadline of {deadline}s") from e

    async def _execute(self, request: ApiRequest) -> Any:
        # Deterministic, never retried
        payload = self.codec.encode(request.body)

        # One time budget covers every round, including those after a token
        # refresh or relogin
        started = self._clock()
        token_retried = False
        relogin_used = False
        while True:
            outcome, generation = await self._send_with_retry(request, payload, started)
            kind = outcome.kind

            if kind == OutcomeKind.SUCCESS:
                return self.codec.decode_document(outcome.document, request.response_model)

            if kind == OutcomeKind.TOKEN_INVALID:
                if token_retried:
                    raise TokenInvalid(f"{request}: token rejected after refresh", code=outcome.code)
                token_retried = True
                logger.debug(f"{request}: token rejected ({outcome.code}), refreshing and retrying once")
                await self.session.invalidate_tokens()
                continue

            if kind == OutcomeKind.AUTH_EXPIRED:
                await self.session.invalidate_session(generation)
                if not request.requires_auth:
                    raise LoginRequired(f"{request}: device requires login", code=outcome.code)
                if relogin_used or not self.session.has_credentials:
                    raise LoginRequired(f"{request}: session expired and no credentials are cached",
                                        code=outcome.code)
                relogin_used = True
                if not await self.session.relogin(generation):
                    raise LoginRequired(f"{request}: session expired", code=outcome.code)
                continue

            raise self._error_for(request, outcome)

    def _error_for(self, request: ApiRequest, outcome: Outcome) -> ClientError:
        if outcome.kind == OutcomeKind.MALFORMED_PAYLOAD:
            return MalformedPayload(f"{request}: {outcome.message}")
        if outcome.kind == OutcomeKind.DEVICE_BUSY:
            return DeviceBusy(f"{request}: {outcome.message}", code=outcome.code)
        if outcome.kind == OutcomeKind.TRANSPORT_FAILURE:
            return TransportFailure(f"{request}: {outcome.message}")
        return error_for_code(outcome.code, outcome.message)

    async def _send_with_retry(
        self, request: ApiRequest, payload: bytes, started: float
    ) -> Tuple[Outcome, int]:
        """Send until a non-retryable outcome or the policy gives up.

        ``started`` is the clock reading when the logical request began; no
        attempt is made once the policy's deadline has passed since then.
        """
        attempt = 0
        previous_delay = 0.0
        last: Optional[Tuple[Outcome, int]] = None
        while True:
            remaining = self.policy.remaining(self._clock() - started)
            if remaining is None:
                if last is not None:
                    logger.warning(f"{request}: time budget spent after {attempt} attempt(s)")
                    return last
                return (Outcome.transport_failure(f"time budget of {self.policy.deadline}s spent"),
                        self.session.generation)
            attempt += 1

            outcome, generation = await self._attempt(request, payload, min(self.timeout, remaining))
            last = outcome, generation
            if not outcome.retryable:
                return outcome, generation

            delay = self.policy.next_delay(attempt, previous_delay)
            if not self.policy.should_retry(attempt, delay, self._clock() - started):
                logger.warning(f"{request}: giving up after {attempt} attempt(s): {outcome.message}")
                return outcome, generation

            logger.debug(
                f"{request}: {outcome.kind.value}, retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}/{self.policy.max_attempts})"
            )
            previous_delay = delay
            await self._sleep(delay)

    async def _attempt(self, request: ApiRequest, payload: bytes, timeout: float) -> Tuple[Outcome, int]:
        attempt_started = self._clock()
        try:
            headers, generation = await self._prepare_headers(request, timeout)
        except TransportFailure as e:
            return Outcome.transport_failure(str(e)), self.session.generation

        # Priming may have used part of the attempt's time
        timeout -= self._clock() - attempt_started
        if timeout <= 0:
            return Outcome.transport_failure(f"{request}: no time left after priming"), generation
        try:
            response = await self.transport.send(
                request.method, request.path, payload, headers=headers, timeout=timeout
            )
        except TransportError as e:
            return Outcome.transport_failure(str(e)), generation

        await self.session.observe_response(response)
        outcome = self.codec.classify(response.body, response.status)
        logger.debug(f"{request} -> HTTP {response.status}, {outcome.kind.value}")
        return outcome, generation

    async def _prepare_headers(self, request: ApiRequest, timeout: float) -> Tuple[Dict[str, str], int]:
        """Attach cookie and token. Writes consume a token, reads only peek.

        Priming for a write is bounded by ``timeout``.
        """
        token: Optional[str] = None
        if request.is_write:
            token = await self.session.consume_token(budget=timeout)
        elif request.requires_auth:
            token = await self.session.peek_token()

        cookie, generation = await self.session.cookie()
        headers: Dict[str, str] = {}
        if cookie:
            headers["Cookie"] = f"SessionID={cookie}"
        if token:
            headers["__RequestVerificationToken"] = token
        return headers, generation
