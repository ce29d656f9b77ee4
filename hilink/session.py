"""Session and anti-forgery token lifecycle.

The device hands out anti-forgery tokens that are valid for a single write.
Some firmwares pre-issue several at once, so tokens are buffered and consumed
in issuance order; an empty buffer forces a re-prime. All reads and writes of
the session go through one asyncio lock that is never held across a network
call.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

from bs4 import BeautifulSoup

from .auth import encode_password, parse_password_type
from .codec import XmlCodec
from .errors import (
    ALREADY_LOGGED_IN,
    ClientError,
    DecodingError,
    LoginLocked,
    NoTokenAvailable,
    TransportFailure,
)
from .models import LoginRequest, LoginState, LogoutRequest, OkResponse, SesTokInfo, TokenInfo
from .pipeline import ApiRequest, RequestPipeline
from .transport import BaseTransport, TransportError, TransportResponse

logger = logging.getLogger(__name__)

TOKEN_HEADERS = (
    "__RequestVerificationToken",
    "__RequestVerificationTokenone",
    "__RequestVerificationTokentwo",
)
SESSION_COOKIE = "SessionID"


def _short(value: Optional[str]) -> str:
    """Truncate a secret for logging."""
    if not value:
        return "<none>"
    return f"{value[:6]}..." if len(value) > 6 else "***"


@dataclass
class Session:
    """Client-side view of the device session."""
    session_cookie: Optional[str] = None
    tokens: Deque[str] = field(default_factory=deque)
    authenticated: bool = False
    username: Optional[str] = None
    generation: int = 0

    def clear(self) -> None:
        self.session_cookie = None
        self.tokens.clear()
        self.authenticated = False
        self.username = None
        self.generation += 1


class SessionManager:
    """Owns the Session and serialises every access to it.

    Usage:
        manager = SessionManager(transport, XmlCodec())
        pipeline = RequestPipeline(transport, codec, manager, policy)
        manager.attach(pipeline)
        await manager.login("admin", "secret")
    """

    API_SES_TOK_INFO = "/api/webserver/SesTokInfo"
    API_TOKEN = "/api/webserver/token"
    API_HOME = "/"
    API_STATE_LOGIN = "/api/user/state-login"
    API_LOGIN = "/api/user/login"
    API_LOGOUT = "/api/user/logout"

    def __init__(self, transport: BaseTransport, codec: XmlCodec, timeout: float = 30.0):
        self.transport = transport
        self.codec = codec
        self.timeout = timeout
        self.session = Session()
        self._lock = asyncio.Lock()
        self._prime_lock = asyncio.Lock()
        self._login_lock = asyncio.Lock()
        self._credentials: Optional[Tuple[str, str]] = None
        self._pipeline: Optional[RequestPipeline] = None

    def attach(self, pipeline: RequestPipeline) -> None:
        """Bind the pipeline used for login and logout exchanges."""
        self._pipeline = pipeline

    @property
    def pipeline(self) -> RequestPipeline:
        if self._pipeline is None:
            raise RuntimeError("SessionManager is not attached to a pipeline")
        return self._pipeline

    @property
    def is_authenticated(self) -> bool:
        return self.session.authenticated

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None

    @property
    def generation(self) -> int:
        return self.session.generation

    def remember_credentials(self, username: str, password: str) -> None:
        """Cache credentials for transparent re-login. Kept in memory only."""
        self._credentials = (username, password)

    def forget_credentials(self) -> None:
        self._credentials = None

    # Token store

    async def token_count(self) -> int:
        async with self._lock:
            return len(self.session.tokens)

    async def consume_token(self, budget: Optional[float] = None) -> str:
        """Pop the next unused token, priming if the buffer is empty.

        Priming is serialised. The caller that primes keeps the first fetched
        token for itself, so concurrent writers waiting on an empty buffer
        each end up with a token of their own.

        Args:
            budget: Upper bound in seconds for all priming requests together.
        """
        async with self._lock:
            if self.session.tokens:
                token = self.session.tokens.popleft()
                logger.debug(f"Consumed token {_short(token)} ({len(self.session.tokens)} left)")
                return token

        async with self._prime_lock:
            async with self._lock:
                if self.session.tokens:
                    return self.session.tokens.popleft()
            token = await self._refill(claim=True, budget=budget)
        if token is None:
            raise NoTokenAvailable("Priming did not yield an anti-forgery token")
        logger.debug(f"Consumed token {_short(token)} after priming")
        return token

    async def peek_token(self) -> Optional[str]:
        """Current token without consuming it, for authenticated reads."""
        async with self._lock:
            return self.session.tokens[0] if self.session.tokens else None

    async def cookie(self) -> Tuple[Optional[str], int]:
        """Session cookie together with the generation it belongs to."""
        async with self._lock:
            return self.session.session_cookie, self.session.generation

    async def observe_response(self, response: TransportResponse) -> None:
        """Commit any rotated token or cookie carried by a response.

        Parsing happens before the lock is taken and the commit holds no await,
        so a cancelled caller never leaves the session half updated.
        """
        tokens: List[str] = []
        for name in TOKEN_HEADERS:
            value = response.header(name)
            if value:
                tokens.extend(t for t in value.split("#") if t)
        cookie = response.cookies.get(SESSION_COOKIE)

        if not tokens and not cookie:
            return
        async with self._lock:
            if tokens:
                self.session.tokens = deque(tokens)
            if cookie:
                self.session.session_cookie = cookie
        if tokens:
            logger.debug(f"Observed {len(tokens)} rotated token(s), next {_short(tokens[0])}")
        if cookie:
            logger.debug(f"Observed session cookie {_short(cookie)}")

    async def invalidate_tokens(self) -> None:
        """Drop buffered tokens so the next write forces a re-prime."""
        async with self._lock:
            self.session.tokens.clear()
        logger.debug("Token buffer invalidated")

    async def invalidate_session(self, generation: int) -> bool:
        """Clear the session if it is still the one ``generation`` refers to.

        Returns:
            True if the session was cleared, False if a newer session exists.
        """
        async with self._lock:
            if self.session.generation != generation:
                return False
            self.session.clear()
        logger.info("Device session expired, local session cleared")
        return True

    # Priming

    async def prime(self) -> int:
        """Seed the token buffer and session cookie if no token is held.

        Tries SesTokInfo, then /api/webserver/token, then the csrf_token meta
        tags of the landing page.

        Returns:
            Number of tokens held afterwards.
        """
        async with self._prime_lock:
            async with self._lock:
                if self.session.tokens:
                    return len(self.session.tokens)
            await self._refill(claim=False)
        return await self.token_count()

    async def _refill(self, claim: bool, budget: Optional[float] = None) -> Optional[str]:
        """Fetch fresh tokens and commit them. Caller holds the prime lock."""
        logger.info("Priming session with the device")
        tokens, cookie = await self._fetch_initial_tokens(budget)
        claimed = tokens.pop(0) if claim and tokens else None

        async with self._lock:
            if cookie:
                self.session.session_cookie = cookie
            self.session.tokens.extend(tokens)
            count = len(self.session.tokens)
        logger.debug(f"Priming finished with {count} buffered token(s), cookie {_short(cookie)}")
        return claimed

    async def _fetch_initial_tokens(self, budget: Optional[float] = None) -> Tuple[List[str], Optional[str]]:
        last_error: Optional[Exception] = None
        async with self._lock:
            cookie = self.session.session_cookie
        steps = (
            (self.API_SES_TOK_INFO, self._tokens_from_ses_tok_info),
            (self.API_TOKEN, self._tokens_from_token_endpoint),
            (self.API_HOME, self._tokens_from_homepage),
        )
        started = time.monotonic()
        reached = False
        for path, extract in steps:
            timeout = self.timeout
            if budget is not None:
                left = budget - (time.monotonic() - started)
                if left <= 0:
                    logger.debug(f"Priming time budget of {budget:.2f}s spent before {path}")
                    break
                timeout = min(timeout, left)

            headers = {"Cookie": f"{SESSION_COOKIE}={cookie}"} if cookie else None
            try:
                response = await self.transport.send("GET", path, headers=headers, timeout=timeout)
            except TransportError as e:
                logger.debug(f"Priming via {path} failed: {e}")
                last_error = e
                continue

            reached = True
            cookie = response.cookies.get(SESSION_COOKIE) or cookie
            if not 200 <= response.status < 300:
                logger.debug(f"Priming via {path} returned HTTP {response.status}")
                continue
            tokens, found_cookie = extract(response.body)
            cookie = found_cookie or cookie
            if tokens:
                return tokens, cookie

        if not reached:
            reason = last_error or "time budget spent"
            raise TransportFailure(f"Could not reach device while priming: {reason}")
        return [], cookie

    def _tokens_from_ses_tok_info(self, body: bytes) -> Tuple[List[str], Optional[str]]:
        try:
            info = self.codec.decode(body, SesTokInfo)
        except DecodingError:
            return [], None
        return ([info.tok_info] if info.tok_info else []), info.session_id

    def _tokens_from_token_endpoint(self, body: bytes) -> Tuple[List[str], Optional[str]]:
        try:
            info = self.codec.decode(body, TokenInfo)
        except DecodingError:
            return [], None
        return ([info.token] if info.token else []), None

    def _tokens_from_homepage(self, body: bytes) -> Tuple[List[str], Optional[str]]:
        soup = BeautifulSoup(body, "html.parser")
        tokens = [
            meta.get("content")
            for meta in soup.find_all("meta", attrs={"name": "csrf_token"})
            if meta.get("content")
        ]
        return tokens, None

    # Login / logout

    async def login_state(self) -> LoginState:
        return await self.pipeline.execute(
            ApiRequest("GET", self.API_STATE_LOGIN, response_model=LoginState)
        )

    async def login(self, username: str, password: str, remember: bool = True) -> None:
        """Authenticate with the device.

        Args:
            username: Account name, usually "admin".
            password: Plain text password, encoded per the device's password_type.
            remember: Cache credentials for transparent re-login.

        Raises:
            InvalidCredentials: The device rejected the username or password.
            LoginLocked: Too many failed attempts.
            TransportFailure: The device could not be reached.
        """
        state = await self.login_state()
        if state.locked:
            raise LoginLocked(f"Login locked, retry in {state.remainwaittime or '?'}s")

        if not state.logged_in:
            password_type = parse_password_type(state.password_type)
            request = LoginRequest(
                username=username,
                password=encode_password(password, password_type),
                password_type=password_type,
            )
            logger.info(f"Logging in as {username}")
            try:
                await self.pipeline.execute(
                    ApiRequest("POST", self.API_LOGIN, body=request, response_model=OkResponse)
                )
            except ClientError as e:
                if e.code != ALREADY_LOGGED_IN:
                    raise
                logger.debug("Device reports an existing login")
        else:
            logger.info(f"Already logged in as {state.username or username}")

        async with self._lock:
            self.session.authenticated = True
            self.session.username = username
            self.session.generation += 1
        if remember:
            self.remember_credentials(username, password)

    async def relogin(self, observed_generation: int) -> bool:
        """Restore an expired session with cached credentials.

        Concurrent callers share a single login: whoever gets the lock first
        logs in, the others see a newer authenticated generation and return.

        Returns:
            True if an authenticated session exists afterwards, False if no
            credentials are cached.
        """
        async with self._login_lock:
            async with self._lock:
                if self.session.authenticated and self.session.generation != observed_generation:
                    return True
            if self._credentials is None:
                return False
            username, password = self._credentials
            logger.info(f"Session expired, logging in again as {username}")
            await self.login(username, password)
            return True

    async def logout(self) -> None:
        """Best-effort logout. Local state is cleared regardless of the outcome."""
        try:
            if self.session.authenticated:
                await self.pipeline.execute(
                    ApiRequest("POST", self.API_LOGOUT, body=LogoutRequest(), response_model=OkResponse)
                )
                logger.info("Logged out")
        except ClientError as e:
            logger.warning(f"Logout request failed, clearing local session anyway: {e}")
        finally:
            async with self._lock:
                self.session.clear()
            self.forget_credentials()
