"""Tests for token store, priming, login and logout."""

import asyncio

import pytest

from conftest import FakeTransport, build_pipeline, error, ok
from hilink.errors import (
    InvalidCredentials,
    LoginLocked,
    NoTokenAvailable,
    TransportFailure,
)
from hilink.transport import TransportError, TransportResponse

LOGGED_OUT = {"State": "-1", "password_type": "4", "lockstatus": "0"}
LOGGED_IN = {"State": "0", "Username": "admin", "password_type": "4", "lockstatus": "0"}


class TestPriming:
    """Tests for seeding the token buffer."""

    @pytest.mark.asyncio
    async def test_prime_yields_exactly_one_token_and_cookie(self, transport, pipeline_parts):
        manager, _ = pipeline_parts

        assert await manager.prime() == 1
        assert list(manager.session.tokens) == ["tok-1"]
        assert manager.session.session_cookie == "sess-1"

    @pytest.mark.asyncio
    async def test_prime_is_idempotent(self, transport, pipeline_parts):
        manager, _ = pipeline_parts

        await manager.prime()
        await manager.prime()

        assert len(transport.calls_to("/api/webserver/SesTokInfo")) == 1
        assert await manager.token_count() == 1

    @pytest.mark.asyncio
    async def test_prime_falls_back_to_token_endpoint(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/webserver/SesTokInfo", TransportResponse(status=404))
        transport.on("GET", "/api/webserver/token", ok({"token": "abc123"}))

        assert await manager.prime() == 1
        assert await manager.consume_token() == "abc123"

    @pytest.mark.asyncio
    async def test_prime_falls_back_to_homepage_meta_tags(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        html = (
            b'<html><head><meta name="csrf_token" content="first"/>'
            b'<meta name="csrf_token" content="second"/></head></html>'
        )
        transport.on("GET", "/api/webserver/SesTokInfo", error(100002))
        transport.on("GET", "/api/webserver/token", TransportResponse(status=404))
        transport.on("GET", "/", TransportResponse(status=200, cookies={"SessionID": "home"}, body=html))

        assert await manager.prime() == 2
        assert await manager.consume_token() == "first"
        assert await manager.consume_token() == "second"
        assert manager.session.session_cookie == "home"

    @pytest.mark.asyncio
    async def test_prime_sends_existing_cookie(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        manager.session.session_cookie = "existing"

        await manager.prime()

        assert transport.calls_to("/api/webserver/SesTokInfo")[0].cookie == "SessionID=existing"

    @pytest.mark.asyncio
    async def test_unreachable_device_raises_transport_failure(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        for path in ("/api/webserver/SesTokInfo", "/api/webserver/token", "/"):
            transport.on("GET", path, TransportError("connection refused"))

        with pytest.raises(TransportFailure):
            await manager.prime()


class TestTokenStore:
    """Tests for consuming and observing tokens."""

    @pytest.mark.asyncio
    async def test_tokens_consumed_in_issuance_order(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.observe_response(
            TransportResponse(status=200, headers={"__RequestVerificationToken": "a#b#c"})
        )

        assert [await manager.consume_token() for _ in range(3)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_empty_buffer_forces_prime(self, transport, pipeline_parts):
        manager, _ = pipeline_parts

        assert await manager.consume_token() == "tok-1"
        assert await manager.consume_token() == "tok-2"
        assert len(transport.calls_to("/api/webserver/SesTokInfo")) == 2

    @pytest.mark.asyncio
    async def test_no_token_available(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/webserver/SesTokInfo", ok({"SesInfo": "SessionID=x", "TokInfo": ""}))

        with pytest.raises(NoTokenAvailable):
            await manager.consume_token()

    @pytest.mark.asyncio
    async def test_observed_tokens_replace_buffer(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.observe_response(
            TransportResponse(status=200, headers={"__RequestVerificationToken": "old1#old2"})
        )
        await manager.observe_response(TransportResponse(status=200, headers={
            "__RequestVerificationTokenone": "new1",
            "__RequestVerificationTokentwo": "new2",
        }))

        assert list(manager.session.tokens) == ["new1", "new2"]

    @pytest.mark.asyncio
    async def test_observe_updates_cookie(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.observe_response(TransportResponse(status=200, cookies={"SessionID": "rotated"}))
        assert manager.session.session_cookie == "rotated"

    @pytest.mark.asyncio
    async def test_observe_without_tokens_keeps_buffer(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.observe_response(
            TransportResponse(status=200, headers={"__RequestVerificationToken": "keep"})
        )
        await manager.observe_response(TransportResponse(status=200, headers={"Content-Type": "text/xml"}))
        assert list(manager.session.tokens) == ["keep"]

    @pytest.mark.asyncio
    async def test_peek_does_not_consume(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.prime()

        assert await manager.peek_token() == "tok-1"
        assert await manager.token_count() == 1

    @pytest.mark.asyncio
    async def test_concurrent_consumers_on_empty_buffer_get_distinct_tokens(self):
        transport = FakeTransport(delay=0.01)
        manager, _ = build_pipeline(transport)

        tokens = await asyncio.gather(*(manager.consume_token() for _ in range(8)))

        assert len(set(tokens)) == 8


class TestInvalidation:
    """Tests for clearing session state."""

    @pytest.mark.asyncio
    async def test_invalidate_session_clears_everything(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.prime()
        manager.session.authenticated = True
        generation = manager.generation

        assert await manager.invalidate_session(generation)

        assert manager.session.session_cookie is None
        assert await manager.token_count() == 0
        assert not manager.is_authenticated
        assert manager.generation == generation + 1

    @pytest.mark.asyncio
    async def test_stale_generation_is_ignored(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.prime()
        stale = manager.generation - 1

        assert not await manager.invalidate_session(stale)
        assert await manager.token_count() == 1

    @pytest.mark.asyncio
    async def test_invalidate_tokens_keeps_cookie(self, pipeline_parts):
        manager, _ = pipeline_parts
        await manager.prime()

        await manager.invalidate_tokens()

        assert await manager.token_count() == 0
        assert manager.session.session_cookie == "sess-1"


class TestLogin:
    """Tests for the login exchange."""

    @pytest.mark.asyncio
    async def test_login_success(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_OUT))
        transport.on("POST", "/api/user/login", ok(headers={
            "__RequestVerificationTokenone": "after-login-1",
            "__RequestVerificationTokentwo": "after-login-2",
        }, cookies={"SessionID": "authed"}))

        await manager.login("admin", "admin")

        assert manager.is_authenticated
        assert manager.has_credentials
        assert manager.session.username == "admin"
        assert manager.session.session_cookie == "authed"
        assert list(manager.session.tokens) == ["after-login-1", "after-login-2"]

        login_call = transport.calls_to("/api/user/login")[0]
        assert login_call.token == "tok-1"
        assert b"8c6976e5b5410415bde908bd4dee15dfb167a9c873fc4bb8a81f6f2ab448a918" in login_call.body
        assert b"<password_type>4</password_type>" in login_call.body

    @pytest.mark.asyncio
    async def test_login_uses_base64_when_announced(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok({**LOGGED_OUT, "password_type": "0"}))
        transport.on("POST", "/api/user/login", ok())

        await manager.login("admin", "admin")

        assert b"<Password>YWRtaW4=</Password>" in transport.calls_to("/api/user/login")[0].body

    @pytest.mark.asyncio
    async def test_already_logged_in_skips_login_post(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_IN))

        await manager.login("admin", "admin")

        assert manager.is_authenticated
        assert transport.calls_to("/api/user/login") == []

    @pytest.mark.asyncio
    async def test_already_logged_in_code_is_success(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_OUT))
        transport.on("POST", "/api/user/login", error(108003))

        await manager.login("admin", "admin")

        assert manager.is_authenticated

    @pytest.mark.asyncio
    async def test_wrong_password_is_not_retried(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_OUT))
        transport.on("POST", "/api/user/login", error(108006))

        with pytest.raises(InvalidCredentials):
            await manager.login("admin", "wrong")

        assert len(transport.calls_to("/api/user/login")) == 1
        assert not manager.is_authenticated
        assert not manager.has_credentials

    @pytest.mark.asyncio
    async def test_locked_account(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login",
                     ok({**LOGGED_OUT, "lockstatus": "1", "remainwaittime": "120"}))

        with pytest.raises(LoginLocked):
            await manager.login("admin", "admin")
        assert transport.calls_to("/api/user/login") == []

    @pytest.mark.asyncio
    async def test_login_without_remember(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_IN))

        await manager.login("admin", "admin", remember=False)

        assert manager.is_authenticated
        assert not manager.has_credentials

    @pytest.mark.asyncio
    async def test_login_bumps_generation(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_IN))
        before = manager.generation

        await manager.login("admin", "admin")

        assert manager.generation == before + 1


class TestLogout:
    """Tests for best-effort logout."""

    @pytest.mark.asyncio
    async def test_logout_clears_state(self, transport, pipeline_parts):
        manager, _ = pipeline_parts
        transport.on("GET", "/api/user/state-login", ok(LOGGED_IN))
        transport.on("POST", "/api/user/logout", ok())
        await manager.login("admin", "admin")

        await manager.logout()

        assert not manager.is_authenticated
        assert not manager.has_credentials
        assert manager.session.session_cookie is None
        assert b"<Logout>1</Logout>" in transport.calls_to("/api/user/logout")[0].body

    @pytest.mark.asyncio
    async def test_logout_clears_state_when_device_fails(self, transport, pipeline_parts):
        manager, pipeline = pipeline_parts
        pipeline.policy.max_attempts = 1
        transport.on("GET", "/api/user/state-login", ok(LOGGED_IN))
        transport.on("POST", "/api/user/logout", TransportError("connection reset"))
        await manager.login("admin", "admin")

        await manager.logout()

        assert not manager.is_authenticated
        assert not manager.has_credentials

    @pytest.mark.asyncio
    async def test_logout_when_not_logged_in_is_local_only(self, transport, pipeline_parts):
        manager, _ = pipeline_parts

        await manager.logout()

        assert transport.calls_to("/api/user/logout") == []
