"""End-to-end tests of HiLinkClient against the in-process MockDevice."""

import asyncio

import pytest

from hilink.client import HiLinkClient
from hilink.config import DeviceConfig, RetryConfig
from hilink.errors import (
    DeviceBusy,
    DeviceError,
    InvalidCredentials,
    LoginLocked,
    LoginRequired,
    MalformedPayload,
    TransportFailure,
)
from hilink.models import (
    DeviceInformation,
    NetworkModeRequest,
    NetworkModeType,
    SmsBoxType,
    SmsListRequest,
)
from hilink.pipeline import ApiRequest


class TestAuthentication:
    """Tests for login, logout and session expiry."""

    @pytest.mark.asyncio
    async def test_login_and_read(self, client, mock_device):
        await client.login("admin", "secret")

        info = await client.device.information()

        assert client.is_authenticated
        assert info.device_name == "E3372h-320"
        assert info.imei == "866123045678901"

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, mock_device):
        with pytest.raises(InvalidCredentials):
            await client.login("admin", "wrong")

        assert not client.is_authenticated
        assert mock_device.failed_logins == 1

    @pytest.mark.asyncio
    async def test_locked_after_too_many_failures(self, client, mock_device):
        mock_device.max_login_attempts = 1
        with pytest.raises(InvalidCredentials):
            await client.login("admin", "wrong")

        with pytest.raises(LoginLocked):
            await client.login("admin", "secret")

    @pytest.mark.asyncio
    async def test_login_without_password_or_config(self, client):
        with pytest.raises(ValueError):
            await client.login()

    @pytest.mark.asyncio
    async def test_protected_endpoint_without_login(self, client):
        with pytest.raises(LoginRequired):
            await client.monitoring.status()

    @pytest.mark.asyncio
    async def test_public_endpoint_without_login(self, client):
        plmn = await client.network.current_plmn()
        assert plmn.operator_name == "T-Mobile"

    @pytest.mark.asyncio
    async def test_expired_session_recovers_transparently(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.expire_sessions()

        status = await client.monitoring.status()

        assert status.is_connected
        assert mock_device.requests.count(("POST", "/api/user/login")) == 2

    @pytest.mark.asyncio
    async def test_expired_session_recovers_for_writes(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.expire_sessions()

        result = await client.sms.send("+15551234567", "after expiry")

        assert result.ok
        assert len(mock_device.sent_messages) == 1

    @pytest.mark.asyncio
    async def test_logout(self, client, mock_device):
        await client.login("admin", "secret")

        await client.logout()

        assert not client.is_authenticated
        assert not any(mock_device.sessions.values())
        with pytest.raises(LoginRequired):
            await client.device.information()

    @pytest.mark.asyncio
    async def test_configured_credentials(self, mock_server, mock_device):
        async with HiLinkClient.for_url(
            str(mock_server.make_url("")), password="secret",
            retry=RetryConfig(base_delay=0.01, max_delay=0.05),
        ) as hilink:
            await hilink.login()
            assert hilink.is_authenticated


class TestRecovery:
    """Tests for busy, token and payload failures injected by the device."""

    @pytest.mark.asyncio
    async def test_busy_device_is_retried(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.busy_responses = 2

        info = await client.device.information()

        assert info.device_name == "E3372h-320"

    @pytest.mark.asyncio
    async def test_busy_device_gives_up(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.busy_responses = 100

        with pytest.raises(DeviceBusy):
            await client.device.information()

    @pytest.mark.asyncio
    async def test_rejected_token_is_refreshed(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.token_errors = 1

        result = await client.sms.send("+15551234567", "hello")

        assert result.ok
        assert len(mock_device.sent_messages) == 1

    @pytest.mark.asyncio
    async def test_malformed_response(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.malformed_paths.add("/api/device/information")

        with pytest.raises(MalformedPayload):
            await client.device.information()
        assert mock_device.requests.count(("GET", "/api/device/information")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_writes_use_distinct_tokens(self, client, mock_device):
        await client.login("admin", "secret")

        results = await asyncio.gather(*(client.sms.send("+1555000000", f"msg {i}") for i in range(5)))

        assert all(r.ok for r in results)
        assert len(mock_device.sent_messages) == 5
        # A reused token would have been rejected and the send retried
        assert mock_device.requests.count(("POST", "/api/sms/send-sms")) == 5

    @pytest.mark.asyncio
    async def test_deadline(self, client, mock_device):
        await client.login("admin", "secret")
        mock_device.delay = 0.5

        with pytest.raises(TransportFailure):
            await client.execute(
                ApiRequest("GET", "/api/device/information", requires_auth=True,
                           response_model=DeviceInformation),
                deadline=0.1,
            )


class TestEndpoints:
    """Tests for the endpoint groups."""

    @pytest.mark.asyncio
    async def test_monitoring_status(self, client):
        await client.login("admin", "secret")

        status = await client.monitoring.status()

        assert status.is_connected
        assert status.is_sim_ready
        assert status.signal_level == 4

    @pytest.mark.asyncio
    async def test_reboot(self, client, mock_device):
        await client.login("admin", "secret")

        result = await client.device.reboot()

        assert result.ok
        assert ("POST", "/api/device/control") in mock_device.requests

    @pytest.mark.asyncio
    async def test_power_off(self, client):
        await client.login("admin", "secret")
        assert (await client.device.power_off()).ok

    @pytest.mark.asyncio
    async def test_network_mode(self, client):
        await client.login("admin", "secret")

        assert (await client.network.mode()).mode == NetworkModeType.AUTO
        await client.network.set_mode(NetworkModeRequest.lte_only())
        mode = await client.network.mode()

        assert mode.mode == NetworkModeType.LTE_ONLY
        assert mode.lte_band == "7FFFFFFFFFFFFFFF"

    @pytest.mark.asyncio
    async def test_sms_inbox(self, client, mock_device):
        first = mock_device.add_message("+15550001", "first")
        second = mock_device.add_message("+15550002", "second", unread=False)
        await client.login("admin", "secret")

        count = await client.sms.count()
        inbox = await client.sms.list()

        assert count.total_unread == 1
        assert count.local_inbox == 2
        assert inbox.count == 2
        assert [m.index for m in inbox.messages] == [str(second), str(first)]
        assert inbox.messages[1].phone == "+15550001"
        assert inbox.messages[1].is_unread

    @pytest.mark.asyncio
    async def test_sms_single_message_listed(self, client, mock_device):
        mock_device.add_message("+15550001", "only")
        await client.login("admin", "secret")

        inbox = await client.sms.list(SmsListRequest(read_count=1))

        assert len(inbox.messages) == 1
        assert inbox.messages[0].content == "only"

    @pytest.mark.asyncio
    async def test_sms_empty_inbox(self, client):
        await client.login("admin", "secret")

        inbox = await client.sms.list()

        assert inbox.count == 0
        assert inbox.messages == []

    @pytest.mark.asyncio
    async def test_sms_send_to_several_recipients(self, client, mock_device):
        await client.login("admin", "secret")

        await client.sms.send(["+15550001", "+15550002"], "hello")
        outbox = await client.sms.list(SmsListRequest(box_type=SmsBoxType.LOCAL_OUTBOX))

        assert sorted(m["Phone"] for m in mock_device.sent_messages) == ["+15550001", "+15550002"]
        assert outbox.count == 2

    @pytest.mark.asyncio
    async def test_sms_mark_read_and_delete(self, client, mock_device):
        index = mock_device.add_message("+15550001", "read me")
        await client.login("admin", "secret")

        await client.sms.mark_read(index)
        assert mock_device.messages[index]["Smstat"] == "1"

        await client.sms.delete(index)
        assert index not in mock_device.messages

    @pytest.mark.asyncio
    async def test_sms_delete_missing(self, client):
        await client.login("admin", "secret")

        with pytest.raises(DeviceError) as exc_info:
            await client.sms.delete(12345)

        assert exc_info.value.code == 100006

    @pytest.mark.asyncio
    async def test_dhcp_read_modify_write(self, client):
        await client.login("admin", "secret")

        settings = await client.dhcp.settings()
        request = settings.to_request()
        request.dhcp_start_ip_address = "192.168.8.50"
        await client.dhcp.set_settings(request)
        updated = await client.dhcp.settings()

        assert updated.dhcp_start_ip_address == "192.168.8.50"
        assert updated.dhcp_ip_address == "192.168.8.1"
        assert updated.dhcp_enabled


class TestClientConstruction:
    """Tests for building clients."""

    def test_for_url_sets_credentials(self):
        client = HiLinkClient.for_url("http://192.168.8.1/", username="user", password="pw")

        assert client.base_url == "http://192.168.8.1"
        assert client.session.has_credentials

    def test_default_config(self):
        client = HiLinkClient(DeviceConfig())
        assert client.base_url == "http://192.168.8.1"
        assert not client.session.has_credentials
