"""Mock HiLink device for testing without real hardware.

Serves the subset of the HiLink XML API this client uses, including the parts
that make the protocol awkward: single-use anti-forgery tokens, SessionID
cookies, in-band error codes on HTTP 200, session expiry and busy replies.

Usage:
    device = MockDevice(password="secret")
    server = TestServer(device.create_app())
    await server.start_server()
    client = HiLinkClient.for_url(str(server.make_url("")), password="secret")

Failure injection is done by setting plain attributes:
    device.busy_responses = 2          # next two API calls answer 100004
    device.token_errors = 1            # next write answers 125002
    device.malformed_paths.add("/api/device/information")
    device.expire_sessions()           # every session must log in again
"""

import asyncio
import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

import xmltodict
from aiohttp import web

from .auth import encode_password
from .errors import (
    NO_RIGHTS,
    SYSTEM_BUSY,
    USERNAME_PWD_OVERRUN,
    USERNAME_PWD_WRONG,
    CSRF_TOKEN_INVALID,
)
from .models import (
    DeviceControlRequest,
    DhcpSettingsRequest,
    LoginRequest,
    NetworkModeRequest,
    SendSmsRequest,
    SmsIndexRequest,
    SmsListRequest,
)

logger = logging.getLogger(__name__)

SESSION_COOKIE = "SessionID"
TOKEN_HEADER = "__RequestVerificationToken"

# Paths that are reachable without a logged in session
PUBLIC_PATHS = {
    "/",
    "/api/webserver/SesTokInfo",
    "/api/webserver/token",
    "/api/user/state-login",
    "/api/user/login",
    "/api/user/logout",
    "/api/net/current-plmn",
}


class MockDevice:
    """In-process imitation of a HiLink LTE router."""

    def __init__(
        self,
        username: str = "admin",
        password: str = "admin",
        password_type: int = 4,
        tokens_per_issue: int = 1,
        rotate_tokens: bool = True,
        max_login_attempts: int = 5,
    ):
        self.username = username
        self.password = password
        self.password_type = password_type
        self.tokens_per_issue = tokens_per_issue
        self.rotate_tokens = rotate_tokens
        self.max_login_attempts = max_login_attempts

        # Failure injection
        self.busy_responses = 0
        self.token_errors = 0
        self.malformed_paths: Set[str] = set()
        self.delay = 0.0

        # Protocol state
        self.sessions: Dict[str, bool] = {}  # session id -> authenticated
        self.valid_tokens: Set[str] = set()
        self.issued_tokens: List[str] = []
        self.used_tokens: List[str] = []
        self.failed_logins = 0
        self.requests: List[Tuple[str, str]] = []

        self.device_info = {
            "DeviceName": "E3372h-320",
            "SerialNumber": "G4PDW17A28003456",
            "Imei": "866123045678901",
            "Imsi": "310260123456789",
            "Iccid": "8901260123456789012",
            "Msisdn": "",
            "HardwareVersion": "CL1E3372HM",
            "SoftwareVersion": "22.200.15.00.00",
            "WebUIVersion": "17.100.13.01.03",
            "MacAddress1": "0C:5B:8F:27:9A:64",
            "MacAddress2": "",
            "ProductFamily": "LTE",
            "Classify": "hilink",
            "supportmode": "LTE|WCDMA|GSM",
            "workmode": "LTE",
        }
        self.monitoring = {
            "ConnectionStatus": "901",
            "SignalStrength": "",
            "SignalIcon": "4",
            "CurrentNetworkType": "19",
            "CurrentNetworkTypeEx": "101",
            "CurrentServiceDomain": "3",
            "RoamingStatus": "0",
            "simlockStatus": "0",
            "PrimaryDns": "10.177.0.34",
            "SecondaryDns": "10.168.183.16",
            "flymode": "0",
            "ServiceStatus": "2",
            "SimStatus": "1",
            "maxsignal": "5",
            "classify": "hilink",
        }
        self.net_mode = {"NetworkMode": "00", "NetworkBand": "3FFFFFFF", "LTEBand": "7FFFFFFFFFFFFFFF"}
        self.plmn = {"State": "0", "FullName": "T-Mobile", "ShortName": "TMO", "Numeric": "310260", "Rat": "7"}
        self.dhcp = {
            "DhcpIPAddress": "192.168.8.1",
            "DhcpLanNetmask": "255.255.255.0",
            "DhcpStatus": "1",
            "DhcpStartIPAddress": "192.168.8.100",
            "DhcpEndIPAddress": "192.168.8.200",
            "DhcpLeaseTime": "86400",
            "DnsStatus": "1",
            "PrimaryDns": "192.168.8.1",
            "SecondaryDns": "192.168.8.1",
        }
        self.messages: Dict[int, Dict[str, Any]] = {}
        self.sent_messages: List[Dict[str, Any]] = []
        self._next_index = 40000

    # State helpers

    def expire_sessions(self) -> None:
        """Log every session out, as the device does after its idle timeout."""
        for session_id in self.sessions:
            self.sessions[session_id] = False

    def add_message(self, phone: str, content: str, unread: bool = True) -> int:
        """Put a received message into the local inbox."""
        index = self._next_index
        self._next_index += 1
        self.messages[index] = {
            "Smstat": "0" if unread else "1",
            "Index": str(index),
            "Phone": phone,
            "Content": content,
            "Date": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "Sca": "",
            "SaveType": "4",
            "Priority": "0",
            "SmsType": "1",
        }
        return index

    def _issue_tokens(self, count: Optional[int] = None) -> List[str]:
        tokens = [secrets.token_hex(16) for _ in range(count or self.tokens_per_issue)]
        self.valid_tokens.update(tokens)
        self.issued_tokens.extend(tokens)
        return tokens

    def _session_id(self, request: web.Request) -> Optional[str]:
        session_id = request.cookies.get(SESSION_COOKIE)
        return session_id if session_id in self.sessions else None

    def _new_session(self) -> str:
        session_id = secrets.token_hex(32)
        self.sessions[session_id] = False
        return session_id

    def _is_authenticated(self, request: web.Request) -> bool:
        session_id = self._session_id(request)
        return bool(session_id and self.sessions[session_id])

    # Response builders

    def _xml(self, root: str, content: Any, status: int = 200) -> web.Response:
        body = xmltodict.unparse({root: content}, encoding="UTF-8")
        return web.Response(body=body.encode("utf-8"), status=status, content_type="text/xml", charset="utf-8")

    def _ok(self, data: Any = "OK") -> web.Response:
        return self._xml("response", data)

    def _error(self, code: int, message: str = "") -> web.Response:
        return self._xml("error", {"code": str(code), "message": message})

    def _with_rotation(self, response: web.Response) -> web.Response:
        if self.rotate_tokens:
            response.headers[TOKEN_HEADER] = "#".join(self._issue_tokens())
        return response

    def _parse_request(self, body: bytes) -> Dict[str, Any]:
        document = xmltodict.parse(body, force_list=("Phone",))
        return document.get("request") or {}

    def _check_token(self, request: web.Request) -> bool:
        token = request.headers.get(TOKEN_HEADER)
        if not token or token not in self.valid_tokens:
            return False
        self.valid_tokens.discard(token)
        self.used_tokens.append(token)
        return True

    # Middleware

    @web.middleware
    async def _middleware(self, request: web.Request, handler):
        self.requests.append((request.method, request.path))
        logger.debug(f"[MOCK] {request.method} {request.path}")
        if self.delay:
            await asyncio.sleep(self.delay)

        if request.path in self.malformed_paths:
            return web.Response(body=b"<response><broken", content_type="text/xml")

        if request.path.startswith("/api/") and not request.path.startswith("/api/webserver/"):
            if self.busy_responses > 0:
                self.busy_responses -= 1
                return self._error(SYSTEM_BUSY)

        if request.method == "POST":
            if self.token_errors > 0:
                self.token_errors -= 1
                self._check_token(request)
                return self._error(CSRF_TOKEN_INVALID)
            if not self._check_token(request):
                return self._error(CSRF_TOKEN_INVALID)

        if request.path not in PUBLIC_PATHS and not self._is_authenticated(request):
            return self._error(NO_RIGHTS)

        response = await handler(request)
        if request.method == "POST" and request.path != "/api/user/login":
            self._with_rotation(response)
        return response

    # Handlers: session

    async def handle_ses_tok_info(self, request: web.Request) -> web.Response:
        session_id = self._session_id(request) or self._new_session()
        token = self._issue_tokens(1)[0]
        response = self._ok({"SesInfo": f"{SESSION_COOKIE}={session_id}", "TokInfo": token})
        response.set_cookie(SESSION_COOKIE, session_id, path="/")
        return response

    async def handle_token(self, request: web.Request) -> web.Response:
        return self._ok({"token": self._issue_tokens(1)[0]})

    async def handle_home(self, request: web.Request) -> web.Response:
        session_id = self._session_id(request) or self._new_session()
        metas = "".join(f'<meta name="csrf_token" content="{t}"/>' for t in self._issue_tokens(2))
        html = f"<!DOCTYPE html><html><head>{metas}<title>HUAWEI</title></head><body></body></html>"
        response = web.Response(text=html, content_type="text/html")
        response.set_cookie(SESSION_COOKIE, session_id, path="/")
        return response

    async def handle_state_login(self, request: web.Request) -> web.Response:
        locked = self.failed_logins >= self.max_login_attempts
        response = self._ok({
            "State": "0" if self._is_authenticated(request) else "-1",
            "Username": self.username if self._is_authenticated(request) else "",
            "password_type": str(self.password_type),
            "lockstatus": "1" if locked else "0",
            "remainwaittime": "60" if locked else "0",
            "accounts_number": "1",
            "firstlogin": "0",
        })
        if self._session_id(request) is None:
            response.set_cookie(SESSION_COOKIE, self._new_session(), path="/")
        return response

    async def handle_login(self, request: web.Request) -> web.Response:
        if self.failed_logins >= self.max_login_attempts:
            return self._error(USERNAME_PWD_OVERRUN)
        login = LoginRequest.model_validate(self._parse_request(await request.read()))
        expected = encode_password(self.password, login.password_type)
        if login.username != self.username or login.password != expected:
            self.failed_logins += 1
            logger.info(f"[MOCK] Rejected login for {login.username}")
            return self._error(USERNAME_PWD_WRONG)

        self.failed_logins = 0
        old_session = self._session_id(request)
        if old_session:
            del self.sessions[old_session]
        session_id = self._new_session()
        self.sessions[session_id] = True
        logger.info(f"[MOCK] {login.username} logged in")

        response = self._ok()
        response.set_cookie(SESSION_COOKIE, session_id, path="/")
        tokens = self._issue_tokens(2)
        response.headers[f"{TOKEN_HEADER}one"] = tokens[0]
        response.headers[f"{TOKEN_HEADER}two"] = tokens[1]
        return response

    async def handle_logout(self, request: web.Request) -> web.Response:
        session_id = self._session_id(request)
        if session_id:
            self.sessions[session_id] = False
        return self._ok()

    # Handlers: device, monitoring, network

    async def handle_device_information(self, request: web.Request) -> web.Response:
        return self._ok(self.device_info)

    async def handle_device_control(self, request: web.Request) -> web.Response:
        control = DeviceControlRequest.model_validate(self._parse_request(await request.read()))
        logger.info(f"[MOCK] Device control {control.control.name}")
        return self._ok()

    async def handle_monitoring_status(self, request: web.Request) -> web.Response:
        return self._ok(self.monitoring)

    async def handle_get_net_mode(self, request: web.Request) -> web.Response:
        return self._ok(self.net_mode)

    async def handle_set_net_mode(self, request: web.Request) -> web.Response:
        mode = NetworkModeRequest.model_validate(self._parse_request(await request.read()))
        self.net_mode = mode.model_dump(by_alias=True, mode="json")
        return self._ok()

    async def handle_current_plmn(self, request: web.Request) -> web.Response:
        return self._ok(self.plmn)

    # Handlers: SMS

    async def handle_sms_count(self, request: web.Request) -> web.Response:
        inbox = list(self.messages.values())
        return self._ok({
            "LocalUnread": str(sum(1 for m in inbox if m["Smstat"] == "0")),
            "LocalInbox": str(len(inbox)),
            "LocalOutbox": str(len(self.sent_messages)),
            "LocalDraft": "0",
            "SimUnread": "0",
            "SimInbox": "0",
            "SimOutbox": "0",
            "SimDraft": "0",
            "NewMsg": "0",
        })

    async def handle_sms_list(self, request: web.Request) -> web.Response:
        query = SmsListRequest.model_validate(self._parse_request(await request.read()))
        source = list(self.messages.values()) if query.box_type.value == "1" else self.sent_messages
        ordered = sorted(source, key=lambda m: int(m["Index"]), reverse=not query.ascending)
        if query.unread_preferred:
            ordered.sort(key=lambda m: m["Smstat"] != "0")
        start = (query.page_index - 1) * query.read_count
        page = ordered[start:start + query.read_count]
        return self._ok({"Count": str(len(page)), "Messages": {"Message": page} if page else None})

    async def handle_send_sms(self, request: web.Request) -> web.Response:
        sms = SendSmsRequest.model_validate(self._parse_request(await request.read()))
        for phone in sms.phones:
            index = self._next_index
            self._next_index += 1
            self.sent_messages.append({
                "Smstat": "3",
                "Index": str(index),
                "Phone": phone,
                "Content": sms.content,
                "Date": sms.date,
                "Sca": sms.sca,
                "SaveType": "3",
                "Priority": "0",
                "SmsType": "1",
            })
        logger.info(f"[MOCK] Sent SMS to {', '.join(sms.phones)}")
        return self._ok()

    async def handle_delete_sms(self, request: web.Request) -> web.Response:
        target = SmsIndexRequest.model_validate(self._parse_request(await request.read()))
        if self.messages.pop(int(target.index), None) is None:
            return self._error(100006, "No such message")
        return self._ok()

    async def handle_set_read(self, request: web.Request) -> web.Response:
        target = SmsIndexRequest.model_validate(self._parse_request(await request.read()))
        message = self.messages.get(int(target.index))
        if message is None:
            return self._error(100006, "No such message")
        message["Smstat"] = "1"
        return self._ok()

    # Handlers: DHCP

    async def handle_get_dhcp(self, request: web.Request) -> web.Response:
        return self._ok(self.dhcp)

    async def handle_set_dhcp(self, request: web.Request) -> web.Response:
        settings = DhcpSettingsRequest.model_validate(self._parse_request(await request.read()))
        self.dhcp = settings.model_dump(by_alias=True, mode="json")
        return self._ok()

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[self._middleware])
        app.router.add_get("/", self.handle_home)
        app.router.add_get("/api/webserver/SesTokInfo", self.handle_ses_tok_info)
        app.router.add_get("/api/webserver/token", self.handle_token)
        app.router.add_get("/api/user/state-login", self.handle_state_login)
        app.router.add_post("/api/user/login", self.handle_login)
        app.router.add_post("/api/user/logout", self.handle_logout)
        app.router.add_get("/api/device/information", self.handle_device_information)
        app.router.add_post("/api/device/control", self.handle_device_control)
        app.router.add_get("/api/monitoring/status", self.handle_monitoring_status)
        app.router.add_get("/api/net/net-mode", self.handle_get_net_mode)
        app.router.add_post("/api/net/net-mode", self.handle_set_net_mode)
        app.router.add_get("/api/net/current-plmn", self.handle_current_plmn)
        app.router.add_get("/api/sms/sms-count", self.handle_sms_count)
        app.router.add_post("/api/sms/sms-list", self.handle_sms_list)
        app.router.add_post("/api/sms/send-sms", self.handle_send_sms)
        app.router.add_post("/api/sms/delete-sms", self.handle_delete_sms)
        app.router.add_post("/api/sms/set-read", self.handle_set_read)
        app.router.add_get("/api/dhcp/settings", self.handle_get_dhcp)
        app.router.add_post("/api/dhcp/settings", self.handle_set_dhcp)
        return app

    async def serve(self, host: str = "127.0.0.1", port: int = 8080) -> web.AppRunner:
        """Start serving on host:port and return the runner for cleanup."""
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()
        logger.info(f"[MOCK] HiLink device listening on http://{host}:{port}")
        return runner
