"""Typed payloads for the HiLink XML API.

Field aliases are the device's element names. Response models keep enum-like
fields as the raw strings the firmware sends, with helper properties mapping
them onto the enums below, so an unexpected value from a newer firmware does
not break decoding.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

E = TypeVar("E", bound=Enum)


def _enum_or_none(enum_cls: Type[E], value: Optional[str]) -> Optional[E]:
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        return None


class HiLinkModel(BaseModel):
    """Base model for request and response payloads."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Enums

class ConnectionStatus(str, Enum):
    CONNECTING = "900"
    CONNECTED = "901"
    DISCONNECTED = "902"
    DISCONNECTING = "903"
    CONNECT_FAILED = "904"
    CONNECT_STATUS_NULL = "905"
    CONNECT_STATUS_ERROR = "906"


class NetworkType(str, Enum):
    HSPA = "7"
    LTE = "19"
    LTE_CA = "41"
    NR_NSA = "101"
    NR_SA = "102"

    @property
    def label(self) -> str:
        return {
            NetworkType.HSPA: "HSPA (3G)",
            NetworkType.LTE: "LTE (4G)",
            NetworkType.LTE_CA: "LTE CA (4G+)",
            NetworkType.NR_NSA: "5G NSA",
            NetworkType.NR_SA: "5G SA",
        }[self]


class NetworkModeType(str, Enum):
    """Preferred radio access technologies."""
    AUTO = "00"
    GSM_ONLY = "01"
    UMTS_ONLY = "02"
    LTE_ONLY = "03"
    UMTS_PREFERRED = "0201"
    LTE_PREFERRED_GSM = "0301"
    LTE_PREFERRED_UMTS = "0302"

    @property
    def label(self) -> str:
        return {
            NetworkModeType.AUTO: "Auto (2G/3G/4G)",
            NetworkModeType.GSM_ONLY: "2G Only (GSM/EDGE)",
            NetworkModeType.UMTS_ONLY: "3G Only (UMTS/HSPA)",
            NetworkModeType.LTE_ONLY: "4G Only (LTE)",
            NetworkModeType.UMTS_PREFERRED: "3G Preferred, 2G Fallback",
            NetworkModeType.LTE_PREFERRED_GSM: "4G Preferred, 2G Fallback",
            NetworkModeType.LTE_PREFERRED_UMTS: "4G Preferred, 3G Fallback",
        }[self]


class SimStatus(str, Enum):
    NOT_READY = "0"
    READY = "1"


class RoamingStatus(str, Enum):
    NOT_ROAMING = "0"
    ROAMING = "1"


class ServiceStatus(str, Enum):
    NO_SERVICE = "0"
    LIMITED = "1"
    FULL = "2"


class SmsStatus(str, Enum):
    UNREAD = "0"
    READ = "1"
    PENDING = "2"
    SENT = "3"
    FAILED = "4"


class SmsBoxType(str, Enum):
    LOCAL_INBOX = "1"
    LOCAL_OUTBOX = "2"
    LOCAL_DRAFT = "3"
    SIM_INBOX = "4"
    SIM_OUTBOX = "5"
    SIM_DRAFT = "6"


class SmsSortType(str, Enum):
    BY_TIME = "0"
    BY_NAME = "1"


class LoginStatus(str, Enum):
    LOGGED_IN = "0"
    LOGGED_OUT = "-1"
    REPEAT = "-2"


class LockStatus(str, Enum):
    UNLOCKED = "0"
    LOCKED = "1"


class DhcpStatus(str, Enum):
    DISABLED = "0"
    ENABLED = "1"


class DnsStatus(str, Enum):
    DISABLED = "0"
    ENABLED = "1"


class DeviceControlType(str, Enum):
    REBOOT = "1"
    FACTORY_RESET = "2"
    BACKUP_CONFIGURATION = "3"
    POWER_OFF = "4"


# Common

class OkResponse(HiLinkModel):
    """Acknowledgement body ``<response>OK</response>``."""
    status: str = Field(default="OK", alias="OK")

    @property
    def ok(self) -> bool:
        return self.status.upper() == "OK"


class SesTokInfo(HiLinkModel):
    """Session cookie and token pair from /api/webserver/SesTokInfo."""
    ses_info: Optional[str] = Field(default=None, alias="SesInfo")
    tok_info: Optional[str] = Field(default=None, alias="TokInfo")

    @property
    def session_id(self) -> Optional[str]:
        """SessionID value with the ``SessionID=`` prefix stripped."""
        if not self.ses_info:
            return None
        value = self.ses_info.strip()
        if value.startswith("SessionID="):
            value = value[len("SessionID="):]
        return value or None


class TokenInfo(HiLinkModel):
    """Token from /api/webserver/token."""
    token: Optional[str] = Field(default=None, alias="token")


# Authentication

class LoginState(HiLinkModel):
    state: Optional[str] = Field(default=None, alias="State")
    username: Optional[str] = Field(default=None, alias="Username")
    password_type: Optional[str] = Field(default=None, alias="password_type")
    lockstatus: Optional[str] = Field(default=None, alias="lockstatus")
    remainwaittime: Optional[str] = Field(default=None, alias="remainwaittime")
    accounts_number: Optional[str] = Field(default=None, alias="accounts_number")
    firstlogin: Optional[str] = Field(default=None, alias="firstlogin")

    @property
    def status(self) -> Optional[LoginStatus]:
        return _enum_or_none(LoginStatus, self.state)

    @property
    def logged_in(self) -> bool:
        return self.status == LoginStatus.LOGGED_IN

    @property
    def locked(self) -> bool:
        return _enum_or_none(LockStatus, self.lockstatus) == LockStatus.LOCKED


class LoginRequest(HiLinkModel):
    username: str = Field(alias="Username")
    password: str = Field(alias="Password")
    password_type: int = Field(default=4, alias="password_type")


class LogoutRequest(HiLinkModel):
    logout: int = Field(default=1, alias="Logout")


# Device

class DeviceInformation(HiLinkModel):
    device_name: Optional[str] = Field(default=None, alias="DeviceName")
    serial_number: Optional[str] = Field(default=None, alias="SerialNumber")
    imei: Optional[str] = Field(default=None, alias="Imei")
    imsi: Optional[str] = Field(default=None, alias="Imsi")
    iccid: Optional[str] = Field(default=None, alias="Iccid")
    msisdn: Optional[str] = Field(default=None, alias="Msisdn")
    hardware_version: Optional[str] = Field(default=None, alias="HardwareVersion")
    software_version: Optional[str] = Field(default=None, alias="SoftwareVersion")
    webui_version: Optional[str] = Field(default=None, alias="WebUIVersion")
    mac_address1: Optional[str] = Field(default=None, alias="MacAddress1")
    mac_address2: Optional[str] = Field(default=None, alias="MacAddress2")
    product_family: Optional[str] = Field(default=None, alias="ProductFamily")
    classify: Optional[str] = Field(default=None, alias="Classify")
    support_mode: Optional[str] = Field(default=None, alias="supportmode")
    work_mode: Optional[str] = Field(default=None, alias="workmode")


class DeviceControlRequest(HiLinkModel):
    control: DeviceControlType = Field(alias="Control")


# Monitoring

class MonitoringStatus(HiLinkModel):
    connection_status: Optional[str] = Field(default=None, alias="ConnectionStatus")
    wifi_connection_status: Optional[str] = Field(default=None, alias="WifiConnectionStatus")
    signal_strength: Optional[str] = Field(default=None, alias="SignalStrength")
    signal_icon: Optional[str] = Field(default=None, alias="SignalIcon")
    current_network_type: Optional[str] = Field(default=None, alias="CurrentNetworkType")
    current_network_type_ex: Optional[str] = Field(default=None, alias="CurrentNetworkTypeEx")
    current_service_domain: Optional[str] = Field(default=None, alias="CurrentServiceDomain")
    roaming_status: Optional[str] = Field(default=None, alias="RoamingStatus")
    battery_status: Optional[str] = Field(default=None, alias="BatteryStatus")
    battery_level: Optional[str] = Field(default=None, alias="BatteryLevel")
    battery_percent: Optional[str] = Field(default=None, alias="BatteryPercent")
    simlock_status: Optional[str] = Field(default=None, alias="simlockStatus")
    primary_dns: Optional[str] = Field(default=None, alias="PrimaryDns")
    secondary_dns: Optional[str] = Field(default=None, alias="SecondaryDns")
    primary_ipv6_dns: Optional[str] = Field(default=None, alias="PrimaryIPv6Dns")
    secondary_ipv6_dns: Optional[str] = Field(default=None, alias="SecondaryIPv6Dns")
    fly_mode: Optional[str] = Field(default=None, alias="flymode")
    current_wifi_user: Optional[str] = Field(default=None, alias="CurrentWifiUser")
    total_wifi_user: Optional[str] = Field(default=None, alias="TotalWifiUser")
    service_status: Optional[str] = Field(default=None, alias="ServiceStatus")
    sim_status: Optional[str] = Field(default=None, alias="SimStatus")
    wifi_status: Optional[str] = Field(default=None, alias="WifiStatus")
    max_signal: Optional[str] = Field(default=None, alias="maxsignal")
    classify: Optional[str] = Field(default=None, alias="classify")

    @property
    def connection(self) -> Optional[ConnectionStatus]:
        return _enum_or_none(ConnectionStatus, self.connection_status)

    @property
    def network_type(self) -> Optional[NetworkType]:
        return _enum_or_none(NetworkType, self.current_network_type)

    @property
    def network_type_ex(self) -> Optional[NetworkType]:
        return _enum_or_none(NetworkType, self.current_network_type_ex)

    @property
    def is_connected(self) -> bool:
        return self.connection == ConnectionStatus.CONNECTED

    @property
    def is_sim_ready(self) -> bool:
        return _enum_or_none(SimStatus, self.sim_status) == SimStatus.READY

    @property
    def is_roaming(self) -> bool:
        return _enum_or_none(RoamingStatus, self.roaming_status) == RoamingStatus.ROAMING

    @property
    def is_service_available(self) -> bool:
        return _enum_or_none(ServiceStatus, self.service_status) == ServiceStatus.FULL

    @property
    def signal_level(self) -> Optional[int]:
        """Signal bars 0-5 from SignalIcon."""
        try:
            return int(self.signal_icon) if self.signal_icon is not None else None
        except ValueError:
            return None

    @property
    def signal_percentage(self) -> Optional[int]:
        level = self.signal_level
        if level is None:
            return None
        return level * 20 if 0 <= level <= 5 else 0


# Network

class NetworkMode(HiLinkModel):
    network_mode: Optional[str] = Field(default=None, alias="NetworkMode")
    network_band: Optional[str] = Field(default=None, alias="NetworkBand")
    lte_band: Optional[str] = Field(default=None, alias="LTEBand")

    @property
    def mode(self) -> Optional[NetworkModeType]:
        return _enum_or_none(NetworkModeType, self.network_mode)


# Band masks accepted by every firmware: all bands
ALL_NETWORK_BANDS = "3FFFFFFF"
ALL_LTE_BANDS = "7FFFFFFFFFFFFFFF"


class NetworkModeRequest(HiLinkModel):
    network_mode: NetworkModeType = Field(alias="NetworkMode")
    network_band: str = Field(default=ALL_NETWORK_BANDS, alias="NetworkBand")
    lte_band: str = Field(default=ALL_LTE_BANDS, alias="LTEBand")

    @classmethod
    def lte_only(cls) -> "NetworkModeRequest":
        return cls(network_mode=NetworkModeType.LTE_ONLY)

    @classmethod
    def auto(cls) -> "NetworkModeRequest":
        return cls(network_mode=NetworkModeType.AUTO)


class CurrentPlmn(HiLinkModel):
    state: Optional[str] = Field(default=None, alias="State")
    full_name: Optional[str] = Field(default=None, alias="FullName")
    short_name: Optional[str] = Field(default=None, alias="ShortName")
    numeric: Optional[str] = Field(default=None, alias="Numeric")
    rat: Optional[str] = Field(default=None, alias="Rat")

    @property
    def operator_name(self) -> Optional[str]:
        return self.full_name or self.short_name


# SMS

class SmsCount(HiLinkModel):
    local_unread: int = Field(default=0, alias="LocalUnread")
    local_inbox: int = Field(default=0, alias="LocalInbox")
    local_outbox: int = Field(default=0, alias="LocalOutbox")
    local_draft: int = Field(default=0, alias="LocalDraft")
    sim_unread: int = Field(default=0, alias="SimUnread")
    sim_inbox: int = Field(default=0, alias="SimInbox")
    sim_outbox: int = Field(default=0, alias="SimOutbox")
    sim_draft: int = Field(default=0, alias="SimDraft")
    new_msg: int = Field(default=0, alias="NewMsg")

    @field_validator("*", mode="before")
    @classmethod
    def empty_as_zero(cls, v: Any) -> Any:
        return 0 if v is None or v == "" else v

    @property
    def total_unread(self) -> int:
        return self.local_unread + self.sim_unread

    @property
    def total_inbox(self) -> int:
        return self.local_inbox + self.sim_inbox


class SmsListRequest(HiLinkModel):
    page_index: int = Field(default=1, ge=1, alias="PageIndex")
    read_count: int = Field(default=20, ge=1, le=50, alias="ReadCount")
    box_type: SmsBoxType = Field(default=SmsBoxType.LOCAL_INBOX, alias="BoxType")
    sort_type: SmsSortType = Field(default=SmsSortType.BY_TIME, alias="SortType")
    ascending: int = Field(default=0, alias="Ascending")
    unread_preferred: int = Field(default=0, alias="UnreadPreferred")


class SmsMessage(HiLinkModel):
    smstat: Optional[str] = Field(default=None, alias="Smstat")
    index: str = Field(alias="Index")
    phone: Optional[str] = Field(default=None, alias="Phone")
    content: Optional[str] = Field(default=None, alias="Content")
    date: Optional[str] = Field(default=None, alias="Date")
    sca: Optional[str] = Field(default=None, alias="Sca")
    save_type: Optional[str] = Field(default=None, alias="SaveType")
    priority: Optional[str] = Field(default=None, alias="Priority")
    sms_type: Optional[str] = Field(default=None, alias="SmsType")

    @field_validator("phone", mode="before")
    @classmethod
    def first_phone(cls, v: Any) -> Any:
        # Phone is force-listed by the codec for send requests
        if isinstance(v, list):
            return v[0] if v else None
        return v

    @property
    def status(self) -> Optional[SmsStatus]:
        return _enum_or_none(SmsStatus, self.smstat)

    @property
    def is_unread(self) -> bool:
        return self.status == SmsStatus.UNREAD


class SmsListResponse(HiLinkModel):
    count: int = Field(default=0, alias="Count")
    messages: List[SmsMessage] = Field(default_factory=list, alias="Messages")

    @field_validator("count", mode="before")
    @classmethod
    def empty_count(cls, v: Any) -> Any:
        return 0 if v is None or v == "" else v

    @field_validator("messages", mode="before")
    @classmethod
    def unwrap_messages(cls, v: Any) -> Any:
        """Accept ``<Messages><Message>..</Message></Messages>`` and an empty element."""
        if v is None:
            return []
        if isinstance(v, dict):
            return v.get("Message") or []
        return v

    @field_serializer("messages")
    def wrap_messages(self, messages: List[SmsMessage]) -> Any:
        return {"Message": [m.model_dump(by_alias=True, exclude_none=True) for m in messages]}


class SendSmsRequest(HiLinkModel):
    index: str = Field(default="-1", alias="Index")
    phones: List[str] = Field(alias="Phones")
    sca: str = Field(default="", alias="Sca")
    content: str = Field(alias="Content")
    length: int = Field(alias="Length")
    reserved: int = Field(default=1, alias="Reserved")
    date: str = Field(alias="Date")

    @classmethod
    def build(cls, phones: List[str], content: str) -> "SendSmsRequest":
        return cls(
            phones=phones,
            content=content,
            length=len(content),
            date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )

    @field_validator("phones", mode="before")
    @classmethod
    def unwrap_phones(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        if isinstance(v, dict):
            phones = v.get("Phone") or []
            return [phones] if isinstance(phones, str) else phones
        return v

    @field_validator("sca", mode="before")
    @classmethod
    def empty_sca(cls, v: Any) -> Any:
        # <Sca></Sca> parses as None
        return "" if v is None else v

    @field_serializer("phones")
    def wrap_phones(self, phones: List[str]) -> Any:
        return {"Phone": phones}


class SmsIndexRequest(HiLinkModel):
    """Body of delete-sms and set-read."""
    index: str = Field(alias="Index")


# DHCP

class DhcpSettings(HiLinkModel):
    dhcp_ip_address: Optional[str] = Field(default=None, alias="DhcpIPAddress")
    dhcp_lan_netmask: Optional[str] = Field(default=None, alias="DhcpLanNetmask")
    dhcp_status: Optional[str] = Field(default=None, alias="DhcpStatus")
    dhcp_start_ip_address: Optional[str] = Field(default=None, alias="DhcpStartIPAddress")
    dhcp_end_ip_address: Optional[str] = Field(default=None, alias="DhcpEndIPAddress")
    dhcp_lease_time: Optional[str] = Field(default=None, alias="DhcpLeaseTime")
    dns_status: Optional[str] = Field(default=None, alias="DnsStatus")
    primary_dns: Optional[str] = Field(default=None, alias="PrimaryDns")
    secondary_dns: Optional[str] = Field(default=None, alias="SecondaryDns")

    @property
    def dhcp_enabled(self) -> bool:
        return _enum_or_none(DhcpStatus, self.dhcp_status) == DhcpStatus.ENABLED

    @property
    def dns_enabled(self) -> bool:
        return _enum_or_none(DnsStatus, self.dns_status) == DnsStatus.ENABLED

    def to_request(self) -> "DhcpSettingsRequest":
        """Current settings as a request, for read-modify-write updates."""
        return DhcpSettingsRequest.model_validate(self.model_dump(by_alias=True, exclude_none=True))


class DhcpSettingsRequest(HiLinkModel):
    dhcp_ip_address: str = Field(alias="DhcpIPAddress")
    dhcp_lan_netmask: str = Field(default="255.255.255.0", alias="DhcpLanNetmask")
    dhcp_status: DhcpStatus = Field(default=DhcpStatus.ENABLED, alias="DhcpStatus")
    dhcp_start_ip_address: str = Field(alias="DhcpStartIPAddress")
    dhcp_end_ip_address: str = Field(alias="DhcpEndIPAddress")
    dhcp_lease_time: str = Field(default="86400", alias="DhcpLeaseTime")
    dns_status: DnsStatus = Field(default=DnsStatus.ENABLED, alias="DnsStatus")
    primary_dns: str = Field(default="", alias="PrimaryDns")
    secondary_dns: str = Field(default="", alias="SecondaryDns")

    @field_validator("primary_dns", "secondary_dns", mode="before")
    @classmethod
    def empty_dns(cls, v: Any) -> Any:
        return "" if v is None else v
