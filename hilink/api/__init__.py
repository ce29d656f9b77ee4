"""Typed operation groups exposed on HiLinkClient."""

from .base import ApiGroup
from .device import DeviceApi
from .dhcp import DhcpApi
from .monitoring import MonitoringApi
from .network import NetworkApi
from .sms import SmsApi

__all__ = ["ApiGroup", "DeviceApi", "DhcpApi", "MonitoringApi", "NetworkApi", "SmsApi"]
