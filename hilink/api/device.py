"""Device information and control."""

import logging

from ..models import DeviceControlRequest, DeviceControlType, DeviceInformation, OkResponse
from .base import ApiGroup

logger = logging.getLogger(__name__)


class DeviceApi(ApiGroup):
    API_INFORMATION = "/api/device/information"
    API_CONTROL = "/api/device/control"

    async def information(self) -> DeviceInformation:
        """Model, serial number, IMEI and firmware versions."""
        return await self._get(self.API_INFORMATION, DeviceInformation)

    async def control(self, action: DeviceControlType) -> OkResponse:
        logger.info(f"Sending device control {action.name}")
        return await self._post(self.API_CONTROL, DeviceControlRequest(control=action))

    async def reboot(self) -> OkResponse:
        return await self.control(DeviceControlType.REBOOT)

    async def power_off(self) -> OkResponse:
        return await self.control(DeviceControlType.POWER_OFF)
