"""LAN DHCP server settings."""

import logging

from ..models import DhcpSettings, DhcpSettingsRequest, OkResponse
from .base import ApiGroup

logger = logging.getLogger(__name__)


class DhcpApi(ApiGroup):
    API_SETTINGS = "/api/dhcp/settings"

    async def settings(self) -> DhcpSettings:
        return await self._get(self.API_SETTINGS, DhcpSettings)

    async def set_settings(self, request: DhcpSettingsRequest) -> OkResponse:
        """Apply new DHCP settings.

        Changing the gateway address moves the device itself, so the client
        has to be pointed at the new address afterwards.
        """
        logger.info(
            f"Setting DHCP: gateway {request.dhcp_ip_address}, "
            f"range {request.dhcp_start_ip_address}-{request.dhcp_end_ip_address}"
        )
        return await self._post(self.API_SETTINGS, request)
