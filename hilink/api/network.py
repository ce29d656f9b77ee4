"""Radio access technology selection and operator info."""

import logging

from ..models import CurrentPlmn, NetworkMode, NetworkModeRequest, OkResponse
from .base import ApiGroup

logger = logging.getLogger(__name__)


class NetworkApi(ApiGroup):
    API_NET_MODE = "/api/net/net-mode"
    API_CURRENT_PLMN = "/api/net/current-plmn"

    async def mode(self) -> NetworkMode:
        return await self._get(self.API_NET_MODE, NetworkMode)

    async def set_mode(self, request: NetworkModeRequest) -> OkResponse:
        """Change the preferred network mode.

        The modem usually drops its data connection for a few seconds while
        it re-registers.
        """
        logger.info(f"Setting network mode to {request.network_mode.label}")
        return await self._post(self.API_NET_MODE, request)

    async def current_plmn(self) -> CurrentPlmn:
        """Operator the modem is registered with."""
        return await self._get(self.API_CURRENT_PLMN, CurrentPlmn, requires_auth=False)
