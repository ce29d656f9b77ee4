"""Connection and signal monitoring."""

from ..models import MonitoringStatus
from .base import ApiGroup


class MonitoringApi(ApiGroup):
    API_STATUS = "/api/monitoring/status"

    async def status(self) -> MonitoringStatus:
        return await self._get(self.API_STATUS, MonitoringStatus)
