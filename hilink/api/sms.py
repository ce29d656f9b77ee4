"""SMS inbox and sending."""

import logging
from typing import List, Optional, Union

from ..models import (
    OkResponse,
    SendSmsRequest,
    SmsCount,
    SmsIndexRequest,
    SmsListRequest,
    SmsListResponse,
)
from .base import ApiGroup

logger = logging.getLogger(__name__)


class SmsApi(ApiGroup):
    API_COUNT = "/api/sms/sms-count"
    API_LIST = "/api/sms/sms-list"
    API_SEND = "/api/sms/send-sms"
    API_DELETE = "/api/sms/delete-sms"
    API_SET_READ = "/api/sms/set-read"

    async def count(self) -> SmsCount:
        return await self._get(self.API_COUNT, SmsCount)

    async def list(self, request: Optional[SmsListRequest] = None) -> SmsListResponse:
        """One page of messages. Listing is a POST even though it only reads."""
        return await self._post(self.API_LIST, request or SmsListRequest(), SmsListResponse)

    async def send(self, phones: Union[str, List[str]], content: str) -> OkResponse:
        """Send a text message.

        Args:
            phones: One recipient or a list of recipients.
            content: Message text.
        """
        if isinstance(phones, str):
            phones = [phones]
        logger.info(f"Sending SMS to {', '.join(phones)} ({len(content)} chars)")
        return await self._post(self.API_SEND, SendSmsRequest.build(phones, content))

    async def delete(self, index: Union[int, str]) -> OkResponse:
        logger.info(f"Deleting SMS {index}")
        return await self._post(self.API_DELETE, SmsIndexRequest(index=str(index)))

    async def mark_read(self, index: Union[int, str]) -> OkResponse:
        return await self._post(self.API_SET_READ, SmsIndexRequest(index=str(index)))
