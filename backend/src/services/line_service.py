# pyright: reportUnknownMemberType=false, reportMissingTypeStubs=false
"""
LINE Messaging API service.

This module wraps the LINE push API used to deliver reminders:
- Text message sending to LINE users
- Flex message (bubble) sending to LINE users

Transport failures are raised as DispatchError so the dispatcher can record
them per message.
"""

import logging
from typing import Any, Dict, Optional

from linebot.v3.messaging import MessagingApi, PushMessageRequest
from linebot.v3.messaging.models import TextMessage, FlexMessage, FlexContainer
from linebot.v3.messaging.api_client import ApiClient
from linebot.v3.messaging.configuration import Configuration
from linebot.v3.messaging.exceptions import ApiException

from core.exceptions import DispatchError


logger = logging.getLogger(__name__)


class LINEService:
    """
    Service for LINE Messaging API push operations.

    Attributes:
        channel_access_token: LINE channel access token for API calls
        api: LINE Bot API client instance
    """

    def __init__(self, channel_secret: str, channel_access_token: str) -> None:
        """
        Initialize the LINE API client.

        Args:
            channel_secret: LINE channel secret of the clinic's account
            channel_access_token: LINE channel access token for API calls

        Raises:
            ValueError: If either secret or token is empty
        """
        if not channel_secret or not channel_access_token:
            raise ValueError("Both channel_secret and channel_access_token are required")

        self.channel_secret = channel_secret
        self.channel_access_token = channel_access_token

        config = Configuration(access_token=channel_access_token)
        api_client = ApiClient(configuration=config)
        self.api = MessagingApi(api_client=api_client)

    @staticmethod
    def _extract_message_id(response: Any) -> Optional[str]:
        try:
            sent_messages = getattr(response, 'sent_messages', None)
            if sent_messages:
                return getattr(sent_messages[0], 'id', None)
        except (AttributeError, IndexError, TypeError) as e:
            logger.debug(f"Could not extract message ID from LINE API response: {e}")
        return None

    def _push(self, line_user_id: str, messages: list) -> Optional[str]:
        request = PushMessageRequest(
            to=line_user_id,
            messages=messages,
            notificationDisabled=False,
            customAggregationUnits=None
        )
        try:
            response = self.api.push_message(request)
        except ApiException as e:
            logger.warning(f"LINE push to {line_user_id[:10]}... failed: {e.status} {e.reason}")
            raise DispatchError(f"LINE API error: {e.status} {e.reason}", status_code=e.status) from e
        logger.debug(f"Sent push message for user {line_user_id[:10]}...")
        return self._extract_message_id(response)

    def send_text_message(self, line_user_id: str, text: str) -> Optional[str]:
        """
        Push a text message to a LINE user.

        Returns:
            LINE message ID if the response carried one

        Raises:
            DispatchError: If the LINE API rejects the push
        """
        messages = [TextMessage(text=text, quickReply=None, quoteToken=None)]
        return self._push(line_user_id, messages)

    def send_flex_message(self, line_user_id: str, alt_text: str, contents: Dict[str, Any]) -> Optional[str]:
        """
        Push a flex message to a LINE user.

        Args:
            line_user_id: LINE user ID to send message to
            alt_text: Text shown in notifications and chat lists
            contents: Flex container (e.g. a bubble) as a JSON-compatible dict

        Returns:
            LINE message ID if the response carried one

        Raises:
            DispatchError: If the LINE API rejects the push
        """
        messages = [FlexMessage(altText=alt_text, contents=FlexContainer.from_dict(contents), quickReply=None)]
        return self._push(line_user_id, messages)
