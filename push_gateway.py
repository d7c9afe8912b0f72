"""Push Gateway client.

Sends one notification per call to the OneSignal REST API for a single
external user id. There is no retry and no backoff here; callers decide
what a failed send means for their state.
"""

from typing import List, Optional

import httpx

from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'worker.log')


class PushGatewayClient:
    """Stateless OneSignal sender.

    Args:
        app_id: OneSignal application id
        api_key: OneSignal REST API key
        url: Notification endpoint
        accent_color: Android accent color attached to each push
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        app_id: str,
        api_key: str,
        url: str = settings.PUSH_GATEWAY_URL,
        accent_color: Optional[str] = settings.PUSH_ACCENT_COLOR,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.app_id = app_id
        self.api_key = api_key
        self.url = url
        self.accent_color = accent_color
        self.transport = transport

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "PushGatewayClient":
        return cls(
            app_id=settings.ONESIGNAL_APP_ID,
            api_key=settings.ONESIGNAL_REST_API_KEY,
            url=settings.PUSH_GATEWAY_URL,
            accent_color=settings.PUSH_ACCENT_COLOR,
            transport=transport,
        )

    def build_payload(
        self,
        user_id: str,
        title: str,
        message: str,
        buttons: Optional[List[dict]] = None,
        data: Optional[dict] = None
    ) -> dict:
        payload = {
            "app_id": self.app_id,
            "include_external_user_ids": [user_id],
            "headings": {"en": title},
            "contents": {"en": message},
            "channel_for_external_user_ids": "push",
        }
        if self.accent_color:
            payload["android_accent_color"] = self.accent_color
        if buttons:
            payload["buttons"] = buttons
        if data:
            payload["data"] = data
        return payload

    async def send(
        self,
        user_id: str,
        title: str,
        message: str,
        buttons: Optional[List[dict]] = None,
        data: Optional[dict] = None
    ) -> bool:
        """Send one push notification.

        Returns:
            bool: True if the gateway accepted the request (2xx), False otherwise
        """
        payload = self.build_payload(user_id, title, message, buttons, data)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self.api_key}",
        }
        logger.info(f"[NOTIFY] Sending -> {user_id}: {title}")

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[NOTIFY] Gateway request failed for {user_id}: {e!r}")
            return False

        if response.is_success:
            return True

        logger.error(
            f"[NOTIFY] Gateway rejected notification for {user_id}. "
            f"Status: {response.status_code}, Response: {response.text}"
        )
        return False
