import asyncio
import logging
from typing import Dict, List, Optional

from pyfcm import FCMNotification

from hashview_chat.core.config import settings
from hashview_chat.core.exceptions import TransientDependencyFailure


logger = logging.getLogger(__name__)


class NoopPush:

    enabled = False

    async def send_fcm(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, str]] = None) -> int:
        return 0


class FcmPush:

    enabled = True

    def __init__(self, service_account_file: str, project_id: Optional[str] = None) -> None:
        self._client = FCMNotification(service_account_file=service_account_file, project_id=project_id)

    async def send_fcm(self, tokens: List[str], title: str, body: str, data: Optional[Dict[str, str]] = None) -> int:
        """Send to every token; returns how many were accepted."""
        if not tokens:
            return 0
        sent = 0
        failures = []
        for token in tokens:
            # pyfcm is blocking
            try:
                await asyncio.to_thread(
                    self._client.notify,
                    fcm_token=token,
                    notification_title=title,
                    notification_body=body,
                    data_payload=data or {},
                )
                sent += 1
            except Exception as exc:
                logger.warning("FCM delivery to token %s... failed: %s", token[:12], exc)
                failures.append(exc)
        if failures and not sent:
            raise TransientDependencyFailure("Push delivery failed for every device") from failures[0]
        return sent


def build_push():
    if not settings.fcm_service_account_file:
        logger.info("FCM credentials not configured, push notifications disabled")
        return NoopPush()
    return FcmPush(settings.fcm_service_account_file, settings.fcm_project_id)
