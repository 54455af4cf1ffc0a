import logging
from typing import Optional

import requests

from facility_ops.core.config import settings
from facility_ops.db import models
from facility_ops.services.side_channel import SideChannelResult, side_channel

logger = logging.getLogger("facility_ops.push")

PUSH_HEADERS = {
    "Accept": "application/json",
    "Accept-Encoding": "gzip, deflate",
    "Content-Type": "application/json",
}


def build_push_message(token: str, title: str, body: str, data: Optional[dict] = None) -> dict:
    return {
        "to": token,
        "sound": "default",
        "title": title,
        "body": body,
        "data": data or {},
    }


class PushClient:
    """Best-effort push delivery. One attempt per message, no retries."""

    def __init__(self, gateway_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.gateway_url = gateway_url or settings.PUSH_GATEWAY_URL
        self.timeout = timeout or settings.PUSH_TIMEOUT_SECONDS

    @side_channel(logger, "push")
    def send(self, user: Optional[models.User], title: str, body: str, data: Optional[dict] = None) -> SideChannelResult:
        if not settings.PUSH_ENABLED:
            return SideChannelResult.success("disabled")
        if not user or not user.push_token or not user.push_enabled:
            return SideChannelResult.success("skipped")

        message = build_push_message(user.push_token, title, body, data)
        try:
            resp = requests.post(self.gateway_url, json=message, headers=PUSH_HEADERS, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("push request failed user_id=%s: %s", user.id, exc)
            return SideChannelResult.failure("REQUEST_FAILED")
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning("push rejected user_id=%s status_code=%s body=%s", user.id, resp.status_code, resp.text)
            return SideChannelResult.failure("BAD_STATUS")
        logger.info("push enviado user_id=%s", user.id)
        return SideChannelResult.success("sent")


push_client = PushClient()
