from datetime import datetime

from pydantic import ConfigDict

from .base import CamelModel


class SubscriptionKeys(CamelModel):
    p256dh: str
    auth: str


class SubscribeRequest(CamelModel):
    endpoint: str
    keys: SubscriptionKeys


class UnsubscribeRequest(CamelModel):
    endpoint: str


class SubscriptionOut(CamelModel):
    id: int
    endpoint: str
    created_at: datetime


class SendNotificationRequest(CamelModel):
    """Hatırlatma içeriğini ezer (title/body/icon/tag/data); boşsa varsayılan kullanılır."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    body: str | None = None


class FanOutResponse(CamelModel):
    sent: int
    failed: int
    removed: int


class VapidKeyResponse(CamelModel):
    vapid_public_key: str


class HeartbeatRequest(CamelModel):
    current_page: str | None = None


class CheckinResponse(CamelModel):
    users_processed: int
    successful: int
    failed: int
    sent: int
    removed: int
