"""Push abonelik kayıtları: ekleme, listeleme, silme."""
import logging

from sqlalchemy import delete
from sqlmodel import Session, func, select

from app.models import PushSubscription
from app.models.base import utcnow
from app.services.errors import InvalidRequest

logger = logging.getLogger(__name__)


class SubscriptionConflict(Exception):
    """Endpoint başka bir kullanıcıya kayıtlı."""


class SubscriptionLimitReached(Exception):
    pass


def register_subscription(
    db: Session, user_id: int, endpoint: str, p256dh: str, auth: str, max_per_user: int
) -> PushSubscription:
    """Aynı endpoint için günceller, yoksa ekler (kullanıcı başına en fazla max_per_user cihaz)."""
    endpoint = (endpoint or "").strip()
    if not endpoint or not p256dh or not auth:
        raise InvalidRequest("Geçersiz abonelik verisi.")
    existing = db.exec(select(PushSubscription).where(PushSubscription.endpoint == endpoint)).first()
    if existing and existing.user_id != user_id:
        raise SubscriptionConflict(endpoint)
    if existing:
        existing.p256dh = p256dh
        existing.auth = auth
        existing.updated_at = utcnow()
        db.add(existing)
        db.commit()
        db.refresh(existing)
        return existing
    count = db.exec(select(func.count()).select_from(PushSubscription).where(PushSubscription.user_id == user_id)).one()
    if count >= max_per_user:
        raise SubscriptionLimitReached(str(max_per_user))
    sub = PushSubscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth)
    db.add(sub)
    db.commit()
    db.refresh(sub)
    return sub


def list_subscriptions(db: Session, user_id: int | None = None) -> list[PushSubscription]:
    stmt = select(PushSubscription).order_by(PushSubscription.id)
    if user_id is not None:
        stmt = stmt.where(PushSubscription.user_id == user_id)
    return list(db.exec(stmt).all())


def remove_user_subscription(db: Session, user_id: int, endpoint: str) -> int:
    res = db.exec(
        delete(PushSubscription).where(PushSubscription.endpoint == endpoint, PushSubscription.user_id == user_id)
    )
    db.commit()
    return res.rowcount or 0


def remove_subscription(db: Session, subscription_id: int) -> bool:
    """Gone aboneliği siler. İdempotent: zaten silinmişse False."""
    res = db.exec(delete(PushSubscription).where(PushSubscription.id == subscription_id))
    db.commit()
    if res.rowcount == 1:
        logger.info("Removed expired push subscription %s", subscription_id)
        return True
    return False
