"""
Kişisel check-in bildirimleri (cron).

Push aboneliği olan her kullanıcı için son günlük kayıtlarından ve son
gönderilen check-in'lerden kısa bir bildirim üretilir, kullanıcının
cihazlarına gönderilir. En az bir cihaza ulaştıysa kayda geçer; sonraki
üretimde aynı konu tekrarlanmaz.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlmodel import Session, select

from app.models import JournalEntry, PushSubscription, SentNotification, User
from app.models.base import utcnow
from app.services.ai import CoachAI
from app.services.errors import AdapterFailure
from app.services.notifications import ICON
from app.services.prompts import (
    CHECKIN_CONTEXT_ENTRIES,
    CHECKIN_ENTRY_WINDOW_DAYS,
    CHECKIN_HISTORY,
    CHECKIN_HISTORY_WINDOW_DAYS,
    CHECKIN_SYSTEM_PROMPT,
    GeneratedCheckin,
    build_checkin_prompt,
    parse_checkin,
    time_of_day,
)
from app.services.push import PushDispatcher, PushTarget
from app.services.scheduling import user_zone
from app.services.subscriptions import list_subscriptions

logger = logging.getLogger(__name__)

CHECKIN_MAX_TOKENS = 256


@dataclass
class CheckinResult:
    users_processed: int = 0
    successful: int = 0
    failed: int = 0
    sent: int = 0
    removed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def checkin_payload(checkin: GeneratedCheckin, now: datetime) -> dict:
    return {
        "title": checkin.title,
        "body": checkin.body,
        "icon": ICON,
        "badge": ICON,
        "tag": f"coach-checkin-{int(now.timestamp())}",
        "data": {"url": "/coach"},
    }


def _label_for(user: User, now: datetime) -> str:
    try:
        zone = user_zone(user.timezone)
    except ValueError:
        logger.warning("User %s has unknown timezone %r, using UTC", user.id, user.timezone)
        zone = user_zone("UTC")
    return time_of_day(now.astimezone(zone).hour)


def generate_checkin(db: Session, ai: CoachAI, user: User, label: str, now: datetime) -> GeneratedCheckin:
    entries = db.exec(
        select(JournalEntry)
        .where(JournalEntry.user_id == user.id, JournalEntry.date >= now - timedelta(days=CHECKIN_ENTRY_WINDOW_DAYS))
        .order_by(JournalEntry.date.desc())
        .limit(CHECKIN_CONTEXT_ENTRIES)
    ).all()
    history = db.exec(
        select(SentNotification)
        .where(
            SentNotification.user_id == user.id,
            SentNotification.sent_at >= now - timedelta(days=CHECKIN_HISTORY_WINDOW_DAYS),
        )
        .order_by(SentNotification.sent_at.desc())
        .limit(CHECKIN_HISTORY)
    ).all()
    prompt = build_checkin_prompt(
        label,
        [(e.date, e.content, e.mood, e.tags) for e in entries],
        [(n.sent_at, n.body, n.topic_reference, n.time_of_day) for n in history],
        user.full_name or None,
    )
    text = ai.complete(CHECKIN_SYSTEM_PROMPT, [{"role": "user", "content": prompt}], max_tokens=CHECKIN_MAX_TOKENS)
    try:
        return parse_checkin(text)
    except ValueError as e:
        raise AdapterFailure(str(e)) from e


def send_checkins(db: Session, ai: CoachAI, dispatcher: PushDispatcher, now: datetime | None = None) -> CheckinResult:
    """Aboneliği olan herkese check-in. Bir kullanıcının AI hatası diğerlerini durdurmaz."""
    now = now or utcnow()
    user_ids = db.exec(select(PushSubscription.user_id).distinct().order_by(PushSubscription.user_id)).all()
    result = CheckinResult()
    for user_id in user_ids:
        user = db.get(User, user_id)
        if not user:
            continue
        result.users_processed += 1
        label = _label_for(user, now)
        try:
            checkin = generate_checkin(db, ai, user, label, now)
        except AdapterFailure as e:
            logger.warning("Check-in generation failed for user %s: %s", user_id, e)
            result.failed += 1
            continue

        targets = [PushTarget.from_subscription(s) for s in list_subscriptions(db, user_id)]
        fan_out = dispatcher.fan_out(db, targets, checkin_payload(checkin, now))
        result.sent += fan_out.sent
        result.removed += fan_out.removed
        if fan_out.sent == 0:
            result.failed += 1
            continue
        db.add(
            SentNotification(
                user_id=user_id,
                title=checkin.title,
                body=checkin.body,
                topic_reference=checkin.topic_reference,
                time_of_day=label,
                sent_at=now,
            )
        )
        db.commit()
        result.successful += 1
        logger.info("Check-in sent: user=%s time_of_day=%s %s", user_id, label, fan_out.as_dict())

    logger.info("Check-ins: %s", result.as_dict())
    return result
