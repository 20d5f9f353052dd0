"""
Zamanlanmış günlük araç üretimi.

Cron her çalıştığında (ör. 15 dakikada bir) otomatik üretimi açık kullanıcılara
bakar: kullanıcının kendi saat diliminde planlanan dakikadan bu yana pencere
süresinden az geçmişse ve bugün için araç yoksa `daily_tool_generate` işi
kuyruğa konur. Aynı kullanıcı için uçuşta bir iş varsa o iş yeniden kullanılır,
ikinci iş açılmaz. Bildirim kararı iş bitince işlemcide verilir.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlmodel import Session, select

from app.models import DailyTool, JournalEntry, User
from app.models.base import utcnow
from app.services.enqueue import JobEnqueuer

logger = logging.getLogger(__name__)

SCHEDULE_WINDOW_MINUTES = 15
RECENT_ENTRY_DAYS = 7
MINUTES_PER_DAY = 24 * 60


def user_zone(name: str | None) -> ZoneInfo:
    """IANA saat dilimi; boşsa UTC. Tanınmayan ad ValueError."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def is_due(now: datetime, zone: ZoneInfo, hour: int, minute: int, window_minutes: int = SCHEDULE_WINDOW_MINUTES) -> bool:
    """Yerel saat planlanan dakikadan itibaren pencere içinde mi (gece yarısını aşan pencere dahil)."""
    local = now.astimezone(zone)
    elapsed = (local.hour * 60 + local.minute - (hour * 60 + minute)) % MINUTES_PER_DAY
    return elapsed < window_minutes


def local_day_start(now: datetime, zone: ZoneInfo) -> datetime:
    """Kullanıcının yerel gününün başlangıcı, UTC olarak."""
    local = now.astimezone(zone)
    return datetime.combine(local.date(), time(), tzinfo=zone).astimezone(timezone.utc)


@dataclass
class ScheduleOutcome:
    user_id: int
    status: str  # enqueued | existing | skipped | error
    reason: str | None = None
    job_id: str | None = None


@dataclass
class ScheduleResult:
    enqueued: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[ScheduleOutcome] = field(default_factory=list)

    def add(self, outcome: ScheduleOutcome) -> None:
        if outcome.status == "error":
            self.errors += 1
        elif outcome.status == "enqueued":
            self.enqueued += 1
        else:
            self.skipped += 1
        self.results.append(outcome)

    def as_dict(self) -> dict:
        return asdict(self)


def _has_tool_today(db: Session, user_id: int, since: datetime) -> bool:
    return db.exec(select(DailyTool.id).where(DailyTool.user_id == user_id, DailyTool.date >= since)).first() is not None


def _has_recent_entries(db: Session, user_id: int, since: datetime) -> bool:
    return (
        db.exec(select(JournalEntry.id).where(JournalEntry.user_id == user_id, JournalEntry.date >= since)).first()
        is not None
    )


def _schedule_user(db: Session, enqueuer: JobEnqueuer, user: User, now: datetime, window_minutes: int) -> ScheduleOutcome:
    try:
        zone = user_zone(user.timezone)
    except ValueError as e:
        return ScheduleOutcome(user.id, "error", str(e))
    if not is_due(now, zone, user.daily_tool_hour, user.daily_tool_minute, window_minutes):
        local = now.astimezone(zone)
        return ScheduleOutcome(
            user.id,
            "skipped",
            f"Not scheduled time (current: {local:%H:%M}, scheduled: {user.daily_tool_hour:02d}:{user.daily_tool_minute:02d})",
        )
    if _has_tool_today(db, user.id, local_day_start(now, zone)):
        return ScheduleOutcome(user.id, "skipped", "Already generated tool today")
    if not _has_recent_entries(db, user.id, now - timedelta(days=RECENT_ENTRY_DAYS)):
        return ScheduleOutcome(user.id, "skipped", "No recent journal entries")

    result = enqueuer.enqueue_daily_tool(db, user.id)
    if result.existing:
        return ScheduleOutcome(user.id, "existing", "Generation already in progress", result.job.id)
    return ScheduleOutcome(user.id, "enqueued", job_id=result.job.id)


def schedule_daily_tools(
    db: Session,
    enqueuer: JobEnqueuer,
    now: datetime | None = None,
    window_minutes: int = SCHEDULE_WINDOW_MINUTES,
) -> ScheduleResult:
    """Otomatik üretimi açık kullanıcılar için vakti gelen işleri kuyruğa koyar. Bir kullanıcının hatası diğerlerini durdurmaz."""
    now = now or utcnow()
    users = db.exec(
        select(User)
        .where(User.daily_tool_enabled == True)  # noqa: E712
        .where(User.daily_tool_hour.is_not(None), User.daily_tool_minute.is_not(None))
        .order_by(User.id)
    ).all()
    logger.info("Daily tool schedule: %s users enabled", len(users))

    result = ScheduleResult()
    for user in users:
        user_id = user.id
        try:
            outcome = _schedule_user(db, enqueuer, user, now, window_minutes)
        except Exception as e:
            db.rollback()
            logger.exception("Daily tool schedule failed for user %s: %s", user_id, e)
            outcome = ScheduleOutcome(user_id, "error", "Enqueue failed")
        result.add(outcome)

    logger.info(
        "Daily tool schedule: enqueued=%s skipped=%s errors=%s", result.enqueued, result.skipped, result.errors
    )
    return result
