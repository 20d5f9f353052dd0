"""
Web Push gönderimi (pywebpush + VAPID).

send() tek hedefe bir deneme yapar: başarı, DispatchGone (404/410, abonelik
silinmeli) veya DispatchTransient (loglanır). fan_out() bir kullanıcının tüm
hedeflerine eşzamanlı gönderir; bir hedefin hatası diğerlerini durdurmaz.
Push'un kendisi otomatik tekrar denenmez.
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass

from pywebpush import WebPushException, webpush
from sqlmodel import Session

from app.core.config import settings
from app.models import PushSubscription
from app.services.errors import DispatchGone, DispatchTransient
from app.services.subscriptions import remove_subscription

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)
PUSH_TIMEOUT = 10  # sn
PUSH_TTL = 24 * 3600  # push servisinde bekleme süresi (sn)
DEFAULT_MAX_WORKERS = 8

SENT = "sent"
GONE = "gone"
FAILED = "failed"


@dataclass(frozen=True)
class PushTarget:
    """Abonelik satırının ORM'den bağımsız kopyası (thread'lere bu verilir)."""

    id: int
    user_id: int
    endpoint: str
    p256dh: str
    auth: str

    @classmethod
    def from_subscription(cls, sub: PushSubscription) -> "PushTarget":
        return cls(id=sub.id or 0, user_id=sub.user_id, endpoint=sub.endpoint, p256dh=sub.p256dh, auth=sub.auth)

    def subscription_info(self) -> dict:
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


@dataclass
class FanOutResult:
    sent: int = 0
    failed: int = 0
    removed: int = 0

    def merge(self, other: "FanOutResult") -> None:
        self.sent += other.sent
        self.failed += other.failed
        self.removed += other.removed

    def as_dict(self) -> dict:
        return asdict(self)


class PushDispatcher:
    def __init__(
        self,
        vapid_private_key: str,
        vapid_subject: str,
        ttl: int = PUSH_TTL,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject
        self.ttl = ttl
        self.max_workers = max_workers

    @classmethod
    def from_settings(cls) -> "PushDispatcher":
        return cls(settings.vapid_private_key, settings.vapid_subject)

    @property
    def configured(self) -> bool:
        return bool(self.vapid_private_key)

    def send(self, target: PushTarget, payload: dict) -> None:
        try:
            webpush(
                subscription_info=target.subscription_info(),
                data=json.dumps(payload),
                vapid_private_key=self.vapid_private_key,
                # pywebpush claims sözlüğüne aud/exp ekliyor; her çağrıda yeni sözlük
                vapid_claims={"sub": self.vapid_subject},
                ttl=self.ttl,
                timeout=PUSH_TIMEOUT,
            )
        except WebPushException as e:
            status = getattr(e.response, "status_code", None)
            if status in GONE_STATUS_CODES:
                raise DispatchGone(status, str(e)) from e
            raise DispatchTransient(f"HTTP {status}: {e}") from e
        except Exception as e:
            # Ağ hataları (bağlantı, timeout) geçici sayılır
            raise DispatchTransient(f"{type(e).__name__}: {e}") from e

    def _attempt(self, target: PushTarget, payload: dict) -> str:
        try:
            self.send(target, payload)
            return SENT
        except DispatchGone as e:
            logger.info("Push target gone: subscription=%s status=%s", target.id, e.status_code)
            return GONE
        except DispatchTransient as e:
            logger.warning("Push failed (transient): subscription=%s %s", target.id, e)
            return FAILED
        except Exception as e:
            logger.exception("Push failed: subscription=%s %s", target.id, e)
            return FAILED

    def fan_out(self, db: Session, targets: list[PushTarget], payload: dict) -> FanOutResult:
        """Tüm hedeflere eşzamanlı gönderir; Gone olanları siler. DB işlemleri yalnızca çağıran thread'de."""
        result = FanOutResult()
        if not targets:
            return result
        workers = max(1, min(self.max_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(lambda t: self._attempt(t, payload), targets))
        for target, outcome in zip(targets, outcomes):
            if outcome == SENT:
                result.sent += 1
            elif outcome == GONE and remove_subscription(db, target.id):
                result.removed += 1
            else:
                # Gone ama eşzamanlı başka bir gönderim zaten silmiş: removed iki kez sayılmaz
                result.failed += 1
        logger.info("Push fan-out: targets=%s sent=%s failed=%s removed=%s", len(targets), result.sent, result.failed, result.removed)
        return result
