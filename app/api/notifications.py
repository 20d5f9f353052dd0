import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app.api.deps import get_ai_client, get_current_user, get_push_dispatcher, require_cron_secret
from app.core.config import is_push_configured, settings
from app.core.database import get_db
from app.models import User
from app.schemas import (
    CheckinResponse,
    FanOutResponse,
    SendNotificationRequest,
    SubscribeRequest,
    SubscriptionOut,
    SuccessResponse,
    UnsubscribeRequest,
    VapidKeyResponse,
)
from app.services.ai import CoachAI
from app.services.checkins import send_checkins
from app.services.notifications import send_reminder
from app.services.push import PushDispatcher
from app.services.subscriptions import (
    SubscriptionConflict,
    SubscriptionLimitReached,
    list_subscriptions,
    register_subscription,
    remove_user_subscription,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])
log = logging.getLogger(__name__)


def _subscription_out(sub) -> SubscriptionOut:
    return SubscriptionOut(id=sub.id or 0, endpoint=sub.endpoint, created_at=sub.created_at)


@router.get("/vapid-public-key", response_model=VapidKeyResponse)
def vapid_public_key():
    if not settings.vapid_public_key:
        raise HTTPException(status_code=500, detail="Push bildirimleri yapılandırılmamış.")
    return VapidKeyResponse(vapid_public_key=settings.vapid_public_key)


@router.post("/subscribe", response_model=SubscriptionOut, status_code=201)
def subscribe(body: SubscribeRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        sub = register_subscription(
            db,
            user.id or 0,
            body.endpoint,
            body.keys.p256dh,
            body.keys.auth,
            max_per_user=settings.max_push_subscriptions,
        )
    except SubscriptionConflict:
        raise HTTPException(status_code=409, detail="Bu cihaz başka bir hesaba kayıtlı.")
    except SubscriptionLimitReached:
        raise HTTPException(
            status_code=400,
            detail=f"En fazla {settings.max_push_subscriptions} cihaz kaydedilebilir. Önce bir cihazı kaldırın.",
        )
    log.info("Push subscription saved: user=%s subscription=%s", user.id, sub.id)
    return _subscription_out(sub)


@router.get("/subscribe", response_model=list[SubscriptionOut])
def my_subscriptions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [_subscription_out(s) for s in list_subscriptions(db, user.id)]


@router.delete("/subscribe", response_model=SuccessResponse)
def unsubscribe(body: UnsubscribeRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = remove_user_subscription(db, user.id or 0, body.endpoint)
    log.info("Push subscription removed: user=%s count=%s", user.id, removed)
    return SuccessResponse()


@router.post("/send", response_model=FanOutResponse, dependencies=[Depends(require_cron_secret)])
def send_notifications(
    body: SendNotificationRequest | None = None,
    db: Session = Depends(get_db),
    dispatcher: PushDispatcher = Depends(get_push_dispatcher),
):
    """Cron: tüm abonelere günlük hatırlatma."""
    if not is_push_configured() or not dispatcher.configured:
        raise HTTPException(status_code=500, detail="Push bildirimleri yapılandırılmamış.")
    overrides = body.model_dump(exclude_none=True) if body else None
    result = send_reminder(db, dispatcher, overrides)
    log.info("Reminder sent: %s", result.as_dict())
    return FanOutResponse(**result.as_dict())


@router.post("/send-dynamic", response_model=CheckinResponse, dependencies=[Depends(require_cron_secret)])
def send_dynamic_notifications(
    db: Session = Depends(get_db),
    ai: CoachAI = Depends(get_ai_client),
    dispatcher: PushDispatcher = Depends(get_push_dispatcher),
):
    """Cron: abonelere günlüklerine dayanan kişisel check-in."""
    if not is_push_configured() or not dispatcher.configured:
        raise HTTPException(status_code=500, detail="Push bildirimleri yapılandırılmamış.")
    if not ai.configured:
        raise HTTPException(status_code=500, detail="OpenAI yapılandırılmamış.")
    result = send_checkins(db, ai, dispatcher)
    return CheckinResponse(**result.as_dict())
