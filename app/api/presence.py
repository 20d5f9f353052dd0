from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, select

from app.api.deps import get_current_user
from app.core.database import get_db
from app.core.rate_limit import client_ip
from app.models import Presence, User
from app.models.base import utcnow
from app.schemas import HeartbeatRequest

router = APIRouter(prefix="/presence", tags=["presence"])


@router.post("/heartbeat")
def heartbeat(
    request: Request,
    body: HeartbeatRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Açık sekme periyodik olarak çağırır; bildirim kararında kullanıcının hâlâ uygulamada olup olmadığı buradan okunur."""
    presence = db.exec(select(Presence).where(Presence.user_id == user.id)).first()
    if not presence:
        presence = Presence(user_id=user.id or 0)
    presence.last_seen_at = utcnow()
    presence.ip = client_ip(request)
    presence.current_page = body.current_page if body else None
    db.add(presence)
    db.commit()
    return {"ok": True}
