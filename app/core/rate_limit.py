"""
Rate limiting (SlowAPI). Oturum açmış istekler kullanıcı başına sayılır; aynı
NAT arkasındaki kullanıcılar birbirinin kotasını yemez. Token'sız veya geçersiz
token'lı istekler proxy (X-Forwarded-For) destekli IP başına sayılır.
"""
from fastapi import Request

from slowapi import Limiter

from .config import settings
from .security import decode_access_token


def client_ip(request: Request) -> str:
    """Proxy arkasında gerçek istemci IP (Render, Nginx)."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def rate_limit_key(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if auth.startswith("Bearer "):
        payload = decode_access_token(auth[len("Bearer ") :])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    return f"ip:{client_ip(request)}"


limiter = Limiter(key_func=rate_limit_key)

# İş kuyruğuna yazan uçlar için (chat, günlük araç), kullanıcı başına
SUBMIT_RATE_LIMIT = f"{settings.rate_limit_per_minute}/minute"
