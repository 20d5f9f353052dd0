"""Rate limit anahtarı: kullanıcı başına, token yoksa IP başına."""
from starlette.requests import Request

from app.core.rate_limit import client_ip, rate_limit_key
from app.core.security import create_access_token


def _bearer(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


def _request(headers: dict | None = None, host: str = "10.0.0.7") -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "POST", "path": "/chat", "headers": raw, "client": (host, 5123)})


def test_forwarded_for_wins_over_peer_address():
    assert client_ip(_request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})) == "203.0.113.9"
    assert client_ip(_request()) == "10.0.0.7"


def test_authenticated_requests_are_counted_per_user(user_id, other_user_id):
    # Aynı NAT arkasındaki iki kullanıcı ayrı kotaya düşer
    assert rate_limit_key(_request(_bearer(user_id))) == f"user:{user_id}"
    assert rate_limit_key(_request(_bearer(other_user_id))) == f"user:{other_user_id}"


def test_invalid_or_missing_token_falls_back_to_ip(cron_headers):
    assert rate_limit_key(_request({"Authorization": "Bearer not-a-jwt"})) == "ip:10.0.0.7"
    assert rate_limit_key(_request(cron_headers, host="198.51.100.4")) == "ip:198.51.100.4"
    assert rate_limit_key(_request()) == "ip:10.0.0.7"
