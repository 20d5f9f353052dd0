"""Kuyruk geri çağrısı ve cron taraması uçları: yetki, imza, sayaçlar."""
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlmodel import Session

from app.api.deps import get_job_queue
from app.core.database import engine
from app.main import app
from app.models import Job
from app.models.base import utcnow
from app.services.queue import JobQueue


def _submit(client: TestClient, headers: dict) -> str:
    return client.post("/chat", json={"message": "Hi"}, headers=headers).json()["jobId"]


def test_process_requires_cron_secret(client: TestClient, auth_headers, fake_ai):
    job_id = _submit(client, auth_headers)
    assert client.post("/internal/jobs/process", json={"jobId": job_id}).status_code == 401
    r = client.post("/internal/jobs/process", json={"jobId": job_id}, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    # Kullanıcı token'ı da geçmez
    assert client.post("/internal/jobs/process", json={"jobId": job_id}, headers=auth_headers).status_code == 401
    assert fake_ai.calls == []


def test_process_unknown_job_is_not_found(client: TestClient, cron_headers):
    r = client.post("/internal/jobs/process", json={"jobId": "0" * 32}, headers=cron_headers)
    assert r.status_code == 404


def test_process_without_job_id_is_bad_request(client: TestClient, cron_headers):
    r = client.post("/internal/jobs/process", json={}, headers=cron_headers)
    assert r.status_code == 400


def test_undecodable_body_without_auth_is_unauthorized(client: TestClient):
    r = client.post("/internal/jobs/process", content=b"\xff\xfe\xfa")
    assert r.status_code == 401


def test_undecodable_body_with_auth_is_bad_request(client: TestClient, cron_headers):
    r = client.post("/internal/jobs/process", content=b"\xff\xfe\xfa", headers=cron_headers)
    assert r.status_code == 400
    assert r.json()["status_code"] == 400


def test_signed_queue_rejects_undecodable_body(client: TestClient):
    signed = JobQueue("", "https://gunce.example", "sig_current_key", "sig_next_key")
    app.dependency_overrides[get_job_queue] = lambda: signed
    r = client.post("/internal/jobs/process", content=b"\xff\xfe\xfa", headers={"Upstash-Signature": "not-a-jwt"})
    assert r.status_code == 401


def test_duplicate_callback_is_reported(client: TestClient, auth_headers, cron_headers, fake_ai):
    # Kuyruk yapılandırılmamış: iş ilk mesaj id'sini teslimat başlığından alır
    app.dependency_overrides[get_job_queue] = lambda: JobQueue("", "")
    job_id = _submit(client, auth_headers)
    headers = {**cron_headers, "Upstash-Message-Id": "msg_42"}
    first = client.post("/internal/jobs/process", json={"jobId": job_id}, headers=headers).json()
    second = client.post("/internal/jobs/process", json={"jobId": job_id}, headers=headers).json()
    assert first == {"jobId": job_id, "status": "completed", "duplicate": False}
    assert second == {"jobId": job_id, "status": "completed", "duplicate": True}
    assert len(fake_ai.calls) == 1
    with Session(engine) as db:
        assert db.get(Job, job_id).queue_message_id == "msg_42"


def test_signed_queue_rejects_bad_signature(client: TestClient, auth_headers, cron_headers, fake_ai):
    signed = JobQueue("", "https://gunce.example", "sig_current_key", "sig_next_key")
    app.dependency_overrides[get_job_queue] = lambda: signed
    job_id = _submit(client, auth_headers)
    r = client.post("/internal/jobs/process", json={"jobId": job_id}, headers={"Upstash-Signature": "not-a-jwt"})
    assert r.status_code == 401
    # İmza anahtarları varken cron bearer kabul edilmez
    assert client.post("/internal/jobs/process", json={"jobId": job_id}, headers=cron_headers).status_code == 401
    assert fake_ai.calls == []
    with Session(engine) as db:
        assert db.get(Job, job_id).status == "pending"


def test_sweep_requires_cron_secret(client: TestClient):
    assert client.post("/cron/process-pending").status_code == 401
    assert client.post("/cron/process-pending", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_sweep_reports_counters(client: TestClient, auth_headers, cron_headers, fake_ai):
    fake_ai.replies.append("İlk yanıt")
    job_id = _submit(client, auth_headers)
    past = utcnow() - timedelta(minutes=5)
    with Session(engine) as db:
        db.exec(update(Job).where(Job.id == job_id).values(created_at=past, updated_at=past))
        db.commit()
    r = client.post("/cron/process-pending", headers=cron_headers)
    assert r.status_code == 200
    j = r.json()
    assert j["processed"] == 1
    assert j["completed"] == 1
    assert j["expired"] == 0
    assert j["deleted"] == 0
    assert client.get(f"/jobs/{job_id}", headers=auth_headers).json()["result"] == "İlk yanıt"

    # İkinci tarama yapacak iş bulamaz
    again = client.post("/cron/process-pending", headers=cron_headers).json()
    assert again["processed"] == 0
