"""İşlemci: claim, tekrar teslimat, hata yolları, cron taraması."""
from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlmodel import Session

from app.core.database import engine
from app.models import Job, Message
from app.models.base import utcnow
from app.services import job_store
from app.services.enqueue import JobEnqueuer
from app.services.errors import AdapterFailure
from app.services.queue import JobQueue


def _enqueue_chat(user_id: int, text: str = "Hi") -> str:
    with Session(engine) as db:
        return JobEnqueuer(JobQueue("", "")).enqueue_chat(db, user_id, text).job.id


def _age(job_id: str, **delta) -> None:
    past = utcnow() - timedelta(**delta)
    with Session(engine) as db:
        db.exec(update(Job).where(Job.id == job_id).values(created_at=past, updated_at=past))
        db.commit()


def test_duplicate_delivery_calls_ai_once(user_id, processor, fake_ai):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        first = processor.process(db, job_id, "msg_1")
        second = processor.process(db, job_id, "msg_1")
    assert first.claimed and first.status == "completed"
    assert not second.claimed and second.status == "completed"
    assert len(fake_ai.calls) == 1
    with Session(engine) as db:
        job = db.get(Job, job_id)
        assert job.result_buffer == fake_ai.default_reply
        assert job.queue_message_id == "msg_1"
        assert job.duration_ms is not None


def test_adapter_failure_marks_job_failed(user_id, processor, fake_ai):
    fake_ai.error = AdapterFailure("All OpenAI keys failed: 429")
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        outcome = processor.process(db, job_id)
    assert outcome.status == "failed"
    with Session(engine) as db:
        job = db.get(Job, job_id)
        assert job.error_code == "adapter_failure"
        assert "429" in job.error
        assert job.result_buffer == ""
        assert db.get(Message, job.message_id).status == "failed"


def test_unexpected_error_is_internal_failure(user_id, processor, fake_ai):
    fake_ai.error = RuntimeError("boom")
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        assert processor.process(db, job_id).status == "failed"
        assert db.get(Job, job_id).error_code == "internal"


def test_vanished_message_is_stale_reference(user_id, processor, fake_ai):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        job = db.get(Job, job_id)
        db.delete(db.get(Message, job.message_id))
        db.commit()
    with Session(engine) as db:
        outcome = processor.process(db, job_id)
    assert outcome.status == "failed"
    assert fake_ai.calls == []
    with Session(engine) as db:
        assert db.get(Job, job_id).error_code == "stale_reference"


def test_terminal_job_never_moves_backwards(user_id, processor):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        processor.process(db, job_id)
        assert job_store.claim_job(db, job_id) is False
        assert job_store.fail_job(db, job_id, "internal", "late failure") is False
        job = db.get(Job, job_id)
        db.refresh(job)
        assert job.status == "completed"
        assert job.error is None


def test_complete_requires_result(user_id):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        job_store.claim_job(db, job_id)
        with pytest.raises(ValueError):
            job_store.complete_job(db, job_id, "   ")


def test_late_result_after_timeout_is_discarded(user_id, processor, fake_ai):
    job_id = _enqueue_chat(user_id)

    def expire_then_reply(system, messages, max_tokens=1024):
        with Session(engine) as other:
            job_store.fail_job(other, job_id, "timeout", "Processing exceeded 600s")
        return "geç kalmış yanıt"

    fake_ai.complete = expire_then_reply
    with Session(engine) as db:
        outcome = processor.process(db, job_id)
    assert outcome.status == "failed"
    with Session(engine) as db:
        job = db.get(Job, job_id)
        assert job.error_code == "timeout"
        assert job.result_buffer == ""


def test_sweep_processes_old_pending_and_expires_stuck(user_id, processor, fake_ai):
    fresh = _enqueue_chat(user_id, "yeni")
    old = _enqueue_chat(user_id, "eski")
    stuck = _enqueue_chat(user_id, "takılı")
    _age(old, minutes=5)
    with Session(engine) as db:
        job_store.claim_job(db, stuck)
    _age(stuck, hours=1)

    with Session(engine) as db:
        result = processor.run_sweep(
            db,
            processing_timeout_seconds=600,
            pending_after_seconds=30,
            batch_size=20,
            retention_days=30,
        )
    assert result.expired == 1
    assert result.processed == 1
    assert result.completed == 1
    with Session(engine) as db:
        assert db.get(Job, old).status == "completed"
        assert db.get(Job, fresh).status == "pending"
        stuck_job = db.get(Job, stuck)
        assert stuck_job.status == "failed"
        assert stuck_job.error_code == "timeout"
        assert db.get(Message, stuck_job.message_id).status == "failed"
    assert len(fake_ai.calls) == 1


def test_sweep_deletes_jobs_past_retention(user_id, processor):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        processor.process(db, job_id)
    _age(job_id, days=31)
    with Session(engine) as db:
        result = processor.run_sweep(
            db, processing_timeout_seconds=600, pending_after_seconds=30, batch_size=20, retention_days=30
        )
        assert result.deleted == 1
        assert db.get(Job, job_id) is None


def test_pending_job_cannot_fail_without_claim(user_id):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        assert job_store.fail_job(db, job_id, "internal", "not claimed") is False
        job = db.get(Job, job_id)
        assert job.status == "pending"
        assert job.error is None


def test_timestamps_are_stored_as_utc(user_id, processor):
    job_id = _enqueue_chat(user_id)
    with Session(engine) as db:
        processor.process(db, job_id)
    with Session(engine) as db:
        job = db.get(Job, job_id)
        assert job.created_at.utcoffset() == timedelta(0)
        assert job.updated_at >= job.created_at
        assert job.updated_at <= utcnow()
