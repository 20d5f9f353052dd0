"""
Kalıcı iş kuyruğu (Upstash QStash).

Enqueue yalnızca iş id'sini yayınlar; QStash /internal/jobs/process'i çağırır.
Yayın başarısız olursa iş pending kalır ve cron taraması onu işler.
"""
import logging

from qstash import QStash, Receiver
from qstash.errors import SignatureError

from app.core.config import settings

logger = logging.getLogger(__name__)

PROCESS_PATH = "/internal/jobs/process"
# QStash teslimat tekrarı (işlemci CAS ile tekrar teslimatı yok sayar)
DELIVERY_RETRIES = 3


class JobQueue:
    def __init__(
        self,
        token: str,
        callback_url: str,
        current_signing_key: str = "",
        next_signing_key: str = "",
    ):
        self.callback_url = (callback_url or "").rstrip("/")
        self._client = QStash(token) if token else None
        self._receiver = (
            Receiver(current_signing_key=current_signing_key, next_signing_key=next_signing_key or current_signing_key)
            if current_signing_key
            else None
        )

    @classmethod
    def from_settings(cls) -> "JobQueue":
        return cls(
            settings.qstash_token,
            settings.qstash_callback_url,
            settings.qstash_current_signing_key,
            settings.qstash_next_signing_key,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None and bool(self.callback_url)

    @property
    def verifies_signatures(self) -> bool:
        return self._receiver is not None

    @property
    def process_url(self) -> str:
        return self.callback_url + PROCESS_PATH

    def publish(self, job_id: str) -> str | None:
        """İşi kuyruğa yollar; QStash mesaj id'sini döner. Yapılandırma yoksa None."""
        if not self.configured:
            return None
        res = self._client.message.publish_json(
            url=self.process_url,
            body={"jobId": job_id},
            retries=DELIVERY_RETRIES,
        )
        logger.info("Job %s published to queue: message_id=%s", job_id, res.message_id)
        return res.message_id

    def verify(self, body: str, signature: str | None, url: str | None = None) -> bool:
        """Upstash-Signature başlığını doğrular."""
        if not self._receiver or not signature:
            return False
        try:
            self._receiver.verify(body=body, signature=signature, url=url or self.process_url)
        except SignatureError as e:
            logger.warning("Queue signature rejected: %s", e)
            return False
        return True
