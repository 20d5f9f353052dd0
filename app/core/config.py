from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env proje kökünde (gunce/): app/core/config.py -> app/core -> app -> gunce
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

# OpenAI anahtarının geçerli sayılması için (başında boşluk vb. olmaması)
OPENAI_KEY_PREFIX = "sk-"


class Settings(BaseSettings):
    openai_api_key: str = ""
    # Birden fazla anahtar: virgülle ayrılmış. Boşsa OPENAI_API_KEY kullanılır. Biri bozulunca/limit dolunca sıradakine geçilir.
    openai_api_keys: str = ""
    openai_model: str = "gpt-4o-mini"
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./gunce.db"
    # CORS: virgülle ayrılmış origin listesi; production'da https://alandiniz.com
    cors_origins: str = "*"
    # Kullanıcı (token yoksa IP) başına dakikada max istek (rate limit)
    rate_limit_per_minute: int = 60
    environment: str = "development"
    # DEBUG, INFO, WARNING...; tanınmayan değer INFO sayılır
    log_level: str = "INFO"
    # Cron servisinin (cron-job.org vb.) Authorization: Bearer <CRON_SECRET> ile gönderdiği paylaşılan sır
    cron_secret: str = ""
    # PWA push bildirimleri: VAPID anahtarları (base64url). Boşsa push gönderilmez.
    vapid_public_key: str = ""
    vapid_private_key: str = ""  # Bildirim göndermek için (pywebpush ile kullanılır)
    vapid_subject: str = "mailto:admin@example.com"
    # QStash (Upstash): kalıcı kuyruk. Token yoksa işler cron taramasıyla işlenir.
    qstash_token: str = ""
    qstash_current_signing_key: str = ""
    qstash_next_signing_key: str = ""
    qstash_callback_url: str = ""  # örn. https://siteniz.com (QStash buraya /internal/jobs/process POST yapar)
    # Yanıt tamamlandıktan sonra bildirim kararı için bekleme (sn). 0 = karar hemen verilir.
    notification_delay_seconds: int = 0
    # Son heartbeat bundan eskiyse kullanıcı "ayrılmış" sayılır
    presence_timeout_seconds: int = 120
    # processing durumunda bundan uzun kalan iş timeout ile failed olur (worker çökmüş demektir)
    processing_timeout_seconds: int = 600
    # Kuyruğa hiç ulaşmamış pending işler bu kadar bekledikten sonra cron taramasında işlenir
    pending_sweep_after_seconds: int = 30
    sweep_batch_size: int = 20
    job_retention_days: int = 30
    chat_message_max_chars: int = 8000
    max_push_subscriptions: int = 5  # kullanıcı başına cihaz

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def strip_openai_key(cls, v: str | None) -> str:
        """Boşluk/yanlış kopya kaynaklı hataları azaltır."""
        return (v or "").strip()

    @field_validator("openai_api_keys", "cron_secret", "vapid_public_key", "vapid_private_key", mode="before")
    @classmethod
    def strip_secrets(cls, v: str | None) -> str:
        return (v or "").strip()


settings = Settings()


def get_openai_keys() -> list[str]:
    """
    Geçerli OpenAI anahtarlarını döner (sk- ile başlayan, boşluksuz).
    OPENAI_API_KEYS varsa virgülle ayrılmış liste; yoksa OPENAI_API_KEY tek eleman.
    """
    keys_raw = (settings.openai_api_keys or "").strip()
    if keys_raw:
        keys = [k.strip() for k in keys_raw.split(",") if k.strip() and k.strip().startswith(OPENAI_KEY_PREFIX)]
        if keys:
            return keys
    single = (settings.openai_api_key or "").strip()
    if single and single.startswith(OPENAI_KEY_PREFIX):
        return [single]
    return []


def is_openai_configured() -> bool:
    """En az bir geçerli OpenAI anahtarı var mı?"""
    return len(get_openai_keys()) > 0


def is_push_configured() -> bool:
    return bool(settings.vapid_public_key and settings.vapid_private_key)


def is_queue_configured() -> bool:
    return bool(settings.qstash_token and settings.qstash_callback_url)
