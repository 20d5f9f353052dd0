"""
İş hattı hataları.

Senkron yolda (enqueue, poll, mark-seen) InvalidRequest/NotFound doğrudan
HTTP yanıtına çevrilir (app/main.py). İşlem sırasında oluşan StaleReference ve
AdapterFailure ise işe yazılır, isteğe hiç dönmez.
"""


class JobError(Exception):
    """Tüm iş hattı hatalarının tabanı."""

    code = "internal"


class InvalidRequest(JobError):
    code = "invalid_request"


class NotFound(JobError):
    """Kayıt yok ya da çağırana ait değil (ikisi ayırt edilmez)."""

    code = "not_found"


class StaleReference(JobError):
    """İşin bağlı olduğu sohbet/mesaj/araç işlenmeden önce silinmiş."""

    code = "stale_reference"


class AdapterFailure(JobError):
    """AI çağrısı hata verdi veya yanıt kullanılamaz durumda."""

    code = "adapter_failure"


class DispatchGone(JobError):
    """Push aboneliği kalıcı olarak geçersiz (404/410); kayıt silinmeli."""

    code = "dispatch_gone"

    def __init__(self, status_code: int | None = None, detail: str = ""):
        self.status_code = status_code
        super().__init__(detail or f"push target gone (HTTP {status_code})")


class DispatchTransient(JobError):
    """Geçici gönderim hatası; yalnızca loglanır."""

    code = "dispatch_transient"
