import logging
import time

from openai import APIConnectionError, AuthenticationError, OpenAI, OpenAIError, RateLimitError

from app.core.config import get_openai_keys, settings
from app.services.errors import AdapterFailure

logger = logging.getLogger(__name__)
OPENAI_TIMEOUT = 60.0
OPENAI_RETRY_WAIT = 1.5

# Bir anahtar auth/rate limit verince diğerine geçilecek
OPENAI_FALLBACK_EXCEPTIONS = (AuthenticationError, RateLimitError)


class CoachAI:
    """
    AI çağrı adaptörü: prompt + geçmiş girer, metin çıkar, hata verebilir.
    Uygulama ömrü boyunca tek örnek (lifespan'de kurulur); testlerde sahtesiyle değiştirilir.
    """

    def __init__(self, keys: list[str], model: str, timeout: float = OPENAI_TIMEOUT):
        self.keys = keys
        self.model = model
        self.timeout = timeout
        # Anahtar başına bir istemci (çoklu anahtar fallback için)
        self._clients: dict[str, OpenAI] = {}

    @classmethod
    def from_settings(cls) -> "CoachAI":
        return cls(get_openai_keys(), settings.openai_model)

    @property
    def configured(self) -> bool:
        return bool(self.keys)

    def _get_client_for_key(self, key: str) -> OpenAI:
        if key not in self._clients:
            self._clients[key] = OpenAI(api_key=key, timeout=self.timeout)
        return self._clients[key]

    def _create_with_fallback(self, create_fn):
        """
        create_fn(client) çağrısını yapar; AuthenticationError veya RateLimitError olursa
        sıradaki anahtarla tekrar dener. Tüm anahtarlar başarısızsa AdapterFailure.
        """
        if not self.keys:
            raise AdapterFailure("OPENAI_API_KEY tanımlı değil veya geçersiz.")
        last_exc: Exception | None = None
        for key in self.keys:
            try:
                return create_fn(self._get_client_for_key(key))
            except OPENAI_FALLBACK_EXCEPTIONS as e:
                last_exc = e
                logger.warning("OpenAI anahtar atlandı (%s), sıradakine geçiliyor: %s", key[:12] + "...", e)
                continue
        raise AdapterFailure(f"All OpenAI keys failed: {last_exc}") from last_exc

    def complete(self, system: str, messages: list[dict], max_tokens: int = 1024) -> str:
        """Sohbet tamamlama. Boş yanıt da hata sayılır (iş failed olur)."""

        def _call(client: OpenAI):
            return client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": system}, *messages],
                max_tokens=max_tokens,
            )

        def _safe_call(client: OpenAI):
            # APIConnectionError'da 1 kez 1.5 sn bekleyip tekrar dener
            try:
                return _call(client)
            except APIConnectionError as e:
                logger.warning("OpenAI retry after %s: %s", type(e).__name__, e)
                time.sleep(OPENAI_RETRY_WAIT)
                return _call(client)

        t0 = time.perf_counter()
        try:
            response = self._create_with_fallback(_safe_call)
        except AdapterFailure:
            raise
        except OpenAIError as e:
            logger.exception("OpenAI error: %s", e)
            raise AdapterFailure(f"{type(e).__name__}: {e}") from e
        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        logger.info("OpenAI completion: model=%s latency_ms=%.0f chars=%s", self.model, (time.perf_counter() - t0) * 1000, len(text))
        if not text:
            raise AdapterFailure("Empty response from model")
        return text
