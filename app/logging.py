"""
Logging yapılandırması.
Seviye LOG_LEVEL ile gelir. İş geçişleri ve push sonuçları `app.services.*`
logger'larına %s argümanlarıyla yazılır; dış istemcilerin istek başı logları susturulur.
"""
import logging
import sys

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
APP_LOGGERS = ("app", "gunce")
# openai/qstash (httpx) ve pywebpush (requests/urllib3) her isteği loglar
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "openai")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> int:
    """Kök logger'ı stdout'a bağlar, uygulanan seviyeyi döner (tanınmayan ad INFO sayılır)."""
    resolved = _resolve_level(level)
    logging.basicConfig(
        level=resolved,
        format=format_string or DEFAULT_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    for name in UVICORN_LOGGERS + APP_LOGGERS:
        logging.getLogger(name).setLevel(resolved)
    # Uygulama DEBUG'dayken de dış istemciler WARNING altına inmez
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return resolved
