from datetime import datetime, timezone


def utcnow() -> datetime:
    """UTC şimdi (timezone-aware; sqlmodel datetime kolonları naive değer kabul etmez)."""
    return datetime.now(timezone.utc)
