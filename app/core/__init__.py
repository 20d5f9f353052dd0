from .config import settings
from .database import engine, get_db, init_db

__all__ = ["settings", "engine", "get_db", "init_db"]
