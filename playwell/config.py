import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> frozenset:
    return frozenset(part.strip() for part in value.split(",") if part.strip())


class Configurations:
    APP_NAME: str = "Playwell"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./playwell.db")
    DEFAULT_AGE: int = int(os.getenv("DEFAULT_AGE", "18"))
    COMPLETIONIST_TYPES: frozenset = _csv(os.getenv("COMPLETIONIST_TYPES", "100%,100_percent"))
    DASHBOARD_RECENT_LIMIT: int = int(os.getenv("DASHBOARD_RECENT_LIMIT", "10"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    API_URL: str = os.getenv("API_URL", "http://127.0.0.1:8000")

config = Configurations()
