"""
Application configuration, read from environment variables (.env supported).
"""

import os
from typing import Final, List

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    DATABASE_URL: Final[str] = os.getenv("DATABASE_URL", "sqlite:///./expenses.db")
    DEMO_USER_EMAIL: Final[str] = os.getenv("DEMO_USER_EMAIL", "demo@example.com")
    # Vite dev server
    CORS_ORIGINS: Final[List[str]] = _split_csv(
        os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
    LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
