import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv


# Load .env once at import time (support running from any cwd)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: list[str] = field(default_factory=lambda: _split(os.getenv("CORS_ORIGINS", "*")))

    # STUN/TURN
    STUN_SERVER: str | None = os.getenv("STUN_SERVER")
    TURN_URL: str | None = os.getenv("TURN_URL")
    TURN_USERNAME: str | None = os.getenv("TURN_USERNAME")
    TURN_PASSWORD: str | None = os.getenv("TURN_PASSWORD")

    # Signaling client
    HUB_URL: str = os.getenv("HUB_URL", "ws://localhost:8000/ws")

    def ice_servers(self) -> list[dict]:
        ice_servers = []
        if self.STUN_SERVER:
            ice_servers.append({"urls": self.STUN_SERVER})
        # Always include Google public STUN as fallback
        ice_servers.extend([
            {"urls": "stun:stun.l.google.com:19302"},
            {"urls": "stun:stun1.l.google.com:19302"},
        ])

        if self.TURN_URL and self.TURN_USERNAME and self.TURN_PASSWORD:
            ice_servers.append({
                "urls": self.TURN_URL,
                "username": self.TURN_USERNAME,
                "credential": self.TURN_PASSWORD,
            })
        return ice_servers


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

# Convenient module-level alias
settings = get_settings()
