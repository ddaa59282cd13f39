# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    # Storage settings
    # sqlite = SQLAlchemy (any SQLAlchemy URL works in db_url); json = demo/test files
    storage_backend: str = "sqlite"
    db_url: str = "sqlite:///data/workspace.db"
    json_data_dir: str = "data/json"

    # Local device storage (guest id + last visited pointer)
    device_storage_path: str = "data/device.json"
    guest_id_prefix: str = "guest_"

    # Re-sign-ins for the same (account, guest) inside this window without a
    # sign-out in between never dispatch a second claim.
    claim_dedupe_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Seconds during which account flapping without a sign-out is folded into one claim",
    )

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    log_level: str = "INFO"

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(Path(__file__).resolve().parent / ".env"),
        extra="ignore",
    )

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
