from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, field_validator


class Settings(BaseModel):
    model_config = ConfigDict(validate_default=True)

    app_name: str = "Steam Price History Harvester"
    provider_name: str = os.getenv("PROVIDER_NAME", "steam")
    steam_app_id: int = int(os.getenv("STEAM_APP_ID", "570"))
    market_base_url: str = os.getenv("MARKET_BASE_URL", "https://steamcommunity.com/market")
    catalog_url: str = os.getenv(
        "CATALOG_URL",
        "https://raw.githubusercontent.com/S1nuxoff/dota2-file-tracker/main/static/items_game.txt.json",
    )
    static_dir: Path = Path(os.getenv("HARVEST_STATIC_DIR", "./static"))
    state_file: Path = Path(os.getenv("HARVEST_STATE_FILE", "state.json"))
    batch_size: int = int(os.getenv("HARVEST_BATCH_SIZE", "1"))
    requests_per_minute: float = float(os.getenv("HARVEST_REQUESTS_PER_MINUTE", "20"))
    max_duration_seconds: float = float(os.getenv("HARVEST_MAX_DURATION_SECONDS", str(3600 * 5.9)))
    request_timeout_seconds: float = float(os.getenv("HARVEST_REQUEST_TIMEOUT", "25"))
    schedule_interval_hours: int = int(os.getenv("HARVEST_SCHEDULE_INTERVAL_HOURS", "6"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator("batch_size")
    @classmethod
    def _batch_size_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch_size must be at least 1")
        return value

    @field_validator("requests_per_minute")
    @classmethod
    def _rate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("requests_per_minute must be positive")
        return value

    @property
    def prices_dir(self) -> Path:
        return self.static_dir / "prices"

    @property
    def history_dir(self) -> Path:
        return self.static_dir / "pricehistory"


settings = Settings()
