from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    app_name: str = "Gait Continuous Authentication"
    version: str = "1.0.0"

    host: str = "0.0.0.0"
    port: int = 10600

    enrollment_storage_path: Path = Path("./data_storage/enrollment")
    results_storage_path: Path = Path("./data_storage/results")
    model_path: Path = Path("./models")
    log_path: Path = Path("./logs")

    # Optional recorded session used as the sensor source; when unset the
    # pipeline reports NotSupported because no step detector is available.
    replay_recording: Optional[Path] = None
    replay_speed: float = 1.0
    replay_loop: bool = False

    start_enabled: bool = True

    log_level: str = "INFO"
    log_format: str = "json"
    log_retention_days: int = 30
    log_to_file: bool = True

    cors_enabled: bool = True
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
