"""Central configuration loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parents[1]

DEFAULT_WELCOME = (
    "Hello! Welcome to our Tech Expo. I am your AI assistant. "
    "How can I help you today?"
)


class Settings(BaseSettings):
    """Kiosk settings, populated from env vars or .env file."""

    # Presence estimation
    person_label: str = Field(default="person", alias="DOCENT_PERSON_LABEL")
    min_confidence: float = Field(
        default=0.5, alias="DOCENT_MIN_CONFIDENCE",
        description="Detections must score strictly above this to count",
    )
    close_area_ratio: float = Field(
        default=0.15, alias="DOCENT_CLOSE_AREA_RATIO",
        description="Bounding box / frame area strictly above this means 'close'",
    )

    # Interaction timing (seconds)
    welcome_message: str = Field(default=DEFAULT_WELCOME, alias="DOCENT_WELCOME_MESSAGE")
    listen_delay: float = Field(default=5.0, alias="DOCENT_LISTEN_DELAY")
    hard_reset_delay: float = Field(default=15.0, alias="DOCENT_HARD_RESET_DELAY")
    absence_reset_delay: float = Field(default=3.0, alias="DOCENT_ABSENCE_RESET_DELAY")
    recognition_restart_delay: float = Field(
        default=0.1, alias="DOCENT_RECOGNITION_RESTART_DELAY"
    )
    recognition_language: str = Field(default="en-US", alias="DOCENT_LANGUAGE")

    # Answer resolver
    fuzzy_threshold: float = Field(
        default=0.6, alias="DOCENT_FUZZY_THRESHOLD",
        description="Maximum keyword distance accepted (0 = exact, 1 = anything)",
    )
    corpus_path: Path = Field(
        default=_PACKAGE_DIR / "data" / "projects.json", alias="DOCENT_CORPUS_PATH"
    )

    # Detection
    detector_backend: Literal["client", "yolo"] = Field(
        default="client", alias="DOCENT_DETECTOR_BACKEND"
    )
    yolo_model: str = Field(default="yolo11n.pt", alias="DOCENT_YOLO_MODEL")
    camera_index: int = Field(default=0, alias="DOCENT_CAMERA_INDEX")

    # Server
    host: str = Field(default="127.0.0.1", alias="DOCENT_HOST")
    port: int = Field(default=8100, alias="DOCENT_PORT")

    # Logging
    log_level: str = Field(default="INFO", alias="DOCENT_LOG_LEVEL")

    model_config = {
        "env_file": str(_PROJECT_ROOT / ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


def get_settings() -> Settings:
    """Return a cached Settings instance."""
    if not hasattr(get_settings, "_instance"):
        get_settings._instance = Settings()  # type: ignore[attr-defined]
    return get_settings._instance  # type: ignore[attr-defined]
