"""
Smart Lock Configuration
------------------------
All settings loaded from environment variables or .env file.
"""
import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv


def _bool_env(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _data_path(name: str, default_name: str) -> str:
    return os.getenv(name) or os.path.join(os.getenv("DATA_DIR", "data"), default_name)


@dataclass
class Config:
    """Lock node configuration."""

    # =========================
    # Camera
    # =========================
    CAMERA_INDEX: int = field(default_factory=lambda: int(os.getenv("CAMERA_INDEX", "0")))
    CAMERA_WIDTH: int = field(default_factory=lambda: int(os.getenv("CAMERA_WIDTH", "640")))
    CAMERA_HEIGHT: int = field(default_factory=lambda: int(os.getenv("CAMERA_HEIGHT", "480")))
    CAMERA_FPS: int = field(default_factory=lambda: int(os.getenv("CAMERA_FPS", "15")))

    # =========================
    # Recognition
    # =========================
    # Empty path = cascade bundled with OpenCV
    HAAR_CASCADE_PATH: str = field(default_factory=lambda: os.getenv("HAAR_CASCADE_PATH", ""))
    CONFIDENCE_THRESHOLD: float = field(default_factory=lambda: float(os.getenv("CONFIDENCE_THRESHOLD", "35.0")))
    # LBPH reports a distance, so smaller scores are better matches
    CONFIDENCE_LOWER_IS_BETTER: bool = field(default_factory=lambda: _bool_env("CONFIDENCE_LOWER_IS_BETTER", "true"))
    FRAME_SKIP: int = field(default_factory=lambda: int(os.getenv("FRAME_SKIP", "5")))
    MIN_FACE_SIZE: int = field(default_factory=lambda: int(os.getenv("MIN_FACE_SIZE", "60")))

    # =========================
    # GPIO (Lock Control)
    # =========================
    GPIO_ENABLED: bool = field(default_factory=lambda: _bool_env("GPIO_ENABLED", "false"))
    # BCM numbering; BCM 4 is wiringPi pin 7
    GPIO_LOCK_PIN: int = field(default_factory=lambda: int(os.getenv("GPIO_LOCK_PIN", "4")))
    GPIO_ACTIVE_LOW: bool = field(default_factory=lambda: _bool_env("GPIO_ACTIVE_LOW", "false"))
    UNLOCK_DURATION_MS: int = field(default_factory=lambda: int(os.getenv("UNLOCK_DURATION_MS", "2000")))

    # =========================
    # Storage
    # =========================
    DATA_DIR: str = field(default_factory=lambda: os.getenv("DATA_DIR", "data"))
    # Unset paths live under DATA_DIR
    DB_PATH: str = field(default_factory=lambda: _data_path("DB_PATH", "smartlock.db"))
    ACCESS_IMAGE_DIR: str = field(default_factory=lambda: _data_path("ACCESS_IMAGE_DIR", "access_images"))
    USER_IMAGE_DIR: str = field(default_factory=lambda: _data_path("USER_IMAGE_DIR", "user_images"))
    STORAGE_RETRY_DELAY: float = field(default_factory=lambda: float(os.getenv("STORAGE_RETRY_DELAY", "0.05")))

    # =========================
    # Admin HTTP
    # =========================
    ADMIN_ENABLED: bool = field(default_factory=lambda: _bool_env("ADMIN_ENABLED", "true"))
    ADMIN_HOST: str = field(default_factory=lambda: os.getenv("ADMIN_HOST", "0.0.0.0"))
    ADMIN_PORT: int = field(default_factory=lambda: int(os.getenv("ADMIN_PORT", "8080")))

    # =========================
    # MQTT
    # =========================
    MQTT_ENABLED: bool = field(default_factory=lambda: _bool_env("MQTT_ENABLED", "false"))
    MQTT_BROKER: str = field(default_factory=lambda: os.getenv("MQTT_BROKER", "broker.hivemq.com"))
    MQTT_PORT: int = field(default_factory=lambda: int(os.getenv("MQTT_PORT", "1883")))
    MQTT_TOPIC: str = field(default_factory=lambda: os.getenv("MQTT_TOPIC", "smartlock/control"))
    MQTT_CLIENT_ID: str = field(default_factory=lambda: os.getenv("MQTT_CLIENT_ID", f"smartlock-{os.getpid()}"))
    MQTT_USERNAME: Optional[str] = field(default_factory=lambda: os.getenv("MQTT_USERNAME"))
    MQTT_PASSWORD: Optional[str] = field(default_factory=lambda: os.getenv("MQTT_PASSWORD"))

    # =========================
    # Alerts
    # =========================
    ALERT_WEBHOOK_URL: Optional[str] = field(default_factory=lambda: os.getenv("ALERT_WEBHOOK_URL") or None)
    ALERT_COOLDOWN_SECONDS: float = field(default_factory=lambda: float(os.getenv("ALERT_COOLDOWN_SECONDS", "30")))

    # =========================
    # Logging
    # =========================
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    LOG_FILE: str = field(default_factory=lambda: os.getenv("LOG_FILE", "smartlock.log"))

    @property
    def unlock_duration(self) -> float:
        """Unlock window in seconds."""
        return self.UNLOCK_DURATION_MS / 1000.0


def load_config(env_file: Optional[str] = None) -> Config:
    """Load .env (if present) and build a Config from the environment."""
    load_dotenv(env_file)
    return Config()
