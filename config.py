"""JSON-backed application configuration."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path

from models import RecordingMode

logger = logging.getLogger(__name__)

APP_DIR_NAME = "voice_dictation"
CONFIG_FILE_NAME = "config.json"
CONFIG_BACKUP_NAME = "config.json.bak"
API_KEY_ENV = "OPENAI_API_KEY"

MIN_RECORDING_DURATION_SEC = 10
MAX_RECORDING_DURATION_SEC = 120


def default_config_dir() -> Path:
    return Path.home() / ".config" / APP_DIR_NAME


@dataclass
class AppConfig:
    config_version: int = 1
    hotkey: str = "Key.f9"
    recording_mode: RecordingMode = RecordingMode.TOGGLE
    language: str = "auto"
    stt_model: str = "gpt-4o-mini-transcribe"
    enhance_model: str = "gpt-5-mini"
    enhance_enabled: bool = True
    vad_auto_stop: bool = True
    vad_silence_threshold_sec: float = 5.0
    vad_trim_silence: bool = True
    vad_model_path: str = field(
        default_factory=lambda: str(default_config_dir() / "models" / "silero_vad.onnx")
    )
    vad_speech_threshold: float = 0.5
    max_recording_duration_sec: int = 60
    min_recording_duration_ms: int = 300
    api_base_url: str = "https://api.openai.com"
    connect_timeout_sec: float = 5.0
    read_timeout_stt_sec: float = 30.0
    read_timeout_enhance_sec: float = 15.0
    retry_count: int = 3
    max_chunk_sec: int = 30
    log_level: str = "info"

    def __post_init__(self) -> None:
        self.recording_mode = RecordingMode(self.recording_mode)
        self.max_recording_duration_sec = min(
            max(int(self.max_recording_duration_sec), MIN_RECORDING_DURATION_SEC),
            MAX_RECORDING_DURATION_SEC,
        )
        self.retry_count = max(int(self.retry_count), 0)

    @classmethod
    def from_dict(cls, data: dict) -> "AppConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        data = asdict(self)
        data["recording_mode"] = self.recording_mode.value
        return data


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_config_dir() / CONFIG_FILE_NAME
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppConfig:
        """Read the config, writing defaults when missing or unreadable."""
        if not self._path.exists():
            logger.info("Config file not found, creating default at %s", self._path)
            config = AppConfig()
            self.save(config)
            return config

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")
            config = AppConfig.from_dict(data.get("app", data))
        except (json.JSONDecodeError, OSError, TypeError, ValueError) as exc:
            logger.warning("Config file corrupted: %s. Backing up and using defaults.", exc)
            try:
                shutil.copyfile(self._path, self._path.with_name(CONFIG_BACKUP_NAME))
            except OSError as backup_exc:
                logger.warning("Failed to create config backup: %s", backup_exc)
            config = AppConfig()
            self.save(config)
            return config

        logger.info("Config loaded from %s", self._path)
        return config

    def save(self, config: AppConfig) -> None:
        data = self._read_all()
        data["app"] = config.to_dict()
        self._write_all(data)

    def has_api_key(self) -> bool:
        return bool(self.get_api_key())

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv(API_KEY_ENV, "")

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_hotkey(self) -> str:
        data = self._read_all()
        app = data.get("app")
        if isinstance(app, dict) and app.get("hotkey"):
            return str(app["hotkey"])
        return AppConfig().hotkey

    def set_hotkey(self, hotkey: str) -> None:
        data = self._read_all()
        app = data.get("app")
        if not isinstance(app, dict):
            app = AppConfig().to_dict()
        app["hotkey"] = hotkey
        data["app"] = app
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        tmp_path = self._path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)
