"""Application configuration assembled from ``config.txt`` and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from webcam_stream.core.config_manager import ConfigManager
from webcam_stream.core.errors import ConfigError
from webcam_stream.core.paths import CONFIG_PATH
from webcam_stream.stream.backends import INPUT_FORMATS
from webcam_stream.stream.settings import (
    DEFAULT_FRAME_RATE,
    DEFAULT_QUALITY,
    DEFAULT_RESOLUTION,
    CaptureSettings,
)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3002
DEFAULT_MAX_BUFFER_BYTES = 16 * 1024 * 1024

PORT_ENV = "WEBCAM_PORT"


@dataclass
class AppConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    ffmpeg_path: str = "ffmpeg"
    input_format: str = "auto"
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    max_buffer_bytes: Optional[int] = DEFAULT_MAX_BUFFER_BYTES
    log_level: str = "info"

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, str],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        """Build a config from parsed ``key = value`` pairs.

        Raises:
            ConfigError: a value is present but out of range.
        """
        environ = os.environ if environ is None else environ
        values = dict(values)
        get_int = ConfigManager.get_int
        get_str = ConfigManager.get_str

        port = get_int(values, "port", DEFAULT_PORT)
        if environ.get(PORT_ENV):
            port = get_int({"port": environ[PORT_ENV]}, "port", port)
        if not 0 < port < 65536:
            raise ConfigError(f"Port out of range: {port}", key="port")

        input_format = get_str(values, "input_format", "auto").lower()
        if input_format != "auto" and input_format not in INPUT_FORMATS:
            raise ConfigError(
                f"Unknown input_format '{input_format}' (expected auto or one of {', '.join(INPUT_FORMATS)})",
                key="input_format",
            )

        try:
            capture = CaptureSettings(
                frame_rate=get_int(values, "frame_rate", DEFAULT_FRAME_RATE),
                quality=get_int(values, "quality", DEFAULT_QUALITY),
                resolution=get_str(values, "resolution", DEFAULT_RESOLUTION),
            )
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        max_buffer = get_int(values, "max_buffer_bytes", DEFAULT_MAX_BUFFER_BYTES)
        if max_buffer < 0:
            raise ConfigError("max_buffer_bytes must not be negative", key="max_buffer_bytes")

        return cls(
            host=get_str(values, "host", DEFAULT_HOST),
            port=port,
            ffmpeg_path=get_str(values, "ffmpeg_path", "ffmpeg") or "ffmpeg",
            input_format=input_format,
            capture=capture,
            max_buffer_bytes=max_buffer or None,
            log_level=get_str(values, "log_level", "info"),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "host": self.host,
            "port": self.port,
            "ffmpeg_path": self.ffmpeg_path,
            "input_format": self.input_format,
            "capture": self.capture.to_dict(),
            "max_buffer_bytes": self.max_buffer_bytes,
            "log_level": self.log_level,
        }


async def load_app_config(
    path: Optional[Path] = None,
    *,
    manager: Optional[ConfigManager] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    manager = manager or ConfigManager()
    values = await manager.read_config_async(Path(path) if path else CONFIG_PATH)
    return AppConfig.from_mapping(values, environ=environ)


__all__ = ["AppConfig", "load_app_config"]
