from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from webcam_stream.app.config import AppConfig


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def add_common_cli_arguments(
    parser: argparse.ArgumentParser,
    *,
    include_config: bool = True,
    include_console_control: bool = True,
    default_console_output: bool = True,
) -> None:
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=None,
        help="Logging verbosity (overrides log_level in the config file)",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional path to write rotating logs",
    )

    if include_config:
        parser.add_argument(
            "--config",
            type=Path,
            default=None,
            help="Configuration file (default: config.txt at the project root)",
        )

    if include_console_control:
        console_group = parser.add_mutually_exclusive_group()
        console_group.add_argument(
            "--console",
            dest="console_output",
            action="store_true",
            default=default_console_output,
            help="Log to console (default)",
        )
        console_group.add_argument(
            "--no-console",
            dest="console_output",
            action="store_false",
            help="Log to file only (no console output)",
        )


def add_server_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", type=str, default=None, help="Interface to bind")
    parser.add_argument("--port", type=port_number, default=None, help="WebSocket port")
    parser.add_argument(
        "--ffmpeg",
        dest="ffmpeg_path",
        type=str,
        default=None,
        help="ffmpeg executable",
    )
    parser.add_argument(
        "--frame-rate",
        dest="frame_rate",
        type=positive_int,
        default=None,
        help="Default capture frame rate",
    )
    parser.add_argument(
        "--resolution",
        type=str,
        default=None,
        help="Default capture resolution, WIDTHxHEIGHT",
    )


def _positive_number(value: str, typ: type, name: str):
    """Generic positive number validator for argparse."""
    try:
        parsed = typ(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Value must be a {name}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Value must be positive")
    return parsed

def positive_int(value: str) -> int:
    return _positive_number(value, int, "integer")

def port_number(value: str) -> int:
    port = positive_int(value)
    if port > 65535:
        raise argparse.ArgumentTypeError("Port must be at most 65535")
    return port


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Command-line values win over the config file.

    Raises:
        ValueError: the resulting capture settings are invalid.
    """
    if getattr(args, "host", None):
        config.host = args.host
    if getattr(args, "port", None):
        config.port = args.port
    if getattr(args, "ffmpeg_path", None):
        config.ffmpeg_path = args.ffmpeg_path
    if getattr(args, "log_level", None):
        config.log_level = args.log_level

    resolution: Optional[str] = getattr(args, "resolution", None)
    frame_rate: Optional[int] = getattr(args, "frame_rate", None)
    if resolution or frame_rate:
        config.capture = config.capture.with_overrides(resolution=resolution, frame_rate=frame_rate)
    return config


__all__ = [
    "LOG_LEVELS",
    "add_common_cli_arguments",
    "add_server_arguments",
    "apply_cli_overrides",
    "port_number",
    "positive_int",
]
