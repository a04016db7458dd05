import argparse
import asyncio
import signal
import sys
from typing import Optional

from webcam_stream.app.config import AppConfig, load_app_config
from webcam_stream.cli.common import add_common_cli_arguments, add_server_arguments, apply_cli_overrides
from webcam_stream.core.errors import ConfigError
from webcam_stream.core.logging_config import configure_logging
from webcam_stream.core.logging_utils import get_module_logger
from webcam_stream.core.paths import SERVER_LOG_FILE, ensure_directories
from webcam_stream.server import WebcamServer


logger = get_module_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Webcam stream server - live MJPEG webcam frames over WebSocket"
    )
    add_common_cli_arguments(parser)
    add_server_arguments(parser)
    return parser.parse_args(argv)


async def build_config(args: argparse.Namespace) -> AppConfig:
    """Config file, then environment, then command line.

    Raises:
        ConfigError: any layer produced an invalid value.
    """
    config = await load_app_config(args.config)
    try:
        return apply_cli_overrides(config, args)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


async def serve(server: WebcamServer) -> None:
    """Run ``server`` until SIGINT/SIGTERM or cancellation."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler

    await server.start()
    try:
        await stop_event.wait()
        logger.info("Shutdown requested")
    finally:
        await server.stop()


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = await build_config(args)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    ensure_directories()
    configure_logging(
        config.log_level,
        force=True,
        console=args.console_output,
        log_file=args.log_file or SERVER_LOG_FILE,
    )

    logger.info("=" * 60)
    logger.info("Webcam stream server starting")
    logger.info("Listening on %s:%d", config.host, config.port)
    logger.info("Capture defaults: %s", config.capture.to_dict())
    logger.info("ffmpeg: %s (input format: %s)", config.ffmpeg_path, config.input_format)
    logger.info("=" * 60)

    server = WebcamServer(config)
    await serve(server)

    logger.info("Webcam stream server stopped")
    return 0


def run(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
