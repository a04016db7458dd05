"""Reader for ``key = value`` configuration files."""

from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path
from typing import Dict, Iterable

import aiofiles

from .logging_utils import get_module_logger
from .paths import PROJECT_ROOT, USER_CONFIG_OVERRIDES_DIR

logger = get_module_logger("ConfigManager")


class ConfigManager:
    """Parses flat config files, layering per-user overrides on top.

    Overrides live under ``USER_CONFIG_OVERRIDES_DIR`` so a read-only
    installation can still be customised per user.
    """

    def __init__(self, overrides_dir: Path = USER_CONFIG_OVERRIDES_DIR):
        self.overrides_dir = Path(overrides_dir)
        self._project_root = PROJECT_ROOT.resolve()

    @staticmethod
    def parse_lines(lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.split('#')[0].strip() if '#' in value else value.strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            config[key] = value

        return config

    def override_path_for(self, config_path: Path) -> Path:
        try:
            rel_path = config_path.resolve().relative_to(self._project_root)
        except ValueError:
            digest = hashlib.sha1(str(config_path).encode('utf-8')).hexdigest()[:10]
            safe_name = re.sub(r'[^a-zA-Z0-9._-]+', '_', config_path.stem or 'config')
            rel_path = Path('external') / f"{safe_name}_{digest}{config_path.suffix or '.txt'}"
        return self.overrides_dir / rel_path

    def _read_file_sync(self, path: Path) -> Dict[str, str]:
        try:
            with open(path, 'r', encoding='utf-8') as fh:
                return self.parse_lines(fh)
        except OSError as exc:
            logger.warning("Failed to read config %s: %s", path, exc)
            return {}

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        config_path = Path(config_path)
        config: Dict[str, str] = {}

        if await asyncio.to_thread(config_path.exists):
            try:
                async with aiofiles.open(config_path, 'r', encoding='utf-8') as f:
                    config = self.parse_lines(await f.readlines())
            except OSError as e:
                logger.error("Failed to read config %s: %s", config_path, e)

        override_path = self.override_path_for(config_path)
        if await asyncio.to_thread(override_path.exists):
            config.update(await asyncio.to_thread(self._read_file_sync, override_path))

        return config

    @staticmethod
    def get_int(config: Dict[str, str], key: str, default: int = 0) -> int:
        if key not in config:
            return default
        try:
            return int(config[key])
        except ValueError:
            logger.warning("Invalid int value for %s: %s, using default %d", key, config[key], default)
            return default

    @staticmethod
    def get_str(config: Dict[str, str], key: str, default: str = "") -> str:
        return config.get(key, default)


__all__ = ["ConfigManager"]
