"""Reader for the ``key = value`` bridge configuration file."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable

import aiofiles

from .logging_utils import get_module_logger


logger = get_module_logger("ConfigManager")


@dataclass(frozen=True)
class BridgeSettings:
    """Resolved runtime settings shared by the registry, scanner and server."""

    host: str = "127.0.0.1"
    port: int = 2020
    scan_timeout: float = 5.0
    handshake_timeout: float = 5.0
    baud_rate: int = 57600
    read_buffer_size: int = 256
    localhost_only: bool = True
    scan_on_startup: bool = False


class ConfigManager:

    # ------------------------------------------------------------------
    # Parsing

    @staticmethod
    def _parse_config_lines(lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.split('#')[0].strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            config[key] = value

        return config

    def read_config(self, config_path: Path) -> Dict[str, str]:
        """Read a config file synchronously; a missing file yields ``{}``."""
        if not config_path.exists():
            return {}
        try:
            with open(config_path, 'r', encoding='utf-8') as fh:
                return self._parse_config_lines(fh)
        except OSError as e:
            logger.error("Failed to read config %s: %s", config_path, e)
            return {}

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        if not await asyncio.to_thread(config_path.exists):
            return {}
        try:
            async with aiofiles.open(config_path, 'r', encoding='utf-8') as fh:
                lines = await fh.readlines()
        except OSError as e:
            logger.error("Failed to read config %s: %s", config_path, e)
            return {}
        return self._parse_config_lines(lines)

    # ------------------------------------------------------------------
    # Typed getters

    def get_bool(self, config: Dict[str, str], key: str, default: bool = False) -> bool:
        if key not in config:
            return default
        return config[key].lower() in ('true', '1', 'yes', 'on')

    def get_int(self, config: Dict[str, str], key: str, default: int = 0) -> int:
        if key not in config:
            return default
        try:
            return int(config[key])
        except ValueError:
            logger.warning("Invalid int value for %s: %s, using default %d", key, config[key], default)
            return default

    def get_float(self, config: Dict[str, str], key: str, default: float = 0.0) -> float:
        if key not in config:
            return default
        try:
            return float(config[key])
        except ValueError:
            logger.warning("Invalid float value for %s: %s, using default %f", key, config[key], default)
            return default

    def get_str(self, config: Dict[str, str], key: str, default: str = "") -> str:
        return config.get(key, default)

    def load_settings(self, config: Dict[str, str]) -> BridgeSettings:
        """Build :class:`BridgeSettings` from a parsed config mapping."""
        defaults = BridgeSettings()
        return BridgeSettings(
            host=self.get_str(config, 'host', defaults.host),
            port=self.get_int(config, 'port', defaults.port),
            scan_timeout=self.get_int(config, 'scan_timeout_ms', int(defaults.scan_timeout * 1000)) / 1000.0,
            handshake_timeout=self.get_int(
                config, 'handshake_timeout_ms', int(defaults.handshake_timeout * 1000)
            ) / 1000.0,
            baud_rate=self.get_int(config, 'baud_rate', defaults.baud_rate),
            read_buffer_size=self.get_int(config, 'read_buffer_size', defaults.read_buffer_size),
            localhost_only=self.get_bool(config, 'localhost_only', defaults.localhost_only),
            scan_on_startup=self.get_bool(config, 'scan_on_startup', defaults.scan_on_startup),
        )


_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    return _config_manager
