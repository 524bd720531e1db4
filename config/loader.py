"""Configuration loader for the bb CLI

Loads configuration from multiple sources with the following priority:
1. Environment variables (highest priority)
2. .env file
3. Hardcoded defaults (lowest priority)

All variables share the ``BB_`` prefix, so ``get("LOG_LEVEL", ...)`` reads
``BB_LOG_LEVEL``.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "BB_"


class ConfigLoader:
    """Handles loading configuration from the environment and a .env file"""

    def __init__(self, env_path: Optional[str] = None, prefix: str = ENV_PREFIX):
        """Initialize the config loader

        Args:
            env_path: Optional path to .env file.
                     Defaults to '.env' in the current directory.
            prefix: Prefix prepended to every variable name
        """
        self.env_path = Path(env_path) if env_path else Path(".env")
        self.prefix = prefix
        self._load_env_file()

    def _load_env_file(self):
        """Load environment variables from .env file if it exists"""
        if self.env_path.exists():
            load_dotenv(dotenv_path=self.env_path)
            logger.debug(f"Loaded environment variables from {self.env_path}")
        else:
            logger.debug(f".env file not found at {self.env_path}, using environment variables and defaults only")

    def _env_name(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def get(self, name: str, default: Any) -> Any:
        """Get a configuration value with priority: env > default

        The raw environment string is coerced to the type of ``default``
        (bool, int or float). Unparseable numbers fall back to the default.

        Args:
            name: Variable name without prefix
            default: Default value if not found in environment

        Returns:
            The configuration value from environment or default
        """
        env_var = self._env_name(name)
        env_value = os.getenv(env_var)
        if env_value is not None:
            if isinstance(default, bool):
                return env_value.lower() in ('true', '1', 'yes')
            elif isinstance(default, int):
                try:
                    return int(env_value)
                except ValueError:
                    logger.warning(f"Failed to parse {env_var}={env_value} as int, using default: {default}")
                    return default
            elif isinstance(default, float):
                try:
                    return float(env_value)
                except ValueError:
                    logger.warning(f"Failed to parse {env_var}={env_value} as float, using default: {default}")
                    return default
            return env_value

        # Expand home directory if it's a path
        if isinstance(default, str) and default.startswith("~/"):
            return str(Path(default).expanduser())
        return default

    def get_optional(self, name: str) -> Optional[str]:
        """Get a string value that has no default

        Empty strings are treated as unset.
        """
        value = os.getenv(self._env_name(name))
        return value or None

    def get_list(self, name: str, default: list) -> list:
        """Get a comma separated list value"""
        value = os.getenv(self._env_name(name))
        if value is None:
            return list(default)
        return [item.strip() for item in value.split(",") if item.strip()]


_config_loader = None


def get_config_loader() -> ConfigLoader:
    """Get or create the global ConfigLoader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader(env_path=os.getenv("BB_ENV_FILE"))
    return _config_loader
