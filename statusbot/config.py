"""
Centralized configuration loader for the status scheduler bot.

Loads settings from a YAML file and environment variables, providing
sensible defaults when the configuration file is absent.

Provides:
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Cached accessor for Settings
    - reset_settings(): Drop the cached Settings (tests, reloads)
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from statusbot.exceptions import ConfigurationError
from statusbot.utils import get_timezone

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of statusbot/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)

WHATSAPP_USER_SUFFIX = "@s.whatsapp.net"


# ===========================================================================
# SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    defaults. Environment variables override YAML values for secrets and
    deployment-specific configuration.
    """

    # Timezone used to interpret and display schedule times
    timezone: str = "UTC"

    # Chat command prefix (".sschedule", ".sschedules", ...)
    command_prefix: str = "."

    # Storage (relative paths resolve against PROJECT_ROOT)
    storage_dir: str = "session/storage"
    schedule_file: str = "status_schedules.json"
    media_dir: str = "status_media"

    # Scheduler loop
    check_interval_seconds: float = 60.0
    startup_delay_seconds: float = 5.0

    # WhatsApp gateway
    gateway_url: str = ""
    gateway_token: str = ""
    gateway_timeout_seconds: float = 30.0
    poll_timeout_seconds: int = 25

    # Owner / bot identity
    owner_number: str = ""
    bot_jid: str = ""

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    def __post_init__(self) -> None:
        """Validate values that would otherwise fail late at runtime."""
        get_timezone(self.timezone)
        if self.check_interval_seconds <= 0:
            raise ConfigurationError(
                f"check_interval_seconds must be positive, got {self.check_interval_seconds}"
            )
        if self.startup_delay_seconds < 0:
            raise ConfigurationError(
                f"startup_delay_seconds must be >= 0, got {self.startup_delay_seconds}"
            )
        if not self.command_prefix:
            raise ConfigurationError("command_prefix must not be empty")

    # -----------------------------------------------------------------
    # Derived paths
    # -----------------------------------------------------------------

    @property
    def storage_path(self) -> Path:
        path = Path(self.storage_dir)
        return path if path.is_absolute() else PROJECT_ROOT / path

    @property
    def schedule_path(self) -> Path:
        return self.storage_path / self.schedule_file

    @property
    def media_path(self) -> Path:
        return self.storage_path / self.media_dir

    @property
    def log_path(self) -> Path:
        path = Path(self.log_dir)
        return path if path.is_absolute() else PROJECT_ROOT / path

    @property
    def owner_jid(self) -> Optional[str]:
        """Owner's WhatsApp JID derived from ``owner_number``."""
        if not self.owner_number:
            return None
        if "@" in self.owner_number:
            return self.owner_number
        digits = "".join(ch for ch in self.owner_number if ch.isdigit())
        return f"{digits}{WHATSAPP_USER_SUFFIX}" if digits else None

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or a value (YAML or env) has the wrong type.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Settings YAML at {path} must contain a mapping, got {type(data).__name__}"
            )

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown settings keys in %s: %s", path, unknown)
        kwargs: Dict[str, Any] = {k: v for k, v in data.items() if k in known}

        # -----------------------------------------------------------------
        # Environment variable overrides
        # -----------------------------------------------------------------
        env_overrides: Dict[str, Tuple[str, Callable[[str], Any]]] = {
            "TIMEZONE": ("timezone", str),
            "PREFIX": ("command_prefix", str),
            "STORAGE_DIR": ("storage_dir", str),
            "STATUS_CHECK_INTERVAL": ("check_interval_seconds", float),
            "STATUS_STARTUP_DELAY": ("startup_delay_seconds", float),
            "WHATSAPP_GATEWAY_URL": ("gateway_url", str),
            "WHATSAPP_GATEWAY_TOKEN": ("gateway_token", str),
            "OWNER_NUMBER": ("owner_number", str),
            "BOT_JID": ("bot_jid", str),
            "LOG_LEVEL": ("log_level", str),
            "LOG_DIR": ("log_dir", str),
        }
        for env_key, (attr_name, cast_fn) in env_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is not None and env_val != "":
                try:
                    kwargs[attr_name] = cast_fn(env_val)
                except (ValueError, TypeError) as exc:
                    raise ConfigurationError(
                        f"Invalid value for env var {env_key}='{env_val}': {exc}"
                    ) from exc

        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid settings in {path}: {exc}") from exc


# ===========================================================================
# CACHED SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the cached Settings instance.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the cached Settings so the next access reloads them."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for the bot to connect to WhatsApp
REQUIRED_ENV_VARS: List[str] = [
    "WHATSAPP_GATEWAY_URL",
]

# Optional but recommended environment variables
OPTIONAL_ENV_VARS: List[str] = [
    "WHATSAPP_GATEWAY_TOKEN",
    "OWNER_NUMBER",
    "BOT_JID",
    "TIMEZONE",
    "PREFIX",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Mapping of every known variable name to whether it is set.
    """
    status = {name: bool(os.environ.get(name)) for name in REQUIRED_ENV_VARS}
    missing = [name for name, present in status.items() if not present]

    for name in OPTIONAL_ENV_VARS:
        present = bool(os.environ.get(name))
        status[name] = present
        if not present:
            logger.info("Optional env var %s is not set", name)

    if missing:
        if strict:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
        logger.warning("Missing required environment variables: %s", missing)

    return status


# ===========================================================================
# PUBLIC API
# ===========================================================================

__all__ = [
    "Settings",
    "get_settings",
    "reset_settings",
    "validate_env",
    "REQUIRED_ENV_VARS",
    "OPTIONAL_ENV_VARS",
    "PROJECT_ROOT",
]
