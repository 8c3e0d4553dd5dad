import os
import json
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional
import logging
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

APP_DIR_NAME = ".filewarden"
PATH_ENV_PREFIX = "FILEWARDEN_PATH_"
MODE_KEYS = {
    "downloadsMode": "downloads_mode",
    "downloads-mode": "downloads_mode",
    "downloads_mode": "downloads_mode",
    "screenshotMode": "screenshot_mode",
    "screenshot-mode": "screenshot_mode",
    "screenshot_mode": "screenshot_mode",
}


def app_dir() -> Path:
    return Path.home() / APP_DIR_NAME


def default_paths() -> Dict[str, str]:
    home = Path.home()
    return {
        "downloads": str(home / "Downloads"),
        "documents": str(home / "Documents"),
        "desktop": str(home / "Desktop"),
        "pictures": str(home / "Pictures"),
        "screenshots": str(home / "Downloads" / "Screenshots"),
        "videos": str(home / "Movies"),
        "music": str(home / "Music"),
        "home": str(home),
    }


class AgentSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # nested: organize inside the watched folder; system: move to system folders
    downloads_mode: str = Field("nested", alias="downloadsMode", pattern="^(nested|system)$")
    screenshot_mode: str = Field("metadata", alias="screenshotMode", pattern="^(metadata|by-app|by-date)$")


class AgentConfig(BaseModel):
    paths: Dict[str, str] = Field(default_factory=default_paths)
    settings: AgentSettings = Field(default_factory=AgentSettings)
    version: str = "1.0.0"


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base"""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigService:
    """
    Loads the agent configuration from a JSON file.

    Every load_config() call re-reads the file so edits made while the agent
    runs are picked up by the next action.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or os.getenv("CONFIG_PATH") or app_dir() / "config.json")
        self._lock = None

    async def load_config(self) -> AgentConfig:
        """Load configuration from file and environment variables"""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            config = self._read()
            self._apply_env_overrides(config)
            return config

    def _read(self) -> AgentConfig:
        """Read the file merged over defaults; a missing file is created with defaults"""
        if not self.config_path.exists():
            config = AgentConfig()
            self._write(config)
            return config

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {self.config_path}: {e}")
            return AgentConfig()

        if not isinstance(data, dict):
            logger.error(f"Config file {self.config_path} does not hold a JSON object")
            return AgentConfig()
        return self._merge_document(data)

    def _merge_document(self, data: Dict[str, Any]) -> AgentConfig:
        """
        Merge a parsed config document over defaults one field at a time.

        An invalid entry falls back to its default and is logged; the rest of
        the file still applies.
        """
        config = AgentConfig()

        paths = data.get("paths", {})
        if isinstance(paths, dict):
            valid = {}
            for key, value in paths.items():
                if isinstance(value, str):
                    valid[key] = value
                else:
                    logger.warning(f"Ignoring path {key!r} in {self.config_path}: expected a string")
            config.paths = deep_merge(config.paths, valid)
        else:
            logger.warning(f"Ignoring 'paths' in {self.config_path}: expected an object")

        settings = data.get("settings", {})
        if isinstance(settings, dict):
            for key, value in settings.items():
                attr_name = MODE_KEYS.get(key)
                if attr_name is None:
                    continue
                merged = config.settings.model_dump()
                merged[attr_name] = value
                try:
                    config.settings = AgentSettings.model_validate(merged)
                except ValidationError as e:
                    logger.error(f"Ignoring setting {key}={value!r} in {self.config_path}: {e}")
        else:
            logger.warning(f"Ignoring 'settings' in {self.config_path}: expected an object")

        if isinstance(data.get("version"), str):
            config.version = data["version"]
        return config

    async def save_config(self, config: AgentConfig) -> None:
        """Save configuration to file"""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            self._write(config)

    def _write(self, config: AgentConfig) -> None:
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(config.model_dump(by_alias=True), f, indent=2)
            logger.info(f"Saved config to {self.config_path}")
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def _apply_env_overrides(self, config: AgentConfig):
        """Apply environment variable overrides to config"""
        for env_key, env_value in os.environ.items():
            if env_key.startswith(PATH_ENV_PREFIX) and env_value:
                config.paths[env_key[len(PATH_ENV_PREFIX):].lower()] = env_value

        env_mapping = {
            "FILEWARDEN_DOWNLOADS_MODE": "downloads_mode",
            "FILEWARDEN_SCREENSHOT_MODE": "screenshot_mode",
        }
        for env_key, attr_name in env_mapping.items():
            env_value = os.getenv(env_key)
            if env_value is not None:
                try:
                    settings = config.settings.model_dump()
                    settings[attr_name] = env_value
                    config.settings = AgentSettings.model_validate(settings)
                except Exception as e:
                    logger.warning(f"Ignoring env var {env_key}: {e}")

    async def get_value(self, key: str) -> Optional[str]:
        """Get a path placeholder or mode setting"""
        config = await self.load_config()
        if key in MODE_KEYS:
            return getattr(config.settings, MODE_KEYS[key])
        return config.paths.get(key)

    async def set_value(self, key: str, value: str) -> AgentConfig:
        """Set a path placeholder or mode setting and persist it"""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            config = self._read()
        if key in MODE_KEYS:
            settings = config.settings.model_dump()
            settings[MODE_KEYS[key]] = value
            config.settings = AgentSettings.model_validate(settings)
        else:
            config.paths[key] = value
        await self.save_config(config)
        return config
