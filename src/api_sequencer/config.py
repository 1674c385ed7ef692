"""Configuration for api-sequencer.

Settings come from defaults, then an optional YAML file, then environment
variables (``API_BASE_URL``, ``API_TOKEN``, ``API_TIMEOUT``).
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from api_sequencer.errors import ConfigError
from api_sequencer.session import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "api-sequencer"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

ENV_VARS = {
    "API_BASE_URL": "base_url",
    "API_TOKEN": "token",
    "API_TIMEOUT": "timeout",
}


class Settings(BaseModel):
    """Runtime settings for the CLI."""

    base_url: str = DEFAULT_BASE_URL
    token: str = ""
    timeout: float = Field(default=30.0, gt=0)
    default_limit: int = Field(default=10, ge=1, le=100)
    catalog_source: str | None = None  # OpenAPI document path or URL
    token_store_path: Path = CONFIG_DIR / "storage.json"


def load_settings(path: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Load settings, merging the YAML file and environment over defaults.

    A missing default config file is fine; an explicitly given one must exist.
    """
    environ = os.environ if environ is None else environ
    values: dict = {}

    config_path = path or CONFIG_FILE
    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        values.update(loaded)
    elif path is not None:
        raise ConfigError(f"Config file not found: {path}")

    for env_name, field in ENV_VARS.items():
        if environ.get(env_name):
            values[field] = environ[env_name]

    try:
        settings = Settings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug("Using base URL %s", settings.base_url)
    return settings
