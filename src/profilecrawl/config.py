from dotenv import load_dotenv
from dataclasses import dataclass, fields
from typing import Optional
from pathlib import Path
import os

import yaml

from profilecrawl.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_ITEM_CONCURRENCY,
    DEFAULT_ITEM_TIMEOUT_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELIVERIES,
    DEFAULT_RATE_LIMIT_INTERVAL_SECONDS,
    DEFAULT_RENDER_CONCURRENCY,
    DEFAULT_RENDER_TIMEOUT_MS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    DEFAULT_WORKER_CONCURRENCY,
    MIN_HTML_SIZE,
)

load_dotenv()  # Loads variables from .env file

ENV_PREFIX = "PROFILECRAWL_"


@dataclass
class Config:
    """Configuration for the profile crawler."""
    database_url: str = "sqlite:///profilecrawl.db"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    # Fetching
    http_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    render_timeout_ms: int = DEFAULT_RENDER_TIMEOUT_MS
    headless: bool = True

    # Concurrency
    item_concurrency: int = DEFAULT_ITEM_CONCURRENCY
    worker_concurrency: int = DEFAULT_WORKER_CONCURRENCY
    render_concurrency: int = DEFAULT_RENDER_CONCURRENCY
    item_timeout: float = DEFAULT_ITEM_TIMEOUT_SECONDS
    max_deliveries: int = DEFAULT_MAX_DELIVERIES

    # Politeness and retries
    rate_limit_interval: float = DEFAULT_RATE_LIMIT_INTERVAL_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    # Escalation
    min_html_size: int = MIN_HTML_SIZE

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Environment variables are prefixed with PROFILECRAWL_,
        e.g. PROFILECRAWL_ITEM_CONCURRENCY=5. Values that fail to convert
        keep their defaults.

        Returns:
            Config: Configuration instance with values from environment
        """
        config = cls()
        for field in fields(cls):
            env_value = os.getenv(f"{ENV_PREFIX}{field.name.upper()}")
            if env_value is not None:
                _apply(config, field.name, env_value)
        return config

    @classmethod
    def from_file(cls, path: str) -> "Config":
        """Load configuration from a YAML file.

        The file may either hold the settings at the top level or under a
        ``crawler`` key. Environment variables are not consulted.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config with values from file (defaults when the file is missing)
        """
        config = cls()
        file_path = Path(path)

        if not file_path.exists():
            return config

        with open(file_path, "r") as f:
            document = yaml.safe_load(f) or {}

        section = document.get("crawler", document)
        for field in fields(cls):
            if field.name in section:
                _apply(config, field.name, section[field.name])
        return config

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return {field.name: getattr(self, field.name) for field in fields(self)}


def _apply(config: Config, name: str, raw) -> None:
    default = getattr(config, name)
    try:
        if isinstance(default, bool):
            value = raw if isinstance(raw, bool) else str(raw).strip().lower() in {"1", "true", "yes", "on"}
        elif isinstance(default, int):
            value = int(raw)
        elif isinstance(default, float):
            value = float(raw)
        else:
            value = raw
    except (TypeError, ValueError):
        return  # Keep default if conversion fails
    setattr(config, name, value)
