"""
Runtime settings, read from the environment (and a .env file if present).
"""

import os
from dataclasses import dataclass, fields
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    pages_source: Optional[str] = None
    dataset_source: Optional[str] = None
    request_timeout: float = 10.0
    validation_workers: int = 1
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    # Mismatches shown by the HTTP summary view; exports are never capped
    report_display_limit: int = 200


_ENV_VARS = {
    "pages_source": ("GHAREEB_PAGES_SOURCE", str),
    "dataset_source": ("GHAREEB_DATASET_SOURCE", str),
    "request_timeout": ("GHAREEB_REQUEST_TIMEOUT", float),
    "validation_workers": ("GHAREEB_VALIDATION_WORKERS", int),
    "host": ("GHAREEB_HOST", str),
    "port": ("GHAREEB_PORT", int),
    "log_level": ("GHAREEB_LOG_LEVEL", str),
    "report_display_limit": ("GHAREEB_REPORT_DISPLAY_LIMIT", int),
}


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from defaults, then environment, then keyword overrides.

    Args:
        **overrides: Field values that win over the environment (None is ignored)

    Returns:
        Settings instance
    """
    values = {}
    for name, (env_name, cast) in _ENV_VARS.items():
        raw = os.getenv(env_name)
        if raw is None or raw.strip() == "":
            continue
        try:
            values[name] = cast(raw.strip())
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from e

    known = {f.name for f in fields(Settings)}
    for name, value in overrides.items():
        if name not in known:
            raise TypeError(f"Unknown setting: {name}")
        if value is not None:
            values[name] = value

    settings = Settings(**values)
    settings.log_level = settings.log_level.upper()
    return settings
