"""
Configuration management for the schema canvas service.

Settings come from environment variables:
- OPENAI_API_KEY: credential for schema generation (optional; generation
  fails with a ServiceError when it is missing)
- SCHEMA_CANVAS_MODEL: chat model used for generation
- SCHEMA_CANVAS_HISTORY_LIMIT: undo snapshots kept
- SCHEMA_CANVAS_TICK_INTERVAL: seconds between simulation ticks
- SCHEMA_CANVAS_HOST / SCHEMA_CANVAS_PORT: where the server listens
- SCHEMA_CANVAS_LOG_LEVEL: root logging level
"""

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel

DEFAULT_MODEL = "gpt-4o"


class EditorSettings(BaseModel):
    """Runtime settings for one editor service."""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    history_limit: int = 50
    tick_interval: float = 0.03
    host: str = "127.0.0.1"
    port: int = 8765
    log_level: str = "INFO"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> EditorSettings:
    """Build settings from the environment (os.environ by default)."""
    env = os.environ if environ is None else environ
    values = {
        "api_key": env.get("OPENAI_API_KEY") or None,
        "model": env.get("SCHEMA_CANVAS_MODEL"),
        "history_limit": env.get("SCHEMA_CANVAS_HISTORY_LIMIT"),
        "tick_interval": env.get("SCHEMA_CANVAS_TICK_INTERVAL"),
        "host": env.get("SCHEMA_CANVAS_HOST"),
        "port": env.get("SCHEMA_CANVAS_PORT"),
        "log_level": env.get("SCHEMA_CANVAS_LOG_LEVEL"),
    }
    return EditorSettings(**{k: v for k, v in values.items() if v is not None})


def configure_logging(settings: EditorSettings) -> None:
    """Set up root logging once for the server process."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
