"""
Runtime configuration.

Settings are passed to the runtime as a RuntimeConfig; the CLI persists them
as JSON at ~/.host_bridge/config.json.
"""

import json
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from pydantic import BaseModel, Field, ValidationError

CONFIG_FILE = Path.home() / ".host_bridge" / "config.json"
LAUNCH_SESSION_PARAM = "sessionId"


class RuntimeConfig(BaseModel):
    app_name: str = "embedded-app"
    origin: str = "http://localhost"
    trusted_origins: list[str] = Field(default_factory=list)
    host_url: Optional[str] = None
    data_base_url: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    session_id: Optional[str] = None

    token_safety_margin_s: float = 300.0
    context_request_timeout_s: float = 10.0
    context_request_attempts: int = Field(default=3, ge=1)
    cache_ttl_s: float = 60.0
    cache_gc_time_s: float = 300.0
    fetch_retry_delay_s: float = 0.5


def load_config(path: Path = CONFIG_FILE) -> RuntimeConfig:
    try:
        return RuntimeConfig.model_validate(json.loads(Path(path).read_text()))
    except (FileNotFoundError, json.JSONDecodeError, ValidationError):
        return RuntimeConfig()


def save_config(cfg: RuntimeConfig, path: Path = CONFIG_FILE) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(cfg.model_dump_json(indent=2))


def parse_launch_session_id(url: str) -> Optional[str]:
    """Session identifier the host passed in the launch URL, if any."""
    values = parse_qs(urlsplit(url).query).get(LAUNCH_SESSION_PARAM)
    return values[0] if values and values[0] else None
