from __future__ import annotations

"""Settings for the reply queue service.

Values come from an optional YAML file named by ``REPLYQUEUE_CONFIG`` and are
then overridden by ``REPLYQUEUE_*`` environment variables.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from replyqueue.core.confirm.oracle import DEFAULT_RADIUS_BYTES, DEFAULT_SEGMENTS, DEFAULT_TAIL_BYTES
from replyqueue.core.queue.selector import DEFAULT_CLAIM_WINDOW
from replyqueue.core.queue.store import DEFAULT_ACCOUNT
from replyqueue.core.webhook.intake import DEFAULT_REPLY, DEFAULT_TRIGGER_PATTERNS

ENV_PREFIX = "REPLYQUEUE_"
CONFIG_ENV = "REPLYQUEUE_CONFIG"


class Settings(BaseModel):
    state_dir: Path = Field(default_factory=lambda: Path.home() / ".replyqueue")
    task_dir: Optional[Path] = None
    activity_log_dir: Optional[Path] = None
    task_key: str = ""
    auth_mode: str = "token"
    webhook_secret: str = ""
    default_account: str = DEFAULT_ACCOUNT
    default_reply: str = DEFAULT_REPLY
    claim_window: int = Field(default=DEFAULT_CLAIM_WINDOW, ge=1)
    confirm_segments: int = Field(default=DEFAULT_SEGMENTS, ge=1)
    confirm_tail_bytes: int = Field(default=DEFAULT_TAIL_BYTES, ge=1)
    confirm_radius_bytes: int = Field(default=DEFAULT_RADIUS_BYTES, ge=0)
    trigger_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_TRIGGER_PATTERNS))
    host: str = "127.0.0.1"
    port: int = 3000

    @field_validator("state_dir", "task_dir", "activity_log_dir", mode="after")
    @classmethod
    def _expand(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("auth_mode", mode="after")
    @classmethod
    def _normalize_mode(cls, value: str) -> str:
        return value.strip().casefold()

    @field_validator("trigger_patterns", mode="before")
    @classmethod
    def _split_patterns(cls, value: object) -> object:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def resolved_task_dir(self) -> Path:
        return self.task_dir or self.state_dir / "tasks"

    @property
    def resolved_activity_log_dir(self) -> Path:
        return self.activity_log_dir or self.state_dir / "activity"

    @property
    def auth_enabled(self) -> bool:
        return self.auth_mode == "token"


def _load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    return data


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the optional YAML file and the environment."""
    source = os.environ if env is None else env
    data: dict = {}

    config_path = source.get(CONFIG_ENV)
    if config_path:
        data.update(_load_yaml(Path(config_path).expanduser()))

    for name in Settings.model_fields:
        raw = source.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw.strip():
            data[name] = raw

    return Settings.model_validate(data)
