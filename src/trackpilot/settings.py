"""Pydantic-based settings loaded from YAML with env-var overrides."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel, to_snake
from pydantic_settings import BaseSettings

from trackpilot.exceptions import ConfigurationError
from trackpilot.models import Status

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PREFIX = "TRACKPILOT_"


class _CamelModel(BaseModel):
    """Accepts the camelCase keys used by exported configs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleSettings(_CamelModel):
    """Base for one rule's sub-config."""

    enabled: bool = False


class AutoRejectDaysConfig(RuleSettings):
    days: int = Field(default=30, ge=1)
    apply_to: set[Status] = Field(
        default_factory=lambda: {"applied", "interview", "pending_decision"}
    )


class AutoArchiveRejectedConfig(RuleSettings):
    days: int = Field(default=30, ge=1)


class AutoMoveToInterviewConfig(RuleSettings):
    enabled: bool = True


class AutoMoveToPendingDecisionConfig(RuleSettings):
    interview_count: int = Field(default=2, ge=1)


class AutoRejectNoResponseConfig(RuleSettings):
    days: int = Field(default=30, ge=1)
    apply_to: set[Status] = Field(default_factory=lambda: {"applied", "interview"})


class InactiveReminderConfig(RuleSettings):
    days: int = Field(default=14, ge=1)


class RuleConfig(_CamelModel):
    """User-editable automation rules, one sub-config per rule.

    Defaults match what a fresh account starts with: only the
    interview-scheduled move is switched on.
    """

    auto_reject_days: AutoRejectDaysConfig = Field(default_factory=AutoRejectDaysConfig)
    auto_archive_rejected: AutoArchiveRejectedConfig = Field(
        default_factory=AutoArchiveRejectedConfig
    )
    auto_move_to_interview: AutoMoveToInterviewConfig = Field(
        default_factory=AutoMoveToInterviewConfig
    )
    auto_move_to_pending_decision: AutoMoveToPendingDecisionConfig = Field(
        default_factory=AutoMoveToPendingDecisionConfig
    )
    auto_reject_no_response: AutoRejectNoResponseConfig = Field(
        default_factory=AutoRejectNoResponseConfig
    )
    inactive_reminder: InactiveReminderConfig = Field(default_factory=InactiveReminderConfig)


class AppSettings(BaseSettings):
    """Application configuration with YAML + env var support.

    Env vars are prefixed with ``TRACKPILOT_`` and use ``__`` for nesting.
    Example: ``TRACKPILOT_INTERVAL_SECONDS=60``
    """

    model_config = {"env_prefix": _ENV_PREFIX, "env_nested_delimiter": "__"}

    # --- automation ---
    automation: RuleConfig = Field(default_factory=RuleConfig)

    # --- scheduling ---
    interval_seconds: float = 300.0
    initial_delay_seconds: float = 5.0

    # --- paths ---
    state_dir: str = ".state"
    db_name: str = "tracker.db"

    # --- logging ---
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("interval_seconds")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds must be positive")
        return v

    @property
    def db_path(self) -> Path:
        return Path(self.state_dir) / self.db_name

    # ---- factory ----

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "AppSettings":
        """Load settings from a YAML file, then overlay env vars.

        Env vars (``TRACKPILOT_*``) take priority over YAML values, including
        nested ones such as ``TRACKPILOT_AUTOMATION__AUTO_REJECT_DAYS__DAYS``.
        """
        if path is None:
            path = _PROJECT_ROOT / "settings.yaml"
        raw = _read_yaml(Path(path))

        # Let env vars override YAML: remove YAML keys that have an env override
        for key in list(raw.keys()):
            env_key = f"{_ENV_PREFIX}{key.upper()}"
            if env_key in os.environ:
                del raw[key]
        _overlay_nested_env(raw)

        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid settings in {path}: {exc}") from exc


def load_rule_config(path: str | Path) -> RuleConfig:
    """Load a standalone rule config from a YAML or JSON file.

    A missing file yields the default config.
    """
    path = Path(path)
    raw = _read_yaml(path)
    try:
        return RuleConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid rule config in {path}: {exc}") from exc


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}.")
    return data


def _snake_keys(node: Any) -> Any:
    if isinstance(node, dict):
        return {to_snake(str(k)): _snake_keys(v) for k, v in node.items()}
    return node


def _env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _overlay_nested_env(raw: dict[str, Any]) -> None:
    """Write ``TRACKPILOT_<KEY>__<SUB>...`` values into YAML mappings in place.

    Init values outrank env values in pydantic-settings, so a nested env var
    would otherwise never reach a key the YAML file already sets.
    """
    for env_key, value in os.environ.items():
        name = env_key.upper()
        if not name.startswith(_ENV_PREFIX) or "__" not in name:
            continue
        top, *path = name[len(_ENV_PREFIX):].lower().split("__")
        if not path or not isinstance(raw.get(top), dict):
            continue
        raw[top] = node = _snake_keys(raw[top])
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[path[-1]] = _env_value(value)
