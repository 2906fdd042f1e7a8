"""Configuration models for the page agent."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SENSITIVE_TERMS = ("pay", "purchase", "checkout", "transfer", "send money")


class LLMConfig(BaseModel):
    """Settings for a plan provider."""

    provider: str = Field(default="openrouter")
    model: Optional[str] = "openai/gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.0
    parameters: dict[str, Any] = Field(default_factory=dict)


class OnDeviceConfig(LLMConfig):
    """Settings for the local model that is tried before the remote provider."""

    enabled: bool = False
    provider: str = Field(default="local")
    model: Optional[str] = "llama3.2"
    base_url: Optional[str] = "http://127.0.0.1:11434/v1"


class BrowserConfig(BaseModel):
    """Settings for the browser backend."""

    profile_path: Optional[Path] = None
    headless: bool = False
    viewport_width: int = 1280
    viewport_height: int = 720
    start_url: Optional[str] = None


class AgentSettings(BaseModel):
    """Behaviour of a single agent run."""

    enabled: bool = True
    allow_sensitive_clicks: bool = False
    max_actions_per_run: int = Field(default=3, ge=1)
    sensitive_terms: list[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_TERMS))
    readiness_timeout: float = Field(default=5.0, description="Preflight readiness deadline.")
    action_readiness_timeout: float = Field(
        default=6.0,
        description="Readiness deadline after a click, type or scroll.",
    )
    navigation_readiness_timeout: float = Field(
        default=10.0,
        description="Readiness deadline after a navigation.",
    )
    poll_interval: float = Field(default=0.15, gt=0)
    snapshot_selector: Optional[str] = None


class LogConfig(BaseModel):
    """Where audit log entries are rendered."""

    channel: str = Field(default="console")
    options: dict[str, Any] = Field(default_factory=dict)


class RunnerConfig(BaseSettings):
    """Top-level configuration for running the agent."""

    model_config = SettingsConfigDict(
        env_prefix="PAGE_AGENT_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    on_device: OnDeviceConfig = Field(default_factory=OnDeviceConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    log: LogConfig = Field(default_factory=LogConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> RunnerConfig:
    """Load configuration from an optional file and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = RunnerConfig(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return RunnerConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
