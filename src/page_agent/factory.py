"""Factories for constructing components from configuration."""

from __future__ import annotations

from typing import Optional

from .agent.session import AgentRunSession, PageProvider
from .audit.log import AgentLog
from .audit.sinks import ConsoleLogSink, LoggingSink, LogSink
from .browser.playwright_session import PlaywrightBrowserSession
from .config import BrowserConfig, LLMConfig, LogConfig, RunnerConfig
from .llm.base import PlanProvider
from .llm.local import LocalModelProvider
from .llm.mock import ScriptedProvider
from .llm.openai_client import OpenAICompatibleProvider, OpenRouterProvider


def build_provider(config: LLMConfig) -> PlanProvider:
    provider = config.provider.lower()
    if provider == "openrouter":
        return OpenRouterProvider(config)
    if provider in {"openai", "azure", "openai-compatible"}:
        return OpenAICompatibleProvider(config)
    if provider in {"local", "on-device", "ollama"}:
        return LocalModelProvider(config)
    if provider == "mock":
        return ScriptedProvider(config.parameters.get("responses", []))
    raise ValueError(f"Unsupported LLM provider: {config.provider}")


def build_browser(config: BrowserConfig) -> PlaywrightBrowserSession:
    return PlaywrightBrowserSession(config)


def build_sink(config: LogConfig) -> LogSink:
    channel = config.channel.lower()
    if channel == "console":
        return ConsoleLogSink(show_data=bool(config.options.get("show_data", False)))
    if channel == "logging":
        return LoggingSink()
    raise ValueError(f"Unsupported log channel: {config.channel}")


def build_log(config: RunnerConfig) -> AgentLog:
    return AgentLog([build_sink(config.log)])


def build_session(
    config: RunnerConfig,
    page_provider: PageProvider,
    *,
    log: Optional[AgentLog] = None,
) -> AgentRunSession:
    """Wire providers for a session: on-device first when enabled, remote otherwise."""

    remote = build_provider(config.llm)
    if config.on_device.enabled:
        return AgentRunSession(
            config.agent,
            page_provider,
            build_provider(config.on_device),
            model_config=config.on_device,
            fallback_provider=remote,
            fallback_model_config=config.llm,
            log=log or build_log(config),
        )
    return AgentRunSession(
        config.agent,
        page_provider,
        remote,
        model_config=config.llm,
        log=log or build_log(config),
    )
