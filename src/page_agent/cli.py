"""Command line interface for page-agent."""

from __future__ import annotations

import logging
import signal
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional

import typer

from .agent.readiness import ReadinessWaiter
from .agent.session import RunStatus
from .browser.snapshot import PageSnapshotter
from .config import load_config
from .factory import build_browser, build_session

app = typer.Typer(help="Drive a web page with natural-language instructions")


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("page-agent"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def snapshot(
    url: Annotated[str, typer.Option("--url", help="Page to open.")],
    selector: Annotated[
        Optional[str],
        typer.Option("--selector", help="CSS selector overriding the default element set."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration."),
    ] = None,
    headless: Annotated[
        bool,
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = True,
) -> None:
    """Print the click map of a page as JSON."""

    config = load_config(config_path, browser={"headless": headless, "start_url": url})
    browser = build_browser(config.browser)
    browser.start()
    try:
        page = browser.page()
        if page is None:
            raise typer.Exit(code=1)
        ReadinessWaiter(config.agent.poll_interval).wait(
            page,
            config.agent.navigation_readiness_timeout,
        )
        result = PageSnapshotter(config.agent.snapshot_selector).extract(page, selector)
        typer.echo(result.model_dump_json(indent=2))
    finally:
        browser.stop()


@app.command()
def run(
    instruction: Annotated[
        str,
        typer.Option("--instruction", "-i", help="What the agent should do on the page."),
    ],
    url: Annotated[
        Optional[str],
        typer.Option("--url", help="Page to open before running the instruction."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration."),
    ] = None,
    env_file: Annotated[
        Optional[Path],
        typer.Option(
            "--env-file",
            help="Path to an .env file with default configuration values.",
        ),
    ] = None,
    llm_provider: Annotated[
        Optional[str],
        typer.Option("--llm-provider", help="Remote LLM provider to use."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", help="LLM model identifier."),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", help="API key for the remote LLM provider."),
    ] = None,
    on_device: Annotated[
        Optional[bool],
        typer.Option(
            "--on-device/--remote-only",
            help="Try the local model first and fall back to the remote provider.",
        ),
    ] = None,
    allow_sensitive: Annotated[
        Optional[bool],
        typer.Option(
            "--allow-sensitive/--block-sensitive",
            help="Allow clicks on pay/checkout/transfer style elements.",
        ),
    ] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = None,
    profile_path: Annotated[
        Optional[Path],
        typer.Option("--profile-path", help="Browser user data directory to reuse between runs."),
    ] = None,
) -> None:
    """Open a page and run one instruction against it."""

    overrides: dict[str, Any] = {}
    if any([llm_provider, model, api_key]):
        overrides.setdefault("llm", {})
        if llm_provider:
            overrides["llm"]["provider"] = llm_provider
        if model:
            overrides["llm"]["model"] = model
        if api_key:
            overrides["llm"]["api_key"] = api_key
    if on_device is not None:
        overrides["on_device"] = {"enabled": on_device}
    if allow_sensitive is not None:
        overrides["agent"] = {"allow_sensitive_clicks": allow_sensitive}
    if url is not None or headless is not None or profile_path is not None:
        overrides.setdefault("browser", {})
        if url is not None:
            overrides["browser"]["start_url"] = url
        if headless is not None:
            overrides["browser"]["headless"] = headless
        if profile_path is not None:
            overrides["browser"]["profile_path"] = str(profile_path)

    config = load_config(config_path, env_file=env_file, **overrides)
    typer.echo(f"Running instruction: {instruction}")

    browser = build_browser(config.browser)
    browser.start()
    session = build_session(config, browser.page)
    previous_handler = signal.signal(signal.SIGINT, lambda *_: session.stop())
    try:
        outcome = session.run_command(instruction)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        browser.stop()

    if outcome.question:
        typer.echo(f"The agent needs input: {outcome.question}")
    if outcome.status is not RunStatus.COMPLETED:
        typer.echo(f"Run ended {outcome.status.value}: {outcome.error or ''}".rstrip(": "))
        raise typer.Exit(code=1)
    typer.echo("Instruction completed.")


if __name__ == "__main__":
    app()
