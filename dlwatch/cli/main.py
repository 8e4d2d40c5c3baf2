#!/usr/bin/env python3
"""Main CLI entry point for dlwatch using Typer.

    dlwatch [URL] [WAIT_SECONDS] [OPTIONS]

Opens URL in a browser, observes dataLayer activity for WAIT_SECONDS and
prints the captured events between report markers.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Annotated, Any, Dict, Optional

import typer

from .. import __version__
from .config import ConfigurationLoader, print_configuration
from .runner import ExitCode, WatchRunner

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVEL_ENV = "DLWATCH_LOG_LEVEL"


app = typer.Typer(
    name="dlwatch",
    help="Observe Google Tag Manager dataLayer events on a web page",
    add_completion=False,
)


def version_callback(value: bool):
    """Show version information."""
    if value:
        typer.echo(f"dlwatch v{__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool = False, quiet: bool = False) -> int:
    """Configure root logging for a CLI run.

    The ``dlwatch.report`` logger stays at INFO so the report is printed even
    in quiet mode. ``DLWATCH_LOG_LEVEL`` overrides the flags.

    Returns:
        Effective root log level
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    env_level = os.getenv(LOG_LEVEL_ENV)
    if env_level:
        resolved = logging.getLevelName(env_level.strip().upper())
        if isinstance(resolved, int):
            level = resolved

    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    logging.getLogger("dlwatch.report").setLevel(logging.INFO)
    return level


def build_cli_overrides(
    url: Optional[str] = None,
    wait_seconds: Optional[float] = None,
    poll_interval: Optional[float] = None,
    inject: Optional[bool] = None,
    console_api: Optional[bool] = None,
    engine: Optional[str] = None,
    headful: Optional[bool] = None,
    out: Optional[Path] = None,
    verbose: bool = False,
    quiet: bool = False
) -> Dict[str, Any]:
    """Collect only the values given on the command line."""
    capture: Dict[str, Any] = {}
    if url is not None:
        capture["url"] = url
    if wait_seconds is not None:
        capture["wait_seconds"] = wait_seconds
    if poll_interval is not None:
        capture["poll_interval"] = poll_interval
    if inject is not None:
        capture["inject"] = inject
    if console_api is not None:
        capture["console_api"] = console_api

    browser: Dict[str, Any] = {}
    if engine is not None:
        browser["engine"] = engine
    if headful is not None:
        browser["headful"] = headful

    output: Dict[str, Any] = {}
    if out is not None:
        output["output_file"] = out
    if verbose:
        output["verbose"] = True
    if quiet:
        output["quiet"] = True

    overrides: Dict[str, Any] = {}
    if capture:
        overrides["capture"] = capture
    if browser:
        overrides["browser"] = browser
    if output:
        overrides["output"] = output
    return overrides


@app.command()
def watch(
    url: Annotated[
        Optional[str],
        typer.Argument(help="Page to observe [default: https://developers.google.com/]")
    ] = None,

    wait_seconds: Annotated[
        Optional[float],
        typer.Argument(help="Seconds to observe after navigation [default: 10]")
    ] = None,

    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML or JSON configuration file")
    ] = None,

    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Also write captured events to this JSON file")
    ] = None,

    poll_interval: Annotated[
        Optional[float],
        typer.Option("--poll-interval", help="Seconds between log buffer polls")
    ] = None,

    headful: Annotated[
        bool,
        typer.Option("--headful", help="Run browser with GUI")
    ] = False,

    engine: Annotated[
        Optional[str],
        typer.Option("--engine", help="Browser engine (chromium, firefox, webkit)")
    ] = None,

    no_inject: Annotated[
        bool,
        typer.Option("--no-inject", help="Do not install the dataLayer push monitor")
    ] = False,

    no_console_api: Annotated[
        bool,
        typer.Option("--no-console-api", help="Do not subscribe to DevTools console API events")
    ] = False,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,

    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only warnings, errors and the report")
    ] = False,

    print_config: Annotated[
        bool,
        typer.Option("--print-config", help="Print effective configuration and exit")
    ] = False,

    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit")
    ] = None,
):
    """
    Observe dataLayer events on a page.

    Examples:

        # Default page, 10 second window
        dlwatch

        # Watch a site for 30 seconds and keep the events
        dlwatch https://example.com 30 --out events.json

        # Console and network logs only
        dlwatch https://example.com --no-inject --no-console-api
    """
    if verbose and quiet:
        typer.echo("❌ --verbose and --quiet are mutually exclusive", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    overrides = build_cli_overrides(
        url=url,
        wait_seconds=wait_seconds,
        poll_interval=poll_interval,
        inject=False if no_inject else None,
        console_api=False if no_console_api else None,
        engine=engine,
        headful=True if headful else None,
        out=out,
        verbose=verbose,
        quiet=quiet,
    )

    try:
        config = ConfigurationLoader().load_configuration(
            config_file=config_file,
            cli_overrides=overrides,
        )
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if print_config:
        typer.echo(print_configuration(config))
        raise typer.Exit()

    configure_logging(verbose=config.output.verbose, quiet=config.output.quiet)
    logging.getLogger(__name__).debug(f"Configuration loaded from: {', '.join(config.loaded_from)}")

    runner = WatchRunner(config)
    exit_code = asyncio.run(runner.run())
    raise typer.Exit(code=exit_code.value)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
