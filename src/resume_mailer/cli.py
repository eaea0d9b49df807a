"""Command-line interface for the resume mailer.

Usage:
    resume-mailer serve --port 8000
    resume-mailer check-config
    resume-mailer send-test visitor@example.com --strategy link
    resume-mailer oauth2-token

Example:
    $ GOOGLE_CLIENT_ID=... GOOGLE_CLIENT_SECRET=... resume-mailer oauth2-token
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional

import aiohttp
import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from resume_mailer import __version__
from resume_mailer.config import ServiceConfig, load_config
from resume_mailer.dispatcher import ResumeDispatcher
from resume_mailer.errors import ConfigError, DispatchError
from resume_mailer.models import Strategy
from resume_mailer.oauth2 import OAuth2Error, build_consent_url, exchange_code
from resume_mailer.validation import EmailValidationError, validate_email

console = Console()
err_console = Console(stderr=True)

STRATEGY_CHOICES = [s.value for s in Strategy]


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, indent=2, default=str))


def _load(ctx: click.Context) -> ServiceConfig:
    try:
        return load_config(config_path=ctx.obj.get("config_path"))
    except (ConfigError, FileNotFoundError) as exc:
        print_error(str(exc))
        sys.exit(1)


@click.group()
@click.version_option(__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="INI file with a [mailer] section (default: $RESUME_MAILER_CONFIG).")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str]) -> None:
    """Resume mailer service and operator tools."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to (default: $HOST or 0.0.0.0).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: $PORT or 8000).")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development.")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    config = _load(ctx)
    if ctx.obj.get("config_path"):
        os.environ["RESUME_MAILER_CONFIG"] = ctx.obj["config_path"]
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    host = host or config.host
    port = port or config.port
    console.print(f"\n[bold cyan]Starting resume mailer[/bold cyan] on {host}:{port}")
    console.print(f"  Environment: {config.environment}")
    console.print(f"  Strategy:    {config.default_strategy.value}\n")
    uvicorn.run("resume_mailer.server:app", host=host, port=port, reload=reload, log_level=config.log_level.lower())


@main.command("check-config")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check_config(ctx: click.Context, as_json: bool) -> None:
    """Show the effective configuration and what each strategy is missing."""
    config = _load(ctx)
    missing = {s.value: config.missing_for(s) for s in Strategy}

    if as_json:
        print_json({
            "config": config.describe(),
            "default_strategy": config.default_strategy.value,
            "missing": missing,
        })
        return

    table = Table(title="Resume Mailer Configuration")
    table.add_column("Option", style="cyan")
    table.add_column("Value")
    for name, value in config.describe().items():
        table.add_row(name, "" if value is None else escape(str(value)))
    console.print(table)

    strategies = Table(title="Strategies")
    strategies.add_column("Strategy", style="cyan")
    strategies.add_column("Status")
    for name, absent in missing.items():
        status = "[green]ready[/green]" if not absent else f"[red]missing {', '.join(absent)}[/red]"
        if name == config.default_strategy.value:
            name = f"{name} (default)"
        strategies.add_row(name, status)
    console.print(strategies)


@main.command("send-test")
@click.argument("email")
@click.option("--strategy", "-s", type=click.Choice(STRATEGY_CHOICES), default=None,
              help="Delivery strategy (default: configured one).")
@click.pass_context
def send_test(ctx: click.Context, email: str, strategy: Optional[str]) -> None:
    """Send the resume to EMAIL once, bypassing the rate limiter."""
    config = _load(ctx)
    try:
        recipient = validate_email(email)
    except EmailValidationError as exc:
        print_error(f"{exc.error}: {exc.user_message}")
        sys.exit(1)

    dispatcher = ResumeDispatcher(config)
    chosen = Strategy.parse(strategy) if strategy else None
    try:
        result = run_async(dispatcher.dispatch(recipient, chosen))
    except DispatchError as exc:
        print_error(f"{exc} ({exc.code})")
        sys.exit(2)

    print_success(result.message)
    console.print(f"  Message ID: {result.message_id}")
    console.print(f"  Strategy:   {result.strategy.value}")
    if result.download_url:
        console.print(f"  Link:       {result.download_url}")


@main.command("oauth2-token")
@click.option("--client-id", envvar="GOOGLE_CLIENT_ID", required=True, help="OAuth2 client id ($GOOGLE_CLIENT_ID).")
@click.option("--client-secret", envvar="GOOGLE_CLIENT_SECRET", required=True,
              help="OAuth2 client secret ($GOOGLE_CLIENT_SECRET).")
@click.option("--code", default=None, help="Authorisation code; prompted for when omitted.")
def oauth2_token(client_id: str, client_secret: str, code: Optional[str]) -> None:
    """Obtain a Gmail refresh token for the OAuth2 strategy."""
    if code is None:
        console.print("\n[bold]Gmail OAuth2 setup[/bold]\n")
        console.print("Visit this URL, sign in and grant permission to send email:\n")
        console.print(build_consent_url(client_id), soft_wrap=True)
        console.print()
        code = click.prompt("Paste the authorisation code")

    try:
        tokens = run_async(exchange_code(client_id, client_secret, code))
    except (OAuth2Error, aiohttp.ClientError) as exc:
        print_error(str(exc))
        err_console.print("Check the full code was copied, the client id/secret match, "
                          "and your account is a test user if the app is in testing mode.")
        sys.exit(1)

    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        print_error("Google did not return a refresh token; revoke access and retry with consent.")
        sys.exit(1)

    print_success("Add these to your environment:")
    console.print(f"GOOGLE_CLIENT_ID={client_id}", soft_wrap=True)
    console.print(f"GOOGLE_CLIENT_SECRET={client_secret}", soft_wrap=True)
    console.print(f"GOOGLE_REFRESH_TOKEN={refresh_token}", soft_wrap=True)


if __name__ == "__main__":
    main()
