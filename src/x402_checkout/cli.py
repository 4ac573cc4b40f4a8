"""Buyer entry point: pay for an x402-protected URL and print what came back."""

import asyncio
import json
import sys
from typing import Optional

import click

from .adapters.adapters_hub import AdapterHub
from .clients.http_client import Http402Client
from .config import Settings
from .engine.exceptions import ConfigurationError
from .schemas.https import AccessResult, FlowState
from .utils import setup_logger


def _format_body(result: AccessResult) -> str:
    body = result.body
    if not body:
        return ""
    try:
        return json.dumps(json.loads(body), indent=2)
    except ValueError:
        return body.decode("utf-8", errors="replace")


async def buy(url: str, settings: Settings, deadline: Optional[float] = None) -> AccessResult:
    hub = AdapterHub(evm_private_key=settings.private_key, rpc_url=settings.rpc_url)
    async with Http402Client(
        adapter_hub=hub,
        retry_interval=settings.retry_interval,
        max_verify_attempts=settings.max_verify_attempts,
    ) as client:
        return await client.access(url, deadline=deadline)


@click.command()
@click.argument("url", required=False)
@click.option("--env-file", default=None, help="Path of a .env file to load")
@click.option("--deadline", type=float, default=None, help="Give up after this many seconds")
@click.option("--log-level", default="INFO", help="Logging level")
def main(url: Optional[str], env_file: Optional[str], deadline: Optional[float], log_level: str):
    """Buy access to URL (default: the x402 demo endpoint) and print the result."""
    setup_logger(log_level)

    try:
        settings = Settings.from_env(env_file)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    target = url or settings.target_url
    click.echo(f"🛒 Buying {target}")

    try:
        result = asyncio.run(buy(target, settings, deadline))
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    click.echo(f"States: {' -> '.join(state.value for state in result.transitions)}")
    click.echo(f"Status: {result.state.value.upper()} ({result.status_code})")
    if result.transaction_hash:
        click.echo(f"Transaction: {result.transaction_hash}")
    if result.settlement:
        click.echo(f"Settlement: {json.dumps(result.settlement)}")

    if result.state == FlowState.GRANTED:
        click.echo(_format_body(result))
        return

    click.echo(f"Error: {type(result.error).__name__}: {result.error}")
    if result.requirements is not None:
        click.echo(f"Last terms: {result.requirements.to_canonical_json()}")
    sys.exit(1)


if __name__ == "__main__":
    main()
