"""
saffron-bridge command line.

Usage:
    saffron-bridge [OPTIONS] COMMAND [ARGS]...
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import click
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from .address import mask_address
from .attestation import AttestationPoller
from .config import Credentials, get_config
from .aptos_client import AptosAPIError
from .errors import BridgeError
from .logging_utils import setup_logging
from .models import ProgressCallback, TransferOutcome, TransferProgress, TransferRequest
from .orchestrator import TransferOrchestrator, build_orchestrator
from .receiver import DestinationChainReceiver
from .rpc_client import AllEndpointsFailedError, ChainIDMismatchError, RPCError
from .sender import SourceChainSender
from .signers import LocalSourceSigner

console = Console()

# Failures reported as a one-line error instead of a traceback
CLI_ERRORS = (BridgeError, AptosAPIError, RPCError, AllEndpointsFailedError, ChainIDMismatchError)


def _run_with_progress(
    ctx: click.Context,
    runner: Callable[[Optional[ProgressCallback]], Awaitable[TransferOutcome]],
) -> TransferOutcome:
    if ctx.obj["json"]:
        return asyncio.run(runner(None))

    with Progress(console=console) as progress:
        task = progress.add_task("Starting transfer...", total=100)

        def on_progress(event: TransferProgress) -> None:
            progress.update(
                task,
                completed=event.percentage or 0,
                description=f"[{event.step_index}/{event.total_steps}] {event.message}",
            )

        return asyncio.run(runner(on_progress))


def _print_outcome(ctx: click.Context, outcome: TransferOutcome) -> None:
    if ctx.obj["json"]:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
    elif outcome.success:
        console.print("\n[green]✓ Transfer complete[/green]")
        console.print(f"  Source TX: [cyan]{outcome.source_transaction_hash}[/cyan]")
        console.print(f"  Destination TX: [cyan]{outcome.destination_transaction_hash}[/cyan]")
        console.print(f"  Received: {outcome.transferred_amount} USDC")
    else:
        console.print(f"\n[red]✗ Transfer failed: {outcome.error_message}[/red]")
        if outcome.is_stuck:
            console.print(f"  Source TX: [cyan]{outcome.source_transaction_hash}[/cyan]")
            console.print(
                f"  Resume with: saffron-bridge resume {outcome.source_transaction_hash}"
            )

    if not outcome.success:
        ctx.exit(1)


def _require(ctx: click.Context, names: Dict[str, Optional[str]]) -> None:
    missing = [name for name, value in names.items() if not value]
    if missing:
        console.print(f"[red]Missing environment variables: {', '.join(missing)}[/red]")
        ctx.exit(1)


def _build(ctx: click.Context, credentials: Credentials, config) -> TransferOrchestrator:
    try:
        return build_orchestrator(credentials, config)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)


@click.group()
@click.version_option(package_name="saffron-bridge", message="%(prog)s %(version)s")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, as_json: bool, verbose: bool):
    """Move USDC from Base to Aptos over Circle CCTP."""
    ctx.ensure_object(dict)

    config = get_config()
    setup_logging(
        level="DEBUG" if verbose else config.logging.level,
        json_format=config.logging.json_format,
    )

    ctx.obj["config"] = config
    ctx.obj["json"] = as_json


@cli.command()
@click.option("--amount", help="USDC amount (default: SAFFRON_BRIDGE_TRANSFER_AMOUNT or 1.0)")
@click.option("--recipient", help="Aptos recipient address (default: APTOS_RECIPIENT)")
@click.pass_context
def transfer(ctx, amount: Optional[str], recipient: Optional[str]):
    """Burn USDC on Base and mint it on Aptos."""
    config = ctx.obj["config"]
    credentials = Credentials.from_env()
    amount = amount or config.default_amount
    recipient = recipient or credentials.aptos_recipient

    _require(ctx, {
        "BASE_PRIVATE_KEY": credentials.base_private_key,
        "APTOS_PRIVATE_KEY": credentials.aptos_private_key,
        "APTOS_RECIPIENT": recipient,
    })

    orchestrator = _build(ctx, credentials, config)
    request = TransferRequest(
        amount=amount,
        recipient_address=recipient,
        sender_credential=LocalSourceSigner(credentials.base_private_key),
    )
    if not ctx.obj["json"]:
        console.print(
            f"\n[bold blue]Transferring {amount} USDC[/bold blue] "
            f"{config.source.name} -> {config.destination.name} ({mask_address(recipient)})\n"
        )

    async def run(on_progress: Optional[ProgressCallback]) -> TransferOutcome:
        try:
            return await orchestrator.transfer(request, on_progress)
        finally:
            await orchestrator.close()

    _print_outcome(ctx, _run_with_progress(ctx, run))


@cli.command()
@click.argument("tx_hash")
@click.option("--recipient", help="Aptos address whose balance change is reported")
@click.pass_context
def resume(ctx, tx_hash: str, recipient: Optional[str]):
    """Finish a transfer whose burn already happened."""
    config = ctx.obj["config"]
    credentials = Credentials.from_env()
    _require(ctx, {"APTOS_PRIVATE_KEY": credentials.aptos_private_key})

    orchestrator = _build(ctx, credentials, config)
    recipient = recipient or credentials.aptos_recipient

    async def run(on_progress: Optional[ProgressCallback]) -> TransferOutcome:
        try:
            return await orchestrator.resume(tx_hash, on_progress, recipient_address=recipient)
        finally:
            await orchestrator.close()

    _print_outcome(ctx, _run_with_progress(ctx, run))


@cli.command()
@click.argument("message_hash")
@click.pass_context
def status(ctx, message_hash: str):
    """Check the attestation status of a burn message."""
    config = ctx.obj["config"]
    poller = AttestationPoller(config.attestation)

    async def run() -> Dict[str, Any]:
        try:
            return await poller.get_attestation_status(message_hash)
        finally:
            await poller.close()

    try:
        result = asyncio.run(run())
    except CLI_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if ctx.obj["json"]:
        click.echo(json.dumps({"message_hash": message_hash, **result}, indent=2))
        return

    status_emoji = {
        "pending": "⏳",
        "complete": "✅",
        "failed": "❌",
    }
    att_status = result.get("status", "unknown")
    console.print("\n[bold blue]Attestation Status[/bold blue]\n")
    console.print(f"Message Hash: [cyan]{message_hash}[/cyan]")
    console.print(f"Status: {status_emoji.get(att_status, '❓')} {att_status}")
    if result.get("attestation"):
        console.print(f"Attestation: {result['attestation'][:20]}...")
    console.print()


@cli.command()
@click.option("--source", "source_address", help="Base address (default: BASE_PRIVATE_KEY's account)")
@click.option("--destination", "destination_address", help="Aptos address (default: APTOS_RECIPIENT)")
@click.pass_context
def balance(ctx, source_address: Optional[str], destination_address: Optional[str]):
    """Show USDC balances on both chains."""
    config = ctx.obj["config"]
    credentials = Credentials.from_env()

    if source_address is None and credentials.base_private_key:
        source_address = LocalSourceSigner(credentials.base_private_key).address
    destination_address = destination_address or credentials.aptos_recipient

    if not source_address and not destination_address:
        console.print("[yellow]No address given and none configured[/yellow]")
        ctx.exit(1)

    async def run() -> Dict[str, str]:
        balances: Dict[str, str] = {}
        if source_address:
            sender = SourceChainSender(config.source, destination_domain=config.destination.domain_id)
            try:
                balances[config.source.name] = await sender.check_balance(source_address)
            finally:
                await sender.close()
        if destination_address:
            receiver = DestinationChainReceiver(config.destination)
            try:
                balances[config.destination.name] = await receiver.check_balance(destination_address)
            finally:
                await receiver.close()
        return balances

    try:
        balances = asyncio.run(run())
    except CLI_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if ctx.obj["json"]:
        click.echo(json.dumps(balances, indent=2))
        return

    addresses = {
        config.source.name: source_address,
        config.destination.name: destination_address,
    }
    table = Table(title="USDC Balances")
    table.add_column("Chain", style="cyan")
    table.add_column("Address")
    table.add_column("Balance", justify="right")
    for chain, amount in balances.items():
        table.add_row(chain, mask_address(addresses[chain]), amount)
    console.print(table)


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    config = ctx.obj["config"]
    credentials = Credentials.from_env()

    rows = {
        "source.chain": f"{config.source.name} (chain {config.source.chain_id}, domain {config.source.domain_id})",
        "source.rpc": config.source.get_primary_rpc_url(),
        "source.token_messenger": config.source.token_messenger,
        "source.usdc": config.source.usdc,
        "destination.chain": f"{config.destination.name} (domain {config.destination.domain_id})",
        "destination.node_url": config.destination.node_url,
        "destination.usdc_metadata": config.destination.usdc_metadata,
        "attestation.base_url": config.attestation.base_url,
        "attestation.poll_interval": f"{config.attestation.poll_interval_seconds}s",
        "attestation.max_retries": str(config.attestation.max_retries),
        "attestation.max_wait": f"{config.attestation.max_wait_seconds}s",
        "default_amount": config.default_amount,
    }
    missing = credentials.missing()

    if ctx.obj["json"]:
        click.echo(json.dumps({**rows, "missing_credentials": missing}, indent=2))
        return

    table = Table(title="saffron-bridge configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in rows.items():
        table.add_row(key, value)
    console.print(table)

    if missing:
        console.print(f"[yellow]Missing credentials: {', '.join(missing)}[/yellow]")
    else:
        console.print("[green]✓ All credentials configured[/green]")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
