"""
Command-line interface for anonymous reactions.

Derivation helpers for operators and clients, a settings checker and an
in-memory simulation of a full reaction round.
"""

import logging
import sys
import uuid
from typing import Optional

import click
import trio
from rich import box
from rich.console import Console
from rich.table import Table

from anonymous_reactions import __version__
from anonymous_reactions.reactions_protocol.commitments import derive_commitment
from anonymous_reactions.reactions_protocol.config import VOTE_LABELS
from anonymous_reactions.reactions_protocol.exceptions import ConfigurationError
from anonymous_reactions.reactions_protocol.key_derivation import (
    derive_feed_secret,
    derive_reaction_key,
    keypair_from_feed_secret,
)
from anonymous_reactions.service.settings import Settings, load_settings
from anonymous_reactions.simulation import run_simulation


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging level (default: WARNING)",
)
def main(log_level: str):
    """
    Anonymous reactions toolkit.

    Commitments, nullifiers and encrypted tallies for group feed reactions.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("derive-commitment")
@click.argument("address")
def derive_commitment_cmd(address: str):
    """Print the membership commitment registered for ADDRESS."""
    try:
        commitment = derive_commitment(address)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="ADDRESS")
    click.echo(commitment.hex())


@main.command("derive-key")
@click.option("--shared-key", required=True, help="Hex-encoded 32-byte feed shared key")
@click.option("--message-id", type=click.UUID, help="Derive the reaction key for this message")
@click.option("--feed-id", type=click.UUID, help="Derive the feed secret and ElGamal key")
def derive_key_cmd(shared_key: str, message_id: Optional[uuid.UUID], feed_id: Optional[uuid.UUID]):
    """Derive a reaction key or a feed secret from a feed shared key."""
    if (message_id is None) == (feed_id is None):
        raise click.UsageError("Pass exactly one of --message-id or --feed-id")
    try:
        key = bytes.fromhex(shared_key)
    except ValueError:
        raise click.BadParameter("not a hex string", param_hint="--shared-key")

    try:
        if message_id is not None:
            click.echo(derive_reaction_key(key, message_id).hex())
            return
        secret = derive_feed_secret(key, feed_id)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--shared-key")

    keypair = keypair_from_feed_secret(secret)
    click.echo(f"feed_secret: {secret.hex()}")
    click.echo(f"public_key.x: {keypair.public_key.x_bytes.hex()}")
    click.echo(f"public_key.y: {keypair.public_key.y_bytes.hex()}")


@main.command("check-settings")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def check_settings_cmd(path: str):
    """Validate a YAML settings file."""
    try:
        settings = load_settings(path)
    except ConfigurationError as e:
        click.echo(click.style(f"✗ {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(click.style("✓ Settings are valid", fg="green"))
    click.echo(f"  Root grace window: {settings.reactions.root_grace_window}")
    click.echo(f"  Max retries: {settings.reactions.max_retries}")
    click.echo(f"  Retry backoff: {settings.reactions.retry_backoff}s")
    click.echo(f"  Verifier backend: {settings.verifier.backend or '(feature flag)'}")
    click.echo(f"  Circuit version: {settings.verifier.current_version}")


@main.command()
@click.option("--members", type=click.IntRange(min=1), default=5, help="Feed members (default: 5)")
@click.option("--reactions", type=click.IntRange(min=0), default=8, help="Reactions to submit (default: 8)")
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False), help="YAML settings file")
def simulate(members: int, reactions: int, settings_path: Optional[str]):
    """
    Run an in-memory reaction round with the dev verifier.

    ⚠️  Proofs are not verified in the simulation.
    """
    settings = Settings()
    if settings_path:
        try:
            settings = load_settings(settings_path)
        except ConfigurationError as e:
            click.echo(click.style(f"✗ {e}", fg="red"), err=True)
            sys.exit(1)

    report = trio.run(run_simulation, members, reactions, settings)

    console = Console()
    roots = Table(title="Membership roots (newest first)", box=box.SIMPLE)
    roots.add_column("#", justify="right")
    roots.add_column("Block", justify="right")
    roots.add_column("Root", overflow="fold")
    for row in report.roots:
        roots.add_row(str(row.id), str(row.block_height), row.root.hex())
    console.print(roots)

    tally = Table(title=f"Tally for message {report.message_id}", box=box.SIMPLE)
    tally.add_column("Reaction")
    tally.add_column("Count", justify="right")
    tally.add_column("Expected", justify="right")
    for label, count, expected in zip(VOTE_LABELS, report.counts, report.expected):
        tally.add_row(label, "?" if count is None else str(count), str(expected))
    console.print(tally)

    accepted = sum(1 for r in report.results if r.success)
    click.echo(f"Accepted: {accepted}/{len(report.results)}  Distinct reactors: {report.total_count}")


if __name__ == "__main__":
    main()
