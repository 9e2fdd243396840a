"""CLI entrypoint for sf-guard.

Wraps the guard engine for terminal use: check a file for org-side
conflicts before deploying, resolve them interactively, and run tracked
retrieves and safe deploys through the ``sf`` CLI.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from sf_guard.config import settings
from sf_guard.errors import LocalIOFailed, NotAnArtifactError
from sf_guard.sync.engine import GuardEngine, SyncResult, build_engine, find_workspace_root
from sf_guard.sync.resolution import (
    MemberDiff,
    ResolutionOutcome,
    ResolutionStrategy,
    StrategyChooser,
)
from sf_guard.sync.resolver import ArtifactIdentity

_PROMPT_CHOICES: dict[str, ResolutionStrategy | None] = {
    "org": ResolutionStrategy.ADOPT_REMOTE,
    "local": ResolutionStrategy.KEEP_LOCAL,
    "manual": ResolutionStrategy.MANUAL,
    "cancel": None,
}

_STRATEGY_TYPE = click.Choice([s.value for s in ResolutionStrategy])


def _build_engine(start: Path) -> GuardEngine:
    """Construct a GuardEngine for the workspace containing *start*."""
    workspace = Path(settings.workspace) if settings.workspace else find_workspace_root(start)
    if workspace is None:
        click.echo(f"Error: no sfdx-project.json found for {start}", err=True)
        sys.exit(2)
    return build_engine(
        workspace,
        sf_bin=settings.sf_bin,
        state_file=settings.state_file,
        snapshot_dir=settings.snapshot_dir,
        session_ttl_seconds=settings.session_ttl_seconds,
        command_timeout=settings.command_timeout,
    )


def _prompt_strategy(
    identity: ArtifactIdentity, diffs: list[MemberDiff]
) -> ResolutionStrategy | None:
    """Show every differing member, then ask for one decision for all."""
    click.echo(f"Org and local versions of {identity.name} differ in {len(diffs)} file(s).")
    for diff in diffs:
        click.echo(f"\n=== {diff.member_name} (org snapshot: {diff.remote_snapshot_path})")
        click.echo(diff.diff or "(contents differ only in line endings or encoding)")
    answer = click.prompt(
        "\nUse the org version, keep the local version, merge manually, or cancel?",
        type=click.Choice(list(_PROMPT_CHOICES)),
        default="cancel",
    )
    return _PROMPT_CHOICES[answer]


def _fixed_strategy(value: str | None) -> StrategyChooser:
    if value is None:
        return _prompt_strategy
    strategy = ResolutionStrategy(value)
    return lambda identity, diffs: strategy


def _report_resolution(outcome: ResolutionOutcome) -> None:
    for path in outcome.updated_paths:
        click.echo(f"  updated {path}")
    if outcome.resolved:
        click.echo(f"OK: {outcome.message}")
    else:
        click.echo(f"UNRESOLVED: {outcome.message}", err=True)


def _report_sync(result: SyncResult, local_path: str) -> None:
    if result.success:
        click.echo(f"OK: {result.message}")
    else:
        click.echo(f"FAIL: {local_path}: {result.message}", err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def cli(verbose: bool) -> None:
    """sf-guard: detect org-side changes before overwriting Salesforce source."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
def check(local_path: str) -> None:
    """Check LOCAL_PATH for changes made in the org since the last sync."""
    path = Path(local_path).resolve()
    engine = _build_engine(path)
    verdict = engine.check_conflict(path)
    if verdict.has_conflict:
        click.echo(
            f"CONFLICT ({verdict.reason}): last modified by {verdict.modified_by} "
            f"at {verdict.modified_at}"
        )
        sys.exit(1)
    click.echo("OK: no conflict detected")


@cli.command("mark-synced")
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
def mark_synced(local_path: str) -> None:
    """Record LOCAL_PATH's artifact as in sync with the org now."""
    path = Path(local_path).resolve()
    engine = _build_engine(path)
    try:
        entry = engine.mark_synced(path)
    except NotAnArtifactError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    except LocalIOFailed as exc:
        click.echo(f"FAIL: {exc}", err=True)
        sys.exit(1)
    click.echo(f"OK: {entry.name} synced at {entry.synced_at.isoformat()}")


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--strategy", type=_STRATEGY_TYPE, default=None, help="Skip the prompt.")
def resolve(local_path: str, strategy: str | None) -> None:
    """Compare LOCAL_PATH with the org version and reconcile them."""
    path = Path(local_path).resolve()
    engine = _build_engine(path)
    try:
        outcome = engine.resolve_conflict(path, _fixed_strategy(strategy))
    except NotAnArtifactError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    _report_resolution(outcome)
    if not outcome.resolved:
        sys.exit(1)


@cli.command()
def status() -> None:
    """List tracked artifacts, most recently synced first."""
    engine = _build_engine(Path.cwd())
    entries = engine.list_sync_status()
    if not entries:
        click.echo("No tracked artifacts.")
        return
    for entry in entries:
        click.echo(f"{entry.synced_at.isoformat()}  {entry.type_tag:<26} {entry.name}")


@cli.command()
@click.argument("name", required=False)
@click.option("--all", "clear_all", is_flag=True, help="Forget every watermark.")
def clear(name: str | None, clear_all: bool) -> None:
    """Forget the sync watermark of NAME (or all with --all)."""
    if (name is None) == (not clear_all):
        click.echo("Error: give an artifact NAME or --all", err=True)
        sys.exit(2)
    engine = _build_engine(Path.cwd())
    removed = engine.clear_sync_status(None if clear_all else name)
    click.echo(f"Removed {removed} watermark(s).")


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
def retrieve(local_path: str) -> None:
    """Retrieve LOCAL_PATH's artifact from the org and track the sync."""
    path = Path(local_path).resolve()
    engine = _build_engine(path)
    try:
        result = engine.retrieve(path)
    except NotAnArtifactError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    _report_sync(result, local_path)


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--force", is_flag=True, help="Deploy even if the org changed.")
@click.option(
    "--resolve/--no-resolve",
    "interactive",
    default=True,
    help="Offer to resolve a conflict before deploying.",
)
@click.option("--strategy", type=_STRATEGY_TYPE, default=None, help="Resolve without prompting.")
def deploy(local_path: str, force: bool, interactive: bool, strategy: str | None) -> None:
    """Deploy LOCAL_PATH's artifact unless the org holds unseen changes."""
    path = Path(local_path).resolve()
    engine = _build_engine(path)
    choose = _fixed_strategy(strategy) if (interactive or strategy) else None
    try:
        result = engine.deploy(path, force=force, choose=choose)
    except NotAnArtifactError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    if result.resolution is not None:
        _report_resolution(result.resolution)
    _report_sync(result, local_path)


if __name__ == "__main__":
    cli()
