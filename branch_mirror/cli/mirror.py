"""
CLI mirror commands — process a branch event, inspect parents and the ledger.

Usage:
    python -m branch_mirror.main sync                       # from GitHub Actions env
    python -m branch_mirror.main sync --event create --branch feature/x
    python -m branch_mirror.main resolve feature/x [--base develop]
    python -m branch_mirror.main ledger [--json]
"""

from __future__ import annotations

import json
import os
from typing import Optional

import click

from ..mirror.config import MirrorSettings
from ..mirror.errors import GitCommandError, InvalidTrigger, ParentNotFound
from ..mirror.git_refs import LocalRefGraph
from ..mirror.ledger import MirrorLedger
from ..mirror.resolver import EVENT_CREATE, ParentResolver, describe_candidates


def _repository_defaults() -> tuple:
    repository = os.environ.get("GITHUB_REPOSITORY", "")
    owner = os.environ.get("GITHUB_REPOSITORY_OWNER") or (
        repository.split("/", 1)[0] if "/" in repository else ""
    )
    name = repository.rsplit("/", 1)[-1] if repository else ""
    return name, owner


@click.command("sync")
@click.option(
    "--event",
    "event_kind",
    type=click.Choice(["create", "delete", "manual"]),
    default=None,
    help="Event to process (default: read from the GitHub Actions environment)",
)
@click.option("--branch", default=None, help="Source branch name")
@click.option("--base", default=None, help="Explicit parent branch (e.g. PR base)")
@click.option("--repo-name", default=None, help="Source repository name")
@click.option("--repo-owner", default=None, help="Source repository owner")
@click.option("--fetch/--no-fetch", default=False, help="Fetch branches and tags first")
@click.option("--json", "as_json", is_flag=True, help="Output the receipt as JSON")
@click.pass_context
def sync(
    ctx: click.Context,
    event_kind: Optional[str],
    branch: Optional[str],
    base: Optional[str],
    repo_name: Optional[str],
    repo_owner: Optional[str],
    fetch: bool,
    as_json: bool,
) -> None:
    """Mirror one branch creation or deletion into Azure DevOps."""
    from ..mirror.manager import BranchMirrorManager
    from ..mirror.trigger import TriggerEvent

    root = ctx.obj["root"]
    settings = MirrorSettings.from_env()

    missing = settings.missing()
    if missing:
        click.secho(f"❌ Missing configuration: {', '.join(missing)}", fg="red", err=True)
        ctx.exit(1)

    try:
        if event_kind is None:
            event = TriggerEvent.from_github_env()
        else:
            default_name, default_owner = _repository_defaults()
            event = TriggerEvent(
                kind=EVENT_CREATE if event_kind == "manual" else event_kind,
                branch=branch or "",
                repo_name=repo_name or default_name,
                repo_owner=repo_owner or default_owner,
                explicit_base=base,
                manual=event_kind == "manual",
            )
    except InvalidTrigger as e:
        click.secho(f"❌ {e.kind}: {e.message}", fg="red", err=True)
        ctx.exit(e.exit_code)

    manager = BranchMirrorManager.from_settings(settings, root)

    if fetch:
        try:
            manager.graph.refresh()
        except GitCommandError as e:
            click.secho(f"❌ {e.kind}: {e.message}", fg="red", err=True)
            ctx.exit(e.exit_code)

    receipt = manager.handle(event)

    if as_json:
        click.echo(json.dumps(receipt.model_dump(), indent=2, default=str))
    elif receipt.status == "ok":
        click.secho(f"✅ {receipt.event} '{receipt.branch}': {receipt.detail}", fg="green")
        if receipt.remote_ref:
            click.echo(f"   Azure ref: {receipt.remote_ref}")
    elif receipt.status == "skipped":
        click.secho(f"⏭️  {receipt.event} '{receipt.branch}' skipped: {receipt.detail}", fg="yellow")
    else:
        click.secho(f"❌ {receipt.error.kind}: {receipt.error.message}", fg="red")

    ctx.exit(receipt.exit_code)


@click.command("resolve")
@click.argument("branch")
@click.option("--base", default=None, help="Explicit parent branch (e.g. PR base)")
@click.pass_context
def resolve(ctx: click.Context, branch: str, base: Optional[str]) -> None:
    """Show which mirrored branch BRANCH would be created from."""
    root = ctx.obj["root"]
    settings = MirrorSettings.from_env()

    graph = LocalRefGraph(root, settings.git_remote)
    resolver = ParentResolver(graph, MirrorLedger(graph, settings.tag_prefix), settings.root_branch)

    try:
        resolution = resolver.resolve(branch, EVENT_CREATE, base)
    except (ParentNotFound, GitCommandError) as e:
        click.secho(f"❌ {e.message}", fg="red")
        ctx.exit(e.exit_code)

    if resolution.parent is None:
        click.echo(f"'{branch}' needs no parent ({resolution.source})")
    else:
        click.secho(f"Parent of '{branch}': {resolution.parent} ({resolution.source})", fg="green")
    if resolution.considered:
        click.echo("\nCandidates considered:")
        click.echo(describe_candidates(resolution.considered))


@click.command("ledger")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ledger(ctx: click.Context, as_json: bool) -> None:
    """List branches recorded as mirrored."""
    root = ctx.obj["root"]
    settings = MirrorSettings.from_env()

    graph = LocalRefGraph(root, settings.git_remote)
    try:
        entries = MirrorLedger(graph, settings.tag_prefix).entries()
    except GitCommandError as e:
        click.secho(f"❌ {e.message}", fg="red")
        ctx.exit(e.exit_code)

    if as_json:
        click.echo(json.dumps(entries, indent=2, sort_keys=True))
        return

    click.echo(f"\n🔀 Mirrored branches ({len(entries)})\n")
    if not entries:
        click.echo("  No mirror tags found.")
        click.echo()
        return
    for name in sorted(entries):
        click.echo(f"  {name:40} {entries[name][:12]}")
    click.echo()
