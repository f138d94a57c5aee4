"""
CLI config commands — mirror configuration checking.

Usage:
    python -m branch_mirror.main check-config
"""

from __future__ import annotations

import click


@click.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Check mirror configuration status."""
    from ..mirror.config import MirrorSettings

    settings = MirrorSettings.from_env()
    missing = settings.missing()

    click.echo("\n📋 Mirror Configuration\n")
    click.echo(f"  Azure org:      {settings.org or '-'}")
    click.echo(f"  Azure project:  {settings.project or '-'}")
    click.echo(f"  Azure PAT:      {'set' if settings.pat else '-'}")
    click.echo(f"  API version:    {settings.api_version}")
    click.echo(f"  Primary owner:  {settings.primary_owner} → {settings.primary_repo}")
    click.echo(f"  Root branch:    {settings.root_branch}")
    click.echo(f"  Tag prefix:     {settings.tag_prefix}")
    click.echo(f"  Git remote:     {settings.git_remote}")
    click.echo()

    if missing:
        click.secho(f"  ✗ missing: {', '.join(missing)}", fg="red")
        ctx.exit(1)

    click.secho("  ✓ configuration complete", fg="green")
