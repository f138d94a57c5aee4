"""
Branch Mirror — CLI Entry Point

Usage:
    python -m branch_mirror.main sync [--event create|delete|manual] [--branch B]
    python -m branch_mirror.main resolve BRANCH [--base PARENT]
    python -m branch_mirror.main ledger [--json]
    python -m branch_mirror.main check-config
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import click

from .cli.config import check_config
from .cli.mirror import ledger, resolve, sync
from .logging_config import setup_logging

# Initialize logging
setup_logging()


@click.group()
@click.option(
    "--repo",
    "repo",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Path to the source repository clone",
)
@click.pass_context
def cli(ctx: click.Context, repo: Path) -> None:
    """Branch Mirror — Mirror branch creation/deletion into Azure DevOps."""
    ctx.ensure_object(dict)
    ctx.obj["root"] = repo.resolve()


cli.add_command(sync)
cli.add_command(resolve)
cli.add_command(ledger)
cli.add_command(check_config)


if __name__ == "__main__":
    cli()
