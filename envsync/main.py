"""
envsync — CLI Entry Point

Usage:
    envsync update-all [--bootstrap] [--json]
    envsync update BRANCH [--revision REV]
    envsync gc
    envsync status [--json]
    envsync serve [--host 127.0.0.1] [--port 5050]
"""

from __future__ import annotations

# Load .env before anything reads ENVSYNC_* variables
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import json
import sys
from typing import Optional

import click

from .config import load_settings
from .logging_config import setup_logging
from .service import SyncService, failure_message, reply
from .validation import ConfigurationError, EnvSyncError, ValidationError


def _service(ctx: click.Context) -> SyncService:
    if "service" not in ctx.obj:
        try:
            ctx.obj["service"] = SyncService(load_settings(ctx.obj["config"]))
        except ConfigurationError as e:
            raise click.ClickException(str(e))
    return ctx.obj["service"]


def _fail(error: BaseException) -> None:
    click.secho(failure_message(error), fg="red", err=True)
    sys.exit(1)


@click.group()
@click.option("--config", "config_path", default=None, envvar="ENVSYNC_CONFIG",
              help="Path to a YAML settings file")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]) -> None:
    """envsync — One Puppet environment directory per git branch."""
    setup_logging(level=log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path


@cli.command("update-all")
@click.option("--bootstrap", is_flag=True, help="Also apply the init-only ignore patterns")
@click.option("--json", "as_json", is_flag=True, help="Print the reply object as JSON")
@click.pass_context
def update_all(ctx: click.Context, bootstrap: bool, as_json: bool) -> None:
    """Reconcile every branch and tag with the environments directory."""
    service = _service(ctx)
    try:
        changes = service.update_all(bootstrap=bootstrap)
    except EnvSyncError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(reply(changes), indent=2))
    else:
        if not changes:
            click.echo("Everything in sync")
        for change in changes:
            color = "red" if not change.ok else None
            click.secho(change.describe(), fg=color)

    if any(c.action == "failed" for c in changes):
        sys.exit(1)


@cli.command()
@click.argument("branch")
@click.option("--revision", default=None, help="Deploy this revision instead of the branch head")
@click.pass_context
def update(ctx: click.Context, branch: str, revision: Optional[str]) -> None:
    """Deploy a single branch or tag."""
    service = _service(ctx)
    try:
        change = service.update(branch, revision=revision)
    except ValidationError as e:
        raise click.BadParameter(str(e))
    except EnvSyncError as e:
        _fail(e)

    click.secho(change.describe(), fg="red" if not change.ok else None)
    if change.action == "failed":
        sys.exit(1)


@cli.command()
@click.pass_context
def gc(ctx: click.Context) -> None:
    """Garbage-collect the local mirror."""
    service = _service(ctx)
    try:
        output = service.gc()
    except EnvSyncError as e:
        _fail(e)
    if output.strip():
        click.echo(output.rstrip())
    click.secho("✓ gc done", fg="green")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """List deployed environments and the revision each one records."""
    service = _service(ctx)
    environments = service.status()

    if as_json:
        click.echo(json.dumps([
            {
                "directory": env.directory_name,
                "ref": env.recorded_ref,
                "revision": env.recorded_hash,
                "deployed_at": env.last_deployed_at.isoformat() if env.last_deployed_at else None,
            }
            for env in environments
        ], indent=2))
        return

    settings = service.settings
    click.echo(f"Repository:   {settings.repository}")
    click.echo(f"Mirror:       {settings.git_dir}")
    click.echo(f"Environments: {settings.environments_dir}")
    click.echo("")
    if not environments:
        click.echo("  (no environments deployed)")
    for env in environments:
        ref = env.recorded_ref or "?"
        revision = env.recorded_hash or "?"
        click.echo(f"  {env.directory_name:<30} {ref:<30} {revision}")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=5050, type=int, help="Port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP action API."""
    from .admin.server import run_server

    run_server(_service(ctx), host=host, port=port)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
