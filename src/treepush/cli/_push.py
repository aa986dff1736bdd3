"""The push command."""

from __future__ import annotations

import click

from ..upload import load_changes, upload
from ._helpers import (
    main,
    _branch_option,
    _dry_run_option,
    _normalize_repo_path,
    _open_service,
    _run,
    _status,
    _target_options,
)


async def _push(service, branch, changes, message):
    async with service:
        return await upload(service, branch, changes, message)


@main.command("push")
@_target_options
@_branch_option
@click.option("-m", "--message", required=True, help="Commit message.")
@click.option("--base-dir", type=click.Path(exists=True, file_okay=False), default=".",
              show_default=True, help="Local directory repository paths are relative to.")
@click.option("--prefix", default=None, help="Repository directory to place the files under.")
@_dry_run_option
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def push_cmd(ctx, branch, message, base_dir, prefix, dry_run, files):
    """Upload FILES to a branch as a single commit.

    Each file lands at its path relative to --base-dir (under --prefix
    when given).  The branch is only fast-forwarded; if it moved since the
    tree was read, the push fails and nothing is changed.
    """
    if prefix is not None:
        prefix = _normalize_repo_path(prefix)
    try:
        changes = load_changes(files, base_dir, prefix)
    except (OSError, ValueError) as exc:
        raise click.ClickException(str(exc))

    if dry_run:
        for change in changes:
            click.echo(f"+ {change.path}")
        return

    service = _open_service(ctx)
    _status(ctx, f"Pushing {len(changes)} file(s) to {branch}")
    result = _run(_push(service, branch, changes, message))
    if not result.changed:
        click.echo("Nothing to commit: tree unchanged.")
        return
    click.echo(f"[{branch} {result.commit_sha[:7]}] {message.splitlines()[0] if message else ''}")
    for path in result.paths:
        _status(ctx, f"  {path}")
