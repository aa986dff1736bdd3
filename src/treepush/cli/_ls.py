"""The ls command."""

from __future__ import annotations

import click

from ..tree import GIT_FILEMODE_TREE, ROOT
from ..upload import fetch_index
from ._helpers import (
    main,
    _branch_option,
    _normalize_repo_path,
    _open_service,
    _run,
    _target_options,
)


async def _list(service, branch, path):
    directories = [path.partition("/")[0]] if path else []
    async with service:
        _, index = await fetch_index(service, branch, directories=directories)
    return index


@main.command("ls")
@_target_options
@_branch_option
@click.option("-l", "--long", "long_format", is_flag=True, help="Show mode, type and hash.")
@click.argument("path", required=False, default=None)
@click.pass_context
def ls_cmd(ctx, branch, long_format, path):
    """List the entries of a directory on a branch (the root by default)."""
    path = _normalize_repo_path(path) if path else ROOT
    service = _open_service(ctx)
    index = _run(_list(service, branch, path))

    if path != ROOT:
        ref = index.get(path)
        if ref is None:
            raise click.ClickException(f"Not found: {path}")
        if not ref.is_tree:
            raise click.ClickException(f"Not a directory: {path}")
    if not index.is_listed(path):
        click.echo(
            f"Warning: the server truncated the listing of {path or '/'}; "
            "some entries are missing.",
            err=True,
        )

    for entry in index.children_of(path):
        if long_format:
            click.echo(f"{entry.mode:06o} {entry.type} {entry.sha}\t{entry.name}")
        elif entry.mode == GIT_FILEMODE_TREE:
            click.echo(f"{entry.name}/")
        else:
            click.echo(entry.name)
