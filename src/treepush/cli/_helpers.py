"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import asyncio
import logging

import click

from ..exceptions import TreePushError
from ..github import DEFAULT_API_URL, GitHubService, resolve_token
from ..local import LocalObjectService
from ..tree import _normalize_path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _ClickHandler(logging.Handler):
    """Route treepush log records to stderr through click."""

    def emit(self, record):
        click.echo(self.format(record), err=True)


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("treepush")
    if not any(isinstance(h, _ClickHandler) for h in logger.handlers):
        handler = _ClickHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)


def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _normalize_repo_path(path: str) -> str:
    """Normalize and validate a repo-side path via the library's _normalize_path."""
    try:
        return _normalize_path(path)
    except ValueError as exc:
        raise click.ClickException(f"Invalid repo path: {exc}")


def _store(key):
    """Click callback factory: store an option value in the context."""
    def callback(ctx, param, value):
        ctx.ensure_object(dict)
        if value is not None:
            ctx.obj[key] = value
        return value
    return callback


def _target_options(f):
    """Shared options selecting the repository and how to reach it."""
    f = click.option(
        "--timeout", type=float, default=30.0, show_default=True,
        help="HTTP timeout in seconds.",
        expose_value=False, callback=_store("timeout"),
    )(f)
    f = click.option(
        "--api-url", envvar="TREEPUSH_API_URL", default=DEFAULT_API_URL, show_default=True,
        help="Base URL of the GitHub API (or set TREEPUSH_API_URL).",
        expose_value=False, callback=_store("api_url"),
    )(f)
    f = click.option(
        "--token", "-k", envvar=["TREEPUSH_TOKEN", "GITHUB_TOKEN"],
        help="API access token (or set TREEPUSH_TOKEN / GITHUB_TOKEN; falls back to `gh auth token`).",
        expose_value=False, callback=_store("token"),
    )(f)
    f = click.option(
        "--git-dir", type=click.Path(), envvar="TREEPUSH_GIT_DIR",
        help="Push into a local bare repository instead of GitHub.",
        expose_value=False, callback=_store("git_dir"),
    )(f)
    f = click.option(
        "--repository", "-r", envvar="TREEPUSH_REPOSITORY",
        help="Target repository as OWNER/NAME (or set TREEPUSH_REPOSITORY).",
        expose_value=False, callback=_store("repository"),
    )(f)
    return f


def _branch_option(f):
    return click.option(
        "--branch", "-b", envvar="TREEPUSH_BRANCH", default="main", show_default=True,
        help="Branch to read from and update.",
    )(f)


def _dry_run_option(f):
    return click.option(
        "-n", "--dry-run", is_flag=True, default=False,
        help="Show what would change without writing.",
    )(f)


def _open_service(ctx):
    """Build the object service selected by --git-dir or --repository."""
    git_dir = ctx.obj.get("git_dir")
    if git_dir:
        try:
            return LocalObjectService.open(git_dir)
        except FileNotFoundError as exc:
            raise click.ClickException(str(exc))

    repository = ctx.obj.get("repository")
    if not repository:
        raise click.ClickException(
            "No repository specified. Use --repository, --git-dir or set TREEPUSH_REPOSITORY."
        )
    api_url = ctx.obj.get("api_url", DEFAULT_API_URL)
    token = ctx.obj.get("token") or resolve_token(api_url)
    if not token:
        raise click.ClickException(
            "No access token. Use --token, set TREEPUSH_TOKEN or log in with `gh auth login`."
        )
    try:
        return GitHubService(
            repository, token, api_url=api_url, timeout=ctx.obj.get("timeout", 30.0),
        )
    except ValueError as exc:
        raise click.ClickException(str(exc))


def _run(coro):
    """Run *coro* to completion, turning treepush errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except TreePushError as exc:
        raise click.ClickException(f"{type(exc).__name__}: {exc}")


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.version_option(package_name="treepush")
@click.pass_context
def main(ctx, verbose):
    """treepush: write files into a GitHub repository without a clone.

    Uploads blobs and rebuilds only the trees on the path from each file
    to the root, then commits and fast-forwards the branch.

    \b
    Quick start:
      export TREEPUSH_TOKEN=...
      treepush push -r owner/repo -b main -m "Update docs" docs/readme.md
      treepush ls -r owner/repo docs
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)
