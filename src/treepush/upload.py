"""Upload driver: load the remote tree, splice every file, commit, move the branch."""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .index import RemoteTreeIndex
from .splice import PendingChange, splice
from .tree import (
    GIT_FILEMODE_BLOB,
    GIT_FILEMODE_BLOB_EXECUTABLE,
    GIT_FILEMODE_TREE,
    BranchHead,
    _normalize_path,
    top_level,
)

if TYPE_CHECKING:
    from .service import ObjectService

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Outcome of :func:`upload`.

    *commit_sha* is None when the new tree equals the old one and no
    commit was made.
    """

    commit_sha: str | None
    tree_sha: str
    parent_sha: str
    paths: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.commit_sha is not None


def _mode_from_disk(local_path: str) -> int:
    """Return git filemode based on the file's executable bit.

    Also validates the path: raises FileNotFoundError, PermissionError,
    or IsADirectoryError before anything is uploaded.
    """
    st = os.stat(local_path)
    if stat.S_ISDIR(st.st_mode):
        raise IsADirectoryError(local_path)
    if st.st_mode & 0o111:
        return GIT_FILEMODE_BLOB_EXECUTABLE
    return GIT_FILEMODE_BLOB


def load_changes(
    paths: Iterable[str | os.PathLike[str]],
    base_dir: str | os.PathLike[str] = ".",
    prefix: str | None = None,
) -> list[PendingChange]:
    """Read local files into :class:`PendingChange` objects.

    Each file's repository path is its path relative to *base_dir*, placed
    under *prefix* when given.

    Raises:
        ValueError: If a file lies outside *base_dir*.
        OSError: If a file cannot be read.
    """
    base = Path(base_dir).resolve()
    if prefix is not None:
        prefix = _normalize_path(prefix)
    changes = []
    for path in paths:
        local = Path(path).resolve()
        try:
            relative = local.relative_to(base)
        except ValueError:
            raise ValueError(f"{path} is outside {base}")
        repo_path = relative.as_posix()
        if prefix:
            repo_path = f"{prefix}/{repo_path}"
        mode = _mode_from_disk(str(local))
        changes.append(PendingChange(repo_path, local.read_bytes(), mode))
    return changes


async def fetch_index(
    service: ObjectService,
    branch: str,
    paths: Iterable[str] = (),
    *,
    directories: Iterable[str] = (),
) -> tuple[BranchHead, RemoteTreeIndex]:
    """Resolve *branch* and index everything under the top-level directories of *paths*.

    Top-level *directories* named directly are indexed as well.  The root
    is fetched on its own; the referenced top-level directories that exist
    are then fetched recursively and concurrently, and every listing is
    merged before this returns.
    """
    head = await service.resolve_branch(branch)
    index = RemoteTreeIndex()
    index.load_root(await service.fetch_tree(head.tree_sha))

    wanted = [top_level(path) for path in paths] + list(directories)
    fetched = []
    for name in wanted:
        if name is None or name in fetched:
            continue
        ref = index.get(name)
        if ref is not None and ref.mode == GIT_FILEMODE_TREE:
            fetched.append(name)

    listings = await asyncio.gather(
        *(service.fetch_tree(index.get(name).sha, recursive=True) for name in fetched)
    )
    for name, listing in zip(fetched, listings):
        index.import_subtree(name, listing.entries, truncated=listing.truncated)
        logger.debug("Indexed %d entries under %s", len(listing.entries), name)
    return head, index


async def upload(
    service: ObjectService,
    branch: str,
    changes: Sequence[PendingChange],
    message: str,
    *,
    force: bool = False,
) -> UploadResult:
    """Write *changes* to *branch* in a single commit.

    Changes are spliced one after another in order; a later change to the
    same path wins.  The branch is only moved after every object exists,
    and only as a fast-forward unless *force* is set.

    Raises:
        ValueError: If *changes* is empty.
        TransportError, ExternalServiceError: If any service call fails.
        InconsistentIndexError: If the index is left in an impossible state.
    """
    if not changes:
        raise ValueError("Nothing to upload")

    head, index = await fetch_index(service, branch, [c.path for c in changes])
    for change in changes:
        await splice(service, index, change)
        logger.info("Spliced %s", change.path)

    paths = [c.path for c in changes]
    root = index.root
    if root.sha == head.tree_sha:
        logger.info("Tree unchanged; nothing to commit on %s", branch)
        return UploadResult(None, root.sha, head.commit_sha, paths)

    commit_sha = await service.create_commit(message, root.sha, [head.commit_sha])
    logger.info("Created commit %s", commit_sha[:7])
    await service.update_ref(branch, commit_sha, force=force)
    return UploadResult(commit_sha, root.sha, head.commit_sha, paths)
