"""Splice one file into a remote tree.

Only the ancestor chain from the changed file up to the root is rebuilt.
Sibling subtrees are shared by hash reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import InconsistentIndexError
from .tree import (
    GIT_FILEMODE_BLOB,
    GIT_FILEMODE_TREE,
    ROOT,
    ObjectRef,
    TreeEntry,
    _normalize_path,
    ancestor_chain,
    basename,
)

if TYPE_CHECKING:
    from .index import RemoteTreeIndex
    from .service import ObjectService

logger = logging.getLogger(__name__)


@dataclass
class PendingChange:
    """One local file waiting to be uploaded to *path*."""

    path: str
    data: bytes
    mode: int = GIT_FILEMODE_BLOB

    def __post_init__(self):
        self.path = _normalize_path(self.path)


def _replace_child(children: list[TreeEntry], entry: TreeEntry) -> list[TreeEntry]:
    """Return *children* with any entry named like *entry* swapped for it."""
    return [c for c in children if c.name != entry.name] + [entry]


def _base_tree(index: RemoteTreeIndex, directory: str) -> str | None:
    """Return the sha to start *directory*'s new tree from, or None for a fresh tree."""
    ref = index.get(directory)
    if ref is None:
        if directory == ROOT:
            raise InconsistentIndexError("Remote tree index has no root; load it first")
        if index.has_descendants(directory):
            raise InconsistentIndexError(
                f"Directory {directory!r} has indexed entries but no entry of its own"
            )
        return None
    if not ref.is_tree:
        # A file is being turned into a directory.
        return None
    return ref.sha


async def splice(
    service: ObjectService,
    index: RemoteTreeIndex,
    change: PendingChange,
) -> ObjectRef:
    """Write *change* into the tree held by *index* and return the new root.

    Creates one blob, then one tree per ancestor directory, nearest first.
    Every created object is registered in *index* as soon as it exists, so
    a failure part-way leaves the lower levels indexed while the root stays
    untouched.

    Raises:
        InconsistentIndexError: If *index* has no root.
        TransportError, ExternalServiceError: If an object service call fails.
    """
    chain = ancestor_chain(change.path)
    base_trees = {directory: _base_tree(index, directory) for directory in chain}

    blob_sha = await service.create_blob(change.data)
    current = ObjectRef(change.path, change.mode, blob_sha)
    index.set(change.path, current)
    logger.debug("Created blob %s for %s", blob_sha[:7], change.path)

    for directory in chain:
        child = TreeEntry(basename(current.path), current.mode, current.sha)
        entries = _replace_child(index.children_of(directory), child)
        base_tree = base_trees[directory]

        listing = await service.create_tree(entries, base_tree=base_tree)
        current = ObjectRef(directory, GIT_FILEMODE_TREE, listing.sha)
        logger.debug(
            "Created tree %s for %s (base %s)",
            listing.sha[:7], directory or "/", base_tree[:7] if base_tree else None,
        )

        if directory != ROOT:
            index.set(directory, current)

    index.set(ROOT, current)
    return current
