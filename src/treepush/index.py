"""In-memory index of a remote tree, filled lazily."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .tree import (
    GIT_FILEMODE_TREE,
    ROOT,
    ObjectRef,
    TreeEntry,
    TreeListing,
    join,
)

logger = logging.getLogger(__name__)


class RemoteTreeIndex:
    """Flat ``path -> ObjectRef`` map over the remote object graph.

    Directories are fetched lazily, so a missing path means either "not
    fetched" or "does not exist".  :meth:`is_listed` tells which directories
    have their complete contents indexed.  The root tree lives under the
    sentinel path ``""``.

    Not thread-safe; one splice at a time.
    """

    def __init__(self):
        self._entries: dict[str, ObjectRef] = {}
        self._listed: set[str] = set()

    def __repr__(self) -> str:
        root = self.root
        sha = root.sha[:7] if root is not None else None
        return f"RemoteTreeIndex(root={sha!r}, entries={len(self)})"

    def __len__(self) -> int:
        return sum(1 for path in self._entries if path != ROOT)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    @property
    def root(self) -> ObjectRef | None:
        return self._entries.get(ROOT)

    def get(self, path: str) -> ObjectRef | None:
        return self._entries.get(path)

    def set(self, path: str, ref: ObjectRef) -> None:
        """Index *ref* at *path*, replacing whatever was there."""
        previous = self._entries.get(path)
        if previous is not None and previous.is_tree and not ref.is_tree:
            self._drop_descendants(path)
        self._entries[path] = ref

    def _drop_descendants(self, path: str) -> None:
        prefix = path + "/"
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]
        self._listed = {d for d in self._listed if d != path and not d.startswith(prefix)}

    def is_listed(self, path: str) -> bool:
        """Return True if the full contents of directory *path* are indexed."""
        return path in self._listed

    def load_root(self, listing: TreeListing) -> None:
        """Install *listing* as the root tree and index its entries."""
        self.set(ROOT, ObjectRef(ROOT, GIT_FILEMODE_TREE, listing.sha))
        self.import_subtree(ROOT, listing.entries, recursive=False, truncated=listing.truncated)

    def import_subtree(
        self,
        prefix: str,
        entries: Iterable[TreeEntry],
        *,
        recursive: bool = True,
        truncated: bool = False,
    ) -> None:
        """Index a fetched directory listing under *prefix*.

        Entry names are relative to *prefix*.  Re-importing an identical
        listing changes nothing; a listing with new hashes overwrites, and
        whatever was indexed under a tree whose hash changed is dropped.
        """
        entries = list(entries)
        for entry in entries:
            path = join(prefix, entry.name)
            previous = self._entries.get(path)
            if previous is not None and previous.is_tree and previous.sha != entry.sha:
                self._drop_descendants(path)
        for entry in entries:
            path = join(prefix, entry.name)
            self.set(path, ObjectRef(path, entry.mode, entry.sha))

        if truncated:
            logger.warning("Listing of %r was truncated; directory contents are incomplete", prefix or "/")
            return
        self._listed.add(prefix)
        if recursive:
            for entry in entries:
                if entry.mode == GIT_FILEMODE_TREE:
                    self._listed.add(join(prefix, entry.name))

    def children_of(self, path: str) -> list[TreeEntry]:
        """Return the indexed direct children of directory *path*, sorted by name.

        An unfetched or empty directory yields an empty list.
        """
        prefix = path + "/" if path else ""
        children = []
        for key, ref in self._entries.items():
            if key == ROOT or not key.startswith(prefix):
                continue
            name = key[len(prefix):]
            if not name or "/" in name:
                continue
            children.append(TreeEntry(name, ref.mode, ref.sha))
        children.sort(key=lambda e: e.name)
        return children

    def has_descendants(self, path: str) -> bool:
        """Return True if anything is indexed below *path*, even without an entry for *path*."""
        prefix = path + "/" if path else ""
        return any(key != ROOT and key.startswith(prefix) for key in self._entries)
