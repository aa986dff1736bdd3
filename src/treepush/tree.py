"""Object model and path helpers for treepush.

Git filemode constants, the immutable :class:`ObjectRef` and the listing
types exchanged with object services, plus the path arithmetic the index
and the splicer share.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import NamedTuple


GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_FILEMODE_LINK = 0o120000
GIT_FILEMODE_COMMIT = 0o160000

ROOT = ""


def object_type(mode: int) -> str:
    """Return the git object type (``tree``, ``commit`` or ``blob``) for *mode*."""
    if mode == GIT_FILEMODE_TREE:
        return "tree"
    if mode == GIT_FILEMODE_COMMIT:
        return "commit"
    return "blob"


@dataclass(frozen=True)
class ObjectRef:
    """A tree or blob at a repository path.

    Content-addressed and immutable: a changed file is a new ObjectRef.
    The root tree has path ``""``.
    """

    path: str
    mode: int
    sha: str

    @property
    def type(self) -> str:
        return object_type(self.mode)

    @property
    def is_tree(self) -> bool:
        return self.mode == GIT_FILEMODE_TREE

    @property
    def name(self) -> str:
        return basename(self.path)


class TreeEntry(NamedTuple):
    """One entry of a tree listing.

    In :meth:`RemoteTreeIndex.children_of` results *name* is a single path
    segment; in a recursive :class:`TreeListing` it is the path relative to
    the listed tree.
    """

    name: str
    mode: int
    sha: str

    @property
    def type(self) -> str:
        return object_type(self.mode)


@dataclass
class TreeListing:
    """A tree object as returned by fetch or create calls."""

    sha: str
    entries: list[TreeEntry] = field(default_factory=list)
    truncated: bool = False


@dataclass(frozen=True)
class BranchHead:
    """The commit a branch points at and that commit's root tree."""

    commit_sha: str
    tree_sha: str


def _normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a repository path: strip leading/trailing slashes, reject bad segments."""
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    if not path:
        raise ValueError("Path must not be empty")
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def dirname(path: str) -> str:
    """Return the parent directory of *path*, ``""`` for top-level entries."""
    head, sep, _ = path.rpartition("/")
    return head if sep else ROOT


def basename(path: str) -> str:
    return path.rpartition("/")[2]


def join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def ancestor_chain(path: str) -> list[str]:
    """Return the directories above *path*, nearest first, ending with the root.

    ``ancestor_chain("a/b/c.txt") == ["a/b", "a", ""]``.
    """
    chain = []
    current = path
    while current:
        current = dirname(current)
        chain.append(current)
    return chain


def top_level(path: str) -> str | None:
    """Return the first segment of *path* when it lies inside a directory."""
    head, sep, _ = path.partition("/")
    return head if sep else None
