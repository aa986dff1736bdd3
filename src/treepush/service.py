"""The object service contract the splicer and the driver talk to."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .tree import BranchHead, TreeEntry, TreeListing


class ObjectService(Protocol):
    """Creates and fetches git objects in a remote (or local) repository.

    Every call is made at most once; failures raise
    :class:`~treepush.exceptions.TransportError` or
    :class:`~treepush.exceptions.ExternalServiceError`.
    """

    async def create_blob(self, data: bytes) -> str:
        """Store *data* as a blob and return its sha."""
        ...

    async def create_tree(
        self, entries: Sequence[TreeEntry], base_tree: str | None = None
    ) -> TreeListing:
        """Create a tree from *entries*, overlaid on *base_tree* if given."""
        ...

    async def fetch_tree(self, ref: str, recursive: bool = False) -> TreeListing:
        """Fetch the tree named by a sha or branch name."""
        ...

    async def resolve_branch(self, branch: str) -> BranchHead:
        """Return the commit *branch* points at and its root tree."""
        ...

    async def create_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        """Create a commit object and return its sha."""
        ...

    async def update_ref(self, branch: str, commit: str, force: bool = False) -> None:
        """Point *branch* at *commit*; without *force* only fast-forwards are allowed."""
        ...
