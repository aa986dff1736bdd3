"""Object service backed by a local dulwich repository.

Implements the same contract as :class:`~treepush.github.GitHubService`
against a bare repository on disk or an in-memory one, so uploads can
target a local mirror and the splicer can be exercised without a network.
"""

from __future__ import annotations

import logging
import time as _time
from collections import deque
from collections.abc import Iterator, Sequence
from pathlib import Path

from dulwich.objects import Blob as _DBlob
from dulwich.objects import Commit as _DCommit
from dulwich.objects import Tree as _DTree
from dulwich.repo import BaseRepo, MemoryRepo, Repo

from .exceptions import ExternalServiceError
from .tree import GIT_FILEMODE_COMMIT, GIT_FILEMODE_TREE, BranchHead, TreeEntry, TreeListing, join

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY = b"treepush <treepush@localhost>"


def _is_hex_sha(ref: str) -> bool:
    return len(ref) == 40 and all(c in "0123456789abcdef" for c in ref)


class LocalObjectService:
    """Create and read git objects in a dulwich repository."""

    def __init__(self, repo: BaseRepo, *, identity: bytes = DEFAULT_IDENTITY):
        self.repo = repo
        self._identity = identity

    def __repr__(self) -> str:
        return f"LocalObjectService({getattr(self.repo, 'path', '<memory>')!r})"

    @classmethod
    def open(cls, path: str | Path) -> LocalObjectService:
        """Open an existing repository at *path*."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Repository not found: {path}")
        return cls(Repo(str(path)))

    @classmethod
    def init(cls, path: str | Path | None = None, *, branch: str | None = "main") -> LocalObjectService:
        """Create a repository, bare on disk or in memory when *path* is None.

        When *branch* is given it is created pointing at an empty commit.
        """
        if path is None:
            repo = MemoryRepo()
        else:
            repo = Repo.init_bare(str(path), mkdir=True)
        service = cls(repo)
        if branch is not None:
            tree = _DTree()
            repo.object_store.add_object(tree)
            commit = service._make_commit(f"Initialize {branch}", tree.id, [])
            repo.refs[f"refs/heads/{branch}".encode()] = commit
            repo.refs.set_symbolic_ref(b"HEAD", f"refs/heads/{branch}".encode())
        return service

    async def __aenter__(self) -> LocalObjectService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    # -- object access -----------------------------------------------------

    def _get(self, sha: str, kind: type | None = None):
        try:
            obj = self.repo.object_store[sha.encode()]
        except KeyError:
            raise ExternalServiceError(404, f"Object not found: {sha}")
        if kind is not None and not isinstance(obj, kind):
            raise ExternalServiceError(422, f"Object {sha} is not a {kind.type_name.decode()}")
        return obj

    def _resolve_tree(self, ref: str) -> _DTree:
        if _is_hex_sha(ref):
            obj = self._get(ref)
        else:
            try:
                commit_sha = self.repo.refs[f"refs/heads/{ref}".encode()]
            except KeyError:
                raise ExternalServiceError(404, f"Not Found: {ref}")
            obj = self.repo.object_store[commit_sha]
        if isinstance(obj, _DCommit):
            obj = self.repo.object_store[obj.tree]
        if not isinstance(obj, _DTree):
            raise ExternalServiceError(422, f"{ref} does not name a tree")
        return obj

    def _walk(self, tree: _DTree, prefix: str, recursive: bool) -> Iterator[TreeEntry]:
        for item in tree.iteritems():
            name = join(prefix, item.path.decode())
            yield TreeEntry(name, item.mode, item.sha.decode())
            if recursive and item.mode == GIT_FILEMODE_TREE:
                yield from self._walk(self.repo.object_store[item.sha], name, recursive)

    def _make_commit(self, message: str, tree: bytes, parents: list[bytes]) -> bytes:
        c = _DCommit()
        c.tree = tree
        c.parents = parents
        c.author = c.committer = self._identity
        now = int(_time.time())
        c.author_time = c.commit_time = now
        c.author_timezone = c.commit_timezone = 0
        msg = message.encode()
        if not msg.endswith(b"\n"):
            msg += b"\n"
        c.message = msg
        c.encoding = b"UTF-8"
        self.repo.object_store.add_object(c)
        return c.id

    def _is_ancestor(self, ancestor: bytes, descendant: bytes) -> bool:
        seen: set[bytes] = set()
        queue = deque([descendant])
        while queue:
            sha = queue.popleft()
            if sha == ancestor:
                return True
            if sha in seen:
                continue
            seen.add(sha)
            queue.extend(self.repo.object_store[sha].parents)
        return False

    # -- ObjectService -----------------------------------------------------

    async def create_blob(self, data: bytes) -> str:
        blob = _DBlob.from_string(data)
        self.repo.object_store.add_object(blob)
        return blob.id.decode()

    async def create_tree(
        self, entries: Sequence[TreeEntry], base_tree: str | None = None
    ) -> TreeListing:
        items: dict[bytes, tuple[int, bytes]] = {}
        if base_tree is not None:
            for item in self._get(base_tree, _DTree).iteritems():
                items[item.path] = (item.mode, item.sha)
        for entry in entries:
            if entry.mode != GIT_FILEMODE_COMMIT:
                self._get(entry.sha)
            items[entry.name.encode()] = (entry.mode, entry.sha.encode())

        tree = _DTree()
        for name, (mode, sha) in sorted(items.items()):
            tree.add(name, mode, sha)
        self.repo.object_store.add_object(tree)
        return TreeListing(tree.id.decode(), list(self._walk(tree, "", recursive=False)))

    async def fetch_tree(self, ref: str, recursive: bool = False) -> TreeListing:
        tree = self._resolve_tree(ref)
        return TreeListing(tree.id.decode(), list(self._walk(tree, "", recursive)))

    async def resolve_branch(self, branch: str) -> BranchHead:
        try:
            commit_sha = self.repo.refs[f"refs/heads/{branch}".encode()]
        except KeyError:
            raise ExternalServiceError(404, f"Branch not found: {branch}")
        commit = self.repo.object_store[commit_sha]
        return BranchHead(commit_sha.decode(), commit.tree.decode())

    async def create_commit(self, message: str, tree: str, parents: Sequence[str]) -> str:
        self._get(tree, _DTree)
        for parent in parents:
            self._get(parent, _DCommit)
        sha = self._make_commit(message, tree.encode(), [p.encode() for p in parents])
        return sha.decode()

    async def update_ref(self, branch: str, commit: str, force: bool = False) -> None:
        ref_name = f"refs/heads/{branch}".encode()
        new_sha = commit.encode()
        self._get(commit, _DCommit)
        try:
            old_sha = self.repo.refs[ref_name]
        except KeyError:
            raise ExternalServiceError(422, f"Reference does not exist: refs/heads/{branch}")
        if not force and not self._is_ancestor(old_sha, new_sha):
            raise ExternalServiceError(422, "Update is not a fast forward")
        if not self.repo.refs.set_if_equals(ref_name, old_sha, new_sha):
            raise ExternalServiceError(422, f"refs/heads/{branch} changed during update")
        logger.info("Updated refs/heads/%s to %s", branch, commit[:7])
