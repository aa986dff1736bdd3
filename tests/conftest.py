"""Shared fixtures for treepush tests."""

import asyncio

import pytest
from click.testing import CliRunner
from dulwich.objects import Blob, Tree

from treepush.exceptions import ExternalServiceError
from treepush.local import LocalObjectService
from treepush.tree import GIT_FILEMODE_BLOB, GIT_FILEMODE_TREE


def _write_tree(repo, files):
    """Store *files* ({path: bytes}) as nested trees and return the root tree id."""
    blobs = {}
    subdirs = {}
    for path, data in files.items():
        head, sep, rest = path.partition("/")
        if sep:
            subdirs.setdefault(head, {})[rest] = data
        else:
            blobs[head] = data

    tree = Tree()
    for name, data in blobs.items():
        blob = Blob.from_string(data)
        repo.object_store.add_object(blob)
        tree.add(name.encode(), GIT_FILEMODE_BLOB, blob.id)
    for name, sub in subdirs.items():
        tree.add(name.encode(), GIT_FILEMODE_TREE, _write_tree(repo, sub))
    repo.object_store.add_object(tree)
    return tree.id


def seed(service, files, branch="main"):
    """Commit *files* on top of *branch* and return the new commit sha."""
    repo = service.repo
    tree = _write_tree(repo, files)
    parent = repo.refs[f"refs/heads/{branch}".encode()]
    commit = service._make_commit("seed", tree, [parent])
    repo.refs[f"refs/heads/{branch}".encode()] = commit
    return commit.decode()


def flatten(service, tree_sha):
    """Return {path: sha} for every entry (trees included) below *tree_sha*."""
    listing = asyncio.run(service.fetch_tree(tree_sha, recursive=True))
    return {e.name: e.sha for e in listing.entries}


def read_file(service, tree_sha, path):
    """Return the bytes stored at *path* in *tree_sha*."""
    for name, sha in flatten(service, tree_sha).items():
        if name == path:
            return service.repo.object_store[sha.encode()].data
    raise FileNotFoundError(path)


class RecordingService(LocalObjectService):
    """LocalObjectService that records calls and can fail on demand.

    *fail_tree_at* makes the n-th (1-based) create_tree call raise.
    """

    def __init__(self, repo, *, fail_tree_at=None):
        super().__init__(repo)
        self.trees = []
        self.blobs = []
        self.fetches = []
        self._fail_tree_at = fail_tree_at

    async def create_blob(self, data):
        sha = await super().create_blob(data)
        self.blobs.append(sha)
        return sha

    async def create_tree(self, entries, base_tree=None):
        self.trees.append((base_tree, list(entries)))
        if self._fail_tree_at is not None and len(self.trees) == self._fail_tree_at:
            raise ExternalServiceError(500, "Server Error")
        return await super().create_tree(entries, base_tree=base_tree)

    async def fetch_tree(self, ref, recursive=False):
        self.fetches.append((ref, recursive))
        return await super().fetch_tree(ref, recursive=recursive)


@pytest.fixture
def service():
    """In-memory repository with an empty 'main' branch, recording calls."""
    base = LocalObjectService.init()
    return RecordingService(base.repo)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def bare_repo(tmp_path):
    """Bare repository on disk with an empty 'main' branch; returns its path."""
    p = tmp_path / "test.git"
    LocalObjectService.init(p)
    return str(p)
