"""Tests for the upload driver."""

import asyncio
import os

import pytest

from conftest import RecordingService, read_file, seed
from treepush.exceptions import ExternalServiceError
from treepush.splice import PendingChange
from treepush.tree import GIT_FILEMODE_BLOB, GIT_FILEMODE_BLOB_EXECUTABLE
from treepush.upload import fetch_index, load_changes, upload


def _head(service, branch="main"):
    return service.repo.refs[f"refs/heads/{branch}".encode()].decode()


def _upload(service, files, message="update", **kw):
    changes = [PendingChange(path, data) for path, data in files.items()]
    return asyncio.run(upload(service, "main", changes, message, **kw))


class TestUpload:
    def test_commits_and_moves_branch(self, service):
        parent = _head(service)
        result = _upload(service, {"docs/readme.md": b"hello"}, message="Add readme")

        assert result.changed
        assert result.parent_sha == parent
        assert _head(service) == result.commit_sha
        commit = service.repo.object_store[result.commit_sha.encode()]
        assert commit.parents == [parent.encode()]
        assert commit.tree.decode() == result.tree_sha
        assert commit.message == b"Add readme\n"
        assert read_file(service, result.tree_sha, "docs/readme.md") == b"hello"

    def test_many_files_one_commit(self, service):
        seed(service, {"docs/old.md": b"old", "src/app.py": b"app"})
        parent = _head(service)
        result = _upload(service, {
            "docs/a.md": b"a",
            "docs/b.md": b"b",
            "src/lib/util.py": b"util",
            "NEWS": b"news",
        })
        commit = service.repo.object_store[result.commit_sha.encode()]
        assert commit.parents == [parent.encode()]
        for path, data in {
            "docs/a.md": b"a", "docs/b.md": b"b", "docs/old.md": b"old",
            "src/app.py": b"app", "src/lib/util.py": b"util", "NEWS": b"news",
        }.items():
            assert read_file(service, result.tree_sha, path) == data
        assert result.paths == ["docs/a.md", "docs/b.md", "src/lib/util.py", "NEWS"]

    def test_unchanged_content_makes_no_commit(self, service):
        seed(service, {"docs/readme.md": b"same"})
        head = _head(service)
        result = _upload(service, {"docs/readme.md": b"same"})
        assert not result.changed
        assert result.commit_sha is None
        assert _head(service) == head

    def test_empty_changes_rejected(self, service):
        with pytest.raises(ValueError):
            asyncio.run(upload(service, "main", [], "msg"))

    def test_missing_branch(self, service):
        with pytest.raises(ExternalServiceError) as exc_info:
            asyncio.run(upload(service, "nope", [PendingChange("a", b"a")], "msg"))
        assert exc_info.value.status == 404

    def test_failure_leaves_branch_untouched(self, service):
        head = _head(service)
        service._fail_tree_at = 1
        with pytest.raises(ExternalServiceError):
            _upload(service, {"a/b.txt": b"b"})
        assert _head(service) == head

    def test_diverged_branch_rejected(self, service):
        class RacingService(RecordingService):
            async def create_commit(self, message, tree, parents):
                # Someone else pushes between our read and our ref update.
                seed(self, {"other.txt": b"other"})
                return await super().create_commit(message, tree, parents)

        racing = RacingService(service.repo)
        with pytest.raises(ExternalServiceError) as exc_info:
            _upload(racing, {"mine.txt": b"mine"})
        assert exc_info.value.status == 422
        assert read_file(racing, racing.repo.object_store[
            _head(racing).encode()].tree.decode(), "other.txt") == b"other"

    def test_force_overrides_fast_forward_check(self, service):
        class RacingService(RecordingService):
            async def create_commit(self, message, tree, parents):
                seed(self, {"other.txt": b"other"})
                return await super().create_commit(message, tree, parents)

        racing = RacingService(service.repo)
        result = _upload(racing, {"mine.txt": b"mine"}, force=True)
        assert _head(racing) == result.commit_sha


class TestFetchIndex:
    def test_fetches_referenced_top_level_directories(self, service):
        seed(service, {
            "docs/a.md": b"a",
            "docs/sub/b.md": b"b",
            "src/main.py": b"m",
            "unrelated/x": b"x",
        })
        head, index = asyncio.run(fetch_index(
            service, "main", ["docs/sub/new.md", "src/new.py", "src/other.py", "top.txt", "fresh/x"],
        ))
        assert head.commit_sha == _head(service)
        recursive = sorted(ref for ref, rec in service.fetches if rec)
        assert recursive == sorted([index.get("docs").sha, index.get("src").sha])
        assert [rec for _, rec in service.fetches].count(False) == 1
        assert index.is_listed("docs")
        assert index.is_listed("docs/sub")
        assert not index.is_listed("unrelated")
        assert index.get("docs/sub/b.md") is not None
        assert index.get("unrelated/x") is None

    def test_named_directories(self, service):
        seed(service, {"docs/a.md": b"a", "notes.txt": b"n", "src/main.py": b"m"})
        _, index = asyncio.run(fetch_index(
            service, "main", directories=["docs", "notes.txt", "missing"],
        ))
        assert [ref for ref, rec in service.fetches if rec] == [index.get("docs").sha]
        assert index.is_listed("docs")
        assert index.get("src/main.py") is None


class TestLoadChanges:
    def test_relative_to_base_dir(self, tmp_path):
        (tmp_path / "docs").mkdir()
        f = tmp_path / "docs" / "readme.md"
        f.write_bytes(b"hi")
        changes = load_changes([f], base_dir=tmp_path)
        assert changes == [PendingChange("docs/readme.md", b"hi", GIT_FILEMODE_BLOB)]

    def test_prefix(self, tmp_path):
        f = tmp_path / "a.txt"
        f.write_bytes(b"a")
        changes = load_changes([f], base_dir=tmp_path, prefix="/site/static/")
        assert changes[0].path == "site/static/a.txt"

    def test_outside_base_dir(self, tmp_path):
        (tmp_path / "base").mkdir()
        f = tmp_path / "outside.txt"
        f.write_bytes(b"x")
        with pytest.raises(ValueError):
            load_changes([f], base_dir=tmp_path / "base")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_changes([tmp_path / "nope.txt"], base_dir=tmp_path)

    def test_directory_rejected(self, tmp_path):
        (tmp_path / "d").mkdir()
        with pytest.raises(IsADirectoryError):
            load_changes([tmp_path / "d"], base_dir=tmp_path)

    @pytest.mark.skipif(os.name == "nt", reason="no executable bit on Windows")
    def test_executable(self, tmp_path):
        f = tmp_path / "run.sh"
        f.write_bytes(b"#!/bin/sh\n")
        f.chmod(0o755)
        assert load_changes([f], base_dir=tmp_path)[0].mode == GIT_FILEMODE_BLOB_EXECUTABLE
