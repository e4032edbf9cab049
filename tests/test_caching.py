import io
import json
import tarfile
from pathlib import Path
from unittest import mock

import pytest
import requests

from crate_docs_cache.caching import cache_crate_with_source, cache_workspace_members
from crate_docs_cache.crate_cache import CrateCache
from crate_docs_cache.downloader import CratesIoParams, GitHubParams, LocalParams

WORKSPACE_TOML = '[workspace]\nmembers = ["crates/a", "crates/b"]\n'


def _tarball(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class _FakeResponse:
    def __init__(self, body: bytes):
        self.status_code = 200
        self._body = body

    def iter_content(self, chunk_size=1):
        yield self._body


class _FakeSession:
    def __init__(self, body: bytes):
        self.body = body
        self.urls = []

    def get(self, url, stream=False):
        self.urls.append(url)
        return _FakeResponse(self.body)


class _FailingSession:
    def get(self, url, stream=False):
        raise requests.ConnectionError("offline")


def _no_tools():
    return mock.patch("subprocess.run", side_effect=FileNotFoundError("rustup"))


@pytest.fixture
def local_crate(tmp_path: Path) -> Path:
    crate_dir = tmp_path / "local" / "demo"
    (crate_dir / "src").mkdir(parents=True)
    (crate_dir / "Cargo.toml").write_text(
        '[package]\nname = "demo"\nversion = "0.3.0"\n\n'
        '[workspace]\nmembers = ["crates/a", "crates/b"]\n',
        encoding="utf-8",
    )
    (crate_dir / "src" / "lib.rs").write_text("pub fn demo() {}\n", encoding="utf-8")
    for member in ("a", "b"):
        member_dir = crate_dir / "crates" / member
        member_dir.mkdir(parents=True)
        (member_dir / "Cargo.toml").write_text(
            f'[package]\nname = "{member}"\nversion = "0.1.0"\n', encoding="utf-8"
        )
    return crate_dir


@pytest.fixture
def cache(tmp_path: Path) -> CrateCache:
    return CrateCache(tmp_path / "cache")


def _write_docs(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('{"index": {}}', encoding="utf-8")


def test_github_without_reference_is_rejected(cache):
    result = json.loads(
        cache_crate_with_source(
            cache, GitHubParams(crate_name="repo", github_url="https://github.com/o/r")
        )
    )
    assert result == {"error": "Either branch or tag must be specified"}


def test_local_path_failure_is_reported(cache, tmp_path):
    result = json.loads(
        cache_crate_with_source(
            cache, LocalParams(crate_name="demo", path=str(tmp_path / "missing"))
        )
    )
    assert result["error"].startswith("Failed to resolve local path: Local path does not exist")


def test_download_failure_is_reported(tmp_path):
    cache = CrateCache(tmp_path / "cache", client=_FailingSession())
    result = json.loads(
        cache_crate_with_source(cache, CratesIoParams(crate_name="serde", version="1.0.0"))
    )
    assert result["error"].startswith("Failed to download crate: Failed to download serde-1.0.0")


def test_regular_local_crate_with_existing_docs(cache, local_crate):
    (local_crate / "Cargo.toml").write_text(
        '[package]\nname = "demo"\nversion = "0.3.0"\n', encoding="utf-8"
    )
    _write_docs(cache.storage.docs_path("demo", "0.3.0"))

    result = json.loads(
        cache_crate_with_source(cache, LocalParams(crate_name="demo", path=str(local_crate)))
    )
    assert result["status"] == "success"
    assert result["message"] == "Successfully cached demo-0.3.0"
    assert result["version"] == "0.3.0"
    assert (cache.storage.source_path("demo", "0.3.0") / "src" / "lib.rs").exists()
    assert cache.storage.load_metadata("demo", "0.3.0").source == "local"


def test_crates_io_workspace_is_detected(tmp_path):
    session = _FakeSession(_tarball({"ws-1.0.0/Cargo.toml": WORKSPACE_TOML}))
    cache = CrateCache(tmp_path / "cache", client=session)

    result = json.loads(
        cache_crate_with_source(cache, CratesIoParams(crate_name="ws", version="1.0.0"))
    )
    assert result["status"] == "workspace_detected"
    assert result["workspace_members"] == ["crates/a", "crates/b"]
    assert "cache_crate_from_cratesio" in result["example_usage"]
    assert "updated" not in result
    assert session.urls == ["https://crates.io/api/v1/crates/ws/1.0.0/download"]


def test_crates_io_workspace_update_marks_updated(tmp_path):
    session = _FakeSession(_tarball({"ws-1.0.0/Cargo.toml": WORKSPACE_TOML}))
    cache = CrateCache(tmp_path / "cache", client=session)
    cache_crate_with_source(cache, CratesIoParams(crate_name="ws", version="1.0.0"))

    result = json.loads(
        cache_crate_with_source(
            cache, CratesIoParams(crate_name="ws", version="1.0.0", update=True)
        )
    )
    assert result["status"] == "workspace_detected"
    assert result["updated"] is True
    assert cache.storage.is_cached("ws", "1.0.0")


def test_members_with_existing_docs_succeed(cache, local_crate):
    _write_docs(cache.storage.member_docs_path("demo", "0.3.0", "a"))

    result = json.loads(
        cache_crate_with_source(
            cache,
            LocalParams(crate_name="demo", path=str(local_crate), members=["crates/a"]),
        )
    )
    assert result["status"] == "success"
    assert result["members"] == ["crates/a"]
    assert result["results"] == ["Successfully cached member: crates/a"]
    assert result["message"] == "Successfully cached 1 workspace members"


def test_cache_workspace_members_partial(cache):
    _write_docs(cache.storage.member_docs_path("demo", "0.3.0", "a"))
    with _no_tools():
        response = cache_workspace_members(
            cache, "demo", "0.3.0", ["crates/a", "crates/b"], None, False
        )
    assert response.status == "partial_success"
    assert response.results == ["Successfully cached member: crates/a"]
    assert len(response.errors) == 1
    assert response.errors[0].startswith("Failed to cache member crates/b: ")
    assert response.message == "Cached 1 members with 1 errors"


def test_failed_update_restores_backup(cache, local_crate):
    (local_crate / "Cargo.toml").write_text(
        '[package]\nname = "demo"\nversion = "0.3.0"\n', encoding="utf-8"
    )
    old_source = cache.storage.source_path("demo", "0.3.0")
    old_source.mkdir(parents=True)
    (old_source / "old.txt").write_text("original content", encoding="utf-8")

    with _no_tools():
        result = json.loads(
            cache_crate_with_source(
                cache,
                LocalParams(crate_name="demo", path=str(local_crate), update=True),
            )
        )
    assert result["error"].startswith("Update failed, restored from backup: ")
    assert (old_source / "old.txt").read_text(encoding="utf-8") == "original content"
    assert not (old_source / "src").exists()


def test_failed_member_update_restores_backup(cache, local_crate):
    old_source = cache.storage.source_path("demo", "0.3.0")
    old_source.mkdir(parents=True)
    (old_source / "old.txt").write_text("original content", encoding="utf-8")

    with _no_tools():
        result = json.loads(
            cache_crate_with_source(
                cache,
                LocalParams(
                    crate_name="demo",
                    path=str(local_crate),
                    members=["crates/b"],
                    update=True,
                ),
            )
        )
    assert "Failed to update any workspace members" in result["error"]
    assert (old_source / "old.txt").exists()
    assert not (old_source / "crates").exists()