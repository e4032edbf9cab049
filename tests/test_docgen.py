import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from crate_docs_cache.docgen import REQUIRED_TOOLCHAIN, DocGenerator
from crate_docs_cache.storage import CacheStorage
from crate_docs_cache.utils import CacheError


@pytest.fixture
def storage(tmp_path):
    return CacheStorage(tmp_path / "cache")


@pytest.fixture
def docgen(storage):
    return DocGenerator(storage)


def _done(args, returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


def _fake_cargo(doc_payload, calls, rustdoc_fails=False, toolchains=None):
    listed = toolchains if toolchains is not None else f"{REQUIRED_TOOLCHAIN}-x86_64\n".encode()

    def fake_run(args, cwd=None, **kwargs):
        calls.append((list(args), cwd))
        if args[0] == "rustup":
            return _done(args, stdout=listed)
        if "rustdoc" in args:
            if rustdoc_fails:
                return _done(args, returncode=101, stderr=b"compile error")
            package = args[args.index("-p") + 1] if "-p" in args else None
            name = (package or "my-crate").replace("-", "_")
            doc_dir = Path(cwd) / "target" / "doc"
            doc_dir.mkdir(parents=True, exist_ok=True)
            (doc_dir / f"{name}.json").write_text(json.dumps(doc_payload))
            return _done(args)
        if "metadata" in args:
            return _done(args, stdout=b'{"packages": []}')
        raise AssertionError(f"unexpected command {args}")

    return fake_run


def test_docgen_creation(docgen):
    assert "DocGenerator" in repr(docgen)


def test_find_json_doc_not_found(docgen, tmp_path):
    doc_dir = tmp_path / "doc"
    doc_dir.mkdir()
    with pytest.raises(CacheError):
        docgen.find_json_doc(doc_dir, "nonexistent")


def test_find_json_doc_found(docgen, tmp_path):
    doc_dir = tmp_path / "doc"
    doc_dir.mkdir()
    json_file = doc_dir / "test_crate.json"
    json_file.write_text("{}")
    assert docgen.find_json_doc(doc_dir, "test_crate") == json_file


def test_find_json_doc_with_underscore_conversion(docgen, tmp_path):
    doc_dir = tmp_path / "doc"
    doc_dir.mkdir()
    json_file = doc_dir / "test_crate.json"
    json_file.write_text("{}")
    assert docgen.find_json_doc(doc_dir, "test-crate") == json_file


def test_find_json_doc_falls_back_to_any_json(docgen, tmp_path):
    doc_dir = tmp_path / "doc"
    doc_dir.mkdir()
    (doc_dir / "notes.txt").write_text("x")
    other = doc_dir / "other.json"
    other.write_text("{}")
    assert docgen.find_json_doc(doc_dir, "missing") == other


def test_find_json_doc_missing_directory(docgen, tmp_path):
    with pytest.raises(CacheError, match="Failed to read doc directory"):
        docgen.find_json_doc(tmp_path / "absent", "x")


def test_load_docs_missing(docgen):
    with pytest.raises(CacheError, match="Documentation not found for a-1.0.0"):
        docgen.load_docs("a", "1.0.0")


def test_load_docs_reads_json(docgen, storage):
    storage.ensure_dir(storage.crate_path("a", "1.0.0"))
    storage.docs_path("a", "1.0.0").write_text('{"index": {}}')
    assert docgen.load_docs("a", "1.0.0") == {"index": {}}


def test_load_docs_invalid_json(docgen, storage):
    storage.ensure_dir(storage.crate_path("a", "1.0.0"))
    storage.docs_path("a", "1.0.0").write_text("not json")
    with pytest.raises(CacheError, match="Failed to parse documentation JSON"):
        docgen.load_docs("a", "1.0.0")


def test_load_dependencies(docgen, storage):
    with pytest.raises(CacheError, match="Dependencies not found"):
        docgen.load_dependencies("a", "1.0.0")
    storage.ensure_dir(storage.crate_path("a", "1.0.0"))
    storage.dependencies_path("a", "1.0.0").write_text('{"packages": [1]}')
    assert docgen.load_dependencies("a", "1.0.0") == {"packages": [1]}


def test_load_member_docs(docgen, storage):
    with pytest.raises(CacheError, match="workspace member m"):
        docgen.load_member_docs("a", "1.0.0", "m")
    storage.ensure_dir(storage.member_path("a", "1.0.0", "m"))
    storage.member_docs_path("a", "1.0.0", "m").write_text('{"root": 1}')
    assert docgen.load_member_docs("a", "1.0.0", "m") == {"root": 1}


def test_generate_docs_requires_toolchain(docgen, storage):
    storage.ensure_dir(storage.source_path("my-crate", "1.0.0"))
    calls = []
    fake = _fake_cargo({}, calls, toolchains=b"stable-x86_64\n")
    with patch("subprocess.run", side_effect=fake):
        with pytest.raises(CacheError, match="is not installed"):
            docgen.generate_docs("my-crate", "1.0.0")
    assert len(calls) == 1


def test_generate_docs_missing_source(docgen):
    calls = []
    with patch("subprocess.run", side_effect=_fake_cargo({}, calls)):
        with pytest.raises(CacheError, match="Source not found for my-crate-1.0.0"):
            docgen.generate_docs("my-crate", "1.0.0")


def test_generate_docs_success(docgen, storage):
    source = storage.source_path("my-crate", "1.0.0")
    storage.ensure_dir(source)
    payload = {"index": {"0": {"name": "my_crate"}}}
    calls = []
    with patch("subprocess.run", side_effect=_fake_cargo(payload, calls)):
        docs_path = docgen.generate_docs("my-crate", "1.0.0")

    assert docs_path == storage.docs_path("my-crate", "1.0.0")
    assert docgen.load_docs("my-crate", "1.0.0") == payload
    assert docgen.load_dependencies("my-crate", "1.0.0") == {"packages": []}
    assert storage.load_metadata("my-crate", "1.0.0").doc_generated is True
    rustdoc_args, rustdoc_cwd = calls[1]
    assert rustdoc_args[:3] == ["cargo", f"+{REQUIRED_TOOLCHAIN}", "rustdoc"]
    assert Path(rustdoc_cwd) == source


def test_generate_docs_rustdoc_failure(docgen, storage):
    storage.ensure_dir(storage.source_path("my-crate", "1.0.0"))
    calls = []
    with patch("subprocess.run", side_effect=_fake_cargo({}, calls, rustdoc_fails=True)):
        with pytest.raises(CacheError, match="compile error"):
            docgen.generate_docs("my-crate", "1.0.0")
    assert not storage.has_docs("my-crate", "1.0.0")


def test_generate_workspace_member_docs(docgen, storage):
    source = storage.source_path("ws", "main")
    member_dir = source / "crates" / "foo"
    member_dir.mkdir(parents=True)
    (source / "Cargo.toml").write_text('[workspace]\nmembers = ["crates/foo"]\n')
    (member_dir / "Cargo.toml").write_text(
        '[package]\nname = "foo-pkg"\nversion = "0.1.0"\n'
    )
    payload = {"index": {}, "root": 7}
    calls = []
    with patch("subprocess.run", side_effect=_fake_cargo(payload, calls)):
        docs_path = docgen.generate_workspace_member_docs("ws", "main", "crates/foo")

    assert docs_path == storage.member_docs_path("ws", "main", "foo")
    assert docgen.load_member_docs("ws", "main", "foo") == payload
    deps = storage.member_dependencies_path("ws", "main", "foo")
    assert json.loads(deps.read_text()) == {"packages": []}
    rustdoc_args = calls[1][0]
    assert rustdoc_args[rustdoc_args.index("-p") + 1] == "foo-pkg"
    metadata_args = calls[2][0]
    assert metadata_args[-1] == str(member_dir / "Cargo.toml")


def test_generate_workspace_member_missing(docgen, storage):
    storage.ensure_dir(storage.source_path("ws", "main"))
    calls = []
    with patch("subprocess.run", side_effect=_fake_cargo({}, calls)):
        with pytest.raises(CacheError, match="Workspace member not found"):
            docgen.generate_workspace_member_docs("ws", "main", "crates/absent")