import pytest

from crate_docs_cache.utils import CacheError
from crate_docs_cache.workspace import (
    extract_member_name,
    get_package_name,
    get_package_version,
    get_workspace_members,
    is_workspace,
)


@pytest.mark.parametrize(
    ("path", "expected"),
    [("crates/rmcp", "rmcp"), ("rmcp", "rmcp"), ("path/to/deep/crate", "crate")],
)
def test_extract_member_name(path, expected):
    assert extract_member_name(path) == expected


def test_get_package_version(tmp_path):
    cargo_toml = tmp_path / "Cargo.toml"
    cargo_toml.write_text('[package]\nname = "test-crate"\nversion = "1.2.3"\n')
    assert get_package_version(cargo_toml) == "1.2.3"


def test_get_package_version_missing(tmp_path):
    manifest = tmp_path / "no_version.toml"
    manifest.write_text('[package]\nname = "test-crate"\n')
    with pytest.raises(CacheError, match="No 'version' field"):
        get_package_version(manifest)


def test_get_package_name(tmp_path):
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text('[package]\nname = "my-crate"\nversion = "0.1.0"\n')
    assert get_package_name(manifest) == "my-crate"


def test_get_package_name_without_package(tmp_path):
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text('[workspace]\nmembers = ["a"]\n')
    with pytest.raises(CacheError, match=r"No \[package\] section"):
        get_package_name(manifest)


def test_workspace_detection(tmp_path):
    workspace_toml = tmp_path / "workspace.toml"
    workspace_toml.write_text('[workspace]\nmembers = ["crate-a", "crate-b"]\n')
    assert is_workspace(workspace_toml) is True

    crate_toml = tmp_path / "crate.toml"
    crate_toml.write_text('[package]\nname = "my-crate"\nversion = "0.1.0"\n')
    assert is_workspace(crate_toml) is False

    mixed_toml = tmp_path / "mixed.toml"
    mixed_toml.write_text(
        '[package]\nname = "my-crate"\nversion = "0.1.0"\n\n'
        '[workspace]\nmembers = ["sub-crate"]\n'
    )
    assert is_workspace(mixed_toml) is False


def test_workspace_members_skip_globs(tmp_path):
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text(
        '[workspace]\nmembers = ["crates/a", "examples/*", "tools/*", "crates/b"]\n'
    )
    assert get_workspace_members(manifest) == ["crates/a", "crates/b"]


def test_workspace_members_without_workspace(tmp_path):
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text('[package]\nname = "x"\n')
    with pytest.raises(CacheError, match=r"No \[workspace\] section"):
        get_workspace_members(manifest)


def test_workspace_members_without_array(tmp_path):
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text('[workspace]\nresolver = "2"\n')
    with pytest.raises(CacheError, match="No members array"):
        get_workspace_members(manifest)


def test_missing_manifest(tmp_path):
    with pytest.raises(CacheError, match="Failed to read Cargo.toml"):
        is_workspace(tmp_path / "absent.toml")


def test_invalid_manifest(tmp_path):
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text("[package\nname = ")
    with pytest.raises(CacheError, match="Failed to parse Cargo.toml"):
        is_workspace(manifest)