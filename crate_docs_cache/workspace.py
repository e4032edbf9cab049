"""Reading Cargo manifests: workspace detection, members, package name and version."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from crate_docs_cache.utils import CacheError


def _load_manifest(cargo_toml_path: str | Path) -> dict[str, Any]:
    path = Path(cargo_toml_path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CacheError(f"Failed to read Cargo.toml at {path}") from exc
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise CacheError(f"Failed to parse Cargo.toml at {path}") from exc


def is_workspace(cargo_toml_path: str | Path) -> bool:
    """Return True if the manifest is virtual: a [workspace] without a [package]."""
    manifest = _load_manifest(cargo_toml_path)
    return "workspace" in manifest and "package" not in manifest


def get_workspace_members(cargo_toml_path: str | Path) -> list[str]:
    """Return the literal workspace member paths; glob patterns are left out."""
    manifest = _load_manifest(cargo_toml_path)
    workspace = manifest.get("workspace")
    if workspace is None:
        raise CacheError("No [workspace] section found in Cargo.toml")
    members = workspace.get("members") if isinstance(workspace, dict) else None
    if not isinstance(members, list):
        raise CacheError("No members array found in [workspace] section")
    return [
        member for member in members if isinstance(member, str) and "*" not in member
    ]


def _package_field(cargo_toml_path: str | Path, key: str) -> str:
    manifest = _load_manifest(cargo_toml_path)
    package = manifest.get("package")
    if package is None:
        raise CacheError("No [package] section found in Cargo.toml")
    value = package.get(key) if isinstance(package, dict) else None
    if not isinstance(value, str):
        raise CacheError(f"No '{key}' field found in [package] section")
    return value


def get_package_name(cargo_toml_path: str | Path) -> str:
    """Return the package name from a manifest."""
    return _package_field(cargo_toml_path, "name")


def get_package_version(cargo_toml_path: str | Path) -> str:
    """Return the package version from a manifest."""
    return _package_field(cargo_toml_path, "version")


def extract_member_name(member_path: str) -> str:
    """Return the last component of a member path."""
    return member_path.split("/")[-1]