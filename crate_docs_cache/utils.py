"""Shared helpers for the cache: directory copying, size formatting and responses."""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_SKIPPED_DIRS = frozenset({".git", ".svn", ".hg"})
_UNITS = ("B", "KB", "MB", "GB", "TB")


class CacheError(Exception):
    """Raised when a cache operation fails."""


def copy_directory_contents(src: str | Path, dest: str | Path) -> None:
    """Recursively copy a directory's contents, skipping version control directories."""
    src, dest = Path(src), Path(dest)
    if not src.exists():
        raise CacheError(f"Source directory does not exist: {src}")

    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CacheError(f"Failed to create directory: {dest}") from exc

    try:
        entries = list(src.iterdir())
    except OSError as exc:
        raise CacheError(f"Failed to read directory: {src}") from exc

    for entry in entries:
        target = dest / entry.name
        if entry.is_dir():
            if entry.name in _SKIPPED_DIRS:
                continue
            copy_directory_contents(entry, target)
        else:
            try:
                shutil.copy(entry, target)
            except OSError as exc:
                raise CacheError(
                    f"Failed to copy file from {entry} to {target}"
                ) from exc


def format_bytes(size: int) -> str:
    """Format a byte count as a human-readable string using powers of 1024."""
    if size <= 0:
        return "0 B"
    exponent = (size.bit_length() - 1) // 10
    unit = _UNITS[exponent] if exponent < len(_UNITS) else _UNITS[-1]
    value = size / (1024**exponent)
    if value.is_integer():
        return f"{value:.0f} {unit}"
    return f"{value:.2f} {unit}"


def _debug_list(items: list[str]) -> str:
    return "[" + ", ".join(json.dumps(item, ensure_ascii=False) for item in items) + "]"


@dataclass(frozen=True)
class CacheResponse:
    """Outcome of a cache operation, serialisable to JSON."""

    status: str | None = None
    message: str | None = None
    crate_name: str | None = None
    version: str | None = None
    members: list[str] | None = None
    results: list[str] | None = None
    errors: list[str] | None = None
    workspace_members: list[str] | None = None
    example_usage: str | None = None
    updated: bool | None = None
    error: str | None = None

    @classmethod
    def success(cls, crate_name: str, version: str) -> CacheResponse:
        return cls(
            status="success",
            message=f"Successfully cached {crate_name}-{version}",
            crate_name=crate_name,
            version=version,
        )

    @classmethod
    def success_updated(cls, crate_name: str, version: str) -> CacheResponse:
        return cls(
            status="success",
            message=f"Successfully updated {crate_name}-{version}",
            crate_name=crate_name,
            version=version,
            updated=True,
        )

    @classmethod
    def members_success(
        cls,
        crate_name: str,
        version: str,
        members: list[str],
        results: list[str],
        updated: bool,
    ) -> CacheResponse:
        verb = "updated" if updated else "cached"
        return cls(
            status="success",
            message=f"Successfully {verb} {len(results)} workspace members",
            crate_name=crate_name,
            version=version,
            members=list(members),
            results=list(results),
            updated=True if updated else None,
        )

    @classmethod
    def members_partial(
        cls,
        crate_name: str,
        version: str,
        members: list[str],
        results: list[str],
        errors: list[str],
        updated: bool,
    ) -> CacheResponse:
        verb = "Updated" if updated else "Cached"
        return cls(
            status="partial_success",
            message=f"{verb} {len(results)} members with {len(errors)} errors",
            crate_name=crate_name,
            version=version,
            members=list(members),
            results=list(results),
            errors=list(errors),
            updated=True if updated else None,
        )

    @classmethod
    def workspace_detected(
        cls,
        crate_name: str,
        version: str,
        members: list[str],
        source_type: str,
        updated: bool,
    ) -> CacheResponse:
        example_members = list(members[:2])
        return cls(
            status="workspace_detected",
            message=(
                "This is a workspace crate. Please specify which members to cache "
                "using the 'members' parameter."
            ),
            crate_name=crate_name,
            version=version,
            workspace_members=list(members),
            example_usage=(
                f'cache_crate_from_{source_type}(crate_name="{crate_name}", '
                f'version="{version}", members={_debug_list(example_members)})'
            ),
            updated=True if updated else None,
        )

    @classmethod
    def error(cls, message: str) -> CacheResponse:
        return cls(error=message)

    @property
    def is_error(self) -> bool:
        return self.status is None

    def to_dict(self) -> dict[str, Any]:
        """Return the response as a JSON-ready dictionary."""
        if self.status is None:
            return {"error": self.error}
        data: dict[str, Any] = {
            "status": self.status,
            "message": self.message,
            "crate": self.crate_name,
            "version": self.version,
        }
        optional = (
            ("members", self.members),
            ("results", self.results),
            ("errors", self.errors),
            ("workspace_members", self.workspace_members),
            ("example_usage", self.example_usage),
            ("updated", self.updated),
        )
        data.update((key, value) for key, value in optional if value is not None)
        return data

    def to_json(self) -> str:
        """Serialise the response to compact JSON."""
        try:
            return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            return '{"error":"Failed to serialize response"}'