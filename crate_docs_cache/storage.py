"""File system layout and metadata for cached crates and their documentation."""

from __future__ import annotations

import json
import os
import re
import shutil
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from crate_docs_cache.utils import CacheError, copy_directory_contents

DEFAULT_SOURCE = "crates.io"

_TIMESTAMP = re.compile(r"^(?P<base>[^.]+?)(?:\.(?P<fraction>\d+))?(?P<zone>Z|[+-]\d\d:\d\d)?$")


def _format_timestamp(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    micro = moment.microsecond
    if micro:
        text += f".{micro // 1000:03d}" if micro % 1000 == 0 else f".{micro:06d}"
    return text + "Z"


def _parse_timestamp(text: str) -> datetime:
    match = _TIMESTAMP.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid timestamp: {text!r}")
    normalized = match["base"]
    if match["fraction"]:
        normalized += "." + match["fraction"][:6].ljust(6, "0")
    zone = match["zone"]
    normalized += "+00:00" if zone in (None, "Z") else zone
    return datetime.fromisoformat(normalized).astimezone(timezone.utc)


@dataclass
class CrateMetadata:
    """Metadata about a cached crate version."""

    name: str
    version: str
    cached_at: datetime
    doc_generated: bool
    size_bytes: int
    source: str = DEFAULT_SOURCE
    source_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "cached_at": _format_timestamp(self.cached_at),
            "doc_generated": self.doc_generated,
            "size_bytes": self.size_bytes,
            "source": self.source,
            "source_path": self.source_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CrateMetadata:
        try:
            return cls(
                name=str(data["name"]),
                version=str(data["version"]),
                cached_at=_parse_timestamp(data["cached_at"]),
                doc_generated=bool(data["doc_generated"]),
                size_bytes=int(data["size_bytes"]),
                source=data.get("source", DEFAULT_SOURCE),
                source_path=data.get("source_path"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheError(f"Invalid crate metadata: {exc}") from exc


class CacheStorage:
    """Manages the on-disk layout of the crate cache."""

    def __init__(self, cache_dir: str | Path | None = None):
        if cache_dir is None:
            cache_dir = Path.home() / ".rust-docs-mcp" / "cache"
        self.cache_dir = Path(cache_dir)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError("Failed to create cache directory") from exc

    def __repr__(self) -> str:
        return f"CacheStorage(cache_dir={str(self.cache_dir)!r})"

    def crate_path(self, name: str, version: str) -> Path:
        """Directory holding one cached crate version."""
        if not name:
            raise ValueError("Crate name cannot be empty")
        if not version:
            raise ValueError("Crate version cannot be empty")
        return self.cache_dir / "crates" / name / version

    def member_path(self, name: str, version: str, member_name: str) -> Path:
        return self.crate_path(name, version) / "members" / member_name

    def source_path(self, name: str, version: str) -> Path:
        return self.crate_path(name, version) / "source"

    def docs_path(self, name: str, version: str) -> Path:
        return self.crate_path(name, version) / "docs.json"

    def member_docs_path(self, name: str, version: str, member_name: str) -> Path:
        return self.member_path(name, version, member_name) / "docs.json"

    def metadata_path(self, name: str, version: str) -> Path:
        return self.crate_path(name, version) / "metadata.json"

    def member_metadata_path(self, name: str, version: str, member_name: str) -> Path:
        return self.member_path(name, version, member_name) / "metadata.json"

    def dependencies_path(self, name: str, version: str) -> Path:
        return self.crate_path(name, version) / "dependencies.json"

    def member_dependencies_path(
        self, name: str, version: str, member_name: str
    ) -> Path:
        return self.member_path(name, version, member_name) / "dependencies.json"

    def is_cached(self, name: str, version: str) -> bool:
        return self.crate_path(name, version).exists()

    def has_docs(self, name: str, version: str) -> bool:
        return self.docs_path(name, version).exists()

    def is_member_cached(self, name: str, version: str, member_name: str) -> bool:
        return self.member_path(name, version, member_name).exists()

    def has_member_docs(self, name: str, version: str, member_name: str) -> bool:
        return self.member_docs_path(name, version, member_name).exists()

    def ensure_dir(self, path: str | Path) -> None:
        """Create a directory and its parents if missing."""
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"Failed to create directory: {path}") from exc

    def calculate_dir_size(self, path: str | Path) -> int:
        """Total size in bytes of all files below a directory."""
        path = Path(path)
        if not path.exists():
            return 0
        total = 0
        with os.scandir(path) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    total += self.calculate_dir_size(entry.path)
                else:
                    total += entry.stat(follow_symlinks=False).st_size
        return total

    def save_metadata(self, name: str, version: str) -> None:
        self.save_metadata_with_source(name, version, DEFAULT_SOURCE, None)

    def save_metadata_with_source(
        self,
        name: str,
        version: str,
        source: str,
        source_path: str | None = None,
    ) -> None:
        """Write metadata.json for a crate, recording where it came from."""
        metadata = CrateMetadata(
            name=name,
            version=version,
            cached_at=datetime.now(timezone.utc),
            doc_generated=self.has_docs(name, version),
            size_bytes=self.calculate_dir_size(self.crate_path(name, version)),
            source=source,
            source_path=source_path,
        )
        self.metadata_path(name, version).write_text(
            json.dumps(metadata.to_dict(), indent=2), encoding="utf-8"
        )

    def load_metadata(self, name: str, version: str) -> CrateMetadata:
        return self._read_metadata(self.metadata_path(name, version))

    def load_member_metadata(
        self, name: str, version: str, member_name: str
    ) -> CrateMetadata:
        return self._read_metadata(self.member_metadata_path(name, version, member_name))

    @staticmethod
    def _read_metadata(path: Path) -> CrateMetadata:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CacheError(f"Failed to read metadata at {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CacheError(f"Invalid metadata at {path}")
        return CrateMetadata.from_dict(data)

    def list_cached_crates(self) -> list[CrateMetadata]:
        """Metadata of every cached crate version, synthesised where missing."""
        crates_dir = self.cache_dir / "crates"
        if not crates_dir.exists():
            return []
        cached = []
        for crate_dir in sorted(crates_dir.iterdir()):
            if not crate_dir.is_dir():
                continue
            for version_dir in sorted(crate_dir.iterdir()):
                if not version_dir.is_dir():
                    continue
                name, version = crate_dir.name, version_dir.name
                try:
                    metadata = self.load_metadata(name, version)
                except CacheError:
                    try:
                        cached_at = datetime.fromtimestamp(
                            version_dir.stat().st_mtime, timezone.utc
                        )
                    except OSError:
                        cached_at = datetime.now(timezone.utc)
                    metadata = CrateMetadata(
                        name=name,
                        version=version,
                        cached_at=cached_at,
                        doc_generated=self.has_docs(name, version),
                        size_bytes=0,
                    )
                cached.append(metadata)
        return cached

    def list_workspace_members(self, name: str, version: str) -> list[str]:
        """Names of workspace members cached for a crate version."""
        members_dir = self.crate_path(name, version) / "members"
        if not members_dir.exists():
            return []
        return sorted(entry.name for entry in members_dir.iterdir() if entry.is_dir())

    def remove_crate(self, name: str, version: str) -> None:
        path = self.crate_path(name, version)
        if path.exists():
            try:
                shutil.rmtree(path)
            except OSError as exc:
                raise CacheError(
                    f"Failed to remove crate cache: {name}/{version}"
                ) from exc

    def backup_crate_to_temp(self, name: str, version: str) -> Path:
        """Copy a cached crate to a fresh temporary directory and return its path."""
        source = self.crate_path(name, version)
        if not source.exists():
            raise CacheError(f"Crate {name}-{version} not found in cache")
        backup = (
            Path(tempfile.gettempdir())
            / "rust-docs-mcp-backup"
            / f"{name}-{version}-{time.time_ns()}-{os.getpid()}"
        )
        self.ensure_dir(backup)
        try:
            copy_directory_contents(source, backup)
        except CacheError as exc:
            raise CacheError(f"Failed to backup crate {name}-{version}") from exc
        return backup

    def restore_crate_from_backup(
        self, name: str, version: str, backup_path: str | Path
    ) -> None:
        """Replace a cached crate with the contents of a backup."""
        backup_path = Path(backup_path)
        if not backup_path.exists():
            raise CacheError(f"Backup path does not exist: {backup_path}")
        target = self.crate_path(name, version)
        if target.exists():
            try:
                shutil.rmtree(target)
            except OSError as exc:
                raise CacheError(
                    "Failed to remove existing crate before restore"
                ) from exc
        self.ensure_dir(target.parent)
        self.ensure_dir(target)
        try:
            copy_directory_contents(backup_path, target)
        except CacheError as exc:
            raise CacheError(
                f"Failed to restore crate {name}-{version} from backup"
            ) from exc

    def cleanup_backup(self, backup_path: str | Path) -> None:
        backup_path = Path(backup_path)
        if backup_path.exists():
            try:
                shutil.rmtree(backup_path)
            except OSError as exc:
                raise CacheError(f"Failed to cleanup backup at {backup_path}") from exc