"""The crate cache: fetching sources and producing and loading their documentation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import requests

from crate_docs_cache.docgen import DocGenerator
from crate_docs_cache.downloader import CrateDownloader
from crate_docs_cache.storage import CacheStorage, CrateMetadata
from crate_docs_cache.utils import CacheError
from crate_docs_cache.workspace import (
    extract_member_name,
    get_workspace_members,
    is_workspace,
)


def _workspace_error(members: list[str]) -> CacheError:
    listed = "[" + ", ".join(json.dumps(m, ensure_ascii=False) for m in members) + "]"
    example = members[0] if members else "crates/example"
    return CacheError(
        "This is a workspace crate. Please specify a member using the 'member' parameter.\n"
        f"Available members: {listed}\n"
        f'Example: specify member="{example}"'
    )


def _as_crate(value: Any, failure: str) -> dict[str, Any]:
    if not isinstance(value, dict) or "index" not in value:
        raise CacheError(failure)
    return value


class CrateCache:
    """Coordinates storage, downloading and documentation generation."""

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        *,
        client: requests.Session | None = None,
    ):
        self.storage = CacheStorage(cache_dir)
        self.downloader = CrateDownloader(self.storage, client)
        self.doc_generator = DocGenerator(self.storage)

    def __repr__(self) -> str:
        return f"CrateCache(storage={self.storage!r})"

    def ensure_crate_docs(
        self, name: str, version: str, source: str | None = None
    ) -> dict[str, Any]:
        """Return a crate's docs, downloading and generating them if needed."""
        if self.storage.has_docs(name, version):
            return self.load_docs(name, version)
        if not self.storage.is_cached(name, version):
            self.download_or_copy_crate(name, version, source)
        self.generate_docs(name, version)
        return self.load_docs(name, version)

    def ensure_workspace_member_docs(
        self, name: str, version: str, source: str | None, member_path: str
    ) -> dict[str, Any]:
        """Return a workspace member's docs, downloading and generating them if needed."""
        member_name = extract_member_name(member_path)
        if self.storage.has_member_docs(name, version, member_name):
            return self.load_member_docs(name, version, member_name)
        if not self.storage.is_cached(name, version):
            self.download_or_copy_crate(name, version, source)
        self.generate_workspace_member_docs(name, version, member_path)
        return self.load_member_docs(name, version, member_name)

    def ensure_crate_or_member_docs(
        self, name: str, version: str, member: str | None = None
    ) -> dict[str, Any]:
        """Return docs for a crate, or for a member when one is named."""
        if member is not None:
            return self.ensure_workspace_member_docs(name, version, None, member)
        if self.storage.is_cached(name, version):
            manifest = self.storage.source_path(name, version) / "Cargo.toml"
            if manifest.exists() and is_workspace(manifest):
                raise _workspace_error(get_workspace_members(manifest))
        return self.ensure_crate_docs(name, version, None)

    def download_or_copy_crate(
        self, name: str, version: str, source: str | None = None
    ) -> Path:
        return self.downloader.download_or_copy_crate(name, version, source)

    def generate_docs(self, name: str, version: str) -> Path:
        return self.doc_generator.generate_docs(name, version)

    def generate_workspace_member_docs(
        self, name: str, version: str, member_path: str
    ) -> Path:
        return self.doc_generator.generate_workspace_member_docs(
            name, version, member_path
        )

    def load_docs(self, name: str, version: str) -> dict[str, Any]:
        return _as_crate(
            self.doc_generator.load_docs(name, version),
            "Failed to parse documentation JSON",
        )

    def load_member_docs(
        self, name: str, version: str, member_name: str
    ) -> dict[str, Any]:
        return _as_crate(
            self.doc_generator.load_member_docs(name, version, member_name),
            "Failed to parse member documentation JSON",
        )

    def get_cached_versions(self, name: str) -> list[str]:
        """Versions of a crate present in the cache."""
        return [meta.version for meta in self.storage.list_cached_crates() if meta.name == name]

    def list_all_cached_crates(self) -> list[CrateMetadata]:
        return self.storage.list_cached_crates()

    def remove_crate(self, name: str, version: str) -> None:
        self.storage.remove_crate(name, version)

    def get_source_path(self, name: str, version: str) -> Path:
        return self.storage.source_path(name, version)

    def ensure_crate_source(
        self, name: str, version: str, source: str | None = None
    ) -> Path:
        """Return the crate's source directory, downloading it if needed."""
        if not self.storage.is_cached(name, version):
            self.download_or_copy_crate(name, version, source)
        return self.storage.source_path(name, version)

    def ensure_crate_or_member_source(
        self,
        name: str,
        version: str,
        member: str | None = None,
        source: str | None = None,
    ) -> Path:
        """Return the source directory of a crate, or of a member when one is named."""
        source_path = self.ensure_crate_source(name, version, source)
        if member is not None:
            member_source = source_path / member
            if not (member_source / "Cargo.toml").exists():
                raise CacheError(
                    f"Workspace member '{member}' not found in {name}-{version}. "
                    "Make sure the member path is correct."
                )
            return member_source

        manifest = source_path / "Cargo.toml"
        if manifest.exists() and is_workspace(manifest):
            raise _workspace_error(get_workspace_members(manifest))
        return source_path

    def load_dependencies(self, name: str, version: str) -> Any:
        return self.doc_generator.load_dependencies(name, version)