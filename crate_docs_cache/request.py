"""Turning a caching request from any source into the values the cache works with."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from crate_docs_cache.downloader import (
    CratesIoParams,
    CrateSource,
    GitHubParams,
    LocalParams,
    _expand_path,
)
from crate_docs_cache.utils import CacheError
from crate_docs_cache.workspace import get_package_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheRequest:
    """A caching request reduced to name, version, source string and options."""

    crate_name: str
    version: str
    source_type: str
    source_str: str | None = None
    members: list[str] | None = None
    update: bool = False


def resolve_local_path_version(params: LocalParams) -> tuple[str, bool]:
    """Return the crate version found at a local path and whether it was auto-detected.

    A version given in the parameters must match the one in Cargo.toml.
    """
    local_path = _expand_path(params.path)
    if not local_path.exists():
        raise CacheError(f"Local path does not exist: {local_path}")

    cargo_toml = local_path / "Cargo.toml"
    if not cargo_toml.exists():
        raise CacheError(f"No Cargo.toml found at path: {local_path}")

    actual_version = get_package_version(cargo_toml)
    if params.version is None:
        return actual_version, True
    if params.version != actual_version:
        raise CacheError(
            f"Version mismatch: provided version '{params.version}' does not match "
            f"actual version '{actual_version}' in Cargo.toml"
        )
    return actual_version, False


def build_request(source: CrateSource) -> CacheRequest:
    """Build a request from source parameters, resolving a local crate's version.

    A GitHub source without a branch or tag yields an empty version.
    """
    if isinstance(source, LocalParams):
        version, auto_detected = resolve_local_path_version(source)
        if auto_detected:
            logger.info(
                "Auto-detected version '%s' from local path for crate '%s'",
                version,
                source.crate_name,
            )
        return CacheRequest(
            crate_name=source.crate_name,
            version=version,
            source_type="local",
            source_str=source.path,
            members=source.members,
            update=bool(source.update),
        )

    if isinstance(source, GitHubParams):
        if source.branch is not None:
            version = source.branch
            source_str = f"{source.github_url}#branch:{source.branch}"
        elif source.tag is not None:
            version = source.tag
            source_str = f"{source.github_url}#tag:{source.tag}"
        else:
            version = ""
            source_str = source.github_url
        return CacheRequest(
            crate_name=source.crate_name,
            version=version,
            source_type="github",
            source_str=source_str,
            members=source.members,
            update=bool(source.update),
        )

    if isinstance(source, CratesIoParams):
        return CacheRequest(
            crate_name=source.crate_name,
            version=source.version,
            source_type="cratesio",
            members=source.members,
            update=bool(source.update),
        )

    raise TypeError(f"Unsupported crate source: {source!r}")