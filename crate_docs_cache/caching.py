"""Caching a crate from a request: regular crates, workspaces, members and updates."""

from __future__ import annotations

import json
from pathlib import Path

from crate_docs_cache.crate_cache import CrateCache
from crate_docs_cache.downloader import CrateSource
from crate_docs_cache.request import CacheRequest, build_request
from crate_docs_cache.transaction import CacheTransaction
from crate_docs_cache.utils import CacheError, CacheResponse
from crate_docs_cache.workspace import get_workspace_members, is_workspace

_FAILURES = (CacheError, OSError, ValueError)


def cache_workspace_members(
    cache: CrateCache,
    crate_name: str,
    version: str,
    members: list[str],
    source_str: str | None,
    updated: bool,
) -> CacheResponse:
    """Generate docs for each named workspace member and report how each went."""
    results: list[str] = []
    errors: list[str] = []
    for member in members:
        try:
            cache.ensure_workspace_member_docs(crate_name, version, source_str, member)
        except _FAILURES as exc:
            errors.append(f"Failed to cache member {member}: {exc}")
        else:
            results.append(f"Successfully cached member: {member}")

    if errors:
        return CacheResponse.members_partial(
            crate_name, version, list(members), results, errors, updated
        )
    return CacheResponse.members_success(
        crate_name, version, list(members), results, updated
    )


def _update(cache: CrateCache, request: CacheRequest) -> CacheResponse:
    if request.members is not None:
        response = cache_workspace_members(
            cache,
            request.crate_name,
            request.version,
            request.members,
            request.source_str,
            True,
        )
        if response.status == "partial_success" and not response.results:
            raise CacheError(
                "Failed to update any workspace members: "
                + json.dumps(response.errors, ensure_ascii=False)
            )
        return response

    source_path = cache.download_or_copy_crate(
        request.crate_name, request.version, request.source_str
    )
    manifest = source_path / "Cargo.toml"
    if is_workspace(manifest):
        return CacheResponse.workspace_detected(
            request.crate_name,
            request.version,
            get_workspace_members(manifest),
            request.source_type,
            True,
        )
    cache.ensure_crate_docs(request.crate_name, request.version, request.source_str)
    return CacheResponse.success_updated(request.crate_name, request.version)


def _handle_update(cache: CrateCache, request: CacheRequest) -> str:
    transaction = CacheTransaction(cache.storage, request.crate_name, request.version)
    try:
        transaction.begin()
    except CacheError as exc:
        try:
            transaction.rollback()
        except CacheError:
            pass
        return CacheResponse.error(f"Failed to start update transaction: {exc}").to_json()

    try:
        response = _update(cache, request)
    except _FAILURES as exc:
        try:
            transaction.rollback()
        except CacheError:
            pass
        return CacheResponse.error(
            f"Update failed, restored from backup: {exc}"
        ).to_json()

    transaction.commit()
    return response.to_json()


def _detect_and_handle_workspace(
    cache: CrateCache, request: CacheRequest, source_path: Path
) -> CacheResponse:
    manifest = source_path / "Cargo.toml"
    try:
        workspace = is_workspace(manifest)
    except CacheError:
        workspace = False

    if workspace:
        try:
            members = get_workspace_members(manifest)
        except CacheError as exc:
            raise CacheError(f"Failed to get workspace members: {exc}") from exc
        return CacheResponse.workspace_detected(
            request.crate_name, request.version, members, request.source_type, False
        )

    try:
        cache.ensure_crate_docs(request.crate_name, request.version, request.source_str)
    except _FAILURES as exc:
        raise CacheError(f"Failed to cache crate: {exc}") from exc
    return CacheResponse.success(request.crate_name, request.version)


def cache_crate_with_source(cache: CrateCache, source: CrateSource) -> str:
    """Cache a crate from any source and return the outcome as a JSON string."""
    try:
        request = build_request(source)
    except CacheError as exc:
        return CacheResponse.error(f"Failed to resolve local path: {exc}").to_json()

    if request.source_type == "github" and not request.version:
        return CacheResponse.error("Either branch or tag must be specified").to_json()

    if request.update and cache.storage.is_cached(request.crate_name, request.version):
        return _handle_update(cache, request)

    if request.members is not None:
        return cache_workspace_members(
            cache,
            request.crate_name,
            request.version,
            request.members,
            request.source_str,
            False,
        ).to_json()

    try:
        source_path = cache.download_or_copy_crate(
            request.crate_name, request.version, request.source_str
        )
    except _FAILURES as exc:
        return CacheResponse.error(f"Failed to download crate: {exc}").to_json()

    try:
        response = _detect_and_handle_workspace(cache, request, source_path)
    except _FAILURES as exc:
        return CacheResponse.error(f"Failed to cache crate: {exc}").to_json()
    return response.to_json()