"""Fetching crate sources from crates.io, GitHub repositories or local paths."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import requests

from crate_docs_cache.source import (
    CratesIoSource,
    GitHubSource,
    LocalSource,
    RefKind,
    detect_source,
)
from crate_docs_cache.storage import CacheStorage
from crate_docs_cache.utils import CacheError, copy_directory_contents

logger = logging.getLogger(__name__)

_CRATES_IO_DOWNLOAD = "https://crates.io/api/v1/crates/{name}/{version}/download"
_CHUNK_SIZE = 64 * 1024
_ENV_VAR = re.compile(r"\$(\w+|\{[^}]*\})")


@dataclass
class CratesIoParams:
    """Request to cache a crate version from crates.io."""

    crate_name: str
    version: str
    members: list[str] | None = None
    update: bool | None = None


@dataclass
class GitHubParams:
    """Request to cache a crate from a GitHub repository at a branch or tag."""

    crate_name: str
    github_url: str
    branch: str | None = None
    tag: str | None = None
    members: list[str] | None = None
    update: bool | None = None


@dataclass
class LocalParams:
    """Request to cache a crate from a local directory."""

    crate_name: str
    path: str
    version: str | None = None
    members: list[str] | None = None
    update: bool | None = None


CrateSource = CratesIoParams | GitHubParams | LocalParams


def _expand_path(path: str) -> Path:
    """Expand environment variables and a leading tilde, like a shell would."""

    def substitute(match: re.Match[str]) -> str:
        var = match.group(1).strip("{}")
        try:
            return os.environ[var]
        except KeyError:
            raise CacheError(
                f"Failed to expand path: {path}: environment variable {var} not found"
            ) from None

    return Path(os.path.expanduser(_ENV_VAR.sub(substitute, path)))


def _git(args: list[str], failure: str) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(["git", *args], capture_output=True, check=False)
    except OSError as exc:
        raise CacheError(f"{failure}: {exc}") from exc


def _stderr_text(result: subprocess.CompletedProcess) -> str:
    stderr = result.stderr or b""
    if isinstance(stderr, bytes):
        return stderr.decode("utf-8", errors="replace")
    return str(stderr)


class CrateDownloader:
    """Downloads or copies crate sources into the cache."""

    def __init__(self, storage: CacheStorage, client: requests.Session | None = None):
        self.storage = storage
        if client is None:
            client = requests.Session()
            client.headers["User-Agent"] = "crate-docs-cache"
        self.client = client

    def __repr__(self) -> str:
        return f"CrateDownloader(storage={self.storage!r})"

    def download_or_copy_crate(
        self, name: str, version: str, source: str | None = None
    ) -> Path:
        """Fetch a crate from the source the string names and return its cached path."""
        detected = detect_source(source)
        if isinstance(detected, GitHubSource):
            reference = detected.reference
            if reference.kind is RefKind.DEFAULT or reference.value is None:
                ref_name = "main"
            else:
                ref_name = reference.value
            return self._download_from_github(
                name, ref_name, detected.url, detected.repo_path
            )
        if isinstance(detected, LocalSource):
            return self._copy_from_local(name, version, detected.path)
        assert isinstance(detected, CratesIoSource)
        return self._download_crate(name, version)

    def _download_crate(self, name: str, version: str) -> Path:
        logger.info("Downloading crate %s-%s from crates.io", name, version)
        url = _CRATES_IO_DOWNLOAD.format(name=name, version=version)
        try:
            response = self.client.get(url, stream=True)
        except requests.RequestException as exc:
            raise CacheError(f"Failed to download {name}-{version}: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise CacheError(
                f"Failed to download {name}-{version}: HTTP {response.status_code}"
            )

        with tempfile.NamedTemporaryFile(
            prefix=f"{name}-{version}-", suffix=".tar.gz", delete=False
        ) as handle:
            archive_path = Path(handle.name)
            try:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
            except requests.RequestException as exc:
                archive_path.unlink(missing_ok=True)
                raise CacheError(
                    f"Failed to read chunk from download stream: {exc}"
                ) from exc

        source_path = self.storage.source_path(name, version)
        self.storage.ensure_dir(source_path)
        try:
            self._extract(archive_path, source_path)
        finally:
            archive_path.unlink(missing_ok=True)

        self.storage.save_metadata(name, version)
        logger.info("Successfully downloaded and extracted %s-%s", name, version)
        return source_path

    @staticmethod
    def _extract(archive_path: Path, dest: Path) -> None:
        """Unpack a crate archive, dropping its top-level directory."""
        try:
            with tarfile.open(archive_path, "r:gz") as archive:
                for member in archive:
                    parts = [
                        part
                        for part in PurePosixPath(member.name).parts
                        if part not in ("", ".")
                    ]
                    if len(parts) <= 1 or ".." in parts or parts[0] == "/":
                        continue
                    target = dest.joinpath(*parts[1:])
                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                    elif member.isfile():
                        target.parent.mkdir(parents=True, exist_ok=True)
                        extracted = archive.extractfile(member)
                        if extracted is None:
                            continue
                        with extracted, open(target, "wb") as out:
                            shutil.copyfileobj(extracted, out)
                        target.chmod(member.mode & 0o777 or 0o644)
        except (tarfile.TarError, OSError) as exc:
            raise CacheError(f"Failed to extract crate archive: {exc}") from exc

    def _download_from_github(
        self, name: str, version: str, repo_url: str, repo_path: str | None
    ) -> Path:
        logger.info(
            "Downloading crate %s-%s from GitHub: %s", name, version, repo_url
        )
        work_dir = Path(tempfile.mkdtemp(prefix=f"rust-docs-mcp-git-{name}-{version}-"))
        clone_dir = work_dir / "repo"
        try:
            result = _git(
                ["clone", repo_url, str(clone_dir)],
                f"Failed to clone repository: {repo_url}",
            )
            if result.returncode != 0:
                raise CacheError(
                    f"Failed to clone repository: {repo_url}: {_stderr_text(result)}"
                )

            if version not in ("main", "master"):
                self._checkout(clone_dir, version)

            repo_source = clone_dir / repo_path if repo_path else clone_dir
            if not (repo_source / "Cargo.toml").exists():
                raise CacheError(f"No Cargo.toml found at path: {repo_source}")

            source_path = self.storage.source_path(name, version)
            self.storage.ensure_dir(source_path)
            try:
                copy_directory_contents(repo_source, source_path)
            except CacheError as exc:
                raise CacheError(f"Failed to copy repository contents: {exc}") from exc
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        source_info = f"{repo_url}#{repo_path}" if repo_path else repo_url
        self.storage.save_metadata_with_source(name, version, "github", source_info)
        logger.info(
            "Successfully downloaded and extracted %s-%s from GitHub", name, version
        )
        return source_path

    @staticmethod
    def _checkout(clone_dir: Path, version: str) -> None:
        """Detach HEAD at the named branch, or failing that the named tag."""
        for ref, label in (
            (f"refs/remotes/origin/{version}", "branch"),
            (f"refs/tags/{version}", "tag"),
        ):
            found = _git(
                ["-C", str(clone_dir), "rev-parse", "--verify", "--quiet", ref],
                f"Failed to checkout {label}: {version}",
            )
            if found.returncode != 0:
                continue
            checkout = _git(
                ["-C", str(clone_dir), "checkout", "--force", "--detach", ref],
                f"Failed to checkout {label}: {version}",
            )
            if checkout.returncode != 0:
                raise CacheError(
                    f"Failed to checkout {label}: {version}: {_stderr_text(checkout)}"
                )
            return
        raise CacheError(f"Could not find branch or tag: {version}")

    def _copy_from_local(self, name: str, version: str, local_path: str) -> Path:
        logger.info(
            "Copying crate %s-%s from local path: %s", name, version, local_path
        )
        source_input = _expand_path(local_path)
        if not source_input.exists():
            raise CacheError(f"Local path does not exist: {source_input}")
        if not (source_input / "Cargo.toml").exists():
            raise CacheError(f"No Cargo.toml found at path: {source_input}")

        source_path = self.storage.source_path(name, version)
        self.storage.ensure_dir(source_path)
        try:
            copy_directory_contents(source_input, source_path)
        except CacheError as exc:
            raise CacheError(f"Failed to copy local directory contents: {exc}") from exc

        self.storage.save_metadata_with_source(name, version, "local", local_path)
        logger.info("Successfully copied %s-%s from local path", name, version)
        return source_path