"""Generating rustdoc JSON documentation and dependency metadata for cached crates."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any

from crate_docs_cache.storage import CacheStorage
from crate_docs_cache.utils import CacheError
from crate_docs_cache.workspace import extract_member_name, get_package_name

REQUIRED_TOOLCHAIN = "nightly-2025-06-23"

_RUSTDOC_FLAGS = ("--", "--output-format", "json", "-Z", "unstable-options")

logger = logging.getLogger(__name__)


def _run(args: list[str], failure: str, cwd: Path | None = None) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(args, cwd=cwd, capture_output=True, check=False)
    except OSError as exc:
        raise CacheError(f"{failure}: {exc}") from exc


def _stderr(result: subprocess.CompletedProcess) -> str:
    stderr = result.stderr or b""
    if isinstance(stderr, bytes):
        return stderr.decode("utf-8", errors="replace")
    return str(stderr)


def _stdout_bytes(result: subprocess.CompletedProcess) -> bytes:
    stdout = result.stdout or b""
    if isinstance(stdout, str):
        return stdout.encode("utf-8")
    return stdout


def _read_json(path: Path, read_failure: str, parse_failure: str) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CacheError(f"{read_failure}: {exc}") from exc
    try:
        return json.loads(text)
    except ValueError as exc:
        raise CacheError(f"{parse_failure}: {exc}") from exc


class DocGenerator:
    """Runs cargo rustdoc and cargo metadata and stores their output in the cache."""

    def __init__(self, storage: CacheStorage):
        self.storage = storage

    def __repr__(self) -> str:
        return f"DocGenerator(storage={self.storage!r})"

    def _validate_toolchain(self) -> None:
        result = _run(
            ["rustup", "toolchain", "list"], "Failed to run rustup toolchain list"
        )
        if result.returncode != 0:
            raise CacheError("Failed to check available toolchains")
        toolchains = _stdout_bytes(result).decode("utf-8", errors="replace")
        if REQUIRED_TOOLCHAIN not in toolchains:
            raise CacheError(
                f"Required toolchain {REQUIRED_TOOLCHAIN} is not installed. "
                f"Please run: rustup toolchain install {REQUIRED_TOOLCHAIN}"
            )
        logger.debug("Validated toolchain %s is available", REQUIRED_TOOLCHAIN)

    def _run_rustdoc(self, source_path: Path, package: str | None = None) -> None:
        args = ["cargo", f"+{REQUIRED_TOOLCHAIN}", "rustdoc"]
        if package is not None:
            args += ["-p", package]
        args += ["--all-features", *_RUSTDOC_FLAGS]
        result = _run(args, "Failed to run cargo rustdoc", cwd=source_path)
        if result.returncode != 0:
            raise CacheError(f"Failed to generate documentation: {_stderr(result)}")

    def generate_docs(self, name: str, version: str) -> Path:
        """Generate JSON docs for a cached crate and return the cached docs path."""
        self._validate_toolchain()

        source_path = self.storage.source_path(name, version)
        docs_path = self.storage.docs_path(name, version)
        if not source_path.exists():
            raise CacheError(f"Source not found for {name}-{version}. Download it first.")

        logger.info("Generating documentation for %s-%s", name, version)
        self._run_rustdoc(source_path)

        json_file = self.find_json_doc(source_path / "target" / "doc", name)
        try:
            shutil.copy(json_file, docs_path)
        except OSError as exc:
            raise CacheError(f"Failed to copy documentation to cache: {exc}") from exc

        self._generate_dependencies(name, version)
        self.storage.save_metadata(name, version)

        logger.info("Successfully generated documentation for %s-%s", name, version)
        return docs_path

    def generate_workspace_member_docs(
        self, name: str, version: str, member_path: str
    ) -> Path:
        """Generate JSON docs for one workspace member and return the cached docs path."""
        self._validate_toolchain()

        source_path = self.storage.source_path(name, version)
        member_full_path = source_path / member_path
        if not source_path.exists():
            raise CacheError(f"Source not found for {name}-{version}. Download it first.")
        if not member_full_path.exists():
            raise CacheError(f"Workspace member not found at path: {member_full_path}")

        package_name = get_package_name(member_full_path / "Cargo.toml")
        member_name = extract_member_name(member_path)
        docs_path = self.storage.member_docs_path(name, version, member_name)

        logger.info(
            "Generating documentation for workspace member %s (package: %s) in %s-%s",
            member_path,
            package_name,
            name,
            version,
        )
        self._run_rustdoc(source_path, package_name)

        json_file = self.find_json_doc(source_path / "target" / "doc", package_name)
        self.storage.ensure_dir(docs_path.parent)
        try:
            shutil.copy(json_file, docs_path)
        except OSError as exc:
            raise CacheError(
                f"Failed to copy workspace member documentation to cache: {exc}"
            ) from exc

        self._generate_member_dependencies(name, version, member_path)

        logger.info(
            "Successfully generated documentation for workspace member %s in %s-%s",
            member_path,
            name,
            version,
        )
        return docs_path

    def find_json_doc(self, doc_dir: str | Path, crate_name: str) -> Path:
        """Locate the rustdoc JSON file for a crate in a target/doc directory."""
        doc_dir = Path(doc_dir)
        json_file = doc_dir / f"{crate_name.replace('-', '_')}.json"
        if json_file.exists():
            return json_file

        try:
            entries = sorted(doc_dir.iterdir())
        except OSError as exc:
            raise CacheError(f"Failed to read doc directory: {doc_dir}") from exc

        for entry in entries:
            if entry.suffix == ".json":
                return entry

        raise CacheError(
            f"No JSON documentation file found for crate '{crate_name}' in {doc_dir}"
        )

    def _generate_dependencies(self, name: str, version: str) -> None:
        source_path = self.storage.source_path(name, version)
        deps_path = self.storage.dependencies_path(name, version)
        logger.info("Generating dependency information for %s-%s", name, version)

        result = _run(
            ["cargo", "metadata", "--format-version", "1"],
            "Failed to run cargo metadata",
            cwd=source_path,
        )
        if result.returncode != 0:
            raise CacheError(f"Failed to generate dependency metadata: {_stderr(result)}")
        try:
            deps_path.write_bytes(_stdout_bytes(result))
        except OSError as exc:
            raise CacheError(f"Failed to write dependencies to cache: {exc}") from exc

    def _generate_member_dependencies(
        self, name: str, version: str, member_path: str
    ) -> None:
        source_path = self.storage.source_path(name, version)
        member_name = extract_member_name(member_path)
        deps_path = self.storage.member_dependencies_path(name, version, member_name)
        logger.info(
            "Generating dependency information for workspace member %s in %s-%s",
            member_path,
            name,
            version,
        )

        manifest = source_path / member_path / "Cargo.toml"
        result = _run(
            [
                "cargo",
                "metadata",
                "--format-version",
                "1",
                "--manifest-path",
                str(manifest),
            ],
            "Failed to run cargo metadata",
        )
        if result.returncode != 0:
            raise CacheError(f"Failed to generate dependency metadata: {_stderr(result)}")

        self.storage.ensure_dir(deps_path.parent)
        try:
            deps_path.write_bytes(_stdout_bytes(result))
        except OSError as exc:
            raise CacheError(f"Failed to write dependencies to cache: {exc}") from exc

    def load_dependencies(self, name: str, version: str) -> Any:
        """Load the cached cargo metadata output for a crate."""
        deps_path = self.storage.dependencies_path(name, version)
        if not deps_path.exists():
            raise CacheError(f"Dependencies not found for {name}-{version}")
        return _read_json(
            deps_path,
            "Failed to read dependencies file",
            "Failed to parse dependencies JSON",
        )

    def load_docs(self, name: str, version: str) -> Any:
        """Load the cached rustdoc JSON for a crate."""
        docs_path = self.storage.docs_path(name, version)
        if not docs_path.exists():
            raise CacheError(f"Documentation not found for {name}-{version}")
        return _read_json(
            docs_path,
            "Failed to read documentation file",
            "Failed to parse documentation JSON",
        )

    def load_member_docs(self, name: str, version: str, member_name: str) -> Any:
        """Load the cached rustdoc JSON for a workspace member."""
        docs_path = self.storage.member_docs_path(name, version, member_name)
        if not docs_path.exists():
            raise CacheError(
                f"Documentation not found for workspace member {member_name} "
                f"in {name}-{version}"
            )
        return _read_json(
            docs_path,
            "Failed to read member documentation file",
            "Failed to parse member documentation JSON",
        )