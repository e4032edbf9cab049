"""Detection of where a crate comes from: crates.io, GitHub or a local path."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

_GITHUB_PREFIX = "https://github.com/"


class RefKind(enum.Enum):
    """Kind of git reference."""

    BRANCH = "branch"
    TAG = "tag"
    DEFAULT = "default"


@dataclass(frozen=True)
class GitReference:
    """A branch, a tag, or the repository's default reference."""

    kind: RefKind = RefKind.DEFAULT
    value: str | None = None


@dataclass(frozen=True)
class CratesIoSource:
    """A crate from the crates.io registry."""


@dataclass(frozen=True)
class GitHubSource:
    """A crate from a GitHub repository."""

    url: str
    reference: GitReference = field(default_factory=GitReference)
    repo_path: str | None = None


@dataclass(frozen=True)
class LocalSource:
    """A crate on the local file system."""

    path: str


Source = CratesIoSource | GitHubSource | LocalSource


def is_local_path(text: str) -> bool:
    """Return True if the text looks like a file system path."""
    return (
        text.startswith(("/", "~/", "../", "./"))
        or "/" in text
        or "\\" in text
    )


def detect_source(source: str | None = None) -> Source:
    """Work out the source type from an optional source string."""
    if source is None:
        return CratesIoSource()
    if source.startswith(("http://", "https://")):
        return _parse_url(source)
    if is_local_path(source):
        return LocalSource(path=source)
    return CratesIoSource()


def _parse_url(url: str) -> Source:
    normalized = url
    if url.startswith("http://github.com/"):
        normalized = url.replace("http://", "https://")
    if normalized.startswith(_GITHUB_PREFIX):
        return _parse_github(normalized[len(_GITHUB_PREFIX):])
    return LocalSource(path=url)


def _parse_github(github_part: str) -> Source:
    parts = github_part.split("/")
    if len(parts) < 2:
        return LocalSource(path=f"{_GITHUB_PREFIX}{github_part}")
    base_url = f"{_GITHUB_PREFIX}{parts[0]}/{parts[1]}"
    if len(parts) > 4 and parts[2] == "tree":
        return GitHubSource(
            url=base_url,
            reference=GitReference(RefKind.BRANCH, parts[3]),
            repo_path="/".join(parts[4:]),
        )
    return GitHubSource(url=base_url, reference=GitReference(RefKind.DEFAULT))