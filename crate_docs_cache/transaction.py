"""Cache updates that restore the previous state unless committed."""

from __future__ import annotations

from pathlib import Path

from crate_docs_cache.storage import CacheStorage
from crate_docs_cache.utils import CacheError


class CacheTransaction:
    """Backs up a cached crate before an update and rolls back unless committed.

    Used as a context manager, leaving the block without a commit restores the
    backup, as does an exception.
    """

    def __init__(self, storage: CacheStorage, crate_name: str, version: str):
        self.storage = storage
        self.crate_name = crate_name
        self.version = version
        self.backup_path: Path | None = None

    def begin(self) -> None:
        """Back up the crate if it is cached, then remove it from the cache."""
        if not self.storage.is_cached(self.crate_name, self.version):
            return
        try:
            self.backup_path = self.storage.backup_crate_to_temp(
                self.crate_name, self.version
            )
        except CacheError as exc:
            raise CacheError(f"Failed to create backup: {exc}") from exc
        try:
            self.storage.remove_crate(self.crate_name, self.version)
        except CacheError as exc:
            raise CacheError(f"Failed to remove existing cache: {exc}") from exc

    def commit(self) -> None:
        """Keep the new state and discard the backup."""
        backup, self.backup_path = self.backup_path, None
        if backup is not None:
            try:
                self.storage.cleanup_backup(backup)
            except CacheError:
                pass

    def rollback(self) -> None:
        """Restore the crate from the backup taken at begin."""
        backup, self.backup_path = self.backup_path, None
        if backup is None:
            return
        if not backup.exists():
            raise CacheError(f"Backup path does not exist: {backup}. Cannot rollback.")
        try:
            self.storage.restore_crate_from_backup(self.crate_name, self.version, backup)
        except CacheError as exc:
            raise CacheError(f"Failed to restore from backup: {exc}") from exc
        try:
            self.storage.cleanup_backup(backup)
        except CacheError:
            pass

    def __enter__(self) -> CacheTransaction:
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.backup_path is not None:
            try:
                self.rollback()
            except CacheError:
                if exc_type is None:
                    raise
        return False