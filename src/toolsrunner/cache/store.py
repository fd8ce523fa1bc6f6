"""
Durable cache index and cache slot directories.

Layout under the state root:

    config.json           the CacheIndex, pretty-printed JSON
    cache/<directory>/    one extracted archive per slot

There is no cross-process locking. Each save re-reads the index, applies
one change and rewrites the whole file, so concurrent invocations resolve
as last-writer-wins. A slot whose index entry was lost that way is
reclaimed by the retention sweep once it has gone unmodified for the
retention window.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import orjson

from toolsrunner.exceptions import CorruptIndexError, DirectoryCreateError, IndexWriteError
from toolsrunner.logging import get_logger
from toolsrunner.types import (
    AdvisoryResult,
    CacheEntry,
    CacheIndex,
    SaveResult,
    generate_id,
    is_slot_name,
    utc_now,
)

logger = get_logger(__name__)


def _modified_within(path: Path, now: datetime, window: timedelta) -> bool:
    """Whether path was modified less than window before now."""
    try:
        mtime = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
    except OSError:
        return True
    return now - mtime < window


class CacheStore:
    """Persists the cache index and manages cache slot directories."""

    def __init__(
        self,
        root: Path,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            root: State root holding config.json and cache/.
            clock: Source of the current time.
        """
        self.root = root
        self.clock = clock
        self._index: CacheIndex | None = None

    @property
    def index_path(self) -> Path:
        """Path of the persisted index."""
        return self.root / "config.json"

    @property
    def cache_dir(self) -> Path:
        """Directory holding the cache slots."""
        return self.root / "cache"

    def load(self) -> CacheIndex:
        """Read and decode the index file.

        Returns:
            The decoded index, or an empty index if the file does not exist.

        Raises:
            CorruptIndexError: If the file exists but cannot be decoded.
        """
        if not self.index_path.exists():
            self._index = CacheIndex()
            return self._index

        try:
            data = orjson.loads(self.index_path.read_bytes())
            index = CacheIndex.from_dict(data)
        except (
            OSError,
            orjson.JSONDecodeError,
            KeyError,
            TypeError,
            ValueError,
            OverflowError,
        ) as e:
            raise CorruptIndexError(
                "Cache index cannot be decoded",
                context={"path": str(self.index_path), "reason": str(e)},
            ) from e

        self._index = index
        return index

    def lookup(self, project_key: str) -> CacheEntry | None:
        """Get the entry for a project key from the loaded index."""
        index = self._index if self._index is not None else self.load()
        return index.get(project_key)

    def directory_if_present(self, directory: str) -> Path | None:
        """Resolve a slot name to its path if it exists as a directory.

        A dangling index entry is a cache miss, not an error.
        """
        path = self.cache_dir / directory
        return path if path.is_dir() else None

    def allocate_directory(self) -> tuple[str, Path]:
        """Create a fresh, uniquely named cache slot.

        Returns:
            Tuple of (slot name, slot path).

        Raises:
            DirectoryCreateError: If the directory cannot be created.
        """
        name = generate_id()
        path = self.cache_dir / name

        try:
            path.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise DirectoryCreateError(
                "Cannot create cache directory",
                context={"path": str(path), "reason": str(e)},
            ) from e

        logger.debug("Allocated cache directory", directory=name)
        return name, path

    def save(self, entry: CacheEntry, project_key: str) -> SaveResult:
        """Stamp the entry as used now and persist it for a project key.

        If the key previously pointed at a different slot, that slot is
        removed after the index has been written. Removal is best-effort.

        Args:
            entry: Entry to persist.
            project_key: Project the entry belongs to.

        Returns:
            SaveResult with the stamped entry and the cleanup outcome.

        Raises:
            CorruptIndexError: If the on-disk index cannot be decoded.
            IndexWriteError: If the index cannot be written.
        """
        stamped = replace(entry, last_used_at=self.clock())

        index = self.load()
        previous = index.put(project_key, stamped)
        self._write(index)

        cleanup = AdvisoryResult()
        if previous is not None and previous.directory != stamped.directory:
            logger.info(
                "Superseding cache directory",
                previous=previous.directory,
                current=stamped.directory,
            )
            cleanup = self.remove_directory(previous.directory)

        return SaveResult(entry=stamped, cleanup=cleanup)

    def remove_directory(self, directory: str) -> AdvisoryResult:
        """Remove a cache slot, reporting instead of raising on failure."""
        result = AdvisoryResult()

        if not is_slot_name(directory):
            logger.warning("Refusing to remove path outside the cache", directory=directory)
            result.failed[directory] = "not a cache directory name"
            return result

        path = self.cache_dir / directory
        if not path.exists():
            return result

        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Failed to remove cache directory", directory=directory, error=str(e))
            result.failed[directory] = str(e)
        else:
            result.removed.append(directory)

        return result

    def sweep_stale(self, retention: timedelta) -> AdvisoryResult:
        """Remove slots not referenced by an entry used within the window.

        A slot referenced by no entry at all may belong to an invocation
        that is still populating it, so it is kept until it has not been
        modified for the retention window. A cache root that exists but is
        not a directory is deleted.

        Args:
            retention: Maximum time since last use for a slot to be kept.

        Returns:
            AdvisoryResult listing removed and failed directories.

        Raises:
            CorruptIndexError: If the on-disk index cannot be decoded.
        """
        result = AdvisoryResult()

        if not self.cache_dir.exists():
            return result

        if not self.cache_dir.is_dir():
            logger.warning("Cache root is not a directory, removing", path=str(self.cache_dir))
            try:
                self.cache_dir.unlink()
            except OSError as e:
                result.failed[self.cache_dir.name] = str(e)
            else:
                result.removed.append(self.cache_dir.name)
            return result

        index = self.load()
        now = self.clock()
        retained = index.retained_directories(now, retention)
        referenced = {entry.directory for entry in index.entries.values()}

        for child in sorted(self.cache_dir.iterdir()):
            if not child.is_dir() or child.name in retained:
                continue
            if child.name not in referenced and _modified_within(child, now, retention):
                logger.debug("Keeping unreferenced cache directory", directory=child.name)
                continue
            outcome = self.remove_directory(child.name)
            result.removed.extend(outcome.removed)
            result.failed.update(outcome.failed)

        if result.removed:
            logger.info("Swept stale cache directories", count=len(result.removed))

        return result

    def _write(self, index: CacheIndex) -> None:
        """Atomically replace the index file."""
        data = orjson.dumps(index.to_dict(), option=orjson.OPT_INDENT_2)

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".config.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, self.index_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise IndexWriteError(
                "Cannot write cache index",
                context={"path": str(self.index_path), "reason": str(e)},
            ) from e

        self._index = index
