"""
Core types for the tools runner.

This module defines the data structures shared by the cache, the resolver
and the launcher:
- Frozen dataclasses for cache metadata (CacheEntry) and project config
  (FetchSpec, EnvironmentConfig)
- The mutable CacheIndex persisted as config.json
- Cache decisions (Reuse, Refresh) and advisory cleanup results
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID.

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# Reference date of timestamps written as plain numbers by older index files.
_NUMERIC_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


def decode_usage_date(value: Any) -> datetime:
    """Decode a stored lastUsageDate.

    ISO-8601 strings are the current format. Numbers are seconds since
    2001-01-01 UTC, as written by earlier versions of the runner.

    Raises:
        ValueError: For any other value.
    """
    if isinstance(value, str):
        return parse_timestamp(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _NUMERIC_EPOCH + timedelta(seconds=value)
    raise ValueError(f"invalid lastUsageDate: {value!r}")


def is_slot_name(name: str) -> bool:
    """Whether a name denotes a direct child of the cache root."""
    return bool(name) and name not in (".", "..") and Path(name).name == name


@dataclass(frozen=True)
class CacheEntry:
    """Metadata for one cached artifact.

    version_token is the project's declared checksum. It is an invalidation
    signal compared verbatim, never verified against archive contents, and
    is None only for archives read from a local file.
    """

    directory: str
    last_used_at: datetime
    version_token: str | None

    def __post_init__(self) -> None:
        if not isinstance(self.directory, str) or not is_slot_name(self.directory):
            raise ValueError(f"invalid directory name: {self.directory!r}")

    @classmethod
    def create(cls, directory: str, *, version_token: str | None) -> CacheEntry:
        """Create an entry for a freshly populated cache slot.

        version_token has no default: an entry without the token the slot
        was fetched for would never match again.
        """
        return cls(directory=directory, last_used_at=utc_now(), version_token=version_token)

    def matches(self, version_token: str | None) -> bool:
        """Exact comparison of the stored and expected tokens."""
        return self.version_token == version_token

    def is_fresh(self, now: datetime, retention: timedelta) -> bool:
        """Whether the entry was used within the retention window."""
        return now - self.last_used_at <= retention

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk representation."""
        return {
            "directory": self.directory,
            "lastUsageDate": self.last_used_at.isoformat(),
            "checksum": self.version_token,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        """Deserialize from the on-disk representation.

        Raises:
            KeyError, TypeError, ValueError: If the data is malformed.
        """
        directory = data["directory"]
        checksum = data.get("checksum")
        if checksum is not None and not isinstance(checksum, str):
            raise ValueError(f"invalid checksum: {checksum!r}")
        return cls(
            directory=directory,
            last_used_at=decode_usage_date(data["lastUsageDate"]),
            version_token=checksum,
        )


@dataclass
class CacheIndex:
    """Mapping from project key to cached-artifact metadata.

    The project key is the absolute path of the directory holding the
    project's config file, not the archive URL.
    """

    entries: dict[str, CacheEntry] = field(default_factory=dict)

    def get(self, project_key: str) -> CacheEntry | None:
        """Get the entry for a project key."""
        return self.entries.get(project_key)

    def put(self, project_key: str, entry: CacheEntry) -> CacheEntry | None:
        """Set the entry for a project key, returning the one it replaced."""
        previous = self.entries.get(project_key)
        self.entries[project_key] = entry
        return previous

    def retained_directories(self, now: datetime, retention: timedelta) -> set[str]:
        """Directory names referenced by entries used within the window."""
        return {
            entry.directory
            for entry in self.entries.values()
            if entry.is_fresh(now, retention)
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the config.json document."""
        return {
            "cacheInfo": {key: entry.to_dict() for key, entry in self.entries.items()}
        }

    @classmethod
    def from_dict(cls, data: Any) -> CacheIndex:
        """Deserialize from the config.json document.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError("index document must be an object")
        raw_entries = data["cacheInfo"]
        if not isinstance(raw_entries, dict):
            raise TypeError("cacheInfo must be an object")
        return cls(
            entries={key: CacheEntry.from_dict(value) for key, value in raw_entries.items()}
        )


@dataclass(frozen=True)
class FetchSpec:
    """Where to get a tool archive from."""

    url: str

    @property
    def is_local_file(self) -> bool:
        """Whether the archive is read from the local filesystem."""
        return self.url.startswith("file://")

    @property
    def requires_version_token(self) -> bool:
        """Remote archives must be pinned by a version token."""
        return not self.is_local_file

    @property
    def local_path(self) -> Path:
        """Filesystem path of a file:// archive."""
        return Path(url2pathname(urlparse(self.url).path))


@dataclass(frozen=True)
class EnvironmentConfig:
    """Decoded project config for the current architecture."""

    project_dir: Path
    executable: str
    fetch_spec: FetchSpec
    version_token: str | None

    @property
    def project_key(self) -> str:
        """Cache index key for this project."""
        return str(self.project_dir)


class RefreshReason(str, Enum):
    """Why a cached artifact cannot be reused."""

    NO_ENTRY = "no_entry"
    TOKEN_MISMATCH = "token_mismatch"
    DIRECTORY_MISSING = "directory_missing"


@dataclass(frozen=True)
class Reuse:
    """The cached slot can be used as-is."""

    directory: Path
    entry: CacheEntry


@dataclass(frozen=True)
class Refresh:
    """A new slot must be fetched."""

    reason: RefreshReason


Decision = Union[Reuse, Refresh]


@dataclass
class AdvisoryResult:
    """Outcome of a best-effort cleanup.

    Failures are reported here and logged; they are never raised.
    """

    removed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether every attempted removal succeeded."""
        return not self.failed


@dataclass(frozen=True)
class SaveResult:
    """Result of persisting a cache entry."""

    entry: CacheEntry
    cleanup: AdvisoryResult
