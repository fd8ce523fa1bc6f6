"""Reuse-or-refresh decisions and retention for cached artifacts."""

from __future__ import annotations

from datetime import timedelta

from toolsrunner.cache.store import CacheStore
from toolsrunner.logging import get_logger
from toolsrunner.types import AdvisoryResult, Decision, Refresh, RefreshReason, Reuse

logger = get_logger(__name__)


class CachePolicy:
    """Decides whether a project's cached slot may be reused.

    The version token is compared exactly as the caller supplied it. A
    stored entry is reusable only when the tokens are equal (both absent
    counts as equal) and its slot is still on disk.
    """

    def __init__(self, store: CacheStore, retention: timedelta = timedelta(days=30)) -> None:
        self.store = store
        self.retention = retention

    def decide(self, project_key: str, version_token: str | None) -> Decision:
        """Decide between reusing the cached slot and fetching a new one.

        Args:
            project_key: Absolute path of the project's config directory.
            version_token: Token the project currently declares.

        Returns:
            Reuse with the slot path, or Refresh with the reason.

        Raises:
            CorruptIndexError: If the index cannot be decoded.
        """
        self.store.load()
        entry = self.store.lookup(project_key)

        if entry is None:
            decision: Decision = Refresh(RefreshReason.NO_ENTRY)
        elif not entry.matches(version_token):
            decision = Refresh(RefreshReason.TOKEN_MISMATCH)
        else:
            directory = self.store.directory_if_present(entry.directory)
            if directory is None:
                decision = Refresh(RefreshReason.DIRECTORY_MISSING)
            else:
                decision = Reuse(directory=directory, entry=entry)

        if isinstance(decision, Reuse):
            logger.debug("Cache hit", directory=decision.entry.directory)
        else:
            logger.info("Cache miss", reason=decision.reason.value)

        return decision

    def evict_stale(self) -> AdvisoryResult:
        """Remove slots that are unreferenced or unused for the retention window."""
        return self.store.sweep_stale(self.retention)
