"""
Cache package for fetched tool archives.

- Cache store (store.py): config.json index plus one directory per slot
- Cache policy (policy.py): reuse/refresh decisions and retention sweeps
"""

from toolsrunner.cache.policy import CachePolicy
from toolsrunner.cache.store import CacheStore

__all__ = ["CachePolicy", "CacheStore"]
