# SSRS Reports Client
# File: cache.py
# Version: v2

"""In-process cache of catalog listings.

Design goals:
- Simple (no external deps).
- Keyed by folder path (``"/Sales"``), values are lists of CatalogItem.
- No timer: the cache is only ever invalidated wholesale, after an
  upload / create, or on request.
- Diagnostics-friendly (hits/misses/size/invalidations).
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from .models import CatalogItem


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0


class CatalogCache:
    """Folder key -> catalog items, with wholesale invalidation."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = bool(enabled)
        self._store: "OrderedDict[str, List[CatalogItem]]" = OrderedDict()
        self._stats = CacheStats()

    @staticmethod
    def key_for(path: Optional[str]) -> str:
        """Normalise a folder path into a cache key (``/Name`` form)."""
        if not path or path == "/":
            return "/"
        return "/" + path.strip("/")

    def get(self, path: Optional[str]) -> Optional[List[CatalogItem]]:
        """Return the cached items for ``path`` or None."""
        if not self.enabled:
            self._stats.misses += 1
            return None

        items = self._store.get(self.key_for(path))
        if items is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return list(items)

    def set(self, path: Optional[str], items: List[CatalogItem]) -> None:
        if not self.enabled:
            return
        self._store[self.key_for(path)] = list(items)
        self._stats.sets += 1

    def add(self, path: Optional[str], item: CatalogItem) -> None:
        """Append one item to the bucket for ``path`` (creating it)."""
        if not self.enabled:
            return
        self._store.setdefault(self.key_for(path), []).append(item)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.key_for(path) in self._store

    def __iter__(self) -> Iterator[str]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def is_empty(self) -> bool:
        return not self._store

    def clear(self) -> None:
        if self._store:
            self._stats.invalidations += 1
        self._store.clear()

    def snapshot(self) -> Dict[str, List[CatalogItem]]:
        return {key: list(items) for key, items in self._store.items()}

    def stats(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "folders": len(self._store),
            "items": sum(len(items) for items in self._store.values()),
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "sets": self._stats.sets,
            "invalidations": self._stats.invalidations,
        }
