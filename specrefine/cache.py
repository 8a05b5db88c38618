from __future__ import annotations

import copy
import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Dict

from specrefine.models import StructuredSpec, normalize_for_key

DEFAULT_CACHE_SIZE = 50


def _detached(spec: StructuredSpec) -> StructuredSpec:
    # extension_fields is the only mutable part of a frozen spec
    return replace(spec, extension_fields=copy.deepcopy(spec.extension_fields))


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: StructuredSpec
    inserted_at: float


class ResultCache:
    """
    Process-local LRU cache of refined specs.

    - No TTL.
    - Reads refresh recency as well as writes, so every access takes the lock.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        if max_size < 1:
            raise ValueError("Cache size must be at least 1.")
        self.max_size = max_size
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def make_key(text: str, provider_id: str, model_id: str) -> str:
        data = f"{normalize_for_key(text)}::{provider_id}::{model_id}"
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def get(self, text: str, provider_id: str, model_id: str) -> StructuredSpec | None:
        key = self.make_key(text, provider_id, model_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return _detached(entry.value)

    def set(self, text: str, provider_id: str, model_id: str, value: StructuredSpec) -> None:
        key = self.make_key(text, provider_id, model_id)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = CacheEntry(
                key=key, value=_detached(value), inserted_at=time.time()
            )

    def has(self, text: str, provider_id: str, model_id: str) -> bool:
        key = self.make_key(text, provider_id, model_id)
        with self._lock:
            return key in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def hit_rate(self) -> float:
        with self._lock:
            total = self._hits + self._misses
            if total == 0:
                return 0.0
            return self._hits / total * 100

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
