"""TTL cache for Kubernetes objects read on every reconciliation pass.

Kopf runs sync handlers on a thread pool, so every access holds a lock.
"""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Optional

# key -> (object, expiry time)
_cache: dict[str, tuple[Any, float]] = {}
_lock = threading.Lock()
_cache_ttl: float = float(os.getenv("K8S_CACHE_TTL_SECONDS", "30.0"))


def get_cached_object(key: str) -> Optional[Any]:
    """Return the cached object for key, or None when absent or expired."""
    with _lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        obj, expires_at = entry
        if time.time() >= expires_at:
            del _cache[key]
            return None
        return obj


def set_cached_object(key: str, obj: Any) -> None:
    """Cache obj under key for K8S_CACHE_TTL_SECONDS."""
    with _lock:
        _cache[key] = (obj, time.time() + _cache_ttl)


def invalidate_cache(pattern: Optional[str] = None) -> None:
    """Drop every entry whose key contains pattern, or all entries."""
    with _lock:
        if pattern is None:
            _cache.clear()
            return
        for key in [key for key in _cache if pattern in key]:
            del _cache[key]


def make_cache_key(kind: str, name: str, namespace: Optional[str] = None) -> str:
    """Build a "kind:namespace:name" key; cluster-scoped objects use "_".

    Args:
        kind: Resource kind (e.g., "ProviderConfig")
        name: Resource name
        namespace: Resource namespace, if namespaced

    Returns:
        Cache key string
    """
    return f"{kind}:{namespace or '_'}:{name}"
