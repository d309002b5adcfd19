"""
Path-keyed cache invalidation.

Actions call `revalidate_path` after every write; whoever caches data
for a page (the Streamlit loaders) registers a callback for that page's
path. Paths may contain `[param]` segments, which match any value.
"""

import re
import threading
from collections import defaultdict
from typing import Callable

import structlog


logger = structlog.get_logger(__name__)

_lock = threading.Lock()
_callbacks: dict[str, list[Callable[[], None]]] = defaultdict(list)


def _pattern(path: str) -> re.Pattern:
    parts = [
        "[^/]+" if re.fullmatch(r"\[[^\]]+\]", part) else re.escape(part)
        for part in path.rstrip("/").split("/")
    ]
    return re.compile("/".join(parts) + "/?")


def register_path_cache(path: str, callback: Callable[[], None]) -> None:
    """Call `callback` whenever `path` (or a matching concrete path) is revalidated."""
    with _lock:
        if callback not in _callbacks[path]:
            _callbacks[path].append(callback)


def unregister_path_cache(path: str, callback: Callable[[], None]) -> None:
    with _lock:
        if callback in _callbacks.get(path, []):
            _callbacks[path].remove(callback)


def clear_path_caches() -> None:
    with _lock:
        _callbacks.clear()


def revalidate_path(path: str) -> int:
    """
    Invalidate everything cached for `path`.

    Returns:
        Number of callbacks run. Unregistered paths are a no-op.
    """
    with _lock:
        matched = [
            callback
            for registered, callbacks in _callbacks.items()
            if registered == path
            or _pattern(registered).fullmatch(path)
            or _pattern(path).fullmatch(registered)
            for callback in callbacks
        ]
    matched = list(dict.fromkeys(matched))

    for callback in matched:
        try:
            callback()
        except Exception as e:
            logger.warning("cache_invalidation_failed", path=path, error=str(e))

    if matched:
        logger.debug("cache_revalidated", path=path, callbacks=len(matched))
    return len(matched)
