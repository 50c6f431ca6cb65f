# core/revalidation.py
"""
Cache revalidation signal for page paths.

Mutating file operations call `revalidate_path(path)`. Each path keeps a
revision counter, which the web app folds into the weak ETag of listing
responses so conditional requests for a changed page miss the cache.
"""
import hashlib
import threading
from typing import Dict

from core.config import logger as core_logger

logger = core_logger.getChild("Revalidation")

_revisions: Dict[str, int] = {}
_lock = threading.Lock()

def _normalise(path: str) -> str:
    return "/" + path.strip("/") if path else "/"

def revalidate_path(path: str) -> int:
    key = _normalise(path)
    with _lock:
        _revisions[key] = _revisions.get(key, 0) + 1
        revision = _revisions[key]
    logger.debug(f"Revalidated '{key}' (revision {revision})")
    return revision

def path_revision(path: str) -> int:
    with _lock:
        return _revisions.get(_normalise(path), 0)

def etag_for(path: str, payload: bytes) -> str:
    """Weak ETag over the rendered payload and the revisions of the page and the dashboard."""
    marker = f"{_normalise(path)}:{path_revision(path)}:{path_revision('/')}".encode()
    return f'W/"{hashlib.sha1(marker + payload).hexdigest()[:20]}"'
