"""Content-addressed disk cache.

Entries live at <base>/<namespace...>/<sha256-hex(clear key)>. The clear key
is a download URL or revision id; it never touches the file system directly.

    TFQ_CACHE       "0" or "false" disables the cache
    TFQ_CACHE_DIR   overrides the base directory

Writes are whole-file with 0600 permissions and no locking. Content for a
given key never changes, so concurrent writers racing on the same file is
harmless. Anything unreadable on the read side is a miss.
"""

import hashlib
import logging
import os
import stat
import sys
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

CACHE_ENV = "TFQ_CACHE"
CACHE_DIR_ENV = "TFQ_CACHE_DIR"
APP_NAME = "tfq"


@dataclass
class CacheEntry:
    key: str
    encoded_key: str
    path: Path
    data: bytes


def encode_key(clear_key):
    return hashlib.sha256(clear_key.encode("utf-8")).hexdigest()


def _user_cache_dir():
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches"
    if os.name == "nt":
        local = os.environ.get("LOCALAPPDATA")
        return Path(local) if local else None
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".cache"


def cache_dir():
    """Base cache directory, or None when one can't be resolved."""
    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return Path(override)
    base = _user_cache_dir()
    return base / APP_NAME if base else None


def enabled():
    value = os.environ.get(CACHE_ENV, "")
    return value == "" or value.lower() not in ("0", "false")


def _segments(namespace):
    # keep absolute-looking parts (S3 keys) inside the cache root
    return [str(part).strip("/") for part in namespace if part and str(part).strip("/")]


def entry_path(namespace, clear_key):
    """Returns (path, exists) for the entry, or (None, False) without a base dir."""
    base = cache_dir()
    if base is None:
        return None, False
    path = base.joinpath(*_segments(namespace), encode_key(clear_key))
    return path, path.is_file()


def read(namespace, clear_key):
    """Return a CacheEntry on hit, None on miss or when caching is off."""
    if not enabled():
        return None
    path, exists = entry_path(namespace, clear_key)
    if not exists:
        return None
    try:
        data = path.read_bytes().strip()
    except OSError:
        return None
    logger.debug("cache hit: key=%s", clear_key)
    return CacheEntry(key=clear_key, encoded_key=path.name, path=path, data=data)


def write(namespace, clear_key, data):
    """Store data under clear_key. No-op when caching is disabled."""
    if not enabled():
        return None
    base = cache_dir()
    if base is None:
        return None

    directory = base.joinpath(*_segments(namespace))
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / encode_key(clear_key)

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(path, 0o600)
    logger.debug("cache write: key=%s", clear_key)
    return path


def purge(hours, base=None):
    """Remove cached files older than hours. hours <= 0 disables purging.

    Returns the number of files removed. Files that vanish mid-walk (another
    process purged them first) count as already purged.
    """
    if not hours or hours <= 0:
        logger.debug("cache cleaning disabled")
        return 0

    base = Path(base) if base else cache_dir()
    if base is None or not base.is_dir():
        return 0

    cutoff = time.time() - hours * 3600
    removed = 0
    for dirpath, _, filenames in os.walk(base):
        for name in filenames:
            path = Path(dirpath) / name
            try:
                st = path.lstat()
            except FileNotFoundError:
                continue
            if not stat.S_ISREG(st.st_mode) or st.st_mtime >= cutoff:
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("failed to remove cache file %s: %s", path, e)
                continue
            removed += 1
            logger.debug("removed cache file %s", path)
    return removed


def safe_purge(hours):
    """purge() that logs instead of raising. The cache is never load-bearing."""
    try:
        return purge(hours)
    except OSError as e:
        logger.warning("failed to purge cache: %s", e)
        return 0


def fetch_through(namespace, clear_key, fetch):
    """Check cache → miss → fetch() → best-effort write-through."""
    entry = read(namespace, clear_key)
    if entry is not None:
        return entry.data

    data = fetch()
    try:
        write(namespace, clear_key, data)
    except OSError as e:
        logger.warning("failed to write cache entry for %s: %s", clear_key, e)
    return data
