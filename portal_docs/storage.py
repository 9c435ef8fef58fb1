"""
Keyed record stores behind the cache manager.

Two logical stores exist: "identity" for near-static identity/subject data
and "listings" for per-folder document listings. Each record is a JSON
object {key, payload, encrypted, timestamp, ttl}.

MemoryStore keeps records in a dict (optionally under a byte quota);
FileStore writes one JSON file per record so the cache survives restarts
and can be inspected or edited by hand.
"""

import asyncio
import hashlib
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .exceptions import StorageError, StorageQuotaExceeded
from .logger import get_module_logger

logger = get_module_logger("storage")

IDENTITY_STORE = "identity"
LISTINGS_STORE = "listings"


def record_size(record: dict) -> int:
    return len(json.dumps(record, ensure_ascii=False).encode("utf-8"))


class BaseStore(ABC):
    """Abstract async keyed store of JSON records."""

    @abstractmethod
    async def read(self, key: str) -> Optional[dict]:
        """Return the record for key, or None when absent or unreadable."""
        pass

    @abstractmethod
    async def write(self, key: str, record: dict) -> None:
        """
        Persist a record, replacing any previous one.

        Raises:
            StorageQuotaExceeded: the store is full
            StorageError: the record could not be persisted
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a record. Returns True if one existed."""
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """Keys starting with prefix, sorted."""
        pass


class MemoryStore(BaseStore):
    """In-process store, optionally bounded by a byte quota."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._records: dict[str, dict] = {}

    def used_bytes(self) -> int:
        return sum(record_size(r) for r in self._records.values())

    async def read(self, key: str) -> Optional[dict]:
        record = self._records.get(key)
        # Copies keep callers from editing stored records in place
        return json.loads(json.dumps(record)) if record is not None else None

    async def write(self, key: str, record: dict) -> None:
        try:
            snapshot = json.loads(json.dumps(record, ensure_ascii=False))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Record for '{key}' is not JSON serializable: {e}") from e

        if self.quota_bytes is not None:
            others = sum(record_size(r) for k, r in self._records.items() if k != key)
            needed = others + record_size(snapshot)
            if needed > self.quota_bytes:
                raise StorageQuotaExceeded(
                    f"Writing '{key}' needs {needed} bytes, quota is {self.quota_bytes}",
                    used=others,
                    quota=self.quota_bytes,
                )
        self._records[key] = snapshot

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._records if k.startswith(prefix))


class FileStore(BaseStore):
    """
    File-backed store.

    Files are named after a filesystem-safe rendering of the key plus a short
    hash of the exact key, so distinct keys never collide after sanitizing.
    The record itself carries its key; prefix scans read it from there.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"File store initialized at: {self.directory}")

    def _path_for(self, key: str) -> Path:
        safe_name = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)[:80]
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()[:8]
        return self.directory / f"{safe_name}-{digest}.json"

    async def read(self, key: str) -> Optional[dict]:
        return await asyncio.to_thread(self._read_sync, key)

    def _read_sync(self, key: str) -> Optional[dict]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            # Unreadable files surface as absent; the cache treats them as misses
            logger.warning(f"Failed to read record file {path.name}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def write(self, key: str, record: dict) -> None:
        await asyncio.to_thread(self._write_sync, key, record)

    def _write_sync(self, key: str, record: dict) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Record for '{key}' is not JSON serializable: {e}") from e
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            # ENOSPC / EDQUOT
            if e.errno in (28, 122):
                raise StorageQuotaExceeded(f"Disk full while writing '{key}'", used=0, quota=0) from e
            raise StorageError(f"Failed to write '{key}': {e}") from e

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, key)

    def _delete_sync(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._keys_sync, prefix)

    def _keys_sync(self, prefix: str) -> list[str]:
        found = []
        for path in self.directory.glob("*.json"):
            try:
                key = json.loads(path.read_text(encoding="utf-8")).get("key")
            except (OSError, ValueError, AttributeError):
                # Corrupt files hold no recoverable key; drop them
                logger.warning(f"Removing unreadable record file {path.name}")
                path.unlink(missing_ok=True)
                continue
            if isinstance(key, str) and key.startswith(prefix):
                found.append(key)
        return sorted(found)
