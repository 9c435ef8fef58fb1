"""
Namespaced, TTL-bound, optionally encrypted cache with stale-while-revalidate.

Keys are composed as <family prefix><entity id> (e.g. "files_ALG"); the
family decides the TTL, whether the payload is encrypted at rest and which
store holds it.

Guarantees:
- get() answers from storage immediately, even past TTL; a stale hit
  schedules at most one background revalidation per key.
- A record that fails validation or decryption is purged and reported as a
  miss, so callers proceed exactly as on first use.
- Write failures are logged and swallowed; the engine keeps working without
  persistent caching.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .config import EngineConfig
from .crypto import PayloadCipher
from .exceptions import CacheCorruptionError, StorageError, StorageQuotaExceeded
from .logger import get_module_logger
from .schemas import CacheRecord
from .storage import IDENTITY_STORE, LISTINGS_STORE, BaseStore, FileStore, MemoryStore

logger = get_module_logger("cache")

Loader = Callable[[], Awaitable[Any]]

FILES_FAMILY = "files"
EXAMS_FAMILY = "exams"
SUBJECTS_FAMILY = "subjects"
IDENTITY_FAMILY = "identity"


@dataclass(frozen=True)
class CacheFamily:
    """A cache namespace and its policy."""
    name: str
    prefix: str
    ttl: float                      # seconds
    encrypted: bool = True
    store: str = LISTINGS_STORE


@dataclass(frozen=True)
class CachedValue:
    value: Any
    stored_at: float
    stale: bool


def default_families(config: EngineConfig) -> tuple[CacheFamily, ...]:
    """Short-TTL families for volatile listings, long-TTL for near-static metadata."""
    return (
        CacheFamily(FILES_FAMILY, "files_", config.short_ttl, True, LISTINGS_STORE),
        CacheFamily(EXAMS_FAMILY, "exams_", config.short_ttl, True, LISTINGS_STORE),
        CacheFamily(SUBJECTS_FAMILY, "subject_", config.long_ttl, True, IDENTITY_STORE),
        CacheFamily(IDENTITY_FAMILY, "identity_", config.long_ttl, True, IDENTITY_STORE),
    )


class CacheManager:
    """Keyed cache over the identity and listings stores."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        families: Optional[Iterable[CacheFamily]] = None,
        stores: Optional[dict[str, BaseStore]] = None,
        cipher: Optional[PayloadCipher] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or EngineConfig()
        family_list = list(families) if families is not None else list(default_families(self.config))
        if not family_list:
            raise ValueError("At least one cache family is required")
        self.families = {family.name: family for family in family_list}
        # Keys matching no prefix fall back to the first (short-TTL) family
        self.default_family = family_list[0]
        self.stores = stores if stores is not None else self._default_stores()
        self.cipher = cipher or PayloadCipher(self.config.encryption_key)
        self.clock = clock

        self._revalidations: dict[str, asyncio.Task] = {}
        self.revalidations_scheduled = 0

    def _default_stores(self) -> dict[str, BaseStore]:
        if self.config.cache_dir:
            base = Path(self.config.cache_dir)
            return {
                IDENTITY_STORE: FileStore(base / IDENTITY_STORE),
                LISTINGS_STORE: FileStore(base / LISTINGS_STORE),
            }
        return {IDENTITY_STORE: MemoryStore(), LISTINGS_STORE: MemoryStore()}

    # --- Keys and families ---

    def make_key(self, family: Union[str, CacheFamily], entity_id: Any) -> str:
        """Compose a namespaced key, e.g. make_key("files", "ALG") → "files_ALG"."""
        if isinstance(family, str):
            family = self.families[family]
        return f"{family.prefix}{entity_id}"

    def family_for(self, key: str) -> CacheFamily:
        matches = [f for f in self.families.values() if key.startswith(f.prefix)]
        if not matches:
            logger.debug(f"No family for key '{key}', using '{self.default_family.name}'")
            return self.default_family
        return max(matches, key=lambda f: len(f.prefix))

    def _store_for(self, family: CacheFamily) -> BaseStore:
        return self.stores[family.store]

    # --- Reads ---

    async def get(self, key: str, revalidate: Optional[Loader] = None) -> Any:
        """
        Return the cached value for key, or None when absent.

        A stale value is still returned; if revalidate is given, one
        background refresh is scheduled for the key (not awaited).
        """
        cached = await self.lookup(key)
        if cached is None:
            return None
        if cached.stale and revalidate is not None:
            self._schedule_revalidation(key, revalidate)
        return cached.value

    async def lookup(self, key: str) -> Optional[CachedValue]:
        """Read a record with its freshness, purging it if it is corrupt."""
        family = self.family_for(key)
        store = self._store_for(family)

        try:
            raw = await store.read(key)
        except StorageError as e:
            logger.warning(f"Failed to read '{key}': {e}")
            return None

        if raw is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        try:
            record = CacheRecord.model_validate(raw)
            if record.key != key:
                raise CacheCorruptionError(f"Record key '{record.key}' does not match", key=key)
            if family.encrypted and not record.encrypted:
                raise CacheCorruptionError("Plaintext record in an encrypted family", key=key)
            value = self.cipher.decrypt(record.payload, key) if record.encrypted else record.payload
        except (ValidationError, CacheCorruptionError) as e:
            logger.warning(f"Cache corruption detected for '{key}', clearing record: {e}")
            await self._delete(store, key)
            return None

        now = self.clock()
        stale = record.is_stale(now)
        logger.debug(f"Cache {'stale hit' if stale else 'hit'} for key: {key}")
        return CachedValue(value=value, stored_at=record.timestamp, stale=stale)

    # --- Writes ---

    async def set(self, key: str, value: Any) -> bool:
        """
        Store value under key, replacing any previous record.

        Returns:
            True if persisted; False if the write failed (already logged).
        """
        family = self.family_for(key)
        store = self._store_for(family)

        try:
            plain = to_jsonable_python(value)
            payload = self.cipher.encrypt(plain) if family.encrypted else plain
        except (PydanticSerializationError, TypeError, ValueError) as e:
            logger.error(f"Cannot serialize value for '{key}': {e}")
            return False

        record = CacheRecord(
            key=key,
            payload=payload,
            encrypted=family.encrypted,
            timestamp=self.clock(),
            ttl=family.ttl,
        ).model_dump(mode="json")

        try:
            await store.write(key, record)
        except StorageQuotaExceeded as e:
            logger.warning(f"Storage quota exceeded writing '{key}', purging expired records: {e}")
            await self.purge_expired()
            try:
                await store.write(key, record)
            except StorageError as retry_error:
                logger.error(f"Failed to cache '{key}', continuing without it: {retry_error}")
                return False
        except StorageError as e:
            logger.error(f"Failed to cache '{key}', continuing without it: {e}")
            return False

        logger.debug(f"Cached key: {key} (family '{family.name}')")
        return True

    async def refresh(self, key: str, loader: Loader) -> Any:
        """
        Load a fresh value, store it and return it.

        The explicit freshness path: loader errors propagate to the caller.
        A loader returning None leaves the existing record untouched.
        """
        value = await loader()
        if value is not None:
            await self.set(key, value)
        return value

    # --- Background revalidation ---

    def _schedule_revalidation(self, key: str, loader: Loader) -> None:
        pending = self._revalidations.get(key)
        if pending is not None and not pending.done():
            return

        task = asyncio.get_running_loop().create_task(self._revalidate(key, loader))
        self._revalidations[key] = task
        self.revalidations_scheduled += 1
        logger.debug(f"Scheduled revalidation for key: {key}")

        def _forget(done: asyncio.Task) -> None:
            if self._revalidations.get(key) is done:
                del self._revalidations[key]

        task.add_done_callback(_forget)

    async def _revalidate(self, key: str, loader: Loader) -> None:
        try:
            await self.refresh(key, loader)
        except Exception as e:
            # The stale value stays in place until a later refresh succeeds
            logger.warning(f"Background revalidation of '{key}' failed: {e}")

    async def wait_for_revalidations(self) -> None:
        """Await every revalidation currently in flight."""
        while self._revalidations:
            await asyncio.gather(*list(self._revalidations.values()), return_exceptions=True)

    # --- Invalidation ---

    async def _delete(self, store: BaseStore, key: str) -> bool:
        try:
            return await store.delete(key)
        except StorageError as e:
            logger.warning(f"Failed to delete '{key}': {e}")
            return False

    async def invalidate(self, key: str) -> bool:
        return await self._delete(self._store_for(self.family_for(key)), key)

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix, in every store. Returns the count."""
        removed = 0
        for store in self._distinct_stores():
            try:
                keys = await store.keys(prefix)
            except StorageError as e:
                logger.warning(f"Failed to list keys for prefix '{prefix}': {e}")
                continue
            for key in keys:
                if await self._delete(store, key):
                    removed += 1
        logger.info(f"Invalidated {removed} keys with prefix '{prefix}'")
        return removed

    async def purge_expired(self) -> int:
        """Remove stale and unreadable records from every store. Returns the count."""
        now = self.clock()
        removed = 0
        for store in self._distinct_stores():
            try:
                keys = await store.keys()
            except StorageError as e:
                logger.warning(f"Failed to list keys while purging: {e}")
                continue
            for key in keys:
                raw = await store.read(key)
                try:
                    expired = CacheRecord.model_validate(raw).is_stale(now)
                except ValidationError:
                    expired = True
                if expired and await self._delete(store, key):
                    removed += 1
        logger.info(f"Purged {removed} expired records")
        return removed

    async def clear(self) -> int:
        return await self.invalidate_prefix("")

    def _distinct_stores(self) -> list[BaseStore]:
        stores = []
        for store in self.stores.values():
            if all(store is not s for s in stores):
                stores.append(store)
        return stores
