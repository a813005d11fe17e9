"""
Result Cache - Content + settings addressed store for generation results.

Entries are keyed by "<content hash>:<settings hash>" and carry their own
TTL. The in-memory map is mirrored to a store (a JSON file by default)
under a fixed storage key, together with a schema version. A version
mismatch or malformed store wipes the cache; a malformed entry is
dropped on read. Corruption is never surfaced to callers.
"""

import json
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from threading import Lock
from typing import Any, Literal, Optional, Protocol, Union

from pydantic import BaseModel, ValidationError

from shared.logging import get_logger

from .errors import CachePersistenceError
from .models import ConsensusSettings, CouncilSettings

log = get_logger("quorum", "cache")

CACHE_VERSION = 1
CACHE_STORAGE_KEY = "consensusCache"
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
CONTENT_SEPARATOR = "\n---\n"
COUNCIL_PREFIX = "council-"

CacheKind = Literal["consensus", "council"]


# --- Hashing ---

def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _utf16_code_units(text: str):
    encoded = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(encoded), 2):
        yield encoded[i] | (encoded[i + 1] << 8)


def hash_string(text: str) -> str:
    """
    djb2 hash as lowercase hex of the unsigned 32-bit result.

    Iterates UTF-16 code units and reproduces 32-bit signed shift
    arithmetic, so hashes match values persisted by earlier clients.
    Not cryptographic.
    """
    h = 5381
    for unit in _utf16_code_units(text):
        h = _to_int32(_to_int32(h) << 5) + h + unit
    return format(h & 0xFFFFFFFF, "x")


def hash_content(contents: list[str]) -> str:
    """Hash a list of source texts joined with a fixed separator."""
    return hash_string(CONTENT_SEPARATOR.join(contents))


def _canonical_json(data: dict) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def hash_consensus_settings(settings: ConsensusSettings) -> str:
    """Hash only the consensus settings that change the generated result."""
    relevant = {
        "enabled": settings.enabled,
        "min_models_required": settings.min_models_required,
        "consensus_threshold": settings.consensus_threshold,
        "max_iterations": settings.max_iterations,
        "enable_source_validation": settings.enable_source_validation,
        "agents": sorted(settings.enabled_agent_ids),
    }
    return hash_string(_canonical_json(relevant))


def hash_council_settings(settings: CouncilSettings) -> str:
    """Hash the council settings that change the result, prefixed apart from consensus hashes."""
    relevant = {
        "enabled": settings.enabled,
        "min_models_required": settings.min_models_required,
        "enable_critique": settings.enable_critique,
        "enable_ranking": settings.enable_ranking,
        "chair": {
            "selection_strategy": settings.chair.selection_strategy,
            "configured_chair_id": settings.chair.configured_chair_id,
            "synthesis_weight": settings.chair.synthesis_weight,
        },
        "phase_timeouts": settings.phase_timeouts,
        "agents": sorted(
            ({"agent_id": a.agent_id, "weight": a.weight} for a in settings.agents if a.enabled),
            key=lambda a: a["agent_id"],
        ),
    }
    return COUNCIL_PREFIX + hash_string(_canonical_json(relevant))


# --- Structural guards ---

def _has_quiz(result: Any) -> bool:
    return (
        isinstance(result, dict)
        and isinstance(result.get("quiz"), dict)
        and isinstance(result["quiz"].get("questions"), list)
        and isinstance(result.get("success"), bool)
    )


def is_consensus_result(result: Any) -> bool:
    """Minimal shape check for a cached consensus result."""
    return _has_quiz(result) and isinstance(result.get("audit_trail"), dict)


def is_council_result(result: Any) -> bool:
    """Minimal shape check for a cached council result."""
    return _has_quiz(result) and isinstance(result.get("debate_trail"), dict)


_GUARDS = {
    "consensus": is_consensus_result,
    "council": is_council_result,
}


# --- Persistence ---

class CacheStore(Protocol):
    """Opaque load/save of a JSON-compatible blob."""

    def load(self) -> Optional[dict]: ...

    def save(self, data: dict) -> None: ...


class JsonFileStore:
    """Blob kept in a JSON file on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)


class MemoryStore:
    """In-process store, for tests and ephemeral runs."""

    def __init__(self, data: Optional[dict] = None):
        self.data = data
        self.saves = 0

    def load(self) -> Optional[dict]:
        return json.loads(json.dumps(self.data)) if self.data is not None else None

    def save(self, data: dict) -> None:
        self.data = json.loads(json.dumps(data))
        self.saves += 1


# --- Cache ---

class CacheEntry(BaseModel):
    """One cached result."""
    key: str
    result: Any
    cached_at: float  # Unix seconds
    content_hash: str
    settings_hash: str
    ttl: Optional[float] = None  # Seconds; None or 0 never expires
    kind: CacheKind


@dataclass
class CacheStats:
    total_entries: int = 0
    hits: int = 0
    misses: int = 0
    total_size: int = 0  # Approximate bytes of the serialized storage
    expired_entries: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def make_cache_key(content_hash: str, settings_hash: str) -> str:
    return f"{content_hash}:{settings_hash}"


class ResultCache:
    """
    Caches consensus and council results.

    All public methods are serialized by a lock; concurrent writers for the
    same key resolve as last write wins.
    """

    def __init__(
        self,
        store: CacheStore,
        default_ttl: Optional[float] = DEFAULT_TTL_SECONDS,
        ignore_expiration: bool = False,
    ):
        self.store = store
        self.default_ttl = default_ttl
        self.ignore_expiration = ignore_expiration
        self._lock = Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._stats = CacheStats()

    # --- Lifecycle ---

    def initialize(self) -> None:
        """
        Load entries from the store.

        Wipes everything on a version mismatch or a malformed storage
        block, drops individual entries that fail validation, then sweeps
        expired entries.
        """
        with self._lock:
            try:
                data = self.store.load()
            except Exception as e:
                log.warning("quorum.cache.load_failed", error=str(e), using_empty=True)
                self._entries = {}
                self._update_stats()
                return

            storage = data.get(CACHE_STORAGE_KEY) if isinstance(data, dict) else None
            if storage is None:
                self._update_stats()
                return

            if not isinstance(storage, dict) or storage.get("version") != CACHE_VERSION:
                found = storage.get("version") if isinstance(storage, dict) else None
                log.warning(
                    "quorum.cache.version_mismatch",
                    expected=CACHE_VERSION,
                    found=found,
                )
                self._clear_locked()
                return

            raw_entries = storage.get("entries")
            if not isinstance(raw_entries, dict):
                log.warning("quorum.cache.invalid_structure")
                self._clear_locked()
                return

            self._entries = {}
            for key, raw in raw_entries.items():
                try:
                    self._entries[key] = CacheEntry.model_validate(raw)
                except ValidationError:
                    log.warning("quorum.cache.entry_dropped", key=key)

            self._cleanup_expired_locked()
            self._update_stats()
            log.info("quorum.cache.initialized", entries=self._stats.total_entries)

    # --- Read / write ---

    def get(self, content_hash: str, settings_hash: str) -> Optional[Any]:
        """Return the cached consensus result, or None on a miss."""
        return self._get("consensus", content_hash, settings_hash)

    def get_council(self, content_hash: str, settings_hash: str) -> Optional[Any]:
        """Return the cached council result, or None on a miss."""
        return self._get("council", content_hash, settings_hash)

    def set(
        self,
        content_hash: str,
        settings_hash: str,
        result: Any,
        ttl: Optional[float] = None,
    ) -> None:
        self._set("consensus", content_hash, settings_hash, result, ttl)

    def set_council(
        self,
        content_hash: str,
        settings_hash: str,
        result: Any,
        ttl: Optional[float] = None,
    ) -> None:
        self._set("council", content_hash, settings_hash, result, ttl)

    def has(self, content_hash: str, settings_hash: str) -> bool:
        """Existence check. Does not touch stats or remove anything."""
        return self._has("consensus", content_hash, settings_hash)

    def has_council(self, content_hash: str, settings_hash: str) -> bool:
        return self._has("council", content_hash, settings_hash)

    # --- Invalidation ---

    def invalidate_by_settings(self, settings_hash: str) -> int:
        """Remove every entry built with these settings. Returns the count removed."""
        with self._lock:
            removed = self._remove_where(lambda e: e.settings_hash == settings_hash)
            if removed:
                log.info("quorum.cache.invalidated", by="settings", count=removed)
            return removed

    def invalidate_by_content(self, content_hash: str) -> int:
        """Remove every entry built from this content. Returns the count removed."""
        with self._lock:
            removed = self._remove_where(lambda e: e.content_hash == content_hash)
            if removed:
                log.info("quorum.cache.invalidated", by="content", count=removed)
            return removed

    def clear(self) -> int:
        """Remove everything. Returns the count removed."""
        with self._lock:
            return self._clear_locked()

    def cleanup_expired(self) -> int:
        """Sweep expired entries regardless of ignore_expiration. Returns the count removed."""
        with self._lock:
            return self._cleanup_expired_locked()

    # --- Stats ---

    def get_stats(self) -> CacheStats:
        with self._lock:
            return replace(self._stats)

    def reset_stats(self) -> None:
        """Zero the hit/miss/expired counters. Entries are untouched."""
        with self._lock:
            self._stats.hits = 0
            self._stats.misses = 0
            self._stats.expired_entries = 0

    # --- Internals (caller holds the lock) ---

    def _get(self, kind: CacheKind, content_hash: str, settings_hash: str) -> Optional[Any]:
        key = make_cache_key(content_hash, settings_hash)
        with self._lock:
            entry = self._entries.get(key)

            if entry is None or entry.kind != kind:
                self._stats.misses += 1
                return None

            if not self.ignore_expiration and self._is_expired(entry):
                self._stats.misses += 1
                self._stats.expired_entries += 1
                del self._entries[key]
                self._persist_after_read()
                self._update_stats()
                log.debug("quorum.cache.expired", key=key)
                return None

            if not _GUARDS[kind](entry.result):
                log.warning("quorum.cache.invalid_entry", key=key, kind=kind)
                del self._entries[key]
                self._persist_after_read()
                self._update_stats()
                self._stats.misses += 1
                return None

            self._stats.hits += 1
            log.info("quorum.cache.hit", key=key, kind=kind)
            return entry.result

    def _set(
        self,
        kind: CacheKind,
        content_hash: str,
        settings_hash: str,
        result: Any,
        ttl: Optional[float],
    ) -> None:
        key = make_cache_key(content_hash, settings_hash)
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                result=result,
                cached_at=time.time(),
                content_hash=content_hash,
                settings_hash=settings_hash,
                ttl=ttl if ttl is not None else self.default_ttl,
                kind=kind,
            )
            self._persist()
            self._update_stats()
            log.debug("quorum.cache.stored", key=key, kind=kind)

    def _has(self, kind: CacheKind, content_hash: str, settings_hash: str) -> bool:
        with self._lock:
            entry = self._entries.get(make_cache_key(content_hash, settings_hash))
            if entry is None or entry.kind != kind:
                return False
            return self.ignore_expiration or not self._is_expired(entry)

    def _is_expired(self, entry: CacheEntry) -> bool:
        if not entry.ttl:
            return False
        return time.time() - entry.cached_at > entry.ttl

    def _remove_where(self, predicate) -> int:
        doomed = [key for key, entry in self._entries.items() if predicate(entry)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            self._persist()
            self._update_stats()
        return len(doomed)

    def _clear_locked(self) -> int:
        count = len(self._entries)
        self._entries = {}
        self._persist()
        self._update_stats()
        log.info("quorum.cache.cleared", count=count)
        return count

    def _cleanup_expired_locked(self) -> int:
        removed = self._remove_where(self._is_expired)
        if removed:
            log.info("quorum.cache.expired_swept", count=removed)
        return removed

    def _storage_blob(self) -> dict:
        return {
            "version": CACHE_VERSION,
            "entries": {key: entry.model_dump() for key, entry in self._entries.items()},
        }

    def _persist(self) -> None:
        try:
            data = self.store.load()
        except Exception as e:
            log.warning("quorum.cache.reload_failed", error=str(e))
            data = None
        if not isinstance(data, dict):
            data = {}

        data[CACHE_STORAGE_KEY] = self._storage_blob()
        try:
            self.store.save(data)
        except Exception as e:
            log.error("quorum.cache.persist_failed", error=str(e))
            raise CachePersistenceError("Unable to save cache data") from e

    def _persist_after_read(self) -> None:
        """Reads never fail on storage; the in-memory removal stands either way."""
        try:
            self._persist()
        except CachePersistenceError:
            log.warning("quorum.cache.read_persist_failed")

    def _update_stats(self) -> None:
        self._stats.total_entries = len(self._entries)
        try:
            serialized = json.dumps(self._storage_blob())
            self._stats.total_size = len(serialized.encode("utf-8"))
        except (TypeError, ValueError):
            self._stats.total_size = 0
