"""
ASKAI Response Cache

Maps a fingerprint of (normalized prompt, provider) to a generated
command with a TTL. Two variants share one contract:

  - ResponseCache      — process memory only (the daemon's cache)
  - DiskResponseCache  — the same, mirrored to a single JSON file

Usage:
    cache = DiskResponseCache(config.cache_path, ttl_seconds=3600)
    cache.put("현재 시간", "gemini", "date")
    cache.get("현재 시간 ", "gemini")   # -> "date"
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from loguru import logger
from pydantic import BaseModel, ValidationError, model_validator

from askai.errors import CacheIOError
from askai.storage import ReadWriteLock, atomic_write_json, read_json

DEFAULT_TTL_SECONDS = 3600

# Curated prompts inserted by `prewarm` to skip first-use latency.
COMMON_PROMPTS: list[tuple[str, str]] = [
    ("현재 시간", "date"),
    ("현재 시간 출력", "date"),
    ("git 상태", "git status"),
    ("git 상태 보기", "git status"),
    ("파일 목록", "ls -la"),
    ("파일 목록 보기", "ls -la"),
    ("현재 디렉토리", "pwd"),
    ("도커 컨테이너 목록", "docker ps"),
    ("npm 설치", "npm install"),
    ("cargo 빌드", "cargo build"),
    ("current time", "date"),
    ("git status", "git status"),
    ("list files", "ls -la"),
    ("current directory", "pwd"),
    ("disk usage", "df -h"),
    ("list docker containers", "docker ps"),
]


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def normalize_prompt(prompt: str) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    return " ".join(prompt.split()).lower()


def fingerprint(prompt: str, provider: str) -> str:
    """Deterministic cache key for (prompt, provider), stable across processes."""
    material = f"{normalize_prompt(prompt)}\x1f{provider.strip().lower()}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

class CacheEntry(BaseModel):
    key: str
    command: str
    created_at: float
    expires_at: float

    @model_validator(mode="after")
    def _check_expiry(self) -> "CacheEntry":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    entries: int
    expired: int
    hits: int
    misses: int
    ttl_seconds: int
    max_entries: int


# ---------------------------------------------------------------------------
# In-memory cache
# ---------------------------------------------------------------------------

class ResponseCache:
    """
    In-memory response cache.

    Lookups run concurrently; every mutation holds the write lock for
    the duration of the map change only.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = ReadWriteLock()
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def get(self, prompt: str, provider: str) -> str | None:
        key = fingerprint(prompt, provider)
        now = self._clock()
        with self._lock.read():
            entry = self._entries.get(key)
        if entry is None or entry.is_expired(now):
            with self._stats_lock:
                self._misses += 1
            return None
        with self._stats_lock:
            self._hits += 1
        return entry.command

    def put(self, prompt: str, provider: str, command: str) -> None:
        now = self._clock()
        entry = CacheEntry(
            key=fingerprint(prompt, provider),
            command=command,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        with self._lock.write():
            self._entries[entry.key] = entry
            self._evict_overflow()
        self._persist()

    def clear(self) -> None:
        with self._lock.write():
            self._entries.clear()
        self._persist()

    def prewarm(
        self,
        providers: Iterable[str],
        pairs: Iterable[tuple[str, str]] = COMMON_PROMPTS,
    ) -> int:
        """
        Insert curated (prompt, command) pairs for each provider without
        touching any generator. Live entries are left alone.

        Returns:
            int: Number of entries inserted.
        """
        now = self._clock()
        pairs = list(pairs)
        inserted = 0
        with self._lock.write():
            for provider in providers:
                for prompt, command in pairs:
                    key = fingerprint(prompt, provider)
                    current = self._entries.get(key)
                    if current is not None and not current.is_expired(now):
                        continue
                    self._entries[key] = CacheEntry(
                        key=key,
                        command=command,
                        created_at=now,
                        expires_at=now + self.ttl_seconds,
                    )
                    inserted += 1
            self._evict_overflow()
        if inserted:
            self._persist()
        logger.debug(f"[CACHE] Pre-warmed {inserted} entries")
        return inserted

    def sweep(self) -> int:
        """Physically drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock.write():
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            self._persist()
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock.read():
            entries = list(self._entries.values())
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        return CacheStats(
            entries=len(entries),
            expired=sum(1 for e in entries if e.is_expired(now)),
            hits=hits,
            misses=misses,
            ttl_seconds=self.ttl_seconds,
            max_entries=self.max_entries,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict_overflow(self) -> None:
        """Drop the oldest entries beyond capacity. Write lock held."""
        while len(self._entries) > self.max_entries:
            oldest = min(self._entries.values(), key=lambda e: e.created_at)
            del self._entries[oldest.key]

    def _persist(self) -> None:
        """Memory-only cache: nothing to write."""


# ---------------------------------------------------------------------------
# Disk-backed cache
# ---------------------------------------------------------------------------

class DiskResponseCache(ResponseCache):
    """
    Response cache mirrored to a single JSON file.

    File shape: {key: {"command", "created_at", "expires_at"}}.
    A missing or empty file is an empty cache; a corrupt one is discarded.
    Expired entries are dropped from the file on load.
    Write failures are logged and the call carries on without persistence.
    """

    def __init__(
        self,
        path: Path,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl_seconds=ttl_seconds, max_entries=max_entries, clock=clock)
        self.path = Path(path)
        self._io_lock = threading.Lock()
        self._entries = self._load()
        swept = self.sweep()
        if swept:
            logger.debug(f"[CACHE] Dropped {swept} expired entries from {self.path}")

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = read_json(self.path, default={})
        except (OSError, ValueError) as e:
            logger.warning(f"[CACHE] Discarding unreadable cache file {self.path}: {e}")
            return {}

        if not isinstance(raw, dict):
            logger.warning(f"[CACHE] Discarding malformed cache file {self.path}")
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry(key=key, **value)
            except (TypeError, ValidationError) as e:
                logger.debug(f"[CACHE] Skipping bad entry {key[:12]}: {e}")
        return entries

    def _persist(self) -> None:
        # Serialized so the last writer always carries the latest map
        with self._io_lock:
            with self._lock.read():
                snapshot = {
                    key: entry.model_dump(exclude={"key"})
                    for key, entry in self._entries.items()
                }
            try:
                atomic_write_json(self.path, snapshot)
            except OSError as e:
                err = CacheIOError(f"Failed to write cache file {self.path}: {e}")
                logger.warning(f"[CACHE] {err}")
