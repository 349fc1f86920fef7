"""
ASKAI History — bounded log of past generations.

Stores (prompt, command, provider, timestamp, executed) records in a
single JSON file, newest last, capped at `max_entries` (FIFO eviction).
The same log feeds lightweight lexical retrieval of relevant past
commands, which is passed to providers as extra context.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from askai.errors import HistoryIOError
from askai.storage import ReadWriteLock, atomic_write_json, read_json

DEFAULT_MAX_ENTRIES = 100


class HistoryRecord(BaseModel):
    prompt: str
    command: str
    provider: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    executed: bool = False


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def tokenize(text: str) -> set[str]:
    return set(text.lower().split())


def keyword_overlap(prompt_tokens: set[str], record: HistoryRecord) -> int:
    """Number of shared case-insensitive tokens between a prompt and a record."""
    return len(prompt_tokens & tokenize(record.prompt))


Ranker = Callable[[set[str], HistoryRecord], int]


def rank_records(
    prompt: str,
    records: Sequence[HistoryRecord],
    k: int,
    ranker: Ranker = keyword_overlap,
) -> list[HistoryRecord]:
    """
    Pick up to `k` records relevant to `prompt`.

    Records scoring zero are dropped. Ties go to the most recent record,
    where `records` is ordered oldest first.
    """
    if k <= 0:
        return []
    tokens = tokenize(prompt)
    if not tokens:
        return []

    scored = []
    for index, record in enumerate(records):
        score = ranker(tokens, record)
        if score > 0:
            scored.append((score, index, record))

    scored.sort(key=lambda item: (-item[0], -item[1]))
    return [record for _, _, record in scored[:k]]


def format_context(records: Sequence[HistoryRecord]) -> str:
    """Render retrieved records as a context block for a provider prompt."""
    if not records:
        return ""
    lines = ["Relevant past commands:"]
    for i, record in enumerate(records, 1):
        lines.append(f'{i}. Prompt: "{record.prompt}" -> Command: "{record.command}"')
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class HistoryStore:
    """
    Append-only, bounded history persisted to disk.

    The file is the source of truth: every mutation re-reads it under the
    write lock, applies the change and renames a fresh copy into place, so
    the daemon and direct invocations can share one file. Read failures
    mean empty history; write failures are logged and swallowed.
    """

    def __init__(self, path: Path | None, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.path = Path(path) if path else None
        self.max_entries = max_entries
        self._lock = ReadWriteLock()
        self._records: list[HistoryRecord] = self._load()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def records(self) -> tuple[HistoryRecord, ...]:
        """Read-only snapshot, oldest first."""
        with self._lock.read():
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)

    def get_recent(self, count: int = 10) -> list[HistoryRecord]:
        if count <= 0:
            return []
        return list(self.records()[-count:])

    def retrieve_context(self, prompt: str, k: int = 3, ranker: Ranker = keyword_overlap) -> list[HistoryRecord]:
        return rank_records(prompt, self.records(), k, ranker)

    def stats(self) -> dict:
        records = self.records()
        providers: dict[str, int] = {}
        for r in records:
            providers[r.provider] = providers.get(r.provider, 0) + 1
        executed = sum(1 for r in records if r.executed)
        return {
            "total": len(records),
            "executed": executed,
            "execution_rate": round(executed / len(records) * 100, 1) if records else 0.0,
            "providers": providers,
            "capacity": self.max_entries,
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append(self, record: HistoryRecord) -> None:
        with self._lock.write():
            records = self._reload()
            records.append(record)
            if len(records) > self.max_entries:
                records = records[-self.max_entries:]
            self._records = records
            self._persist(records)

    def mark_executed(self, prompt: str, command: str) -> bool:
        """Flag the newest record matching (prompt, command) as executed."""
        with self._lock.write():
            records = self._reload()
            for record in reversed(records):
                if record.prompt == prompt and record.command == command:
                    record.executed = True
                    break
            else:
                return False
            self._records = records
            self._persist(records)
            return True

    def clear(self) -> None:
        with self._lock.write():
            self._records = []
            self._persist([])

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _reload(self) -> list[HistoryRecord]:
        if self.path is None or not self.path.exists():
            return list(self._records)
        return self._load()

    def _load(self) -> list[HistoryRecord]:
        if self.path is None:
            return []
        try:
            raw = read_json(self.path, default=[])
        except (OSError, ValueError) as e:
            logger.warning(f"[HISTORY] Treating unreadable history {self.path} as empty: {e}")
            return []

        if not isinstance(raw, list):
            logger.warning(f"[HISTORY] Treating malformed history {self.path} as empty")
            return []

        records = []
        for item in raw:
            try:
                records.append(HistoryRecord.model_validate(item))
            except ValidationError as e:
                logger.debug(f"[HISTORY] Skipping bad record: {e}")
        return records[-self.max_entries:]

    def _persist(self, records: list[HistoryRecord]) -> None:
        if self.path is None:
            return
        try:
            atomic_write_json(self.path, [r.model_dump(mode="json") for r in records])
        except OSError as e:
            err = HistoryIOError(f"Failed to write history file {self.path}: {e}")
            logger.warning(f"[HISTORY] {err}")
