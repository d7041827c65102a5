"""TTL result cache over a pluggable key-value store.

Entries are stored as JSON under namespaced keys:

    gitlab_mr_complexity_<project>_<iid>     24h  diffs don't change after merge
    gitlab_analytics_<project>_<timeframe>    2h  new changes keep landing
    gitlab_engineer_<project>_<user>_<tf>     1h

Each entry embeds its key fields and is checked against the lookup key
on read. Expired, corrupt or mismatched entries are removed and read
as a miss. There is no background eviction.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Protocol, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class CacheKind(str, Enum):
    COMPLEXITY = "complexity"
    ANALYTICS = "analytics"
    ENGINEER = "engineer"


KEY_PREFIXES = {
    CacheKind.COMPLEXITY: "gitlab_mr_complexity_",
    CacheKind.ANALYTICS: "gitlab_analytics_",
    CacheKind.ENGINEER: "gitlab_engineer_",
}

DEFAULT_TTLS = {
    CacheKind.COMPLEXITY: timedelta(hours=24),
    CacheKind.ANALYTICS: timedelta(hours=2),
    CacheKind.ENGINEER: timedelta(hours=1),
}


@dataclass(frozen=True)
class CacheKey:
    """Composite cache key."""

    kind: CacheKind
    project: str
    scope: str | None = None  # username for per-engineer entries
    timeframe: str | None = None
    tag: str | None = None  # e.g., merge request iid

    def storage_key(self) -> str:
        parts = [self.project, self.scope, self.timeframe, self.tag]
        return KEY_PREFIXES[self.kind] + "_".join(p for p in parts if p is not None)


class CacheEntry(BaseModel):
    """Stored form of a cached result."""
    kind: CacheKind
    project: str
    scope: str | None = None
    timeframe: str | None = None
    tag: str | None = None
    timestamp: float
    data: dict = Field(default_factory=dict)

    def matches(self, key: CacheKey) -> bool:
        return (
            self.kind == key.kind
            and self.project == key.project
            and self.scope == key.scope
            and self.timeframe == key.timeframe
            and self.tag == key.tag
        )


@dataclass
class CacheInfo:
    """What is cached for a project (and user)."""

    cached: bool
    last_updated: datetime | None
    timeframes: list[str]


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class MemoryStore:
    """In-process store, mainly for tests and one-shot runs."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class JsonFileStore:
    """One JSON file per key under a directory.

    Writes go to a temp file first, then an atomic rename, so a killed
    process never leaves a half-written entry.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text()

    def set(self, key: str, value: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(key)
        temp_file = f"{path}.tmp"
        with open(temp_file, "w") as f:
            f.write(value)
        os.replace(temp_file, path)  # Atomic on POSIX

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> Iterator[str]:
        if not self.directory.exists():
            return iter([])
        return iter(
            sorted(unquote(p.name[: -len(self.SUFFIX)]) for p in self.directory.glob(f"*{self.SUFFIX}"))
        )


class ResultCache:
    """Typed TTL cache over a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        ttls: dict[CacheKind, timedelta] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.clock = clock

    def _load(self, storage_key: str) -> CacheEntry | None:
        """Parse a stored entry; unreadable entries are removed."""
        try:
            raw = self.store.get(storage_key)
        except UnicodeDecodeError:
            logger.warning(f"Removing undecodable cache entry {storage_key}")
            self._delete(storage_key)
            return None
        except OSError as e:
            logger.warning(f"Cache read failed for {storage_key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Removing corrupt cache entry {storage_key}: {e.error_count()} errors")
            self._delete(storage_key)
            return None

    def _delete(self, storage_key: str) -> None:
        try:
            self.store.delete(storage_key)
        except OSError as e:
            logger.warning(f"Cache delete failed for {storage_key}: {e}")

    def _is_expired(self, entry: CacheEntry) -> bool:
        age = self.clock() - entry.timestamp
        return age > self.ttls[entry.kind].total_seconds()

    def get(self, key: CacheKey, model: type[T]) -> T | None:
        """Cached payload for key, or None on any kind of miss."""
        storage_key = key.storage_key()
        entry = self._load(storage_key)
        if entry is None:
            return None

        if not entry.matches(key):
            logger.warning(f"Cache key mismatch for {storage_key}, removing")
            self._delete(storage_key)
            return None

        if self._is_expired(entry):
            logger.info(f"Cache expired for {storage_key}")
            self._delete(storage_key)
            return None

        try:
            return model.model_validate(entry.data)
        except ValidationError:
            logger.warning(f"Cached payload for {storage_key} no longer matches {model.__name__}, removing")
            self._delete(storage_key)
            return None

    def set(self, key: CacheKey, payload: BaseModel) -> None:
        """Store payload under key, overwriting any previous entry."""
        entry = CacheEntry(
            kind=key.kind,
            project=key.project,
            scope=key.scope,
            timeframe=key.timeframe,
            tag=key.tag,
            timestamp=self.clock(),
            data=payload.model_dump(mode="json"),
        )
        try:
            self.store.set(key.storage_key(), entry.model_dump_json())
        except OSError as e:
            logger.warning(f"Cache write failed for {key.storage_key()}: {e}")

    def _entries(self, kind: CacheKind) -> Iterator[tuple[str, CacheEntry | None]]:
        prefix = KEY_PREFIXES[kind]
        for storage_key in list(self.store.keys()):
            if storage_key.startswith(prefix):
                yield storage_key, self._load(storage_key)

    def clear(
        self,
        kind: CacheKind | None = None,
        project: str | None = None,
        scope: str | None = None,
    ) -> int:
        """Remove entries of one kind (or all kinds), optionally narrowed.

        Returns the number of entries removed. Unreadable entries under a
        cleared prefix are always removed.
        """
        kinds = [kind] if kind else list(CacheKind)
        removed = 0
        for k in kinds:
            for storage_key, entry in self._entries(k):
                if entry is not None:
                    if project is not None and entry.project != project:
                        continue
                    if scope is not None and entry.scope != scope:
                        continue
                self._delete(storage_key)
                removed += 1

        logger.info(f"Cleared {removed} cache entries (kind={kind}, project={project}, scope={scope})")
        return removed

    def invalidate_project(self, project: str) -> int:
        """Drop everything cached for a project, e.g. after a credential change."""
        return self.clear(project=project)

    def info(self, kind: CacheKind, project: str, scope: str | None = None) -> CacheInfo:
        """Summarize live entries of one kind for a project (and user)."""
        timestamps = []
        timeframes = set()
        for _, entry in self._entries(kind):
            if entry is None or entry.project != project or entry.scope != scope:
                continue
            if self._is_expired(entry):
                continue
            timestamps.append(entry.timestamp)
            if entry.timeframe:
                timeframes.add(entry.timeframe)

        if not timestamps:
            return CacheInfo(cached=False, last_updated=None, timeframes=[])

        return CacheInfo(
            cached=True,
            last_updated=datetime.fromtimestamp(max(timestamps), UTC),
            timeframes=sorted(timeframes),
        )
