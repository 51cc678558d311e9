"""
Local instance registry.

The ledger cannot enumerate tanda instances, so the relay remembers which ids
it has seen created or joined. This is a **best-effort discovery index**, not
a system of record:

- it only ever answers "which ids might exist"; every field shown to a user
  comes from a fresh ledger read;
- entries are never deleted, participant lists are advisory;
- it can be dropped and rebuilt from nothing.

``InstanceRegistry`` keeps everything in memory. ``SqliteInstanceRegistry``
adds write-through persistence; storage failures are logged and the in-memory
view keeps serving, so a broken disk never fails a contract call.
"""

from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .logging import get_logger

log = get_logger(__name__)


@dataclass
class InstanceRegistryEntry:
    instance_id: str
    creator: str
    created_at: float = field(default_factory=time.time)
    participants: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "instance_id": self.instance_id,
            "creator": self.creator,
            "created_at": self.created_at,
            "participants": list(self.participants),
        }


def _dedupe(addresses: Iterable[str]) -> List[str]:
    out: List[str] = []
    for a in addresses:
        if a not in out:
            out.append(a)
    return out


class InstanceRegistry:
    def __init__(self) -> None:
        self._entries: Dict[str, InstanceRegistryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._entries

    def register(
        self,
        instance_id: str,
        creator: str,
        participants: Iterable[str] = (),
        *,
        created_at: Optional[float] = None,
    ) -> InstanceRegistryEntry:
        """Insert or overwrite an entry. The creator is always a participant."""
        entry = InstanceRegistryEntry(
            instance_id=instance_id,
            creator=creator,
            created_at=time.time() if created_at is None else created_at,
            participants=_dedupe([creator, *participants]),
        )
        self._entries[instance_id] = entry
        self._persist(entry)
        return entry

    def add_participant(self, instance_id: str, address: str) -> InstanceRegistryEntry:
        """Append ``address``; registers a bare entry when the id is unknown."""
        entry = self._entries.get(instance_id)
        if entry is None:
            # joined an instance created elsewhere; the creator is not known locally
            entry = InstanceRegistryEntry(instance_id=instance_id, creator="")
            self._entries[instance_id] = entry
        if address not in entry.participants:
            entry.participants.append(address)
        self._persist(entry)
        return entry

    def get(self, instance_id: str) -> Optional[InstanceRegistryEntry]:
        return self._entries.get(instance_id)

    def list_known_ids(self, *, creator: Optional[str] = None, participant: Optional[str] = None) -> List[str]:
        ids: List[str] = []
        for entry in sorted(self._entries.values(), key=lambda e: (e.created_at, e.instance_id)):
            if creator is not None and entry.creator != creator:
                continue
            if participant is not None and participant not in entry.participants:
                continue
            ids.append(entry.instance_id)
        return ids

    def _persist(self, entry: InstanceRegistryEntry) -> None:
        """Hook for durable subclasses."""


_SCHEMA = """
CREATE TABLE IF NOT EXISTS instances (
    instance_id  TEXT PRIMARY KEY,
    creator      TEXT NOT NULL,
    created_at   REAL NOT NULL,
    participants TEXT NOT NULL
);
"""


class SqliteInstanceRegistry(InstanceRegistry):
    """Write-through sqlite persistence; loads existing rows on open."""

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._conn: Optional[sqlite3.Connection] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path.as_posix(), isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn.execute("PRAGMA busy_timeout=5000;")
            self._conn.executescript(_SCHEMA)
            self._load()
        except (OSError, sqlite3.Error) as e:
            log.error("registry.open_failed", path=str(self.path), error=str(e))
            self._conn = None

    @property
    def durable(self) -> bool:
        return self._conn is not None

    def _load(self) -> None:
        assert self._conn is not None
        for row in self._conn.execute("SELECT instance_id, creator, created_at, participants FROM instances"):
            self._entries[row["instance_id"]] = InstanceRegistryEntry(
                instance_id=row["instance_id"],
                creator=row["creator"],
                created_at=row["created_at"],
                participants=list(json.loads(row["participants"])),
            )
        log.info("registry.loaded", path=str(self.path), entries=len(self._entries))

    def _persist(self, entry: InstanceRegistryEntry) -> None:
        if self._conn is None:
            return
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO instances (instance_id, creator, created_at, participants) VALUES (?, ?, ?, ?)",
                (entry.instance_id, entry.creator, entry.created_at, json.dumps(entry.participants)),
            )
        except sqlite3.Error as e:
            log.error("registry.persist_failed", instance_id=entry.instance_id, error=str(e))

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def open_registry(path: Optional[Union[str, Path]] = None) -> InstanceRegistry:
    return SqliteInstanceRegistry(path) if path else InstanceRegistry()


__all__ = ["InstanceRegistryEntry", "InstanceRegistry", "SqliteInstanceRegistry", "open_registry"]
