"""Append-only record sinks for events, memory snapshots, births, tombstones and terminations."""
from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import asdict
from pathlib import Path
from typing import Any, Protocol

from axo_sim.db.repository import LedgerRepository
from axo_sim.utils.types import (
    BirthRecord,
    EventRecord,
    MemorySnapshot,
    TerminationReport,
    Tombstone,
)


class RecordSink(Protocol):
    supports_vectors: bool

    def record_event(self, event: EventRecord) -> None: ...

    def record_memory(self, snapshot: MemorySnapshot, embedding: list[float] | None) -> None: ...

    def record_birth(self, birth: BirthRecord) -> None: ...

    def record_tombstone(self, tombstone: Tombstone) -> None: ...

    def record_termination(self, tick: int, report: TerminationReport) -> None: ...

    def recall_memories(
        self, agent_id: str, tick: int, limit: int, embedding: list[float] | None = None
    ) -> list[MemorySnapshot]: ...

    def close(self) -> None: ...


class _LocalMemoryIndex:
    """Most-recent-first recall for sinks without vector search."""

    supports_vectors = False

    def __init__(self) -> None:
        self._memories: dict[str, list[MemorySnapshot]] = defaultdict(list)

    def _index_memory(self, snapshot: MemorySnapshot) -> None:
        self._memories[snapshot.agent_id].append(snapshot)

    def recall_memories(
        self, agent_id: str, tick: int, limit: int, embedding: list[float] | None = None
    ) -> list[MemorySnapshot]:
        found = [m for m in self._memories.get(agent_id, []) if m.tick <= tick]
        return list(reversed(found))[:limit]


class InMemoryRecordSink(_LocalMemoryIndex):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[EventRecord] = []
        self.memories: list[MemorySnapshot] = []
        self.births: list[BirthRecord] = []
        self.tombstones: list[Tombstone] = []
        self.terminations: list[tuple[int, TerminationReport]] = []

    def record_event(self, event: EventRecord) -> None:
        self.events.append(event)

    def record_memory(self, snapshot: MemorySnapshot, embedding: list[float] | None) -> None:
        self.memories.append(snapshot)
        self._index_memory(snapshot)

    def record_birth(self, birth: BirthRecord) -> None:
        self.births.append(birth)

    def record_tombstone(self, tombstone: Tombstone) -> None:
        self.tombstones.append(tombstone)

    def record_termination(self, tick: int, report: TerminationReport) -> None:
        self.terminations.append((tick, report))

    def close(self) -> None:
        return None


class JsonlRecordSink(_LocalMemoryIndex):
    """One JSON object per line, one file per record kind, under ``run_dir``."""

    FILES = {
        "event": "events.jsonl",
        "memory": "memories.jsonl",
        "birth": "births.jsonl",
        "tombstone": "tombstones.jsonl",
        "termination": "terminations.jsonl",
    }

    def __init__(self, run_dir: Path) -> None:
        super().__init__()
        self.run_dir = run_dir
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self._handles = {
            kind: (self.run_dir / name).open("a", encoding="utf-8")
            for kind, name in self.FILES.items()
        }
        self.logger = logging.getLogger("axo_sim.sink")

    def _write(self, kind: str, payload: dict[str, Any]) -> None:
        handle = self._handles[kind]
        handle.write(json.dumps(payload, ensure_ascii=True, default=str) + "\n")
        handle.flush()

    def record_event(self, event: EventRecord) -> None:
        self._write("event", asdict(event))

    def record_memory(self, snapshot: MemorySnapshot, embedding: list[float] | None) -> None:
        payload = asdict(snapshot)
        payload["embedded"] = embedding is not None
        self._write("memory", payload)
        self._index_memory(snapshot)

    def record_birth(self, birth: BirthRecord) -> None:
        self._write("birth", asdict(birth))

    def record_tombstone(self, tombstone: Tombstone) -> None:
        self._write("tombstone", tombstone.to_dict())

    def record_termination(self, tick: int, report: TerminationReport) -> None:
        payload = asdict(report)
        payload["tick"] = tick
        self._write("termination", payload)

    def close(self) -> None:
        for handle in self._handles.values():
            handle.close()
        self.logger.info("Closed JSONL sink at %s", self.run_dir)


class PostgresRecordSink:
    supports_vectors = True

    def __init__(self, repo: LedgerRepository, run_id: str) -> None:
        self.repo = repo
        self.run_id = run_id

    def record_event(self, event: EventRecord) -> None:
        self.repo.append_event(self.run_id, event)

    def record_memory(self, snapshot: MemorySnapshot, embedding: list[float] | None) -> None:
        self.repo.append_memory_snapshot(self.run_id, snapshot, embedding)

    def record_birth(self, birth: BirthRecord) -> None:
        self.repo.append_birth(self.run_id, birth)

    def record_tombstone(self, tombstone: Tombstone) -> None:
        self.repo.append_tombstone(self.run_id, tombstone)

    def record_termination(self, tick: int, report: TerminationReport) -> None:
        self.repo.append_termination(self.run_id, tick, report)

    def recall_memories(
        self, agent_id: str, tick: int, limit: int, embedding: list[float] | None = None
    ) -> list[MemorySnapshot]:
        return self.repo.recall_memories(self.run_id, agent_id, tick, limit, embedding)

    def close(self) -> None:
        self.repo.db.close()
