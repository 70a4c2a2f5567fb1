from __future__ import annotations

import json
from dataclasses import asdict

from axo_sim.db.connection import DBClient
from axo_sim.utils.types import (
    BirthRecord,
    EventRecord,
    MemorySnapshot,
    TerminationReport,
    Tombstone,
)


class LedgerRepository:
    def __init__(self, db: DBClient) -> None:
        self.db = db

    def create_run(self, run_id: str, seed: int, agents: int, ticks: int, model: str) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO runs (run_id, seed, agents, ticks, model)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (run_id) DO NOTHING
                """,
                (run_id, seed, agents, ticks, model),
            )

    def append_event(self, run_id: str, event: EventRecord) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO events (
                    run_id, tick, agent, kind, detail, payload, earnings, costs, losses
                )
                VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s, %s, %s)
                """,
                (
                    run_id,
                    event.tick,
                    event.agent,
                    event.kind,
                    event.detail,
                    json.dumps(event.payload),
                    event.earnings,
                    event.costs,
                    event.losses,
                ),
            )

    def append_memory_snapshot(
        self, run_id: str, snapshot: MemorySnapshot, embedding: list[float] | None
    ) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO memories (
                  run_id, agent, tick, text, balance, genome_hash, importance, embedding
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    run_id,
                    snapshot.agent_id,
                    snapshot.tick,
                    snapshot.text,
                    snapshot.balance,
                    snapshot.genome_hash,
                    snapshot.importance,
                    embedding,
                ),
            )

    def append_birth(self, run_id: str, birth: BirthRecord) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO births (run_id, agent_id, payload, tick)
                VALUES (%s, %s, %s::jsonb, %s)
                """,
                (run_id, birth.agent_id, json.dumps(asdict(birth)), birth.tick),
            )

    def append_tombstone(self, run_id: str, tombstone: Tombstone) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO tombstones (run_id, agent_id, cause, death_tick, payload)
                VALUES (%s, %s, %s, %s, %s::jsonb)
                """,
                (
                    run_id,
                    tombstone.agent_id,
                    tombstone.cause.value,
                    tombstone.death_tick,
                    json.dumps(tombstone.to_dict()),
                ),
            )

    def append_termination(self, run_id: str, tick: int, report: TerminationReport) -> None:
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO terminations (run_id, tick, condition, agent_id, detail)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (run_id, tick, report.condition or "", report.agent_id, report.detail),
            )

    def recall_memories(
        self,
        run_id: str,
        agent: str,
        tick: int,
        limit: int,
        embedding: list[float] | None = None,
    ) -> list[MemorySnapshot]:
        """Nearest snapshots by cosine distance, or the latest when no embedding is given."""
        with self.db.cursor() as cur:
            if embedding is None:
                cur.execute(
                    """
                    SELECT agent, tick, text, balance, genome_hash, importance
                    FROM memories
                    WHERE run_id = %s AND agent = %s AND tick <= %s
                    ORDER BY tick DESC
                    LIMIT %s
                    """,
                    (run_id, agent, tick, limit),
                )
            else:
                cur.execute(
                    """
                    SELECT agent, tick, text, balance, genome_hash, importance
                    FROM memories
                    WHERE run_id = %s AND agent = %s AND tick <= %s
                      AND embedding IS NOT NULL
                    ORDER BY embedding <=> %s::vector ASC
                    LIMIT %s
                    """,
                    (run_id, agent, tick, embedding, limit),
                )
            rows = cur.fetchall()
        return [
            MemorySnapshot(
                agent_id=str(r[0]),
                tick=int(r[1]),
                text=str(r[2]),
                balance=float(r[3]),
                genome_hash=str(r[4]),
                importance=float(r[5]),
            )
            for r in rows
        ]
