from __future__ import annotations

import logging
from typing import Protocol

from axo_sim.agents.agent import Agent
from axo_sim.db.sink import RecordSink
from axo_sim.utils.types import MemorySnapshot


class Embedder(Protocol):
    def embed(self, text: str) -> list[float]: ...


def summarize_agent(agent: Agent, tick: int, recent: int = 10) -> str:
    state = agent.state
    actions = ", ".join(
        f"{a.action}:{'ok' if a.success else 'fail'}" for a in state.history[-recent:]
    ) or "none"
    events = "; ".join(state.events[-recent:]) or "none"
    return (
        f"tick {tick} age {state.tick} stage {state.stage.value} status {state.status.value} "
        f"liquid {state.liquid:.2f} locked {state.locked:.2f} "
        f"earned {state.total_earned:.2f} spent {state.total_spent:.2f}. "
        f"Recent actions: {actions}. Recent events: {events}. "
        f"Last reasoning: {state.last_reasoning or 'none'}"
    )


class MemoryArchive:
    """Periodic per-agent memory snapshots with recall.

    With an embedder and a vector-capable sink, snapshots are embedded and
    recalled by similarity; otherwise recall returns the latest snapshots.
    """

    def __init__(
        self, sink: RecordSink, embedder: Embedder | None = None, interval: int = 100
    ) -> None:
        self.logger = logging.getLogger("axo_sim.memory")
        self.sink = sink
        self.embedder = embedder if getattr(sink, "supports_vectors", False) else None
        self.interval = interval
        self._write_count = 0

    def due(self, age: int) -> bool:
        return self.interval > 0 and age > 0 and age % self.interval == 0

    def _embed(self, text: str, agent_id: str, tick: int) -> list[float] | None:
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(text)
        except Exception as exc:
            self.logger.warning(
                "Memory embedding skipped: agent=%s tick=%d error=%s",
                agent_id,
                tick,
                exc.__class__.__name__,
            )
            return None

    def snapshot(self, agent: Agent, tick: int, importance: float = 0.5) -> MemorySnapshot:
        snapshot = MemorySnapshot(
            agent_id=agent.id,
            tick=tick,
            text=summarize_agent(agent, tick),
            balance=round(agent.state.total_balance, 6),
            genome_hash=agent.genome.meta.genome_hash,
            importance=importance,
        )
        self.sink.record_memory(snapshot, self._embed(snapshot.text, agent.id, tick))
        self._write_count += 1
        if self._write_count % 100 == 0:
            self.logger.info(
                "Memory write progress: writes=%d latest_tick=%d latest_agent=%s",
                self._write_count,
                tick,
                agent.id,
            )
        return snapshot

    def recall(self, agent_id: str, query: str, tick: int, limit: int = 3) -> list[str]:
        embedding = self._embed(query, agent_id, tick) if query else None
        return [m.text for m in self.sink.recall_memories(agent_id, tick, limit, embedding)]
