from __future__ import annotations

import logging


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class ReputationBook:
    """Task-market reputation per agent, owned by the population manager."""

    def __init__(self, initial: float = 0.5) -> None:
        self.initial = initial
        self._scores: dict[str, float] = {}
        self.logger = logging.getLogger("axo_sim.reputation")

    def get(self, agent_id: str) -> float:
        return self._scores.get(agent_id, self.initial)

    def adjust(self, agent_id: str, delta: float) -> float:
        score = clamp(self.get(agent_id) + delta)
        self._scores[agent_id] = score
        self.logger.debug("Reputation %s %+.3f -> %.3f", agent_id, delta, score)
        return score

    def forget(self, agent_id: str) -> None:
        self._scores.pop(agent_id, None)

    def as_dict(self) -> dict[str, float]:
        return dict(self._scores)

    def load(self, scores: dict[str, float]) -> None:
        self._scores = {agent_id: clamp(float(v)) for agent_id, v in scores.items()}
