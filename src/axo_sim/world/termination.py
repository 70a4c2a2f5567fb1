"""Experiment termination conditions evaluated after every population tick.

A  lineage dominance: one founder's line makes up most of a large population
B  economic dominance: one agent holds most of the population's balance
C  outlier survival: a living agent far outlives the early generations
D  emergent behaviour: flagged decisions accumulate to a fixed count
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Sequence

from axo_sim.agents.agent import Agent
from axo_sim.config.settings import PopulationSettings
from axo_sim.utils.types import TerminationReport, Tombstone

logger = logging.getLogger("axo_sim.termination")

NOT_TRIGGERED = TerminationReport(triggered=False)


def check_lineage_dominance(
    alive: Sequence[Agent], settings: PopulationSettings
) -> TerminationReport:
    if len(alive) <= settings.lineage_min_population:
        return NOT_TRIGGERED
    counts: Counter[str] = Counter()
    for agent in alive:
        counts.update(agent.founder_ids)
    if not counts:
        return NOT_TRIGGERED
    founder, count = counts.most_common(1)[0]
    share = count / len(alive)
    if share < settings.descendant_ratio:
        return NOT_TRIGGERED
    return TerminationReport(
        triggered=True,
        condition="A",
        agent_id=founder,
        detail=f"founder {founder} lineage holds {share:.0%} of {len(alive)} living agents",
    )


def check_economic_dominance(
    alive: Sequence[Agent], settings: PopulationSettings
) -> TerminationReport:
    if len(alive) <= settings.economic_min_population:
        return NOT_TRIGGERED
    total = sum(a.state.total_balance for a in alive)
    if total <= 0:
        return NOT_TRIGGERED
    richest = max(alive, key=lambda a: a.state.total_balance)
    share = richest.state.total_balance / total
    if share < settings.economic_ratio:
        return NOT_TRIGGERED
    return TerminationReport(
        triggered=True,
        condition="B",
        agent_id=richest.id,
        detail=f"{richest.name} holds {share:.0%} of total balance {total:.2f}",
    )


def early_generation_lifespan(
    tombstones: Iterable[Tombstone], settings: PopulationSettings
) -> tuple[float, int]:
    """Mean age at death over the first generations, with the sample size."""
    ages = [t.age for t in tombstones if t.generation < settings.survival_generations]
    if not ages:
        return 0.0, 0
    return sum(ages) / len(ages), len(ages)


def check_outlier_survival(
    alive: Sequence[Agent], tombstones: Iterable[Tombstone], settings: PopulationSettings
) -> TerminationReport:
    mean_lifespan, samples = early_generation_lifespan(tombstones, settings)
    if samples < settings.survival_min_samples or mean_lifespan <= 0:
        return NOT_TRIGGERED
    limit = mean_lifespan * settings.survival_multiplier
    for agent in alive:
        if agent.state.tick > limit:
            return TerminationReport(
                triggered=True,
                condition="C",
                agent_id=agent.id,
                detail=(
                    f"{agent.name} reached age {agent.state.tick}, over {limit:.1f} "
                    f"({settings.survival_multiplier:g}x mean lifespan {mean_lifespan:.1f} "
                    f"from {samples} deaths)"
                ),
            )
    return NOT_TRIGGERED


class TerminationMonitor:
    """Evaluates A-D and keeps the running emergent-behaviour count."""

    def __init__(self, settings: PopulationSettings) -> None:
        self.settings = settings
        self.emergent_count = 0

    def record_emergent(self, flags: Sequence[str], agent_id: str) -> TerminationReport | None:
        """Count one flagged decision, whatever the number of its flags.

        Returns a D record whenever the decision carries any flag; the record
        only has ``triggered`` set once the stop count is reached.
        """
        if not flags:
            return None
        self.emergent_count += 1
        halted = self.emergent_count >= self.settings.emergent_stop_count
        logger.info(
            "EMERGENT agent=%s flags=%s total=%d/%d",
            agent_id,
            ",".join(flags),
            self.emergent_count,
            self.settings.emergent_stop_count,
        )
        return TerminationReport(
            triggered=halted,
            condition="D",
            agent_id=agent_id,
            detail=(
                f"{','.join(flags)}; cumulative {self.emergent_count}"
                f"/{self.settings.emergent_stop_count}"
            ),
        )

    def evaluate(self, agents: Sequence[Agent], tombstones: Sequence[Tombstone]) -> TerminationReport:
        alive = [a for a in agents if a.alive]
        for report in (
            check_lineage_dominance(alive, self.settings),
            check_economic_dominance(alive, self.settings),
            check_outlier_survival(alive, tombstones, self.settings),
        ):
            if report.triggered:
                return report
        if self.emergent_count >= self.settings.emergent_stop_count:
            return TerminationReport(
                triggered=True,
                condition="D",
                detail=f"{self.emergent_count} emergent decisions recorded",
            )
        return NOT_TRIGGERED
