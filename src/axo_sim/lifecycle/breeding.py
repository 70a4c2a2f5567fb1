"""Breeding gates and mate selection."""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Iterable

from axo_sim.config.settings import LifecycleSettings
from axo_sim.genome.types import DynamicGenome
from axo_sim.lifecycle.development import stage_profile
from axo_sim.utils.types import DevelopmentStage, SurvivalState

SELECTIVE_THRESHOLD = 0.7
"""Above this selectivity an agent waits for twice the breeding balance."""
ELITE_POOL_SELECTIVITY = 0.5


@dataclass(frozen=True)
class MateCandidate:
    """Pre-tick view of a potential mate; never mutated during the tick."""

    agent_id: str
    balance: float
    age: int
    stage: DevelopmentStage
    alive: bool
    genome: DynamicGenome


def can_breed(
    state: SurvivalState, balance: float, selectivity: float, lifecycle: LifecycleSettings
) -> tuple[bool, str]:
    """Gate on stage, age, cooldown and the tick-start ``balance``."""
    if not stage_profile(state.stage).can_reproduce:
        return False, f"stage {state.stage.value} cannot reproduce"
    if state.tick < lifecycle.minimum_breeding_age:
        return False, "too young"
    if (
        state.last_breeding_tick is not None
        and state.tick - state.last_breeding_tick < lifecycle.breeding_cooldown
    ):
        return False, "cooling down"
    required = lifecycle.breeding_balance_threshold
    if selectivity > SELECTIVE_THRESHOLD:
        required *= 2
    if balance < required:
        return False, f"balance {balance:.2f} below {required:.2f}"
    return True, "ready"


def genetic_distance(a: DynamicGenome, b: DynamicGenome) -> float:
    """Mean absolute value difference over gene names both genomes carry."""
    values_b: dict[str, float] = {}
    for gene in b.iter_genes():
        values_b.setdefault(gene.name, gene.value)
    seen: set[str] = set()
    diffs: list[float] = []
    for gene in a.iter_genes():
        if gene.name in seen or gene.name not in values_b:
            continue
        seen.add(gene.name)
        diffs.append(abs(gene.value - values_b[gene.name]))
    if not diffs:
        return 1.0
    return sum(diffs) / len(diffs)


def mate_score(candidate: MateCandidate, requester_genome: DynamicGenome) -> float:
    distance = genetic_distance(requester_genome, candidate.genome)
    return candidate.balance * (candidate.age + 1) * (1 + distance)


def select_mate(
    requester_id: str,
    requester_genome: DynamicGenome,
    candidates: Iterable[MateCandidate],
    selectivity: float,
    min_balance: float,
    rng: random.Random,
) -> str | None:
    """Pick a mate from the pre-tick snapshot.

    Eligible mates are living adults other than the requester who can pay
    the breeding cost. Selective agents draw from the top fifth by score,
    the rest from the top half.
    """
    eligible = [
        c
        for c in candidates
        if c.agent_id != requester_id
        and c.alive
        and stage_profile(c.stage).can_reproduce
        and c.balance >= min_balance
    ]
    if not eligible:
        return None
    ranked = sorted(eligible, key=lambda c: mate_score(c, requester_genome), reverse=True)
    fraction = 0.2 if selectivity > ELITE_POOL_SELECTIVITY else 0.5
    pool = ranked[: max(1, math.ceil(len(ranked) * fraction))]
    return rng.choice(pool).agent_id
