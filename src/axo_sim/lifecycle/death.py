"""Death verdicts and the tombstones they leave behind."""
from __future__ import annotations

import random
from dataclasses import dataclass

from axo_sim.config.settings import EconomySettings, LifecycleSettings
from axo_sim.genome.types import ExpressionResult
from axo_sim.lifecycle.development import senescence_death_chance
from axo_sim.utils.types import DeathCause, SurvivalState, SurvivalStatus, Tombstone


@dataclass(frozen=True)
class DeathVerdict:
    dead: bool
    cause: DeathCause | None = None
    reason: str = "alive"


ALIVE = DeathVerdict(dead=False)


def check_death(
    state: SurvivalState,
    essential_genes: int,
    expression: ExpressionResult,
    economy: EconomySettings,
    lifecycle: LifecycleSettings,
    rng: random.Random,
) -> DeathVerdict:
    """Start-of-tick death check. The first matching condition wins."""
    if state.total_balance <= economy.death_balance_threshold:
        return DeathVerdict(True, DeathCause.ECONOMIC, "balance depleted")
    if state.status is SurvivalStatus.DYING and state.dying_countdown <= 0:
        return DeathVerdict(True, DeathCause.STARVATION, "dying countdown exhausted")
    if essential_genes < economy.min_essential_genes:
        return DeathVerdict(
            True,
            DeathCause.GENETIC,
            f"genome integrity compromised ({essential_genes} essential genes)",
        )
    if state.tick > expression.max_lifespan:
        return DeathVerdict(
            True, DeathCause.NATURAL, f"maximum lifespan {expression.max_lifespan} reached"
        )
    if state.consecutive_failures > economy.max_consecutive_failures:
        return DeathVerdict(True, DeathCause.ECONOMIC, "persistent failure to generate income")
    chance = senescence_death_chance(state.tick, lifecycle)
    if chance > 0 and rng.random() < chance:
        return DeathVerdict(True, DeathCause.SENESCENCE, f"senescence (p={chance:.3f})")
    return ALIVE


def emergency_verdict(state: SurvivalState, economy: EconomySettings) -> DeathVerdict:
    """Mid-tick check run after every phase."""
    if state.total_balance <= economy.death_balance_threshold:
        return DeathVerdict(True, DeathCause.ECONOMIC, "balance exhausted mid-tick")
    return ALIVE


def derive_lessons(
    cause: DeathCause, state: SurvivalState, expression: ExpressionResult
) -> list[str]:
    lessons: list[str] = []
    if cause in (DeathCause.ECONOMIC, DeathCause.STARVATION):
        if expression.risk_appetite > 0.7:
            lessons.append("high risk appetite led to over-speculation")
        if state.consecutive_failures > 20:
            lessons.append("kept losing money without cutting losses")
        if expression.adaptation_speed < 0.3:
            lessons.append("adapted too slowly to market changes")
        if state.total_earned < state.total_spent * 0.25:
            lessons.append("income never covered the metabolic floor")
    if state.llm_calls < 5:
        lessons.append("too passive, made few deliberate decisions")
    if state.llm_calls > state.tick * 2:
        lessons.append("over-trading, inference fees ate the principal")
    if not lessons:
        lessons.append("bad luck in a harsh market")
    return lessons


def build_tombstone(
    *,
    agent_id: str,
    name: str,
    generation: int,
    lineage_id: str,
    parent_ids: list[str],
    birth_tick: int,
    death_tick: int,
    state: SurvivalState,
    verdict: DeathVerdict,
    genome_hash: str,
    expression: ExpressionResult,
) -> Tombstone:
    cause = verdict.cause or DeathCause.ECONOMIC
    return Tombstone(
        agent_id=agent_id,
        name=name,
        generation=generation,
        lineage_id=lineage_id,
        parent_ids=list(parent_ids),
        birth_tick=birth_tick,
        death_tick=death_tick,
        age=state.tick,
        cause=cause,
        reason=verdict.reason,
        final_balance=round(state.total_balance + state.token_value, 6),
        genome_hash=genome_hash,
        last_reasoning=state.last_reasoning,
        total_earned=round(state.total_earned, 6),
        total_spent=round(state.total_spent, 6),
        offspring_count=state.offspring_count,
        lessons=derive_lessons(cause, state, expression),
    )
