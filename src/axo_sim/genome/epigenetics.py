from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from axo_sim.genome.types import (
    DOMAIN_TRAITS,
    MAX_LIFESPAN_GENE,
    DynamicGenome,
    EpigeneticMark,
    GeneDomain,
    Modification,
    Trait,
)

MARK_STRENGTH_FLOOR = 0.01


@dataclass(frozen=True)
class EnvironmentSignal:
    """What the epigenetic engine senses about an agent's situation this tick."""

    balance: float
    days_since_last_income: int = 0
    days_starving: int = 0
    days_thriving: int = 0
    stress_level: float = 0.0


@dataclass(frozen=True)
class EpigeneticTrigger:
    cause: str
    condition: Callable[[EnvironmentSignal], bool]
    domain: GeneDomain
    modification: Modification
    strength: float
    spared: frozenset[str] = frozenset()
    """Gene names in the domain that this trigger leaves unmarked."""


TRIGGERS: tuple[EpigeneticTrigger, ...] = (
    EpigeneticTrigger(
        "low_balance_dormancy", lambda s: s.balance < 2,
        GeneDomain.DORMANCY, Modification.ACTIVATE, 0.6,
    ),
    EpigeneticTrigger(
        "low_balance_metabolism", lambda s: s.balance < 2,
        GeneDomain.METABOLISM, Modification.DOWNREGULATE, 0.5,
        frozenset({MAX_LIFESPAN_GENE}),
    ),
    EpigeneticTrigger(
        "prolonged_starvation", lambda s: s.days_starving > 3,
        GeneDomain.ADAPTATION, Modification.UPREGULATE, 0.4,
    ),
    EpigeneticTrigger(
        "sustained_prosperity", lambda s: s.days_thriving > 7,
        GeneDomain.MATE_SELECTION, Modification.UPREGULATE, 0.3,
    ),
    EpigeneticTrigger(
        "high_stress", lambda s: s.stress_level > 0.7,
        GeneDomain.STRESS_RESPONSE, Modification.UPREGULATE, 0.5,
    ),
)


@dataclass(frozen=True)
class EpigeneticUpdate:
    genome: DynamicGenome
    fired: tuple[str, ...]
    affected_traits: tuple[Trait, ...]
    pruned: int


def decay_marks(
    marks: tuple[EpigeneticMark, ...], generation: int
) -> tuple[tuple[EpigeneticMark, ...], int]:
    """Exponential decay by generation distance; marks at or below the floor are dropped."""
    kept: list[EpigeneticMark] = []
    for mark in marks:
        elapsed = max(0, generation - mark.generation_created)
        strength = mark.strength * (1 - mark.decay_rate) ** elapsed
        if strength > MARK_STRENGTH_FLOOR:
            kept.append(replace(mark, strength=strength) if elapsed else mark)
    return tuple(kept), len(marks) - len(kept)


def apply_epigenetics(
    genome: DynamicGenome,
    signal: EnvironmentSignal,
    triggers: tuple[EpigeneticTrigger, ...] = TRIGGERS,
) -> EpigeneticUpdate:
    """Mark every gene of each triggered domain.

    Re-triggering the same cause on the same gene overwrites the earlier mark,
    so repeated ticks never stack strength.
    """
    generation = genome.meta.generation
    marks, pruned = decay_marks(genome.epigenome, generation)
    by_key: dict[tuple[str, str], EpigeneticMark] = {
        (m.target_gene_id, m.cause): m for m in marks
    }
    fired: list[str] = []
    affected: list[Trait] = []
    for trigger in triggers:
        if not trigger.condition(signal):
            continue
        fired.append(trigger.cause)
        affected.extend(t for t in DOMAIN_TRAITS.get(trigger.domain, ()) if t not in affected)
        for gene in genome.iter_genes():
            if gene.domain != trigger.domain or gene.name in trigger.spared:
                continue
            by_key[(gene.id, trigger.cause)] = EpigeneticMark(
                target_gene_id=gene.id,
                modification=trigger.modification,
                strength=trigger.strength,
                cause=trigger.cause,
                generation_created=generation,
            )
    return EpigeneticUpdate(
        genome=replace(genome, epigenome=tuple(by_key.values())),
        fired=tuple(fired),
        affected_traits=tuple(affected),
        pruned=pruned,
    )
