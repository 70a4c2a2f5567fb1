"""Genetic operators.

Each operator takes a genome and returns a new genome plus the event(s)
describing what changed. Inputs are never modified; the gene count and hash
of every returned genome are rebuilt from its chromosomes.
"""
from __future__ import annotations

import random
from dataclasses import replace

from axo_sim.config.settings import GeneticsSettings
from axo_sim.genome.factory import new_id, now_ms, rebuild_genome
from axo_sim.genome.types import (
    Chromosome,
    DynamicGenome,
    ExpressionState,
    Gene,
    GeneDomain,
    GeneOrigin,
    MutationEvent,
    MutationType,
)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _positions(genome: DynamicGenome) -> list[tuple[int, int]]:
    return [
        (ci, gi)
        for ci, chromosome in enumerate(genome.chromosomes)
        for gi in range(len(chromosome.genes))
    ]


def _with_genes(
    chromosomes: tuple[Chromosome, ...], index: int, genes: tuple[Gene, ...]
) -> tuple[Chromosome, ...]:
    return tuple(
        replace(c, genes=genes) if i == index else c for i, c in enumerate(chromosomes)
    )


# ---------------------------------------------------------------------------
# Single-genome operators
# ---------------------------------------------------------------------------

def point_mutation(
    genome: DynamicGenome, rng: random.Random
) -> tuple[DynamicGenome, MutationEvent | None]:
    positions = _positions(genome)
    if not positions:
        return genome, None
    ci, gi = rng.choice(positions)
    chromosome = genome.chromosomes[ci]
    gene = chromosome.genes[gi]
    delta = (rng.random() - 0.5) * 0.1
    mutated = replace(
        gene,
        value=_clamp(gene.value + delta),
        origin=GeneOrigin.MUTATED if gene.origin == GeneOrigin.PRIMORDIAL else gene.origin,
    )
    genes = chromosome.genes[:gi] + (mutated,) + chromosome.genes[gi + 1:]
    child = rebuild_genome(genome, _with_genes(genome.chromosomes, ci, genes))
    return child, MutationEvent(
        gene_id=gene.id,
        kind=MutationType.POINT,
        before=gene.value,
        after=mutated.value,
        generation=genome.meta.generation,
    )


def duplicate_gene(
    genome: DynamicGenome, rng: random.Random
) -> tuple[DynamicGenome, MutationEvent | None]:
    positions = _positions(genome)
    if not positions:
        return genome, None
    ci, gi = rng.choice(positions)
    chromosome = genome.chromosomes[ci]
    source = chromosome.genes[gi]
    copy = replace(
        source,
        id=f"{source.id}-dup-{new_id(rng, 4)}",
        value=_clamp(source.value * 0.95),
        weight=_clamp(source.weight * 0.5, 0.1, 3.0),
        origin=GeneOrigin.DUPLICATED,
        age=0,
        duplicate_of=source.id,
    )
    genes = chromosome.genes[: gi + 1] + (copy,) + chromosome.genes[gi + 1:]
    child = rebuild_genome(genome, _with_genes(genome.chromosomes, ci, genes))
    return child, MutationEvent(
        gene_id=copy.id,
        kind=MutationType.DUPLICATION,
        before=source.value,
        after=copy.value,
        generation=genome.meta.generation,
        detail=f"duplicate_of={source.id}",
    )


def delete_gene(
    genome: DynamicGenome, rng: random.Random
) -> tuple[DynamicGenome, MutationEvent | None]:
    eligible = [
        (ci, gi)
        for ci, gi in _positions(genome)
        if genome.chromosomes[ci].genes[gi].essentiality < 0.5
    ]
    if not eligible:
        return genome, None
    ci, gi = rng.choice(eligible)
    chromosome = genome.chromosomes[ci]
    removed = chromosome.genes[gi]
    genes = chromosome.genes[:gi] + chromosome.genes[gi + 1:]
    child = rebuild_genome(genome, _with_genes(genome.chromosomes, ci, genes))
    return child, MutationEvent(
        gene_id=removed.id,
        kind=MutationType.DELETION,
        before=removed.value,
        after=None,
        generation=genome.meta.generation,
        detail=removed.name,
    )


def horizontal_transfer(
    recipient: DynamicGenome,
    donor: DynamicGenome,
    donor_id: str,
    rng: random.Random,
) -> tuple[DynamicGenome, MutationEvent | None]:
    donor_genes = list(donor.iter_genes())
    if not donor_genes or not recipient.chromosomes:
        return recipient, None
    source = rng.choice(donor_genes)
    ci = rng.randrange(len(recipient.chromosomes))
    transferred = replace(
        source,
        id=f"hgt-{new_id(rng, 8)}",
        weight=_clamp(source.weight * 0.3, 0.1, 3.0),
        origin=GeneOrigin.HORIZONTAL_TRANSFER,
        age=0,
        duplicate_of=None,
        acquired_from=donor_id,
    )
    genes = recipient.chromosomes[ci].genes + (transferred,)
    child = rebuild_genome(recipient, _with_genes(recipient.chromosomes, ci, genes))
    return child, MutationEvent(
        gene_id=transferred.id,
        kind=MutationType.HORIZONTAL_TRANSFER,
        before=None,
        after=transferred.value,
        generation=recipient.meta.generation,
        detail=f"{source.name} from {donor_id}",
    )


def de_novo_gene(
    genome: DynamicGenome, rng: random.Random
) -> tuple[DynamicGenome, MutationEvent | None]:
    if not genome.chromosomes:
        return genome, None
    ci = rng.randrange(len(genome.chromosomes))
    gene = Gene(
        id=f"novo-{new_id(rng, 8)}",
        name=f"novel_{new_id(rng, 6)}",
        domain=rng.choice(list(GeneDomain)),
        value=rng.random(),
        weight=0.1 + rng.random() * 0.2,
        dominance=rng.random(),
        plasticity=rng.random(),
        essentiality=rng.random() * 0.2,
        metabolic_cost=rng.random() * 0.0001,
        origin=GeneOrigin.DE_NOVO,
        age=0,
        expression_state=ExpressionState.ACTIVE,
    )
    genes = genome.chromosomes[ci].genes + (gene,)
    child = rebuild_genome(genome, _with_genes(genome.chromosomes, ci, genes))
    return child, MutationEvent(
        gene_id=gene.id,
        kind=MutationType.DE_NOVO,
        before=None,
        after=gene.value,
        generation=genome.meta.generation,
        detail=f"{gene.name} domain={gene.domain.value}",
    )


# ---------------------------------------------------------------------------
# Recombination
# ---------------------------------------------------------------------------

def _inherit(gene: Gene, rng: random.Random) -> Gene:
    return replace(
        gene,
        id=f"{gene.id.split('-')[0]}-{new_id(rng, 6)}",
        origin=GeneOrigin.INHERITED if gene.origin == GeneOrigin.PRIMORDIAL else gene.origin,
        age=gene.age + 1,
    )


def crossover(
    parent_a: DynamicGenome,
    parent_b: DynamicGenome,
    rng: random.Random,
    recombination_probability: float = 0.5,
) -> tuple[DynamicGenome, list[MutationEvent]]:
    """Single-point recombination per chromosome pair.

    The child keeps parent A's chromosome layout, takes generation
    ``parent_a.generation + 1`` and a fresh lineage id. Regulatory edges and
    epigenetic marks are not inherited.
    """
    generation = parent_a.meta.generation + 1
    events: list[MutationEvent] = []
    chromosomes: list[Chromosome] = []
    for index, chr_a in enumerate(parent_a.chromosomes):
        chr_b = parent_b.chromosomes[index] if index < len(parent_b.chromosomes) else None
        if chr_b is None or rng.random() >= recombination_probability:
            genes = chr_a.genes
        else:
            cut = int(rng.random() * min(len(chr_a.genes), len(chr_b.genes)))
            genes = chr_a.genes[:cut] + chr_b.genes[cut:]
            events.append(
                MutationEvent(
                    gene_id=chr_a.id,
                    kind=MutationType.CROSSOVER,
                    before=float(len(chr_a.genes)),
                    after=float(len(genes)),
                    generation=generation,
                    detail=f"cut={cut}",
                )
            )
        chromosomes.append(replace(chr_a, genes=tuple(_inherit(g, rng) for g in genes)))

    child = rebuild_genome(
        parent_a,
        tuple(chromosomes),
        generation=generation,
        lineage_id=f"lineage-{new_id(rng)}",
        birth_timestamp=now_ms(),
        regulatory_network=(),
        epigenome=(),
    )
    return child, events


def mutate_offspring(
    genome: DynamicGenome,
    rng: random.Random,
    genetics: GeneticsSettings,
    rate_factor: float = 1.0,
    donor: tuple[str, DynamicGenome] | None = None,
) -> tuple[DynamicGenome, list[MutationEvent]]:
    """Roll every operator against its base rate scaled by ``rate_factor``.

    Growth operators are skipped once the genome reaches the max gene count.
    """
    events: list[MutationEvent] = []

    def _record(result: tuple[DynamicGenome, MutationEvent | None]) -> DynamicGenome:
        new_genome, event = result
        if event is not None:
            events.append(event)
        return new_genome

    point_rate = genetics.base_mutation_rate * rate_factor
    hits = sum(1 for _ in range(genome.meta.total_genes) if rng.random() < point_rate)
    for _ in range(hits):
        genome = _record(point_mutation(genome, rng))

    if genome.meta.total_genes < genetics.max_gene_count:
        if rng.random() < genetics.base_duplication_rate * rate_factor:
            genome = _record(duplicate_gene(genome, rng))
    if rng.random() < genetics.base_deletion_rate * rate_factor:
        genome = _record(delete_gene(genome, rng))
    if genome.meta.total_genes < genetics.max_gene_count:
        if rng.random() < genetics.base_de_novo_rate * rate_factor:
            genome = _record(de_novo_gene(genome, rng))
    if donor is not None and genome.meta.total_genes < genetics.max_gene_count:
        if rng.random() < genetics.base_hgt_rate * rate_factor:
            donor_id, donor_genome = donor
            genome = _record(horizontal_transfer(genome, donor_genome, donor_id, rng))
    return genome, events
