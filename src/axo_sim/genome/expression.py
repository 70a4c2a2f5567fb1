from __future__ import annotations

import math
from statistics import mean

from axo_sim.genome.types import (
    MAX_LIFESPAN_GENE,
    TRAIT_GENES,
    DynamicGenome,
    ExpressionResult,
    ExpressionState,
    Gene,
    GeneDomain,
    Modification,
    Relationship,
)

DEFAULT_VALUE = 0.5

_MARK_SIGN = {
    Modification.UPREGULATE: 1.0,
    Modification.ACTIVATE: 1.0,
    Modification.DOWNREGULATE: -1.0,
    Modification.SILENCE: -1.0,
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def gene_expression(genome: DynamicGenome, gene: Gene) -> float:
    """Effective value of one gene: base, regulation and marks, clamped to [0, 1]."""
    if gene.expression_state == ExpressionState.SILENCED:
        return 0.0
    value = gene.value * gene.weight

    by_id = genome.gene_by_id() if genome.regulatory_network else {}
    for edge in genome.regulatory_network:
        if edge.target_gene_id != gene.id:
            continue
        source = by_id.get(edge.source_gene_id)
        if source is None:
            continue
        effect = source.value * edge.strength
        value += effect if edge.relationship == Relationship.ACTIVATION else -effect

    for mark in genome.epigenome:
        if mark.target_gene_id == gene.id:
            value += _MARK_SIGN[mark.modification] * mark.strength

    return _clamp(value)


def named_expression(genome: DynamicGenome, name: str) -> float:
    gene = genome.find_gene(name)
    if gene is None:
        return DEFAULT_VALUE
    return gene_expression(genome, gene)


def express_genome(genome: DynamicGenome) -> ExpressionResult:
    """Resolve a genome into its phenotype. Pure: same genome, same result."""
    traits = {
        trait.value: named_expression(genome, gene_name)
        for trait, gene_name in TRAIT_GENES.items()
    }
    return ExpressionResult(
        **traits,
        metabolic_cost=sum(g.metabolic_cost for g in genome.iter_genes()),
        max_lifespan=int(math.floor(named_expression(genome, MAX_LIFESPAN_GENE) * 1000)),
    )


def domain_expression(genome: DynamicGenome, domain: GeneDomain) -> float:
    """Mean effective value of every gene in ``domain``."""
    values = [gene_expression(genome, g) for g in genome.iter_genes() if g.domain == domain]
    if not values:
        return DEFAULT_VALUE
    return mean(values)
