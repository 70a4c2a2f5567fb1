from axo_sim.genome.defaults import FOUNDER_CHROMOSOMES, FOUNDER_GENE_COUNT
from axo_sim.genome.epigenetics import EnvironmentSignal, apply_epigenetics
from axo_sim.genome.expression import domain_expression, express_genome
from axo_sim.genome.factory import compute_genome_hash, create_founder_genome
from axo_sim.genome.metabolism import daily_metabolic_cost, tick_metabolic_cost
from axo_sim.genome.operators import (
    crossover,
    de_novo_gene,
    delete_gene,
    duplicate_gene,
    horizontal_transfer,
    mutate_offspring,
    point_mutation,
)
from axo_sim.genome.types import DynamicGenome, ExpressionResult, Trait

__all__ = [
    "FOUNDER_CHROMOSOMES",
    "FOUNDER_GENE_COUNT",
    "DynamicGenome",
    "EnvironmentSignal",
    "ExpressionResult",
    "Trait",
    "apply_epigenetics",
    "compute_genome_hash",
    "create_founder_genome",
    "crossover",
    "daily_metabolic_cost",
    "de_novo_gene",
    "delete_gene",
    "domain_expression",
    "duplicate_gene",
    "express_genome",
    "horizontal_transfer",
    "mutate_offspring",
    "point_mutation",
    "tick_metabolic_cost",
]
