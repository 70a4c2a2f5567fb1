from __future__ import annotations

from axo_sim.genome.types import DynamicGenome

REGULATORY_EDGE_COST = 0.0001 * 0.1
EPIGENETIC_MARK_COST = 0.0001 * 0.05

# Reference operating costs in USD
INFERENCE_PER_CALL = 0.0001
GAS_PER_SWAP = 0.0035
GENOME_PER_GENE = 0.0002
COMPUTE_RENT_PER_DAY = 0.10


def daily_metabolic_cost(genome: DynamicGenome) -> float:
    """Maintenance cost of carrying this genome for one simulated day."""
    gene_cost = sum(g.metabolic_cost for g in genome.iter_genes())
    return (
        gene_cost
        + len(genome.regulatory_network) * REGULATORY_EDGE_COST
        + len(genome.epigenome) * EPIGENETIC_MARK_COST
    )


def tick_metabolic_cost(genome: DynamicGenome, tick_hours: float = 24.0) -> float:
    return daily_metabolic_cost(genome) * tick_hours / 24.0


def estimate_daily_cost(
    genome: DynamicGenome, inference_calls: int = 1, swaps: int = 0
) -> dict[str, float]:
    """Breakdown of a day's operating spend for reports and perception."""
    breakdown = {
        "inference": inference_calls * INFERENCE_PER_CALL,
        "gas": swaps * GAS_PER_SWAP,
        "genome": genome.meta.total_genes * GENOME_PER_GENE,
        "compute": COMPUTE_RENT_PER_DAY,
        "metabolism": daily_metabolic_cost(genome),
    }
    breakdown["total"] = sum(breakdown.values())
    return breakdown
