from __future__ import annotations

import hashlib
import json
import random
import time
from dataclasses import replace

from axo_sim.genome.defaults import FOUNDER_CHROMOSOMES, GeneTemplate
from axo_sim.genome.types import (
    Chromosome,
    DynamicGenome,
    ExpressionState,
    Gene,
    GeneOrigin,
    GenomeMeta,
)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def new_id(rng: random.Random, length: int = 9) -> str:
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789"
    return "".join(rng.choice(alphabet) for _ in range(length))


def now_ms() -> int:
    return int(time.time() * 1000)


def compute_genome_hash(
    lineage_id: str, generation: int, chromosomes: tuple[Chromosome, ...]
) -> str:
    """Deterministic sha256 fingerprint over lineage, generation and every gene."""
    payload = {
        "lineageId": lineage_id,
        "generation": generation,
        "genes": [
            {"name": g.name, "value": g.value, "weight": g.weight}
            for c in chromosomes
            for g in c.genes
        ],
    }
    return hashlib.sha256(
        json.dumps(payload, separators=(",", ":")).encode("utf-8")
    ).hexdigest()


def rebuild_genome(
    genome: DynamicGenome,
    chromosomes: tuple[Chromosome, ...],
    **changes,
) -> DynamicGenome:
    """Return a genome with new chromosomes and a gene count and hash that match them."""
    meta_changes = {
        k: changes.pop(k) for k in ("generation", "lineage_id", "birth_timestamp") if k in changes
    }
    meta = replace(genome.meta, **meta_changes)
    meta = replace(
        meta,
        total_genes=sum(len(c.genes) for c in chromosomes),
        genome_hash=compute_genome_hash(meta.lineage_id, meta.generation, chromosomes),
    )
    return replace(genome, meta=meta, chromosomes=chromosomes, **changes)


def _gene_from_template(template: GeneTemplate, rng: random.Random) -> Gene:
    return Gene(
        id=f"{template.id}-{new_id(rng, 6)}",
        name=template.name,
        domain=template.domain,
        value=_clamp(template.value + (rng.random() - 0.5) * 0.2),
        weight=_clamp(template.weight + (rng.random() - 0.5) * 0.4, 0.1, 3.0),
        dominance=rng.random(),
        plasticity=rng.random() * 0.5,
        essentiality=template.essentiality,
        metabolic_cost=template.metabolic_cost,
        origin=GeneOrigin.PRIMORDIAL,
        age=0,
        expression_state=ExpressionState.ACTIVE,
    )


def create_founder_genome(
    rng: random.Random, lineage_id: str | None = None
) -> DynamicGenome:
    """Clone the founder template with per-gene random perturbation."""
    chromosomes = tuple(
        Chromosome(
            id=template.id,
            name=template.name,
            genes=tuple(_gene_from_template(g, rng) for g in template.genes),
            is_essential=template.is_essential,
        )
        for template in FOUNDER_CHROMOSOMES
    )
    lineage = lineage_id or f"lineage-{new_id(rng)}"
    return DynamicGenome(
        meta=GenomeMeta(
            generation=0,
            lineage_id=lineage,
            genome_hash=compute_genome_hash(lineage, 0, chromosomes),
            total_genes=sum(len(c.genes) for c in chromosomes),
            birth_timestamp=now_ms(),
        ),
        chromosomes=chromosomes,
    )
