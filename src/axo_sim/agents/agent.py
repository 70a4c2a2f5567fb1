from __future__ import annotations

from dataclasses import dataclass, field

from axo_sim.genome.expression import express_genome
from axo_sim.genome.types import DynamicGenome, ExpressionResult
from axo_sim.utils.types import SurvivalState


@dataclass
class Agent:
    id: str
    name: str
    genome: DynamicGenome
    state: SurvivalState
    birth_tick: int = 0
    """Population tick at which the agent was born."""
    parent_ids: list[str] = field(default_factory=list)
    founder_ids: frozenset[str] = frozenset()
    """Every generation-0 ancestor, the agent itself when it is a founder."""

    @property
    def generation(self) -> int:
        return self.genome.meta.generation

    @property
    def alive(self) -> bool:
        return self.state.alive

    def expression(self) -> ExpressionResult:
        return express_genome(self.genome)

    def identity_signature(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "generation": self.generation,
            "lineage_id": self.genome.meta.lineage_id,
            "genome_hash": self.genome.meta.genome_hash[:12],
            "genes": self.genome.meta.total_genes,
        }
