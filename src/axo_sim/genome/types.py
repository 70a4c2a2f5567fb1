"""Genome data model.

Every record here is a frozen dataclass holding tuples, so a genome is never
changed in place: operators build a new ``DynamicGenome`` and the caller
commits it.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class GeneDomain(str, Enum):
    METABOLISM = "metabolism"
    COGNITION = "cognition"
    RESOURCE_MGMT = "resource_mgmt"
    RISK_ASSESSMENT = "risk_assessment"
    TRADING = "trading"
    ONCHAIN_OP = "onchain_op"
    WEB_NAVIGATION = "web_navigation"
    CONTENT_CREATION = "content_creation"
    DATA_ANALYSIS = "data_analysis"
    API_UTILIZATION = "api_utilization"
    SOCIAL_MEDIA = "social_media"
    COOPERATION = "cooperation"
    COMPETITION = "competition"
    COMMUNICATION = "communication"
    TRUST_MODEL = "trust_model"
    MATE_SELECTION = "mate_selection"
    PARENTAL_INVEST = "parental_invest"
    HUMAN_HIRING = "human_hiring"
    HUMAN_COMM = "human_comm"
    HUMAN_EVAL = "human_eval"
    STRESS_RESPONSE = "stress_response"
    ADAPTATION = "adaptation"
    DORMANCY = "dormancy"
    MIGRATION = "migration"
    SELF_MODEL = "self_model"
    STRATEGY_EVAL = "strategy_eval"
    LEARNING = "learning"
    PLANNING = "planning"
    REGULATORY = "regulatory"


class GeneOrigin(str, Enum):
    PRIMORDIAL = "primordial"
    INHERITED = "inherited"
    DUPLICATED = "duplicated"
    MUTATED = "mutated"
    HORIZONTAL_TRANSFER = "horizontal_transfer"
    DE_NOVO = "de_novo"


class ExpressionState(str, Enum):
    ACTIVE = "active"
    SILENCED = "silenced"
    CONDITIONAL = "conditional"


class Modification(str, Enum):
    UPREGULATE = "upregulate"
    DOWNREGULATE = "downregulate"
    SILENCE = "silence"
    ACTIVATE = "activate"


class Relationship(str, Enum):
    ACTIVATION = "activation"
    INHIBITION = "inhibition"


class MutationType(str, Enum):
    POINT = "point"
    CROSSOVER = "crossover"
    DUPLICATION = "duplication"
    DELETION = "deletion"
    HORIZONTAL_TRANSFER = "horizontal_transfer"
    DE_NOVO = "de_novo"


@dataclass(frozen=True)
class Gene:
    id: str
    name: str
    domain: GeneDomain
    value: float
    """Base trait value in [0, 1]."""
    weight: float
    """Expression multiplier in [0.1, 3.0]."""
    dominance: float
    plasticity: float
    essentiality: float
    """0.5 or more makes the gene non-deletable."""
    metabolic_cost: float
    origin: GeneOrigin = GeneOrigin.PRIMORDIAL
    age: int = 0
    duplicate_of: str | None = None
    acquired_from: str | None = None
    expression_state: ExpressionState = ExpressionState.ACTIVE

    @property
    def is_essential(self) -> bool:
        return self.essentiality >= 0.5


@dataclass(frozen=True)
class Chromosome:
    id: str
    name: str
    genes: tuple[Gene, ...]
    is_essential: bool = True


@dataclass(frozen=True)
class RegulatoryEdge:
    source_gene_id: str
    target_gene_id: str
    relationship: Relationship
    strength: float


@dataclass(frozen=True)
class EpigeneticMark:
    target_gene_id: str
    modification: Modification
    strength: float
    cause: str
    heritability: float = 0.3
    decay_rate: float = 0.1
    generation_created: int = 0


@dataclass(frozen=True)
class GenomeMeta:
    generation: int
    lineage_id: str
    genome_hash: str
    total_genes: int
    birth_timestamp: int
    """Milliseconds since the epoch."""


@dataclass(frozen=True)
class DynamicGenome:
    meta: GenomeMeta
    chromosomes: tuple[Chromosome, ...]
    regulatory_network: tuple[RegulatoryEdge, ...] = ()
    epigenome: tuple[EpigeneticMark, ...] = ()

    def iter_genes(self) -> Iterator[Gene]:
        for chromosome in self.chromosomes:
            yield from chromosome.genes

    def count_genes(self) -> int:
        return sum(len(c.genes) for c in self.chromosomes)

    def essential_gene_count(self) -> int:
        return sum(1 for g in self.iter_genes() if g.is_essential)

    def find_gene(self, name: str) -> Gene | None:
        for gene in self.iter_genes():
            if gene.name == name:
                return gene
        return None

    def gene_by_id(self) -> dict[str, Gene]:
        return {g.id: g for g in self.iter_genes()}


@dataclass(frozen=True)
class MutationEvent:
    gene_id: str
    kind: MutationType
    before: float | None
    after: float | None
    generation: int
    detail: str = ""


# ---------------------------------------------------------------------------
# Phenotype
# ---------------------------------------------------------------------------

class Trait(str, Enum):
    """Bounded phenotype fields of ``ExpressionResult``.

    The value of each member is the attribute name on ``ExpressionResult``,
    so catalogs can gate on traits without string lookups.
    """

    RISK_APPETITE = "risk_appetite"
    ON_CHAIN_AFFINITY = "on_chain_affinity"
    COOPERATION_TENDENCY = "cooperation_tendency"
    SAVINGS_RATE = "savings_rate"
    INFERENCE_QUALITY = "inference_quality"
    CREATIVE_ABILITY = "creative_ability"
    ANALYTICAL_ABILITY = "analytical_ability"
    HUMAN_DEPENDENCE = "human_dependence"
    ADAPTATION_SPEED = "adaptation_speed"
    STRESS_RESPONSE = "stress_response"
    LEARNING_RATE = "learning_rate"
    PLANNING_HORIZON = "planning_horizon"
    CYCLE_SPEED = "cycle_speed"
    GLOBAL_MUTATION_RATE = "global_mutation_rate"
    CROSSOVER_RATE = "crossover_rate"


TRAIT_GENES: dict[Trait, str] = {
    Trait.RISK_APPETITE: "risk_appetite",
    Trait.ON_CHAIN_AFFINITY: "onchain_affinity",
    Trait.COOPERATION_TENDENCY: "cooperation_tendency",
    Trait.SAVINGS_RATE: "savings_rate",
    Trait.INFERENCE_QUALITY: "inference_quality_pref",
    Trait.CREATIVE_ABILITY: "content_creation_ability",
    Trait.ANALYTICAL_ABILITY: "data_analysis_skill",
    Trait.HUMAN_DEPENDENCE: "human_hiring_tendency",
    Trait.ADAPTATION_SPEED: "adaptation_speed",
    Trait.STRESS_RESPONSE: "stress_response_speed",
    Trait.LEARNING_RATE: "learning_rate",
    Trait.PLANNING_HORIZON: "planning_horizon",
    Trait.CYCLE_SPEED: "decision_cycle_speed",
    Trait.GLOBAL_MUTATION_RATE: "global_mutation_rate",
    Trait.CROSSOVER_RATE: "crossover_rate",
}

MAX_LIFESPAN_GENE = "max_lifespan"

DOMAIN_TRAITS: dict[GeneDomain, tuple[Trait, ...]] = {
    GeneDomain.RISK_ASSESSMENT: (Trait.RISK_APPETITE,),
    GeneDomain.ONCHAIN_OP: (Trait.ON_CHAIN_AFFINITY,),
    GeneDomain.COOPERATION: (Trait.COOPERATION_TENDENCY,),
    GeneDomain.RESOURCE_MGMT: (Trait.SAVINGS_RATE,),
    GeneDomain.COGNITION: (Trait.INFERENCE_QUALITY,),
    GeneDomain.CONTENT_CREATION: (Trait.CREATIVE_ABILITY,),
    GeneDomain.DATA_ANALYSIS: (Trait.ANALYTICAL_ABILITY,),
    GeneDomain.HUMAN_HIRING: (Trait.HUMAN_DEPENDENCE,),
    GeneDomain.ADAPTATION: (Trait.ADAPTATION_SPEED,),
    GeneDomain.STRESS_RESPONSE: (Trait.STRESS_RESPONSE,),
    GeneDomain.LEARNING: (Trait.LEARNING_RATE,),
    GeneDomain.PLANNING: (Trait.PLANNING_HORIZON,),
    GeneDomain.METABOLISM: (Trait.CYCLE_SPEED,),
    GeneDomain.REGULATORY: (Trait.GLOBAL_MUTATION_RATE, Trait.CROSSOVER_RATE),
}
"""Phenotype fields driven by genes of each domain."""


@dataclass(frozen=True)
class ExpressionResult:
    risk_appetite: float = 0.5
    on_chain_affinity: float = 0.5
    cooperation_tendency: float = 0.5
    savings_rate: float = 0.5
    inference_quality: float = 0.5
    creative_ability: float = 0.5
    analytical_ability: float = 0.5
    human_dependence: float = 0.5
    adaptation_speed: float = 0.5
    stress_response: float = 0.5
    learning_rate: float = 0.5
    planning_horizon: float = 0.5
    cycle_speed: float = 0.5
    global_mutation_rate: float = 0.5
    crossover_rate: float = 0.5
    metabolic_cost: float = 0.0
    """Unclamped sum of every gene's maintenance cost."""
    max_lifespan: int = 500
    """Lifespan in ticks."""

    def get(self, trait: Trait) -> float:
        return getattr(self, trait.value)

    def meets(self, requirements: dict[Trait, float], tolerance: float = 1.0) -> bool:
        """True when every required trait reaches ``threshold * tolerance``."""
        return all(self.get(t) >= threshold * tolerance for t, threshold in requirements.items())

    def as_dict(self) -> dict[str, float]:
        out = {t.value: round(self.get(t), 4) for t in Trait}
        out["metabolic_cost"] = round(self.metabolic_cost, 6)
        out["max_lifespan"] = self.max_lifespan
        return out
