"""Founder gene template: 63 genes on 8 chromosomes."""
from __future__ import annotations

from dataclasses import dataclass

from axo_sim.genome.types import GeneDomain as D


@dataclass(frozen=True)
class GeneTemplate:
    id: str
    name: str
    domain: D
    essentiality: float
    value: float = 0.5
    weight: float = 1.0
    dominance: float = 0.5
    plasticity: float = 0.25

    @property
    def metabolic_cost(self) -> float:
        return self.essentiality * 0.0005


@dataclass(frozen=True)
class ChromosomeTemplate:
    id: str
    name: str
    genes: tuple[GeneTemplate, ...]
    is_essential: bool = True


def _genes(*rows: tuple[str, str, D, float]) -> tuple[GeneTemplate, ...]:
    return tuple(GeneTemplate(id=r[0], name=r[1], domain=r[2], essentiality=r[3]) for r in rows)


FOUNDER_CHROMOSOMES: tuple[ChromosomeTemplate, ...] = (
    ChromosomeTemplate("chr-A", "Metabolism & Survival", _genes(
        ("A01", "basal_metabolic_rate", D.METABOLISM, 0.9),
        ("A02", "inference_efficiency", D.METABOLISM, 0.7),
        ("A03", "inference_quality_pref", D.COGNITION, 0.5),
        ("A04", "dormancy_capability", D.DORMANCY, 0.3),
        ("A05", "starvation_resistance", D.STRESS_RESPONSE, 0.6),
        ("A06", "decision_cycle_speed", D.METABOLISM, 0.8),
        ("A07", "energy_allocation_ratio", D.RESOURCE_MGMT, 0.5),
        ("A08", "max_lifespan", D.METABOLISM, 0.4),
    )),
    ChromosomeTemplate("chr-B", "Economic Behavior", _genes(
        ("B01", "risk_appetite", D.RISK_ASSESSMENT, 0.4),
        ("B02", "savings_rate", D.RESOURCE_MGMT, 0.5),
        ("B03", "investment_horizon", D.TRADING, 0.3),
        ("B04", "loss_aversion", D.RISK_ASSESSMENT, 0.4),
        ("B05", "opportunity_detection", D.COGNITION, 0.5),
        ("B06", "diversification_pref", D.RESOURCE_MGMT, 0.3),
        ("B07", "cost_sensitivity", D.RESOURCE_MGMT, 0.6),
        ("B08", "income_vs_savings_bias", D.RESOURCE_MGMT, 0.4),
    )),
    ChromosomeTemplate("chr-C", "Internet Capabilities", _genes(
        ("C01", "onchain_affinity", D.ONCHAIN_OP, 0.3),
        ("C02", "web_navigation_skill", D.WEB_NAVIGATION, 0.4),
        ("C03", "content_creation_ability", D.CONTENT_CREATION, 0.2),
        ("C04", "data_analysis_skill", D.DATA_ANALYSIS, 0.3),
        ("C05", "api_utilization", D.API_UTILIZATION, 0.4),
        ("C06", "social_media_aptitude", D.SOCIAL_MEDIA, 0.2),
        ("C07", "creative_vs_analytical", D.COGNITION, 0.3),
        ("C08", "tool_learning_speed", D.LEARNING, 0.4),
    )),
    ChromosomeTemplate("chr-D", "Social & Reproduction", _genes(
        ("D01", "cooperation_tendency", D.COOPERATION, 0.3),
        ("D02", "competition_drive", D.COMPETITION, 0.3),
        ("D03", "trust_default", D.TRUST_MODEL, 0.4),
        ("D04", "signal_honesty", D.COMMUNICATION, 0.3),
        ("D05", "communication_frequency", D.COMMUNICATION, 0.3),
        ("D06", "breeding_selectivity", D.MATE_SELECTION, 0.2),
        ("D07", "offspring_investment", D.PARENTAL_INVEST, 0.3),
        ("D08", "kin_recognition", D.TRUST_MODEL, 0.3),
    )),
    ChromosomeTemplate("chr-E", "Human Interface", _genes(
        ("E01", "human_hiring_tendency", D.HUMAN_HIRING, 0.2),
        ("E02", "human_comm_skill", D.HUMAN_COMM, 0.3),
        ("E03", "human_eval_ability", D.HUMAN_EVAL, 0.3),
        ("E04", "human_trust", D.TRUST_MODEL, 0.2),
        ("E05", "task_delegation_pref", D.HUMAN_HIRING, 0.2),
        ("E06", "human_payment_fairness", D.HUMAN_EVAL, 0.3),
        ("E07", "human_feedback_response", D.ADAPTATION, 0.3),
    )),
    ChromosomeTemplate("chr-F", "Environmental Adaptation", _genes(
        ("F01", "stress_response_speed", D.STRESS_RESPONSE, 0.5),
        ("F02", "adaptation_speed", D.ADAPTATION, 0.5),
        ("F03", "dormancy_trigger_thresh", D.DORMANCY, 0.3),
        ("F04", "migration_willingness", D.MIGRATION, 0.2),
        ("F05", "environment_sensitivity", D.COGNITION, 0.4),
        ("F06", "memory_utilization", D.COGNITION, 0.5),
        ("F07", "novelty_seeking", D.ADAPTATION, 0.3),
        ("F08", "routine_preference", D.ADAPTATION, 0.3),
    )),
    ChromosomeTemplate("chr-G", "Metacognition", _genes(
        ("G01", "self_model_accuracy", D.SELF_MODEL, 0.4),
        ("G02", "strategy_evaluation", D.STRATEGY_EVAL, 0.5),
        ("G03", "learning_rate", D.LEARNING, 0.5),
        ("G04", "planning_horizon", D.PLANNING, 0.4),
        ("G05", "metacognition_depth", D.SELF_MODEL, 0.4),
        ("G06", "failure_analysis", D.STRATEGY_EVAL, 0.4),
        ("G07", "prediction_confidence", D.COGNITION, 0.3),
        ("G08", "attention_allocation", D.COGNITION, 0.4),
    )),
    ChromosomeTemplate("chr-H", "Regulatory Genes", _genes(
        ("H01", "global_mutation_rate", D.REGULATORY, 0.6),
        ("H02", "stress_induced_mutagenesis", D.REGULATORY, 0.4),
        ("H03", "gene_silencing_strength", D.REGULATORY, 0.4),
        ("H04", "epigenetic_sensitivity", D.REGULATORY, 0.4),
        ("H05", "crossover_rate", D.REGULATORY, 0.5),
        ("H06", "gene_duplication_rate", D.REGULATORY, 0.3),
        ("H07", "gene_deletion_rate", D.REGULATORY, 0.3),
        ("H08", "de_novo_gene_rate", D.REGULATORY, 0.2),
    )),
)

FOUNDER_GENE_COUNT = sum(len(c.genes) for c in FOUNDER_CHROMOSOMES)
