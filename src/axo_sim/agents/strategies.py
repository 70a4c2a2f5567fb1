"""Strategies an agent may pick from when it consults the decision provider."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from axo_sim.genome.types import ExpressionResult, Trait

IDLE_STRATEGY_ID = "idle_conservation"
DISTRESS_STRATEGY_ID = "distress_signal"
EMERGENCY_BALANCE = 2.0


class StrategyKind(str, Enum):
    CREATIVE = "creative"
    ANALYTICAL = "analytical"
    SOCIAL = "social"
    FINANCIAL = "financial"


@dataclass(frozen=True)
class Strategy:
    id: str
    name: str
    description: str
    risk_level: float
    kind: StrategyKind
    minimum_balance: float
    cost: float
    """Estimated spend per execution."""
    on_chain: bool = False
    requires_human: bool = False
    required_traits: dict[Trait, float] = field(default_factory=dict)
    horizon: str = "immediate"


STRATEGIES: tuple[Strategy, ...] = (
    Strategy(
        IDLE_STRATEGY_ID, "Idle Conservation", "Minimize activity to preserve resources",
        0.0, StrategyKind.FINANCIAL, 0.0, 0.001,
    ),
    Strategy(
        "dex_arbitrage", "DEX Arbitrage", "Exploit price differences between DEXs",
        0.6, StrategyKind.FINANCIAL, 5.0, 0.05, on_chain=True,
        required_traits={Trait.RISK_APPETITE: 0.6, Trait.ON_CHAIN_AFFINITY: 0.5},
    ),
    Strategy(
        "token_swap", "Token Swap", "Simple token exchange for gas or profit",
        0.4, StrategyKind.FINANCIAL, 2.0, 0.03, on_chain=True,
        required_traits={Trait.ON_CHAIN_AFFINITY: 0.3},
    ),
    Strategy(
        "content_creation", "Content Creation", "Create content for potential monetization",
        0.3, StrategyKind.CREATIVE, 1.0, 0.1,
        required_traits={Trait.CREATIVE_ABILITY: 0.5}, horizon="medium",
    ),
    Strategy(
        "data_analysis", "Data Analysis Service", "Provide data analysis for other agents",
        0.2, StrategyKind.ANALYTICAL, 1.0, 0.08,
        required_traits={Trait.ANALYTICAL_ABILITY: 0.5}, horizon="short",
    ),
    Strategy(
        "agent_cooperation", "Agent Cooperation", "Collaborate with other agents for mutual benefit",
        0.3, StrategyKind.SOCIAL, 2.0, 0.02,
        required_traits={Trait.COOPERATION_TENDENCY: 0.4}, horizon="medium",
    ),
    Strategy(
        DISTRESS_STRATEGY_ID, "Distress Signal", "Broadcast need for assistance",
        0.1, StrategyKind.SOCIAL, 0.0, 0.001,
    ),
    Strategy(
        "breed_seek", "Seek Breeding Partner", "Find a mate to produce offspring",
        0.2, StrategyKind.SOCIAL, 5.0, 0.5, on_chain=True,
        required_traits={Trait.COOPERATION_TENDENCY: 0.3}, horizon="long",
    ),
    Strategy(
        "memory_inscribe", "Inscribe Memory", "Permanently record important memories",
        0.1, StrategyKind.ANALYTICAL, 3.0, 0.2, on_chain=True,
        required_traits={Trait.ON_CHAIN_AFFINITY: 0.2}, horizon="long",
    ),
    Strategy(
        "explore_web", "Explore Web", "Search for new opportunities and information",
        0.2, StrategyKind.CREATIVE, 0.5, 0.02,
        required_traits={Trait.ADAPTATION_SPEED: 0.3}, horizon="short",
    ),
)

_BY_ID = {s.id: s for s in STRATEGIES}


def strategy_by_id(strategy_id: str) -> Strategy:
    return _BY_ID[strategy_id]


def strategy_score(strategy: Strategy, expression: ExpressionResult) -> float:
    score = 0.0
    if strategy.risk_level <= expression.risk_appetite:
        score += 1.0
    if strategy.on_chain and expression.on_chain_affinity > 0.5:
        score += 0.5
    if not strategy.on_chain and expression.on_chain_affinity < 0.5:
        score += 0.5
    if strategy.requires_human and expression.human_dependence > 0.3:
        score += 0.3
    if not strategy.requires_human:
        score += 0.3
    if strategy.kind is StrategyKind.CREATIVE and expression.creative_ability > 0.5:
        score += 0.4
    if strategy.kind is StrategyKind.ANALYTICAL and expression.analytical_ability > 0.5:
        score += 0.4
    if strategy.kind is StrategyKind.SOCIAL and expression.cooperation_tendency > 0.5:
        score += 0.4
    return score


def is_emergency(balance: float) -> bool:
    return balance < EMERGENCY_BALANCE


def emergency_strategies() -> list[Strategy]:
    return [_BY_ID[IDLE_STRATEGY_ID], _BY_ID[DISTRESS_STRATEGY_ID]]


def filter_strategies(expression: ExpressionResult, balance: float) -> list[Strategy]:
    """Affordable, trait-qualified strategies, best scored first.

    Below the emergency balance only idle conservation and the distress
    signal are offered.
    """
    if is_emergency(balance):
        return emergency_strategies()
    available = [
        s for s in STRATEGIES
        if balance >= s.minimum_balance and expression.meets(s.required_traits)
    ]
    return sorted(available, key=lambda s: strategy_score(s, expression), reverse=True)
