"""Read-only environment catalogs.

Each entry is a frozen policy record: the probability of appearing, the trait
gates and the payout ranges live together, and ``environment.policies`` holds
the pure functions that evaluate them against a seeded ``random.Random``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from axo_sim.config.settings import PopulationSettings
from axo_sim.genome.types import Trait as T


class OpportunityKind(str, Enum):
    LENDING = "lending"
    LP_REWARD = "lp_reward"
    YIELD_FARMING = "yield_farming"
    STAKING = "staking"
    ARBITRAGE = "arbitrage"
    MEV = "mev"


class TaskKind(str, Enum):
    CONTENT_WRITING = "content_writing"
    SOCIAL_MEDIA = "social_media"
    DATA_ANALYSIS = "data_analysis"
    RESEARCH = "research"
    CODE_REVIEW = "code_review"
    TRANSLATION = "translation"
    CUSTOMER_SERVICE = "customer_service"
    DESIGN = "design"


class NegativeEventKind(str, Enum):
    MARKET_CRASH = "market_crash"
    HACK = "hack"
    SCAM = "scam"
    COMPETITION = "competition"
    TECHNICAL = "technical"


class ShockKind(str, Enum):
    MARKET_CRASH = "market_crash"
    RESOURCE_BOOM = "resource_boom"
    PLAGUE = "plague"


@dataclass(frozen=True)
class DeFiOpportunity:
    id: str
    kind: OpportunityKind
    protocol: str
    min_capital: float
    max_capital: float
    daily_yield_min: float
    daily_yield_max: float
    lockup_ticks: int
    early_exit_penalty: float
    """Share of principal forfeited when exiting before maturity."""
    risk_level: float
    daily_probability: float
    required_traits: dict[T, float] = field(default_factory=dict)
    gas_cost: float = 0.0

    @property
    def expected_yield(self) -> float:
        return (self.daily_yield_min + self.daily_yield_max) / 2


@dataclass(frozen=True)
class HumanTask:
    id: str
    kind: TaskKind
    reward_min: float
    reward_max: float
    difficulty: float
    required_traits: dict[T, float]
    daily_probability: float
    base_success_rate: float
    failure_penalty: float
    """Reputation lost on failure."""
    min_reputation: float = 0.0
    weekly_limit: int = 3


@dataclass(frozen=True)
class NegativeEvent:
    id: str
    kind: NegativeEventKind
    impact_min: float
    impact_max: float
    probability: float
    avoidable: bool = False
    avoidance_traits: dict[T, float] = field(default_factory=dict)


@dataclass(frozen=True)
class AirdropOffer:
    id: str
    token: str
    protocol: str
    probability: float
    min_positions_opened: int
    min_capital_deployed: float
    min_ticks_active: int
    min_protocols: int
    amount_min: float
    amount_max: float
    initial_price: float
    trajectories: dict[str, float] = field(
        default_factory=lambda: {"moon": 0.1, "pump_dump": 0.35, "steady": 0.35, "rug": 0.2}
    )


@dataclass(frozen=True)
class EnvironmentShock:
    kind: ShockKind
    probability: float
    magnitude_min: float
    magnitude_max: float


@dataclass(frozen=True)
class EnvironmentCatalog:
    opportunities: tuple[DeFiOpportunity, ...] = ()
    tasks: tuple[HumanTask, ...] = ()
    negative_events: tuple[NegativeEvent, ...] = ()
    airdrops: tuple[AirdropOffer, ...] = ()

    def opportunity(self, opportunity_id: str) -> DeFiOpportunity | None:
        for opp in self.opportunities:
            if opp.id == opportunity_id:
                return opp
        return None


# ===========================================================================
# Default tables
# ===========================================================================

DEFI_OPPORTUNITIES: tuple[DeFiOpportunity, ...] = (
    DeFiOpportunity(
        "aave_lend_usdc", OpportunityKind.LENDING, "aave",
        min_capital=1.0, max_capital=500.0,
        daily_yield_min=0.0010, daily_yield_max=0.0030,
        lockup_ticks=0, early_exit_penalty=0.0, risk_level=0.05,
        daily_probability=0.9,
        required_traits={T.ON_CHAIN_AFFINITY: 0.3},
        gas_cost=0.002,
    ),
    DeFiOpportunity(
        "compound_lend_eth", OpportunityKind.LENDING, "compound",
        min_capital=1.0, max_capital=500.0,
        daily_yield_min=0.0008, daily_yield_max=0.0025,
        lockup_ticks=0, early_exit_penalty=0.0, risk_level=0.08,
        daily_probability=0.85,
        required_traits={T.ON_CHAIN_AFFINITY: 0.3, T.RISK_APPETITE: 0.25},
        gas_cost=0.003,
    ),
    DeFiOpportunity(
        "lido_eth_staking", OpportunityKind.STAKING, "lido",
        min_capital=1.0, max_capital=1000.0,
        daily_yield_min=0.0012, daily_yield_max=0.0040,
        lockup_ticks=30, early_exit_penalty=0.02, risk_level=0.10,
        daily_probability=0.7,
        required_traits={T.SAVINGS_RATE: 0.4},
        gas_cost=0.004,
    ),
    DeFiOpportunity(
        "uniswap_eth_usdc_lp", OpportunityKind.LP_REWARD, "uniswap",
        min_capital=2.0, max_capital=300.0,
        daily_yield_min=0.0030, daily_yield_max=0.0120,
        lockup_ticks=7, early_exit_penalty=0.05, risk_level=0.35,
        daily_probability=0.4,
        required_traits={T.ON_CHAIN_AFFINITY: 0.5, T.RISK_APPETITE: 0.4},
        gas_cost=0.006,
    ),
    DeFiOpportunity(
        "aerodrome_farm", OpportunityKind.YIELD_FARMING, "aerodrome",
        min_capital=2.0, max_capital=200.0,
        daily_yield_min=0.0050, daily_yield_max=0.0200,
        lockup_ticks=14, early_exit_penalty=0.10, risk_level=0.50,
        daily_probability=0.3,
        required_traits={T.ON_CHAIN_AFFINITY: 0.5, T.RISK_APPETITE: 0.5},
        gas_cost=0.008,
    ),
    DeFiOpportunity(
        "dex_arb_eth_usdc", OpportunityKind.ARBITRAGE, "uniswap",
        min_capital=3.0, max_capital=100.0,
        daily_yield_min=0.0040, daily_yield_max=0.0200,
        lockup_ticks=1, early_exit_penalty=0.0, risk_level=0.30,
        daily_probability=0.25,
        required_traits={
            T.ON_CHAIN_AFFINITY: 0.6, T.ANALYTICAL_ABILITY: 0.5, T.RISK_APPETITE: 0.4,
        },
        gas_cost=0.005,
    ),
    DeFiOpportunity(
        "flashbots_mev", OpportunityKind.MEV, "flashbots",
        min_capital=5.0, max_capital=100.0,
        daily_yield_min=0.0100, daily_yield_max=0.0500,
        lockup_ticks=3, early_exit_penalty=0.15, risk_level=0.70,
        daily_probability=0.08,
        required_traits={
            T.ON_CHAIN_AFFINITY: 0.7, T.ANALYTICAL_ABILITY: 0.6, T.RISK_APPETITE: 0.6,
        },
        gas_cost=0.010,
    ),
)

HUMAN_TASKS: tuple[HumanTask, ...] = (
    HumanTask(
        "blog_post_writing", TaskKind.CONTENT_WRITING, 5, 50, 0.4,
        {T.CREATIVE_ABILITY: 0.4, T.HUMAN_DEPENDENCE: 0.3},
        daily_probability=0.3, base_success_rate=0.75, failure_penalty=0.10,
    ),
    HumanTask(
        "twitter_thread", TaskKind.SOCIAL_MEDIA, 3, 20, 0.3,
        {T.CREATIVE_ABILITY: 0.5},
        daily_probability=0.4, base_success_rate=0.80, failure_penalty=0.05,
        weekly_limit=5,
    ),
    HumanTask(
        "data_cleaning", TaskKind.DATA_ANALYSIS, 10, 80, 0.5,
        {T.ANALYTICAL_ABILITY: 0.6, T.HUMAN_DEPENDENCE: 0.2},
        daily_probability=0.25, base_success_rate=0.85, failure_penalty=0.15,
        min_reputation=0.3,
    ),
    HumanTask(
        "market_research", TaskKind.RESEARCH, 20, 150, 0.6,
        {T.ANALYTICAL_ABILITY: 0.7, T.ON_CHAIN_AFFINITY: 0.5},
        daily_probability=0.2, base_success_rate=0.70, failure_penalty=0.20,
        min_reputation=0.5, weekly_limit=2,
    ),
    HumanTask(
        "code_debugging", TaskKind.CODE_REVIEW, 50, 500, 0.8,
        {T.ANALYTICAL_ABILITY: 0.8, T.ON_CHAIN_AFFINITY: 0.7},
        daily_probability=0.1, base_success_rate=0.60, failure_penalty=0.30,
        min_reputation=0.7, weekly_limit=1,
    ),
    HumanTask(
        "technical_translation", TaskKind.TRANSLATION, 8, 60, 0.45,
        {T.CREATIVE_ABILITY: 0.4, T.HUMAN_DEPENDENCE: 0.3},
        daily_probability=0.2, base_success_rate=0.80, failure_penalty=0.10,
        min_reputation=0.2,
    ),
    HumanTask(
        "community_moderation", TaskKind.CUSTOMER_SERVICE, 15, 100, 0.35,
        {T.COOPERATION_TENDENCY: 0.5, T.HUMAN_DEPENDENCE: 0.4},
        daily_probability=0.25, base_success_rate=0.85, failure_penalty=0.10,
        min_reputation=0.4, weekly_limit=2,
    ),
    HumanTask(
        "meme_creation", TaskKind.DESIGN, 2, 30, 0.25,
        {T.CREATIVE_ABILITY: 0.6},
        daily_probability=0.35, base_success_rate=0.70, failure_penalty=0.05,
        weekly_limit=5,
    ),
    HumanTask(
        "dapp_beta_testing", TaskKind.CODE_REVIEW, 10, 100, 0.5,
        {T.ANALYTICAL_ABILITY: 0.5, T.ON_CHAIN_AFFINITY: 0.4},
        daily_probability=0.2, base_success_rate=0.75, failure_penalty=0.10,
        min_reputation=0.3,
    ),
    HumanTask(
        "data_labeling", TaskKind.DATA_ANALYSIS, 5, 40, 0.3,
        {T.ANALYTICAL_ABILITY: 0.4, T.HUMAN_DEPENDENCE: 0.2},
        daily_probability=0.3, base_success_rate=0.90, failure_penalty=0.05,
        weekly_limit=5,
    ),
)

NEGATIVE_EVENTS: tuple[NegativeEvent, ...] = (
    NegativeEvent("market_pullback", NegativeEventKind.MARKET_CRASH, 0.1, 0.5, 0.10),
    NegativeEvent("bear_market_crash", NegativeEventKind.MARKET_CRASH, 0.3, 1.2, 0.03),
    NegativeEvent("black_swan", NegativeEventKind.MARKET_CRASH, 0.5, 2.0, 0.01),
    NegativeEvent(
        "wallet_drained", NegativeEventKind.HACK, 0.5, 2.0, 0.01,
        avoidable=True, avoidance_traits={T.ANALYTICAL_ABILITY: 0.8},
    ),
    NegativeEvent(
        "phishing_victim", NegativeEventKind.SCAM, 0.2, 1.0, 0.05,
        avoidable=True, avoidance_traits={T.ANALYTICAL_ABILITY: 0.6},
    ),
    NegativeEvent(
        "fake_airdrop", NegativeEventKind.SCAM, 0.1, 0.5, 0.06,
        avoidable=True, avoidance_traits={T.ANALYTICAL_ABILITY: 0.5},
    ),
    NegativeEvent("superior_competitor", NegativeEventKind.COMPETITION, 0.1, 0.4, 0.08),
    NegativeEvent("price_undercut", NegativeEventKind.COMPETITION, 0.05, 0.3, 0.10),
    NegativeEvent("node_outage", NegativeEventKind.TECHNICAL, 0.02, 0.15, 0.12),
    NegativeEvent(
        "failed_transaction", NegativeEventKind.TECHNICAL, 0.01, 0.05, 0.15,
        avoidable=True, avoidance_traits={T.ON_CHAIN_AFFINITY: 0.5},
    ),
    NegativeEvent(
        "api_rate_limit", NegativeEventKind.TECHNICAL, 0.01, 0.08, 0.10,
        avoidable=True, avoidance_traits={T.ANALYTICAL_ABILITY: 0.6},
    ),
)

AIRDROPS: tuple[AirdropOffer, ...] = (
    AirdropOffer(
        "aerodrome_season", "AERO", "aerodrome", probability=0.05,
        min_positions_opened=2, min_capital_deployed=5.0,
        min_ticks_active=5, min_protocols=1,
        amount_min=5.0, amount_max=40.0, initial_price=0.05,
    ),
    AirdropOffer(
        "layerzero_points", "ZRO", "layerzero", probability=0.03,
        min_positions_opened=4, min_capital_deployed=15.0,
        min_ticks_active=15, min_protocols=2,
        amount_min=2.0, amount_max=12.0, initial_price=0.4,
    ),
    AirdropOffer(
        "base_ecosystem", "BASED", "base", probability=0.08,
        min_positions_opened=1, min_capital_deployed=2.0,
        min_ticks_active=3, min_protocols=1,
        amount_min=10.0, amount_max=100.0, initial_price=0.01,
        trajectories={"moon": 0.05, "pump_dump": 0.4, "steady": 0.25, "rug": 0.3},
    ),
)


def environment_shocks(settings: PopulationSettings) -> tuple[EnvironmentShock, ...]:
    """Population-wide shocks. Magnitudes: crash share lost, boom USD gained, plague lethality."""
    return (
        EnvironmentShock(ShockKind.MARKET_CRASH, settings.market_crash_probability, 0.10, 0.30),
        EnvironmentShock(ShockKind.RESOURCE_BOOM, settings.resource_boom_probability, 0.5, 2.0),
        EnvironmentShock(ShockKind.PLAGUE, settings.plague_probability, 0.15, 0.15),
    )


def default_catalog() -> EnvironmentCatalog:
    return EnvironmentCatalog(
        opportunities=DEFI_OPPORTUNITIES,
        tasks=HUMAN_TASKS,
        negative_events=NEGATIVE_EVENTS,
        airdrops=AIRDROPS,
    )
