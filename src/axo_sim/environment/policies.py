"""Pure evaluation of the environment catalogs.

Every function takes its randomness from the injected ``rng`` and never
touches agent state; the survival orchestrator applies the outcomes.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Sequence, TypeVar

from axo_sim.environment.catalogs import (
    AirdropOffer,
    DeFiOpportunity,
    HumanTask,
    NegativeEvent,
)
from axo_sim.genome.types import ExpressionResult
from axo_sim.utils.types import DefiStats, TokenHolding

TASK_TRAIT_TOLERANCE = 0.7
"""Tasks may be attempted with traits at 70% of the stated requirement."""
RISK_TOLERANCE_MARGIN = 0.2
AVOIDANCE_SCALE = 0.7

_T = TypeVar("_T", DeFiOpportunity, HumanTask)


def roll_available(items: Sequence[_T], rng: random.Random) -> list[_T]:
    """Items that show up today, each rolled against its daily probability."""
    return [item for item in items if rng.random() < item.daily_probability]


# ---------------------------------------------------------------------------
# DeFi positions
# ---------------------------------------------------------------------------

def risk_adjusted_yield(opp: DeFiOpportunity, expression: ExpressionResult) -> float:
    return opp.expected_yield * (1.0 - opp.risk_level * (1.0 - expression.risk_appetite))


def rank_opportunities(
    opportunities: Sequence[DeFiOpportunity], expression: ExpressionResult
) -> list[DeFiOpportunity]:
    """Trait-qualified opportunities within risk tolerance, best risk-adjusted yield first."""
    eligible = [
        opp
        for opp in opportunities
        if expression.meets(opp.required_traits)
        and opp.risk_level <= expression.risk_appetite + RISK_TOLERANCE_MARGIN
    ]
    return sorted(eligible, key=lambda o: risk_adjusted_yield(o, expression), reverse=True)


def roll_daily_yield(opp: DeFiOpportunity, rng: random.Random) -> float:
    return rng.uniform(opp.daily_yield_min, opp.daily_yield_max)


def roll_position_loss(
    invested: float, risk_level: float, risk_scale: float, rng: random.Random
) -> float:
    """Principal lost this tick to protocol risk."""
    if rng.random() >= risk_level * risk_scale:
        return 0.0
    return invested * rng.uniform(0.1, 0.5)


# ---------------------------------------------------------------------------
# Human tasks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskOutcome:
    task_id: str
    success: bool
    reward: float
    reputation_change: float


def task_is_open_to(
    task: HumanTask, expression: ExpressionResult, reputation: float
) -> bool:
    return reputation >= task.min_reputation and expression.meets(
        task.required_traits, TASK_TRAIT_TOLERANCE
    )


def task_success_rate(
    task: HumanTask, expression: ExpressionResult, rng: random.Random
) -> float:
    rate = task.base_success_rate
    for trait, threshold in task.required_traits.items():
        value = expression.get(trait)
        if value >= threshold:
            rate += (value - threshold) * 0.5
        else:
            rate -= threshold - value
    rate += (rng.random() - 0.5) * 0.2
    return max(0.1, min(0.95, rate))


def attempt_task(
    task: HumanTask, expression: ExpressionResult, rng: random.Random
) -> TaskOutcome:
    if rng.random() < task_success_rate(task, expression, rng):
        reward = rng.uniform(task.reward_min, task.reward_max)
        quality = (expression.creative_ability + expression.analytical_ability) / 2
        return TaskOutcome(
            task_id=task.id,
            success=True,
            reward=round(reward * (1 + quality * 0.2), 2),
            reputation_change=0.05,
        )
    return TaskOutcome(
        task_id=task.id,
        success=False,
        reward=0.0,
        reputation_change=-task.failure_penalty,
    )


# ---------------------------------------------------------------------------
# Negative events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NegativeOutcome:
    event_id: str
    loss: float
    avoided: bool


def roll_negative_events(
    events: Sequence[NegativeEvent], rng: random.Random, max_events: int
) -> list[NegativeEvent]:
    triggered: list[NegativeEvent] = []
    for event in events:
        if len(triggered) >= max_events:
            break
        if rng.random() < event.probability:
            triggered.append(event)
    return triggered


def avoidance_rate(event: NegativeEvent, expression: ExpressionResult) -> float:
    """Share of avoidance thresholds met, scaled; zero when nothing is met."""
    if not event.avoidable or not event.avoidance_traits:
        return 0.0
    met = sum(
        1 for trait, threshold in event.avoidance_traits.items()
        if expression.get(trait) >= threshold
    )
    return met / len(event.avoidance_traits) * AVOIDANCE_SCALE


def resolve_negative_event(
    event: NegativeEvent,
    balance: float,
    expression: ExpressionResult,
    rng: random.Random,
    cap_percent: float,
) -> NegativeOutcome:
    if rng.random() < avoidance_rate(event, expression):
        return NegativeOutcome(event_id=event.id, loss=0.0, avoided=True)
    impact = rng.uniform(event.impact_min, event.impact_max)
    loss = min(impact, max(0.0, balance) * cap_percent)
    return NegativeOutcome(event_id=event.id, loss=loss, avoided=False)


# ---------------------------------------------------------------------------
# Airdrops and speculative tokens
# ---------------------------------------------------------------------------

def airdrop_eligible(offer: AirdropOffer, stats: DefiStats) -> bool:
    return (
        stats.positions_opened >= offer.min_positions_opened
        and stats.capital_deployed >= offer.min_capital_deployed
        and stats.ticks_active >= offer.min_ticks_active
        and len(stats.protocols_used) >= offer.min_protocols
        and offer.id not in stats.airdrops_claimed
    )


def claim_airdrop(offer: AirdropOffer, tick: int, rng: random.Random) -> TokenHolding:
    names = list(offer.trajectories)
    trajectory = rng.choices(names, weights=[offer.trajectories[n] for n in names])[0]
    return TokenHolding(
        token=offer.token,
        amount=rng.uniform(offer.amount_min, offer.amount_max),
        entry_price=offer.initial_price,
        current_price=offer.initial_price,
        acquired_tick=tick,
        trajectory=trajectory,
    )


def token_price(
    trajectory: str, entry_price: float, ticks_held: int, rng: random.Random
) -> float:
    """Mark-to-market price along the trajectory chosen at claim time, with noise."""
    t = max(0, ticks_held)
    if trajectory == "moon":
        multiple = 1.0 + 4.0 * min(1.0, t / 30)
    elif trajectory == "pump_dump":
        multiple = 1.0 + t / 5 if t <= 5 else max(0.2, 2.0 * math.exp(-(t - 5) / 10))
    elif trajectory == "rug":
        multiple = max(0.05, 1.0 - t / 3)
    else:
        multiple = 1.0 + 0.002 * t
    noise = 1.0 + (rng.random() - 0.5) * 0.1
    return max(0.0, entry_price * multiple * noise)


def risk_band(risk_appetite: float) -> str:
    if risk_appetite < 0.35:
        return "low"
    if risk_appetite > 0.7:
        return "high"
    return "medium"


# take-profit, stop-loss per band
SELL_THRESHOLDS: dict[str, tuple[float, float]] = {
    "low": (0.5, -0.3),
    "medium": (1.0, -0.5),
    "high": (3.0, -0.8),
}


def should_sell(holding: TokenHolding, risk_appetite: float) -> str | None:
    """Return a sell reason, or None to keep holding."""
    take_profit, stop_loss = SELL_THRESHOLDS[risk_band(risk_appetite)]
    pnl = holding.pnl_pct
    if pnl >= take_profit:
        return "take_profit"
    if pnl <= stop_loss:
        return "stop_loss"
    return None
