"""Pure evaluation of opportunities, tasks, negative events and tokens."""
from __future__ import annotations

import random
from dataclasses import replace

import pytest

from axo_sim.config.settings import PopulationSettings
from axo_sim.environment.catalogs import (
    AirdropOffer,
    DeFiOpportunity,
    HumanTask,
    NegativeEvent,
    NegativeEventKind,
    OpportunityKind,
    TaskKind,
    default_catalog,
    environment_shocks,
)
from axo_sim.environment.policies import (
    airdrop_eligible,
    avoidance_rate,
    rank_opportunities,
    resolve_negative_event,
    roll_available,
    roll_negative_events,
    should_sell,
    task_is_open_to,
    token_price,
)
from axo_sim.genome.types import ExpressionResult, Trait
from axo_sim.utils.types import DefiStats, TokenHolding


def _opportunity(opp_id: str, risk: float, yield_min: float, **traits: float) -> DeFiOpportunity:
    return DeFiOpportunity(
        id=opp_id,
        kind=OpportunityKind.LENDING,
        protocol="proto",
        min_capital=1.0,
        max_capital=10.0,
        daily_yield_min=yield_min,
        daily_yield_max=yield_min,
        lockup_ticks=3,
        early_exit_penalty=0.1,
        risk_level=risk,
        daily_probability=1.0,
        required_traits={Trait(name): value for name, value in traits.items()},
    )


PHISHING = NegativeEvent(
    id="phish",
    kind=NegativeEventKind.SCAM,
    impact_min=1.0,
    impact_max=1.0,
    probability=1.0,
    avoidable=True,
    avoidance_traits={Trait.ANALYTICAL_ABILITY: 0.8, Trait.ADAPTATION_SPEED: 0.8},
)


class TestOpportunities:
    def test_rank_filters_by_risk_and_traits(self):
        expression = ExpressionResult(risk_appetite=0.3, on_chain_affinity=0.6)
        safe = _opportunity("safe", 0.2, 0.001)
        rich = _opportunity("rich", 0.2, 0.005)
        risky = _opportunity("risky", 0.9, 0.05)
        gated = _opportunity("gated", 0.1, 0.01, on_chain_affinity=0.9)
        ranked = rank_opportunities([safe, risky, gated, rich], expression)
        assert [o.id for o in ranked] == ["rich", "safe"]

    def test_roll_available_uses_daily_probability(self):
        always = _opportunity("always", 0.1, 0.001)
        never = replace(always, id="never", daily_probability=0.0)
        available = roll_available([always, never], random.Random(3))
        assert [o.id for o in available] == ["always"]

    def test_default_catalog_is_populated(self):
        catalog = default_catalog()
        assert catalog.opportunities
        assert catalog.tasks
        assert catalog.negative_events
        assert catalog.airdrops
        first = catalog.opportunities[0]
        assert catalog.opportunity(first.id) is first
        assert catalog.opportunity("missing") is None


class TestTasks:
    def test_task_gates_on_reputation_and_tolerance(self):
        task = HumanTask(
            id="t",
            kind=TaskKind.CONTENT_WRITING,
            reward_min=1.0,
            reward_max=2.0,
            difficulty=0.5,
            required_traits={Trait.CREATIVE_ABILITY: 0.5},
            daily_probability=1.0,
            base_success_rate=0.5,
            failure_penalty=0.1,
            min_reputation=0.4,
        )
        # 0.36 meets 70% of 0.5
        capable = ExpressionResult(creative_ability=0.36)
        assert task_is_open_to(task, capable, reputation=0.5)
        assert not task_is_open_to(task, capable, reputation=0.3)
        assert not task_is_open_to(task, ExpressionResult(creative_ability=0.3), reputation=0.5)


class TestNegativeEvents:
    def test_unmet_avoidance_thresholds_never_avoid(self):
        expression = ExpressionResult(analytical_ability=0.1, adaptation_speed=0.1)
        assert avoidance_rate(PHISHING, expression) == 0.0
        rng = random.Random(8)
        for _ in range(200):
            outcome = resolve_negative_event(PHISHING, 10.0, expression, rng, cap_percent=0.2)
            assert not outcome.avoided
            assert outcome.loss == pytest.approx(1.0)

    def test_loss_is_capped_by_balance_share(self):
        expression = ExpressionResult(analytical_ability=0.1, adaptation_speed=0.1)
        outcome = resolve_negative_event(PHISHING, 2.0, expression, random.Random(1), 0.2)
        assert outcome.loss == pytest.approx(0.4)

    def test_avoidance_scales_with_thresholds_met(self):
        half = ExpressionResult(analytical_ability=0.9, adaptation_speed=0.1)
        full = ExpressionResult(analytical_ability=0.9, adaptation_speed=0.9)
        assert avoidance_rate(PHISHING, half) == pytest.approx(0.35)
        assert avoidance_rate(PHISHING, full) == pytest.approx(0.7)

    def test_roll_respects_per_tick_maximum(self):
        events = [PHISHING] * 5
        assert len(roll_negative_events(events, random.Random(2), max_events=2)) == 2


class TestTokens:
    def test_airdrop_requires_participation(self):
        offer = AirdropOffer(
            id="drop",
            token="TKN",
            protocol="proto",
            probability=1.0,
            min_positions_opened=2,
            min_capital_deployed=5.0,
            min_ticks_active=3,
            min_protocols=1,
            amount_min=10.0,
            amount_max=10.0,
            initial_price=0.01,
        )
        stats = DefiStats(
            positions_opened=2, capital_deployed=6.0, protocols_used=["proto"], ticks_active=3
        )
        assert airdrop_eligible(offer, stats)
        stats.airdrops_claimed.append("drop")
        assert not airdrop_eligible(offer, stats)
        assert not airdrop_eligible(offer, DefiStats(positions_opened=1))

    def test_rug_trajectory_collapses(self):
        rng = random.Random(4)
        price = token_price("rug", 1.0, 10, rng)
        assert price < 0.1

    def test_sell_thresholds_follow_risk_band(self):
        doubled = TokenHolding("TKN", 1.0, 1.0, 2.0, 0, "moon")
        assert should_sell(doubled, risk_appetite=0.2) == "take_profit"
        assert should_sell(doubled, risk_appetite=0.9) is None
        crashed = TokenHolding("TKN", 1.0, 1.0, 0.4, 0, "rug")
        assert should_sell(crashed, risk_appetite=0.5) == "stop_loss"


def test_shock_catalog_follows_settings():
    shocks = environment_shocks(PopulationSettings(market_crash_probability=0.5))
    crash = shocks[0]
    assert crash.probability == 0.5
    assert 0.0 < crash.magnitude_min <= crash.magnitude_max < 1.0
