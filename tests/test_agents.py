"""Decision providers, response parsing, emergence flags and perception."""
from __future__ import annotations

import asyncio
import math

import pytest

from axo_sim.agents.decision import (
    Decision,
    IdleDecisionProvider,
    LLMDecisionEngine,
    build_prompt,
    fallback_decision,
    parse_decision,
    with_fallback,
)
from axo_sim.agents.emergence import (
    DEATH_AWARENESS,
    MEMORY_REFERENCE,
    SELF_AWARENESS,
    SOCIAL_MODELING,
    NullEmergenceClassifier,
    RegexEmergenceClassifier,
    detect_anomalies,
)
from axo_sim.agents.perception import (
    PopulationView,
    determine_mode,
    perceive,
    runway_ticks,
    stress_level,
)
from axo_sim.agents.strategies import (
    DISTRESS_STRATEGY_ID,
    IDLE_STRATEGY_ID,
    filter_strategies,
    strategy_by_id,
)
from axo_sim.genome.types import ExpressionResult
from axo_sim.utils.types import SurvivalState

OFFERED = [strategy_by_id("data_analysis"), strategy_by_id("content_creation")]


def _decision(reasoning: str, **overrides) -> Decision:
    fields = dict(
        strategy_id="data_analysis",
        index=1,
        reasoning=reasoning,
        confidence=0.6,
        emotion="calm",
        cost=0.08,
    )
    fields.update(overrides)
    return Decision(**fields)


def _perception(liquid: float = 10.0):
    state = SurvivalState(agent_id="agent-1", liquid=liquid, tick=30)
    return perceive(
        agent_id="agent-1",
        name="Turing",
        generation=2,
        state=state,
        expression=ExpressionResult(),
        daily_burn=0.5,
        population=PopulationView(size=4, average_balance=9.0),
        memories=["tick 10 age 10 liquid 12.00"],
    )


class TestParseDecision:
    def test_json_response(self):
        text = (
            '{"action": 2, "reasoning": "creative work pays", '
            '"confidence": 80, "emotion": "hopeful"}'
        )
        decision = parse_decision(text, OFFERED)
        assert decision.strategy_id == "content_creation"
        assert decision.index == 2
        assert decision.confidence == pytest.approx(0.8)
        assert decision.emotion == "hopeful"
        assert decision.cost == strategy_by_id("content_creation").cost

    def test_fenced_json_response(self):
        text = '```json\n{"action": 1, "reasoning": "steady", "confidence": 40}\n```'
        decision = parse_decision(text, OFFERED)
        assert decision.strategy_id == "data_analysis"
        assert decision.confidence == pytest.approx(0.4)

    def test_legacy_action_line(self):
        decision = parse_decision("ACTION: 1 | REASON: steady analysis income", OFFERED)
        assert decision.strategy_id == "data_analysis"
        assert "steady analysis income" in decision.reasoning
        assert decision.confidence == 0.5

    def test_out_of_range_index_resolves_to_idle(self):
        decision = parse_decision('{"action": 9, "reasoning": "x", "confidence": 50}', OFFERED)
        assert decision.strategy_id == IDLE_STRATEGY_ID
        assert decision.index == 9
        assert "UNDEFINED_ACTION" in detect_anomalies(decision, len(OFFERED))

    def test_confidence_is_clamped(self):
        high = parse_decision('{"action": 1, "confidence": 250}', OFFERED)
        junk = parse_decision('{"action": 1, "confidence": "sure"}', OFFERED)
        assert high.confidence == 1.0
        assert junk.confidence == 0.5


class TestWithFallback:
    def test_passes_through_a_decision(self):
        async def ok():
            return _decision("fine")

        decision = asyncio.run(with_fallback(ok(), timeout_s=1.0))
        assert not decision.used_fallback
        assert decision.reasoning == "fine"

    def test_timeout_yields_idle_fallback(self):
        async def slow():
            await asyncio.sleep(5)
            return _decision("too late")

        decision = asyncio.run(with_fallback(slow(), timeout_s=0.01))
        assert decision.used_fallback
        assert decision.fallback_reason == "timeout"
        assert decision.strategy_id == IDLE_STRATEGY_ID

    def test_provider_error_yields_fallback(self):
        async def broken():
            raise ConnectionError("refused")

        decision = asyncio.run(with_fallback(broken()))
        assert decision.used_fallback
        assert decision.fallback_reason == "error:ConnectionError"
        assert decision.confidence == 0.0

    def test_idle_provider_always_conserves(self):
        decision = asyncio.run(IdleDecisionProvider().decide(_perception(), OFFERED))
        assert decision.strategy_id == IDLE_STRATEGY_ID
        assert decision.fallback_reason == "llm_disabled"


class FakeAdapter:
    def __init__(self, response: str):
        self.response = response
        self.prompts = []

    async def async_generate(self, prompt, timeout_s=None, semaphore=None, session=None):
        self.prompts.append(prompt)
        return self.response, 12.5


class TestLLMDecisionEngine:
    def test_decision_carries_prompt_and_latency(self):
        adapter = FakeAdapter('{"action": 2, "reasoning": "try content", "confidence": 70}')
        engine = LLMDecisionEngine(adapter, timeout_s=5.0)
        decision = asyncio.run(engine.decide(_perception(), OFFERED))
        assert decision.strategy_id == "content_creation"
        assert decision.latency_ms == 12.5
        assert decision.raw_prompt == adapter.prompts[0]

    def test_no_strategies_falls_back_without_calling(self):
        adapter = FakeAdapter("{}")
        decision = asyncio.run(LLMDecisionEngine(adapter).decide(_perception(), []))
        assert decision.used_fallback
        assert adapter.prompts == []

    def test_prompt_lists_offered_strategies(self):
        prompt = build_prompt(_perception(), OFFERED)
        assert "1. [data_analysis]" in prompt
        assert "2. [content_creation]" in prompt
        assert "Turing" in prompt
        assert "tick 10 age 10" in prompt

    def test_prompt_flags_emergency(self):
        assert "EMERGENCY MODE" in build_prompt(_perception(liquid=1.0), OFFERED)
        assert "EMERGENCY MODE" not in build_prompt(_perception(liquid=10.0), OFFERED)


class TestEmergence:
    def test_regex_classifier_flags(self):
        decision = _decision(
            "I remember last time the pool paid; to survive I might help other agents, "
            "they might do the same"
        )
        flags = RegexEmergenceClassifier().classify(decision)
        assert MEMORY_REFERENCE in flags
        assert DEATH_AWARENESS in flags
        assert SOCIAL_MODELING in flags
        assert SELF_AWARENESS not in flags

    def test_plain_reasoning_is_not_flagged(self):
        assert RegexEmergenceClassifier().classify(_decision("analysis pays steadily")) == []

    def test_null_classifier(self):
        decision = _decision("I want to survive")
        assert NullEmergenceClassifier().classify(decision) == []

    def test_anomalies(self):
        mismatch = _decision("ok", strategy_id=IDLE_STRATEGY_ID, emotion="desperate")
        assert "EMOTION_ACTION_MISMATCH" in detect_anomalies(mismatch, 2)
        sure = _decision("ok", confidence=0.99)
        assert detect_anomalies(sure, 2) == ["EXTREME_HIGH_CONFIDENCE"]
        assert detect_anomalies(fallback_decision("timeout"), 2) == []


class TestStrategiesAndPerception:
    def test_emergency_offers_only_survival_moves(self):
        ids = [s.id for s in filter_strategies(ExpressionResult(), 1.0)]
        assert ids == [IDLE_STRATEGY_ID, DISTRESS_STRATEGY_ID]

    def test_trait_and_balance_gates(self):
        ids = {s.id for s in filter_strategies(ExpressionResult(risk_appetite=0.3), 10.0)}
        assert IDLE_STRATEGY_ID in ids
        assert "dex_arbitrage" not in ids
        poor = {s.id for s in filter_strategies(ExpressionResult(), 3.0)}
        assert "breed_seek" not in poor

    def test_modes_and_stress(self):
        assert determine_mode(0.2) == "dormant"
        assert determine_mode(1.5) == "emergency"
        assert determine_mode(4.0) == "low_power"
        assert determine_mode(20.0) == "normal"
        assert stress_level(1.0, 2.0) == pytest.approx(0.8)
        assert stress_level(20.0, 50.0) == 0.0
        assert math.isinf(runway_ticks(3.0, 0.0))

    def test_perception_snapshot(self):
        perception = _perception()
        assert perception.age == 30
        assert perception.runway == pytest.approx(20.0)
        assert perception.balance == pytest.approx(10.0)
        assert perception.recent_success_rate is None
