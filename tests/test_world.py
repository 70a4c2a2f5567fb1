"""Termination conditions, naming, metrics and the balance books."""
from __future__ import annotations

import csv
import random

import pytest

from axo_sim.config.settings import PopulationSettings
from axo_sim.economy.reputation import ReputationBook
from axo_sim.economy.wallet import InMemoryWallet
from axo_sim.genome.types import ExpressionResult
from axo_sim.lifecycle.birth import create_founder
from axo_sim.metrics.engine import MetricsEngine, RunTotals, population_stats
from axo_sim.utils.types import (
    BirthRecord,
    DeathCause,
    DevelopmentStage,
    TickReport,
    Tombstone,
)
from axo_sim.world.naming import NameRegistry, name_category
from axo_sim.world.termination import (
    TerminationMonitor,
    check_economic_dominance,
    check_lineage_dominance,
    check_outlier_survival,
)

SETTINGS = PopulationSettings()


def _agents(count, liquid=10.0, seed=3):
    rng = random.Random(seed)
    return [create_founder(f"A{i}", liquid, rng) for i in range(count)]


def _tombstone(age, generation=0, cause=DeathCause.ECONOMIC):
    return Tombstone(
        agent_id=f"dead-{age}-{generation}",
        name="Gone",
        generation=generation,
        lineage_id="lineage",
        parent_ids=[],
        birth_tick=0,
        death_tick=age,
        age=age,
        cause=cause,
        reason="test",
        final_balance=0.0,
        genome_hash="h",
    )


class TestLineageDominance:
    def test_dominant_founder_in_large_population(self):
        agents = _agents(21)
        founder = agents[0].id
        for agent in agents[1:15]:
            agent.founder_ids = frozenset({founder})
        report = check_lineage_dominance(agents, SETTINGS)
        assert report.triggered
        assert report.condition == "A"
        assert report.agent_id == founder

    def test_small_population_never_triggers(self):
        agents = _agents(20)
        for agent in agents:
            agent.founder_ids = frozenset({agents[0].id})
        assert not check_lineage_dominance(agents, SETTINGS).triggered


class TestEconomicDominance:
    def test_richest_agent_holds_most_capital(self):
        agents = _agents(11, liquid=1.0)
        agents[4].state.liquid = 100.0
        report = check_economic_dominance(agents, SETTINGS)
        assert report.condition == "B"
        assert report.agent_id == agents[4].id

    def test_population_at_minimum_never_triggers(self):
        agents = _agents(10, liquid=1.0)
        agents[0].state.liquid = 100.0
        assert not check_economic_dominance(agents, SETTINGS).triggered


class TestOutlierSurvival:
    def test_long_lived_agent_triggers(self):
        tombstones = [_tombstone(10) for _ in range(10)]
        agents = _agents(2)
        agents[1].state.tick = 51
        report = check_outlier_survival(agents, tombstones, SETTINGS)
        assert report.condition == "C"
        assert report.agent_id == agents[1].id

    def test_needs_enough_early_deaths(self):
        agents = _agents(1)
        agents[0].state.tick = 500
        few = [_tombstone(10) for _ in range(9)]
        late = [_tombstone(10, generation=5) for _ in range(20)]
        assert not check_outlier_survival(agents, few, SETTINGS).triggered
        assert not check_outlier_survival(agents, few + late, SETTINGS).triggered


class TestTerminationMonitor:
    def test_emergent_count_reaches_stop(self):
        monitor = TerminationMonitor(PopulationSettings(emergent_stop_count=2))
        assert monitor.record_emergent([], "a") is None
        first = monitor.record_emergent(["MEMORY_REFERENCE", "DEATH_AWARENESS"], "a")
        assert monitor.emergent_count == 1
        assert first.condition == "D" and not first.triggered
        assert not monitor.evaluate([], []).triggered
        second = monitor.record_emergent(["SOCIAL_MODELING"], "b")
        assert second.triggered
        assert monitor.evaluate([], []).condition == "D"

    def test_multi_flag_decisions_count_once_each(self):
        monitor = TerminationMonitor(PopulationSettings(emergent_stop_count=10))
        flags = ["MEMORY_REFERENCE", "DEATH_AWARENESS", "SOCIAL_MODELING"]
        records = [monitor.record_emergent(flags, "a") for _ in range(10)]
        assert monitor.emergent_count == 10
        assert [r.triggered for r in records] == [False] * 9 + [True]
        assert "DEATH_AWARENESS" in records[-1].detail
        assert records[-1].detail.endswith("cumulative 10/10")

    def test_evaluate_ignores_the_dead(self):
        agents = _agents(10, liquid=1.0)
        agents[0].state.liquid = 100.0
        agents[0].state.alive = False
        assert not TerminationMonitor(SETTINGS).evaluate(agents, []).triggered


class TestNaming:
    def test_category_follows_dominant_trait(self):
        assert name_category(ExpressionResult(analytical_ability=0.9)) == "analytical"
        assert name_category(ExpressionResult(creative_ability=0.9)) == "creative"
        assert name_category(ExpressionResult(risk_appetite=0.1)) == "conservative"
        assert name_category(ExpressionResult()) == "hybrid"

    def test_repeated_names_get_numerals(self):
        registry = NameRegistry(random.Random(0))
        names = [registry.assign(f"agent-{i}", ExpressionResult()) for i in range(7)]
        assert len(set(names)) == 7
        assert any(name.endswith(" II") for name in names)
        assert registry.assign("agent-0", ExpressionResult()) == names[0]
        assert registry.get("agent-0") == names[0]
        assert registry.get("agent-unknown42") == "Bot-nown42"


class TestMetrics:
    def test_run_metrics(self):
        agents = _agents(4)
        agents[0].state.alive = False
        agents[1].state.alive = False
        tombstones = [
            _tombstone(12, cause=DeathCause.STARVATION),
            _tombstone(20, cause=DeathCause.ECONOMIC),
        ]
        births = [
            BirthRecord("kid", "Kid", 2, ["a", "b"], ["a"], 5, "h", 6.0),
        ]
        totals = RunTotals(ticks=30, earnings=5.0, costs=8.0, losses=2.0)
        row = MetricsEngine().compute(agents, tombstones, births, totals)
        assert row["alive_agents"] == 2
        assert row["survival_rate"] == 0.5
        assert row["mean_lifespan"] == 16.0
        assert row["max_generation"] == 2
        assert row["earning_efficiency"] == pytest.approx(0.5)
        assert row["death_share_starvation"] == 0.5
        assert row["death_share_plague"] == 0.0

    def test_totals_count_fallbacks(self):
        report = TickReport(agent_id="a", tick=1)
        report.decisions = [
            {"used_fallback": True, "anomalies": []},
            {"used_fallback": False, "latency_ms": 40.0, "anomalies": ["EXTREME_HIGH_CONFIDENCE"]},
        ]
        report.emergent_flags = ["MEMORY_REFERENCE"]
        totals = RunTotals()
        totals.add_report(report)
        assert totals.decisions == 2
        assert totals.fallbacks == 1
        assert totals.latency_ms == 40.0
        assert totals.anomalies == 1
        assert totals.emergent_flags == 1
        assert MetricsEngine().compute([], [], [], totals)["avg_decision_latency_ms"] == 40.0

    def test_population_stats(self):
        agents = _agents(3)
        agents[0].state.stage = DevelopmentStage.ADULT
        stats = population_stats(agents, tick=9, breeding_events=1, death_events=0)
        assert stats.alive_agents == 3
        assert stats.average_balance == pytest.approx(10.0)
        assert stats.stage_distribution == {"adult": 1, "neonate": 2}

    def test_csv_round_trip(self, tmp_path):
        engine = MetricsEngine()
        rows = [{"run_id": "r1", "alive_agents": 3}, {"run_id": "r2", "alive_agents": 0}]
        path = engine.write_metrics_csv(tmp_path / "out", rows)
        with path.open(encoding="utf-8") as f:
            loaded = list(csv.DictReader(f))
        assert [r["run_id"] for r in loaded] == ["r1", "r2"]
        assert not engine.write_metrics_csv(tmp_path / "empty", []).exists()


class TestBooks:
    def test_reputation_is_clamped(self):
        book = ReputationBook()
        assert book.get("a") == 0.5
        assert book.adjust("a", 0.8) == 1.0
        assert book.adjust("a", -2.0) == 0.0
        book.forget("a")
        assert book.get("a") == 0.5

    def test_wallet_rejects_negative_balances(self):
        wallet = InMemoryWallet()
        wallet.set_balance("a", 3.0)
        assert wallet.get_balance("a") == 3.0
        assert wallet.get_balance("missing") == 0.0
        with pytest.raises(ValueError):
            wallet.set_balance("a", -0.01)
