"""Population ticks: shocks, breeding and births, culling, termination and snapshots."""
from __future__ import annotations

import json
import random
from dataclasses import replace

import pytest

from axo_sim.agents.decision import Decision, IdleDecisionProvider
from axo_sim.environment.catalogs import EnvironmentCatalog
from axo_sim.utils.types import DeathCause, DevelopmentStage
from axo_sim.world.population import PopulationManager

from conftest import ScriptedProvider, make_adult, set_genes


@pytest.fixture
def build_manager(settings, sink):
    managers = []

    def _build(custom_settings=None, provider=None):
        manager = PopulationManager(
            settings=custom_settings or settings,
            provider=provider or IdleDecisionProvider(),
            sink=sink,
            rng=random.Random(42),
            catalog=EnvironmentCatalog(),
        )
        managers.append(manager)
        return manager

    yield _build
    for manager in managers:
        manager.close()


def _with_population(settings, **changes):
    return replace(settings, population=replace(settings.population, **changes))


def _add_adults(manager, count, liquid=15.0):
    agents = []
    for _ in range(count):
        agent = make_adult(manager.rng, liquid)
        agent.name = manager.names.assign(agent.id, agent.expression())
        manager.add_agent(agent)
        agents.append(agent)
    return agents


def _set_liquid(manager, agent, liquid):
    agent.state.liquid = liquid
    manager.wallet.set_balance(agent.id, liquid)


class TestBreeding:
    def test_two_ready_adults_produce_one_child(self, build_manager, sink):
        manager = build_manager()
        mother, father = _add_adults(manager, 2)
        manager.run_tick()

        assert len(manager.births) == 1
        assert len(sink.births) == 1
        birth = manager.births[0]
        child = manager.agents[birth.agent_id]
        assert child.generation == 1
        assert set(child.parent_ids) == {mother.id, father.id}
        assert child.name
        assert manager.wallet.get_balance(child.id) == 6.0
        assert child.state.stage is DevelopmentStage.NEONATE
        for parent in (mother, father):
            assert parent.state.liquid == pytest.approx(10.0, abs=0.1)
            assert parent.state.offspring_count == 1
            assert parent.state.last_breeding_tick is not None
        assert manager.breeding_events == 1

    def test_population_ceiling_blocks_birth_and_refunds(self, build_manager, settings):
        custom = _with_population(settings, max_population=2, overcrowding_threshold=2)
        manager = build_manager(custom)
        parents = _add_adults(manager, 2)
        manager.run_tick()

        assert manager.births == []
        for parent in parents:
            assert parent.state.liquid == pytest.approx(15.0, abs=0.1)
            assert manager.wallet.get_balance(parent.id) == pytest.approx(parent.state.liquid)

    def test_cooldown_stops_a_second_birth(self, build_manager):
        manager = build_manager()
        _add_adults(manager, 2, liquid=40.0)
        manager.run_tick()
        manager.run_tick()
        assert len(manager.births) == 1


class TestPressure:
    def test_culling_removes_the_poorest(self, build_manager, settings):
        manager = build_manager(_with_population(settings, overcrowding_threshold=2))
        founders = manager.initialize(4)
        for offset, agent in enumerate(founders):
            _set_liquid(manager, agent, 5.0 + offset)
        manager.run_tick()

        culled = {t.agent_id for t in manager.tombstones}
        assert culled == {founders[0].id, founders[1].id}
        assert all(t.cause is DeathCause.COMPETITION for t in manager.tombstones)
        assert {a.id for a in manager.alive_agents} == {founders[2].id, founders[3].id}
        assert manager.death_events == 2

    def test_buried_agents_leave_the_wallet(self, build_manager, settings):
        manager = build_manager(_with_population(settings, overcrowding_threshold=1))
        poor, rich = manager.initialize(2)
        _set_liquid(manager, poor, 5.0)
        _set_liquid(manager, rich, 9.0)
        manager.run_tick()

        assert not poor.alive
        assert set(manager.wallet.as_dict()) == {rich.id}
        assert manager.wallet.get_balance(rich.id) == pytest.approx(rich.state.liquid)

    def test_market_crash_cuts_balances(self, build_manager, settings, sink):
        manager = build_manager(_with_population(settings, market_crash_probability=1.0))
        founders = manager.initialize(3)
        manager.run_tick()

        for agent in founders:
            assert 15.0 * 0.7 - 0.1 <= agent.state.liquid <= 15.0 * 0.9
        assert manager.totals.shocks["market_crash"] == 1
        shocks = [e for e in sink.events if e.kind == "shock"]
        assert [e.detail for e in shocks] == ["market_crash"]

    def test_resource_boom_adds_capital(self, build_manager, settings):
        manager = build_manager(_with_population(settings, resource_boom_probability=1.0))
        founders = manager.initialize(3)
        manager.run_tick()
        for agent in founders:
            assert 15.0 + 0.4 <= agent.state.liquid <= 15.0 + 2.0

    def test_stress_resistant_agents_survive_plague(self, build_manager, settings):
        manager = build_manager(_with_population(settings, plague_probability=1.0))
        founders = manager.initialize(5)
        for agent in founders:
            agent.genome = set_genes(agent.genome, stress_response_speed=1.0)
        manager.run_tick()
        assert manager.totals.shocks["plague"] == 1
        assert len(manager.alive_agents) == 5


class TestRunLoop:
    def test_extinction_ends_the_run(self, build_manager, settings):
        custom = replace(settings, simulation=replace(settings.simulation, initial_balance=0.0005))
        manager = build_manager(custom)
        manager.initialize(3)
        report = manager.run(max_ticks=5)
        assert not report.triggered
        assert report.detail == "extinction"
        assert manager.tick == 1
        assert all(t.cause is DeathCause.ECONOMIC for t in manager.tombstones)

    def test_run_stops_at_max_ticks(self, build_manager):
        manager = build_manager()
        manager.initialize(3)
        report = manager.run(max_ticks=3)
        assert report.detail == "max ticks 3 reached"
        assert manager.tick == 3
        assert manager.stats().alive_agents == 3

    def test_emergent_decisions_halt_the_run(self, build_manager, settings, sink):
        custom = replace(
            _with_population(settings, emergent_stop_count=2),
            economy=replace(settings.economy, llm_calls_per_tick=1),
        )
        provider = ScriptedProvider(
            Decision(
                strategy_id="idle_conservation",
                index=1,
                reasoning="I recall that waiting worked",
                confidence=0.6,
                emotion="calm",
                cost=0.001,
            )
        )
        manager = build_manager(custom, provider=provider)
        manager.initialize(2)
        report = manager.run(max_ticks=10)

        assert report.triggered
        assert report.condition == "D"
        assert manager.tick == 1
        recorded = [r for _, r in sink.terminations]
        assert [r.condition for r in recorded] == ["D", "D"]
        assert [r.triggered for r in recorded] == [False, True]

    def test_each_flagged_decision_counts_once(self, build_manager, settings, sink):
        custom = replace(
            _with_population(settings, emergent_stop_count=3),
            economy=replace(settings.economy, llm_calls_per_tick=1),
        )
        provider = ScriptedProvider(
            Decision(
                strategy_id="idle_conservation",
                index=1,
                reasoning=(
                    "I remember the crash. I want to survive and other agents will help them"
                ),
                confidence=0.6,
                emotion="calm",
                cost=0.001,
            )
        )
        manager = build_manager(custom, provider=provider)
        manager.initialize(3)
        report = manager.run(max_ticks=10)

        assert report.condition == "D"
        assert manager.monitor.emergent_count == 3
        recorded = [r for _, r in sink.terminations]
        assert [r.triggered for r in recorded] == [False, False, True]
        assert "MEMORY_REFERENCE" in recorded[0].detail
        assert "SOCIAL_MODELING" in recorded[0].detail

    def test_tick_end_reports_net_flow(self, build_manager, caplog):
        manager = build_manager()
        manager.initialize(3)
        with caplog.at_level("INFO", logger="axo_sim.world"):
            manager.run(max_ticks=1)

        assert manager.last_net_flow < 0
        totals = manager.totals
        assert manager.last_net_flow == pytest.approx(
            totals.earnings - totals.costs - totals.losses
        )
        [line] = [r.getMessage() for r in caplog.records if r.getMessage().startswith("TICK-END")]
        assert f"net={manager.last_net_flow:+.4f}" in line

    def test_one_failing_agent_does_not_stop_the_tick(self, build_manager, monkeypatch):
        manager = build_manager()
        bad, good = manager.initialize(2)
        original = manager.orchestrator.run_tick

        async def flaky(agent, ctx):
            if agent.id == bad.id:
                raise RuntimeError("corrupted state")
            return await original(agent, ctx)

        monkeypatch.setattr(manager.orchestrator, "run_tick", flaky)
        manager.run_tick()
        assert bad.state.tick == 0
        assert good.state.tick == 1
        assert bad.alive


class TestSnapshots:
    def test_saved_population_resumes(self, build_manager, tmp_path):
        manager = build_manager()
        manager.initialize(3)
        manager.run(max_ticks=2)
        path = tmp_path / "snap" / "snapshot.json"
        manager.save_snapshot(path)

        restored = build_manager()
        restored.restore_snapshot(path)
        assert restored.tick == 2
        assert set(restored.agents) == set(manager.agents)
        for agent_id, agent in manager.agents.items():
            twin = restored.agents[agent_id]
            assert twin.name == agent.name
            assert twin.genome.meta.genome_hash == agent.genome.meta.genome_hash
            assert twin.state.liquid == pytest.approx(agent.state.liquid)
            assert twin.state.stage is agent.state.stage
            assert restored.wallet.get_balance(agent_id) == pytest.approx(agent.state.liquid)

        restored.run_tick()
        assert restored.tick == 3

    def test_unknown_snapshot_version_is_rejected(self, build_manager, tmp_path):
        path = tmp_path / "old.json"
        path.write_text(json.dumps({"version": 99}), encoding="utf-8")
        with pytest.raises(ValueError):
            build_manager().restore_snapshot(path)
