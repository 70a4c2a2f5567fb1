"""Development stages, death conditions, breeding gates and births."""
from __future__ import annotations

import random

import pytest

from axo_sim.config.settings import EconomySettings, GeneticsSettings, LifecycleSettings
from axo_sim.genome.factory import create_founder_genome
from axo_sim.genome.types import ExpressionResult
from axo_sim.lifecycle.birth import create_founder, create_offspring
from axo_sim.lifecycle.breeding import MateCandidate, can_breed, genetic_distance, select_mate
from axo_sim.lifecycle.death import (
    DeathVerdict,
    build_tombstone,
    check_death,
    derive_lessons,
    emergency_verdict,
)
from axo_sim.lifecycle.development import determine_stage, senescence_death_chance
from axo_sim.utils.types import DeathCause, DevelopmentStage, SurvivalState, SurvivalStatus

ECONOMY = EconomySettings()
LIFECYCLE = LifecycleSettings()


def _state(**fields) -> SurvivalState:
    base = dict(agent_id="agent-x", liquid=10.0, tick=30, stage=DevelopmentStage.ADULT)
    base.update(fields)
    return SurvivalState(**base)


def _verdict(state: SurvivalState, essential: int = 16, lifespan: int = 500) -> DeathVerdict:
    return check_death(
        state,
        essential,
        ExpressionResult(max_lifespan=lifespan),
        ECONOMY,
        LIFECYCLE,
        random.Random(0),
    )


class TestDevelopment:
    @pytest.mark.parametrize(
        "age,stage",
        [
            (0, DevelopmentStage.NEONATE),
            (4, DevelopmentStage.NEONATE),
            (5, DevelopmentStage.JUVENILE),
            (14, DevelopmentStage.JUVENILE),
            (15, DevelopmentStage.ADULT),
            (400, DevelopmentStage.ADULT),
            (401, DevelopmentStage.SENESCENT),
        ],
    )
    def test_stage_boundaries(self, age, stage):
        assert determine_stage(age, 500, LIFECYCLE) is stage

    def test_senescence_chance(self):
        assert senescence_death_chance(499, LIFECYCLE) == 0.0
        assert senescence_death_chance(500, LIFECYCLE) == pytest.approx(0.05)
        assert senescence_death_chance(5000, LIFECYCLE) == 0.5


class TestDeath:
    def test_healthy_agent_lives(self):
        assert not _verdict(_state()).dead

    def test_depleted_balance_is_economic_death(self):
        verdict = _verdict(_state(liquid=0.0005))
        assert verdict.cause is DeathCause.ECONOMIC

    def test_exhausted_countdown_is_starvation(self):
        state = _state(liquid=0.3, status=SurvivalStatus.DYING, dying_countdown=0)
        assert _verdict(state).cause is DeathCause.STARVATION

    def test_dying_with_time_left_survives(self):
        state = _state(liquid=0.3, status=SurvivalStatus.DYING, dying_countdown=2)
        assert not _verdict(state).dead

    def test_too_few_essential_genes_is_genetic_death(self):
        assert _verdict(_state(), essential=7).cause is DeathCause.GENETIC
        assert not _verdict(_state(), essential=8).dead

    def test_lifespan_exceeded_is_natural_death(self):
        assert _verdict(_state(tick=501), lifespan=500).cause is DeathCause.NATURAL

    def test_persistent_losses_are_economic_death(self):
        verdict = _verdict(_state(consecutive_failures=101))
        assert verdict.cause is DeathCause.ECONOMIC
        assert "persistent" in verdict.reason

    def test_balance_check_wins_over_starvation(self):
        state = _state(liquid=0.0, status=SurvivalStatus.DYING, dying_countdown=0)
        assert _verdict(state).cause is DeathCause.ECONOMIC

    def test_mid_tick_check(self):
        assert emergency_verdict(_state(liquid=0.001), ECONOMY).dead
        assert not emergency_verdict(_state(liquid=0.01), ECONOMY).dead

    def test_tombstone_lessons(self):
        state = _state(liquid=0.0, total_spent=10.0)
        lessons = derive_lessons(DeathCause.ECONOMIC, state, ExpressionResult(risk_appetite=0.9))
        assert "high risk appetite led to over-speculation" in lessons
        assert "too passive, made few deliberate decisions" in lessons
        tombstone = build_tombstone(
            agent_id="agent-x",
            name="Gandhi",
            generation=1,
            lineage_id="lineage-1",
            parent_ids=["a", "b"],
            birth_tick=3,
            death_tick=40,
            state=state,
            verdict=DeathVerdict(True, DeathCause.ECONOMIC, "balance depleted"),
            genome_hash="abc",
            expression=ExpressionResult(risk_appetite=0.9),
        )
        assert tombstone.age == 30
        assert tombstone.to_dict()["cause"] == "economic"
        assert tombstone.lessons == lessons


class TestBreeding:
    def test_adult_with_balance_may_breed(self):
        ready, reason = can_breed(_state(), 15.0, 0.5, LIFECYCLE)
        assert ready, reason

    def test_selective_agents_need_double_balance(self):
        ready, _ = can_breed(_state(), 15.0, 0.8, LIFECYCLE)
        assert not ready
        ready, _ = can_breed(_state(), 30.0, 0.8, LIFECYCLE)
        assert ready

    @pytest.mark.parametrize(
        "fields",
        [
            {"stage": DevelopmentStage.JUVENILE},
            {"stage": DevelopmentStage.SENESCENT},
            {"tick": 10},
            {"last_breeding_tick": 20},
        ],
    )
    def test_gates(self, fields):
        ready, _ = can_breed(_state(**fields), 50.0, 0.5, LIFECYCLE)
        assert not ready

    def test_mate_selection_skips_ineligible(self):
        genome = create_founder_genome(random.Random(1))

        def candidate(agent_id, **overrides):
            fields = dict(
                agent_id=agent_id,
                balance=20.0,
                age=30,
                stage=DevelopmentStage.ADULT,
                alive=True,
                genome=genome,
            )
            fields.update(overrides)
            return MateCandidate(**fields)

        pool = [
            candidate("self"),
            candidate("dead", alive=False),
            candidate("young", stage=DevelopmentStage.JUVENILE),
            candidate("poor", balance=1.0),
            candidate("mate"),
        ]
        for seed in range(10):
            chosen = select_mate("self", genome, pool, 0.5, 5.0, random.Random(seed))
            assert chosen == "mate"
        assert select_mate("self", genome, pool[:4], 0.5, 5.0, random.Random(0)) is None

    def test_genetic_distance(self):
        a = create_founder_genome(random.Random(1))
        b = create_founder_genome(random.Random(2))
        assert genetic_distance(a, a) == 0.0
        assert 0.0 < genetic_distance(a, b) < 1.0


class TestBirth:
    def test_offspring_inherits_lineage(self, rng):
        mother = create_founder("Curie", 15.0, rng)
        father = create_founder("Newton", 15.0, rng)
        offspring = create_offspring(
            mother, father, "Feynman", 6.0, birth_tick=12, genetics=GeneticsSettings(), rng=rng
        )
        child = offspring.agent
        assert child.generation == 1
        assert child.parent_ids == [mother.id, father.id]
        assert child.founder_ids == frozenset({mother.id, father.id})
        assert child.state.liquid == 6.0
        assert child.state.stage is DevelopmentStage.NEONATE
        assert child.birth_tick == 12
        assert child.genome.meta.total_genes == child.genome.count_genes()

    def test_founder_counts_itself(self, rng):
        founder = create_founder("Turing", 15.0, rng, birth_tick=0)
        assert founder.founder_ids == frozenset({founder.id})
        assert founder.generation == 0
