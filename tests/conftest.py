"""Shared fixtures for the simulation tests."""
from __future__ import annotations

import random
from dataclasses import replace

import pytest

from axo_sim.agents.agent import Agent
from axo_sim.agents.decision import Decision
from axo_sim.config.settings import AppSettings
from axo_sim.db.sink import InMemoryRecordSink
from axo_sim.genome.factory import rebuild_genome
from axo_sim.genome.types import DynamicGenome
from axo_sim.lifecycle.birth import create_founder
from axo_sim.utils.types import DevelopmentStage


def set_genes(genome: DynamicGenome, **values: float) -> DynamicGenome:
    """Pin named genes to ``value`` with unit weight so their expression is exact."""
    chromosomes = tuple(
        replace(
            chromosome,
            genes=tuple(
                replace(g, value=values[g.name], weight=1.0) if g.name in values else g
                for g in chromosome.genes
            ),
        )
        for chromosome in genome.chromosomes
    )
    return rebuild_genome(genome, chromosomes)


def make_adult(
    rng: random.Random, liquid: float, name: str = "Tester", age: int = 20, **genes: float
) -> Agent:
    agent = create_founder(name, liquid, rng)
    pinned = {"breeding_selectivity": 0.5, "max_lifespan": 0.6, **genes}
    agent.genome = set_genes(agent.genome, **pinned)
    agent.state.tick = age
    agent.state.stage = DevelopmentStage.ADULT
    return agent


class ScriptedProvider:
    """Decision provider that replays a fixed decision or raises."""

    throttled = True

    def __init__(self, decision: Decision | None = None, error: Exception | None = None):
        self.decision = decision
        self.error = error
        self.calls = []

    async def decide(self, perception, strategies, session=None):
        self.calls.append((perception, list(strategies)))
        if self.error is not None:
            raise self.error
        return self.decision


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def settings(tmp_path):
    """Quiet economy: no flat costs, no decision calls, no shocks."""
    base = AppSettings.defaults(tmp_path / "outputs")
    return replace(
        base,
        economy=replace(
            base.economy,
            base_tick_cost=0.0,
            daily_inference_cost=0.0,
            daily_gas_cost=0.0,
            llm_calls_per_tick=0,
            min_llm_interval_ms=0,
        ),
        population=replace(
            base.population,
            market_crash_probability=0.0,
            resource_boom_probability=0.0,
            plague_probability=0.0,
        ),
        simulation=replace(base.simulation, log_tick_interval=1000, sink="memory"),
    )


@pytest.fixture
def sink():
    return InMemoryRecordSink()
