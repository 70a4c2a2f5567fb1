from __future__ import annotations

import random
from dataclasses import dataclass

from axo_sim.agents.agent import Agent
from axo_sim.config.settings import GeneticsSettings
from axo_sim.genome.factory import create_founder_genome, new_id
from axo_sim.genome.operators import crossover, mutate_offspring
from axo_sim.genome.types import DynamicGenome, MutationEvent
from axo_sim.lifecycle.development import stage_profile
from axo_sim.utils.types import SurvivalState


@dataclass
class Offspring:
    agent: Agent
    mutations: list[MutationEvent]


def new_agent_id(rng: random.Random) -> str:
    return f"agent-{new_id(rng, 8)}"


def create_founder(
    name: str, initial_balance: float, rng: random.Random, birth_tick: int = 0
) -> Agent:
    agent_id = new_agent_id(rng)
    return Agent(
        id=agent_id,
        name=name,
        genome=create_founder_genome(rng),
        state=SurvivalState(agent_id=agent_id, liquid=initial_balance),
        birth_tick=birth_tick,
        founder_ids=frozenset({agent_id}),
    )


def mutation_rate_factor(parent: Agent) -> float:
    """Expressed mutation rate (0.5 is neutral) times the parent's stage multiplier."""
    expressed = parent.expression().global_mutation_rate * 2
    return expressed * stage_profile(parent.state.stage).mutation_multiplier


def create_offspring(
    parent_a: Agent,
    parent_b: Agent,
    name: str,
    initial_balance: float,
    birth_tick: int,
    genetics: GeneticsSettings,
    rng: random.Random,
    donor: tuple[str, DynamicGenome] | None = None,
) -> Offspring:
    """Crossover of both parents followed by a round of mutation rolls.

    ``parent_a`` is the breeding requester; the child generation follows it.
    """
    genome, events = crossover(
        parent_a.genome, parent_b.genome, rng, genetics.recombination_probability
    )
    genome, mutations = mutate_offspring(
        genome, rng, genetics, rate_factor=mutation_rate_factor(parent_a), donor=donor
    )
    events.extend(mutations)
    agent_id = new_agent_id(rng)
    child = Agent(
        id=agent_id,
        name=name,
        genome=genome,
        state=SurvivalState(agent_id=agent_id, liquid=initial_balance),
        birth_tick=birth_tick,
        parent_ids=[parent_a.id, parent_b.id],
        founder_ids=parent_a.founder_ids | parent_b.founder_ids,
    )
    return Offspring(agent=child, mutations=events)
