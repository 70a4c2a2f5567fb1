from __future__ import annotations

import math
from dataclasses import dataclass, field

from axo_sim.genome.types import ExpressionResult
from axo_sim.utils.types import ActionRecord, SurvivalState


@dataclass(frozen=True)
class PopulationView:
    """Population statistics taken at tick start."""

    size: int = 0
    average_balance: float = 0.0
    recent_deaths: int = 0
    active_shock: str | None = None


@dataclass
class Perception:
    agent_id: str
    name: str
    age: int
    generation: int
    stage: str
    liquid: float
    locked: float
    daily_burn: float
    runway: float
    """Ticks of burn covered by liquid capital."""
    mode: str
    stress_level: float
    expression: ExpressionResult
    population: PopulationView
    recent_success_rate: float | None = None
    recent_actions: list[ActionRecord] = field(default_factory=list)
    recent_events: list[str] = field(default_factory=list)
    memories: list[str] = field(default_factory=list)

    @property
    def balance(self) -> float:
        return self.liquid + self.locked


def determine_mode(balance: float) -> str:
    if balance < 0.5:
        return "dormant"
    if balance < 2:
        return "emergency"
    if balance < 5:
        return "low_power"
    return "normal"


def stress_level(balance: float, runway: float) -> float:
    stress = 0.0
    if balance < 2:
        stress += 0.5
    if runway < 3:
        stress += 0.3
    return min(1.0, stress)


def runway_ticks(liquid: float, daily_burn: float) -> float:
    if daily_burn <= 0:
        return math.inf
    return liquid / daily_burn


def perceive(
    *,
    agent_id: str,
    name: str,
    generation: int,
    state: SurvivalState,
    expression: ExpressionResult,
    daily_burn: float,
    population: PopulationView,
    memories: list[str] | None = None,
    recent_window: int = 5,
) -> Perception:
    runway = runway_ticks(state.liquid, daily_burn)
    return Perception(
        agent_id=agent_id,
        name=name,
        age=state.tick,
        generation=generation,
        stage=state.stage.value,
        liquid=state.liquid,
        locked=state.locked,
        daily_burn=daily_burn,
        runway=runway,
        mode=determine_mode(state.total_balance),
        stress_level=stress_level(state.total_balance, runway),
        expression=expression,
        population=population,
        recent_success_rate=state.recent_success_rate(),
        recent_actions=state.history[-recent_window:],
        recent_events=state.events[-recent_window:],
        memories=list(memories or []),
    )
