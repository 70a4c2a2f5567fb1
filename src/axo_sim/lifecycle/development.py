from __future__ import annotations

from dataclasses import dataclass

from axo_sim.config.settings import LifecycleSettings
from axo_sim.utils.types import DevelopmentStage

SENESCENCE_FRACTION = 0.8
SENESCENCE_RATE_PER_TICK = 0.001
SENESCENCE_MAX_CHANCE = 0.5


@dataclass(frozen=True)
class StageProfile:
    metabolism_multiplier: float
    mutation_multiplier: float
    can_reproduce: bool
    protected_from_starvation: bool = False


STAGE_PROFILES: dict[DevelopmentStage, StageProfile] = {
    DevelopmentStage.NEONATE: StageProfile(0.5, 1.5, False, protected_from_starvation=True),
    DevelopmentStage.JUVENILE: StageProfile(0.8, 1.2, False),
    DevelopmentStage.ADULT: StageProfile(1.0, 1.0, True),
    DevelopmentStage.SENESCENT: StageProfile(1.3, 0.5, False),
}


def determine_stage(age: int, max_lifespan: int, lifecycle: LifecycleSettings) -> DevelopmentStage:
    if age < lifecycle.neonate_duration:
        return DevelopmentStage.NEONATE
    if age < lifecycle.neonate_duration + lifecycle.juvenile_duration:
        return DevelopmentStage.JUVENILE
    if age > max_lifespan * SENESCENCE_FRACTION:
        return DevelopmentStage.SENESCENT
    return DevelopmentStage.ADULT


def stage_profile(stage: DevelopmentStage) -> StageProfile:
    return STAGE_PROFILES[stage]


def senescence_death_chance(age: int, lifecycle: LifecycleSettings) -> float:
    if age < lifecycle.senescence_start_tick:
        return 0.0
    chance = (
        lifecycle.senescence_base_death_rate
        + (age - lifecycle.senescence_start_tick) * SENESCENCE_RATE_PER_TICK
    )
    return min(SENESCENCE_MAX_CHANCE, chance)
