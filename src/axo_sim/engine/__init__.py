"""Survival tick engine.

One tick per living agent: age and stage update, epigenetic response, death
check, then nine economic phases in fixed order. Death at any point ends the
agent's tick with a tombstone.
"""
from axo_sim.engine.survival import SurvivalOrchestrator, TickContext, mate_snapshot

__all__ = ["SurvivalOrchestrator", "TickContext", "mate_snapshot"]
