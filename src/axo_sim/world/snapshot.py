"""JSON population snapshots.

Genomes, survival state and tombstones round-trip through plain dicts so a
saved population can be reloaded and continued.
"""
from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from axo_sim.agents.agent import Agent
from axo_sim.genome.types import (
    Chromosome,
    DynamicGenome,
    EpigeneticMark,
    ExpressionState,
    Gene,
    GeneDomain,
    GeneOrigin,
    GenomeMeta,
    Modification,
    RegulatoryEdge,
    Relationship,
)
from axo_sim.utils.types import (
    ActionRecord,
    DeathCause,
    DefiStats,
    DevelopmentStage,
    Position,
    SurvivalState,
    SurvivalStatus,
    TokenHolding,
    Tombstone,
)

SNAPSHOT_VERSION = 1


def genome_to_dict(genome: DynamicGenome) -> dict[str, Any]:
    return asdict(genome)


def genome_from_dict(data: dict[str, Any]) -> DynamicGenome:
    chromosomes = tuple(
        Chromosome(
            id=c["id"],
            name=c["name"],
            is_essential=c["is_essential"],
            genes=tuple(
                Gene(
                    **{
                        **g,
                        "domain": GeneDomain(g["domain"]),
                        "origin": GeneOrigin(g["origin"]),
                        "expression_state": ExpressionState(g["expression_state"]),
                    }
                )
                for g in c["genes"]
            ),
        )
        for c in data["chromosomes"]
    )
    return DynamicGenome(
        meta=GenomeMeta(**data["meta"]),
        chromosomes=chromosomes,
        regulatory_network=tuple(
            RegulatoryEdge(**{**e, "relationship": Relationship(e["relationship"])})
            for e in data.get("regulatory_network", [])
        ),
        epigenome=tuple(
            EpigeneticMark(**{**m, "modification": Modification(m["modification"])})
            for m in data.get("epigenome", [])
        ),
    )


def state_from_dict(data: dict[str, Any]) -> SurvivalState:
    fields = dict(data)
    fields["stage"] = DevelopmentStage(fields["stage"])
    fields["status"] = SurvivalStatus(fields["status"])
    fields["positions"] = [Position(**p) for p in fields.get("positions", [])]
    fields["tokens"] = [TokenHolding(**t) for t in fields.get("tokens", [])]
    fields["defi"] = DefiStats(**fields.get("defi", {}))
    fields["history"] = [ActionRecord(**r) for r in fields.get("history", [])]
    fields["task_completions"] = {
        k: list(v) for k, v in fields.get("task_completions", {}).items()
    }
    # monotonic clock readings do not survive a restart
    fields["last_llm_call_at"] = None
    return SurvivalState(**fields)


def agent_to_dict(agent: Agent) -> dict[str, Any]:
    return {
        "id": agent.id,
        "name": agent.name,
        "birth_tick": agent.birth_tick,
        "parent_ids": list(agent.parent_ids),
        "founder_ids": sorted(agent.founder_ids),
        "genome": genome_to_dict(agent.genome),
        "state": asdict(agent.state),
    }


def agent_from_dict(data: dict[str, Any]) -> Agent:
    return Agent(
        id=data["id"],
        name=data["name"],
        genome=genome_from_dict(data["genome"]),
        state=state_from_dict(data["state"]),
        birth_tick=data.get("birth_tick", 0),
        parent_ids=list(data.get("parent_ids", [])),
        founder_ids=frozenset(data.get("founder_ids", [])),
    )


def tombstone_from_dict(data: dict[str, Any]) -> Tombstone:
    return Tombstone(**{**data, "cause": DeathCause(data["cause"])})


def save_snapshot(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump({"version": SNAPSHOT_VERSION, **payload}, f, indent=2, ensure_ascii=True)


def load_snapshot(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if data.get("version") != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {data.get('version')!r} in {path}")
    return data
