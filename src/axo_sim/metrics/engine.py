from __future__ import annotations

import csv
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from statistics import mean, median
from typing import Any, Sequence

from axo_sim.agents.agent import Agent
from axo_sim.utils.types import BirthRecord, DeathCause, TickReport, Tombstone


@dataclass
class PopulationStats:
    tick: int
    total_agents: int
    alive_agents: int
    dead_agents: int
    average_balance: float
    median_balance: float
    min_balance: float
    max_balance: float
    average_age: float
    oldest_agent: int
    max_generation: int
    breeding_events: int
    death_events: int
    stage_distribution: dict[str, int] = field(default_factory=dict)


def population_stats(
    agents: Sequence[Agent], tick: int, breeding_events: int, death_events: int
) -> PopulationStats:
    alive = [a for a in agents if a.alive]
    balances = [a.state.total_balance for a in alive]
    ages = [a.state.tick for a in alive]
    return PopulationStats(
        tick=tick,
        total_agents=len(agents),
        alive_agents=len(alive),
        dead_agents=death_events,
        average_balance=mean(balances) if balances else 0.0,
        median_balance=median(balances) if balances else 0.0,
        min_balance=min(balances, default=0.0),
        max_balance=max(balances, default=0.0),
        average_age=mean(ages) if ages else 0.0,
        oldest_agent=max(ages, default=0),
        max_generation=max((a.generation for a in alive), default=0),
        breeding_events=breeding_events,
        death_events=death_events,
        stage_distribution=dict(Counter(a.state.stage.value for a in alive)),
    )


@dataclass
class RunTotals:
    """Running sums over every tick report of a run."""

    ticks: int = 0
    agent_ticks: int = 0
    earnings: float = 0.0
    costs: float = 0.0
    losses: float = 0.0
    decisions: int = 0
    fallbacks: int = 0
    latency_ms: float = 0.0
    emergent_flags: int = 0
    anomalies: int = 0
    shocks: Counter = field(default_factory=Counter)

    def add_report(self, report: TickReport) -> None:
        self.agent_ticks += 1
        self.earnings += report.earnings
        self.costs += report.costs
        self.losses += report.losses
        self.emergent_flags += len(report.emergent_flags)
        for decision in report.decisions:
            self.decisions += 1
            if decision.get("used_fallback"):
                self.fallbacks += 1
            else:
                self.latency_ms += float(decision.get("latency_ms", 0.0))
            self.anomalies += len(decision.get("anomalies", []))


class MetricsEngine:
    def compute(
        self,
        agents: Sequence[Agent],
        tombstones: Sequence[Tombstone],
        births: Sequence[BirthRecord],
        totals: RunTotals,
    ) -> dict[str, Any]:
        alive = [a for a in agents if a.alive]
        total_agents = len(agents)
        survival_rate = len(alive) / max(1, total_agents)

        lifespans = [t.age for t in tombstones]
        mean_lifespan = mean(lifespans) if lifespans else 0.0
        causes = Counter(t.cause for t in tombstones)
        cause_shares = {
            f"death_share_{cause.value}": round(causes.get(cause, 0) / max(1, len(tombstones)), 6)
            for cause in DeathCause
        }

        llm_decisions = totals.decisions - totals.fallbacks
        fallback_rate = totals.fallbacks / max(1, totals.decisions)
        avg_latency = totals.latency_ms / llm_decisions if llm_decisions else 0.0
        outflow = totals.costs + totals.losses
        earning_efficiency = totals.earnings / outflow if outflow > 0 else 0.0

        final_balances = [a.state.total_balance for a in alive]
        max_generation = max(
            [a.generation for a in agents] + [b.generation for b in births], default=0
        )

        return {
            "ticks": totals.ticks,
            "total_agents": total_agents,
            "alive_agents": len(alive),
            "survival_rate": round(survival_rate, 6),
            "births": len(births),
            "deaths": len(tombstones),
            "max_generation": max_generation,
            "mean_lifespan": round(mean_lifespan, 3),
            "mean_final_balance": round(mean(final_balances), 6) if final_balances else 0.0,
            "total_earnings": round(totals.earnings, 6),
            "total_costs": round(totals.costs, 6),
            "total_losses": round(totals.losses, 6),
            "earning_efficiency": round(earning_efficiency, 6),
            "decisions": totals.decisions,
            "fallback_rate": round(fallback_rate, 6),
            "avg_decision_latency_ms": round(avg_latency, 3),
            "emergent_flags": totals.emergent_flags,
            "decision_anomalies": totals.anomalies,
            "market_crashes": totals.shocks.get("market_crash", 0),
            "resource_booms": totals.shocks.get("resource_boom", 0),
            "plagues": totals.shocks.get("plague", 0),
            **cause_shares,
        }

    def write_metrics_csv(
        self,
        output_dir: Path,
        rows: list[dict[str, Any]],
        filename: str = "metrics.csv",
    ) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / filename
        if not rows:
            return path
        keys = list(rows[0].keys())
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=keys)
            writer.writeheader()
            writer.writerows(rows)
        return path
