from __future__ import annotations

import asyncio
import logging
import random
import time
from pathlib import Path
from statistics import mean

import aiohttp

from axo_sim.agents.agent import Agent
from axo_sim.agents.decision import DecisionProvider
from axo_sim.agents.emergence import EmergenceClassifier
from axo_sim.agents.perception import PopulationView
from axo_sim.config.settings import AppSettings
from axo_sim.db.sink import RecordSink
from axo_sim.economy.reputation import ReputationBook
from axo_sim.economy.wallet import InMemoryWallet
from axo_sim.engine.survival import SurvivalOrchestrator, TickContext, mate_snapshot
from axo_sim.environment.catalogs import (
    EnvironmentCatalog,
    EnvironmentShock,
    ShockKind,
    default_catalog,
    environment_shocks,
)
from axo_sim.genome.types import DynamicGenome
from axo_sim.lifecycle.birth import create_founder, create_offspring
from axo_sim.lifecycle.death import DeathVerdict
from axo_sim.memory.archive import MemoryArchive
from axo_sim.metrics.engine import PopulationStats, RunTotals, population_stats
from axo_sim.utils.types import (
    BirthRecord,
    BreedingRequest,
    DeathCause,
    EventRecord,
    TerminationReport,
    TickReport,
    Tombstone,
)
from axo_sim.world.naming import NameRegistry
from axo_sim.world.snapshot import (
    agent_from_dict,
    agent_to_dict,
    load_snapshot,
    save_snapshot,
    tombstone_from_dict,
)
from axo_sim.world.termination import NOT_TRIGGERED, TerminationMonitor

HTTP_CONNECTION_LIMIT = 4


class PopulationManager:
    """Owns the agents, their balances, names and reputation for one run."""

    def __init__(
        self,
        settings: AppSettings,
        provider: DecisionProvider,
        sink: RecordSink,
        rng: random.Random,
        catalog: EnvironmentCatalog | None = None,
        classifier: EmergenceClassifier | None = None,
        memory: MemoryArchive | None = None,
    ) -> None:
        self.logger = logging.getLogger("axo_sim.world")
        self.settings = settings
        self.sink = sink
        self.rng = rng
        self.wallet = InMemoryWallet()
        self.reputation = ReputationBook()
        self.names = NameRegistry(rng)
        self.monitor = TerminationMonitor(settings.population)
        self.shocks: tuple[EnvironmentShock, ...] = environment_shocks(settings.population)
        self.orchestrator = SurvivalOrchestrator(
            settings=settings,
            wallet=self.wallet,
            reputation=self.reputation,
            provider=provider,
            catalog=catalog or default_catalog(),
            rng=rng,
            classifier=classifier,
            memory=memory,
        )
        self.agents: dict[str, Agent] = {}
        self.tombstones: list[Tombstone] = []
        self.births: list[BirthRecord] = []
        self.totals = RunTotals()
        self.tick = 0
        self.breeding_events = 0
        self.death_events = 0
        self._recent_deaths = 0
        self.last_net_flow = 0.0
        """Summed net flow of every agent report in the latest tick."""
        # Persistent event loop; decision calls are the only awaited I/O
        self._loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

    # ===================================================================
    # Population
    # ===================================================================

    @property
    def alive_agents(self) -> list[Agent]:
        return [a for a in self.agents.values() if a.alive]

    def initialize(self, count: int | None = None) -> list[Agent]:
        count = self.settings.simulation.initial_agent_count if count is None else count
        founders = []
        for _ in range(count):
            agent = create_founder(
                name="", initial_balance=self.settings.simulation.initial_balance,
                rng=self.rng, birth_tick=self.tick,
            )
            agent.name = self.names.assign(agent.id, agent.expression())
            self.add_agent(agent)
            founders.append(agent)
            self.logger.debug("FOUNDER %s", agent.identity_signature())
        self.logger.info(
            "Population initialized: founders=%d balance=%.2f",
            count,
            self.settings.simulation.initial_balance,
        )
        return founders

    def add_agent(self, agent: Agent) -> None:
        self.agents[agent.id] = agent
        if agent.alive:
            self.wallet.set_balance(agent.id, agent.state.liquid)

    def stats(self) -> PopulationStats:
        return population_stats(
            list(self.agents.values()), self.tick, self.breeding_events, self.death_events
        )

    # ===================================================================
    # Main loop
    # ===================================================================

    def run(self, max_ticks: int | None = None) -> TerminationReport:
        max_ticks = self.settings.simulation.max_ticks if max_ticks is None else max_ticks
        report = NOT_TRIGGERED
        for _ in range(max_ticks):
            t_tick = time.perf_counter()
            report = self.run_tick()
            self.logger.info(
                "TICK-END tick=%d elapsed=%.1fs alive=%d dead=%d net=%+.4f",
                self.tick,
                time.perf_counter() - t_tick,
                len(self.alive_agents),
                self.death_events,
                self.last_net_flow,
            )
            if report.triggered:
                self.logger.info(
                    "Experiment ended: condition=%s agent=%s detail=%s",
                    report.condition,
                    report.agent_id,
                    report.detail,
                )
                return report
            if not self.alive_agents:
                self.logger.info("Tick %d: ALL AGENTS DEAD, simulation over", self.tick)
                return TerminationReport(triggered=False, detail="extinction")
        return TerminationReport(triggered=False, detail=f"max ticks {max_ticks} reached")

    def run_tick(self) -> TerminationReport:
        self.tick += 1
        tick = self.tick
        _t0 = time.perf_counter()
        self.logger.info("TICK-START tick=%d alive=%d", tick, len(self.alive_agents))

        def _phase(label: str) -> None:
            self.logger.info(
                "TICK-PHASE tick=%d step=%s elapsed=%.1fs",
                tick, label, time.perf_counter() - _t0,
            )

        deaths_before = self.death_events
        self.last_net_flow = 0.0

        _phase("shocks")
        shock = self._apply_shock(tick)

        _phase("survival")
        requests = self._loop.run_until_complete(self._run_agents(tick, shock))

        _phase("births")
        self._process_births(tick, requests)

        _phase("culling")
        self._cull(tick)

        _phase("termination")
        report = self.monitor.evaluate(list(self.agents.values()), self.tombstones)
        # D is recorded each time it fires, in _absorb_report
        if report.triggered and report.condition != "D":
            self.sink.record_termination(tick, report)

        self._recent_deaths = self.death_events - deaths_before
        self.totals.ticks += 1
        self._maybe_log_tick_progress(tick)
        return report

    async def _run_agents(self, tick: int, shock: str | None) -> list[BreedingRequest]:
        alive = self.alive_agents
        ctx = TickContext(
            tick=tick,
            population=PopulationView(
                size=len(alive),
                average_balance=mean(a.state.total_balance for a in alive) if alive else 0.0,
                recent_deaths=self._recent_deaths,
                active_shock=shock,
            ),
            mates=mate_snapshot(alive),
        )
        requests: list[BreedingRequest] = []
        paired: set[str] = set()

        # force_close=True: each request gets a fresh connection
        connector = aiohttp.TCPConnector(limit=HTTP_CONNECTION_LIMIT, force_close=True)
        async with aiohttp.ClientSession(
            connector=connector,
            headers={"Connection": "close"},
        ) as session:
            ctx.session = session
            for agent in alive:
                if not agent.alive:
                    continue
                try:
                    report = await self.orchestrator.run_tick(agent, ctx)
                except Exception as exc:
                    self.logger.error(
                        "Agent %s tick exception during tick %d: %s",
                        agent.id, tick, exc,
                        exc_info=True,
                    )
                    continue
                self._absorb_report(agent, report, tick)
                request = report.breeding_request
                if request is not None and self._collect_mate_share(request, paired):
                    requests.append(request)
        return requests

    # ===================================================================
    # Reports and records
    # ===================================================================

    def _absorb_report(self, agent: Agent, report: TickReport, tick: int) -> None:
        self.totals.add_report(report)
        for phase in report.phases:
            if not phase.events and phase.net == 0:
                continue
            self.sink.record_event(
                EventRecord(
                    tick=tick,
                    agent=agent.id,
                    kind="phase",
                    detail=phase.phase,
                    payload={"events": list(phase.events)},
                    earnings=phase.earnings,
                    costs=phase.costs,
                    losses=phase.losses,
                )
            )
        for decision in report.decisions:
            self.sink.record_event(
                EventRecord(
                    tick=tick,
                    agent=agent.id,
                    kind="decision",
                    detail=str(decision.get("action", "")),
                    payload=decision,
                )
            )
            emergent = self.monitor.record_emergent(decision.get("emergent", []), agent.id)
            if emergent is not None:
                self.sink.record_termination(tick, emergent)
        self.last_net_flow += report.net_flow
        if report.tombstone is not None:
            self._bury(report.tombstone)

    def _bury(self, tombstone: Tombstone) -> None:
        self.tombstones.append(tombstone)
        self.death_events += 1
        self.wallet.remove(tombstone.agent_id)
        self.reputation.forget(tombstone.agent_id)
        self.sink.record_tombstone(tombstone)

    def _kill(self, agent: Agent, cause: DeathCause, reason: str, tick: int) -> None:
        tombstone = self.orchestrator.kill(agent, DeathVerdict(True, cause, reason), tick)
        self._bury(tombstone)

    # ===================================================================
    # Breeding and births
    # ===================================================================

    def _credit(self, agent: Agent, amount: float) -> None:
        liquid = self.wallet.get_balance(agent.id) + amount
        self.wallet.set_balance(agent.id, liquid)
        agent.state.liquid = liquid
        agent.state.total_spent -= amount

    def _collect_mate_share(self, request: BreedingRequest, paired: set[str]) -> bool:
        """Charge the mate its share; refund the requester when the mate cannot pay."""
        requester = self.agents[request.requester_id]
        mate = self.agents.get(request.mate_id)
        cost = self.settings.lifecycle.breeding_cost_per_parent
        mate_liquid = self.wallet.get_balance(request.mate_id)
        if (
            mate is None
            or not mate.alive
            or mate.id in paired
            or requester.id in paired
            or mate_liquid < cost
        ):
            self._credit(requester, request.cost_paid)
            self.logger.info(
                "BREEDING-DECLINED requester=%s mate=%s refund=%.2f",
                request.requester_id, request.mate_id, request.cost_paid,
            )
            return False
        self.wallet.set_balance(mate.id, mate_liquid - cost)
        mate.state.liquid = mate_liquid - cost
        mate.state.total_spent += cost
        mate.state.last_breeding_tick = mate.state.tick
        paired.update((requester.id, mate.id))
        return True

    def _hgt_donor(
        self, parent_a: Agent, parent_b: Agent
    ) -> tuple[str, DynamicGenome] | None:
        candidates = [
            a for a in self.alive_agents if a.id not in (parent_a.id, parent_b.id)
        ]
        if not candidates:
            return None
        donor = self.rng.choice(candidates)
        return donor.id, donor.genome

    def _process_births(self, tick: int, requests: list[BreedingRequest]) -> None:
        lifecycle = self.settings.lifecycle
        for request in requests:
            parent_a = self.agents[request.requester_id]
            parent_b = self.agents[request.mate_id]
            if len(self.alive_agents) >= self.settings.population.max_population:
                self._credit(parent_a, lifecycle.breeding_cost_per_parent)
                self._credit(parent_b, lifecycle.breeding_cost_per_parent)
                self.logger.info(
                    "BIRTH-BLOCKED tick=%d parents=%s,%s population ceiling %d",
                    tick, parent_a.id, parent_b.id, self.settings.population.max_population,
                )
                continue
            offspring = create_offspring(
                parent_a,
                parent_b,
                name="",
                initial_balance=lifecycle.offspring_initial_balance,
                birth_tick=tick,
                genetics=self.settings.genetics,
                rng=self.rng,
                donor=self._hgt_donor(parent_a, parent_b),
            )
            child = offspring.agent
            child.name = self.names.assign(child.id, child.expression())
            self.add_agent(child)
            parent_a.state.offspring_count += 1
            parent_b.state.offspring_count += 1
            self.breeding_events += 1
            birth = BirthRecord(
                agent_id=child.id,
                name=child.name,
                generation=child.generation,
                parent_ids=list(child.parent_ids),
                founder_ids=sorted(child.founder_ids),
                tick=tick,
                genome_hash=child.genome.meta.genome_hash,
                initial_balance=lifecycle.offspring_initial_balance,
                mutation_count=len(offspring.mutations),
            )
            self.births.append(birth)
            self.sink.record_birth(birth)
            self.logger.info(
                "BIRTH tick=%d agent=%s name=%s generation=%d parents=%s,%s mutations=%d",
                tick, child.id, child.name, child.generation,
                parent_a.id, parent_b.id, len(offspring.mutations),
            )

    # ===================================================================
    # Environment pressure
    # ===================================================================

    def _apply_shock(self, tick: int) -> str | None:
        """At most one population-wide shock per tick, checked in catalog order."""
        for shock in self.shocks:
            if self.rng.random() >= shock.probability:
                continue
            alive = self.alive_agents
            magnitude = self.rng.uniform(shock.magnitude_min, shock.magnitude_max)
            affected = 0
            if shock.kind is ShockKind.MARKET_CRASH:
                for agent in alive:
                    liquid = self.wallet.get_balance(agent.id) * (1 - magnitude)
                    self.wallet.set_balance(agent.id, liquid)
                    agent.state.liquid = liquid
                    for position in agent.state.positions:
                        position.invested *= 1 - magnitude
                    affected += 1
            elif shock.kind is ShockKind.RESOURCE_BOOM:
                for agent in alive:
                    gain = self.rng.uniform(shock.magnitude_min, shock.magnitude_max)
                    liquid = self.wallet.get_balance(agent.id) + gain
                    self.wallet.set_balance(agent.id, liquid)
                    agent.state.liquid = liquid
                    agent.state.total_earned += gain
                    affected += 1
            elif shock.kind is ShockKind.PLAGUE:
                for agent in alive:
                    lethality = magnitude * (1 - agent.expression().stress_response)
                    if self.rng.random() < lethality:
                        self._kill(agent, DeathCause.PLAGUE, "plague", tick)
                        affected += 1
            self.logger.info(
                "SHOCK tick=%d kind=%s magnitude=%.3f affected=%d",
                tick, shock.kind.value, magnitude, affected,
            )
            self.totals.shocks[shock.kind.value] += 1
            self.sink.record_event(
                EventRecord(
                    tick=tick,
                    agent="*",
                    kind="shock",
                    detail=shock.kind.value,
                    payload={"magnitude": round(magnitude, 6), "affected": affected},
                )
            )
            return shock.kind.value
        return None

    def _cull(self, tick: int) -> None:
        """Carrying capacity: remove the poorest agents down to the overcrowding threshold."""
        alive = self.alive_agents
        excess = len(alive) - self.settings.population.overcrowding_threshold
        if excess <= 0:
            return
        for agent in sorted(alive, key=lambda a: a.state.total_balance)[:excess]:
            self._kill(agent, DeathCause.COMPETITION, "culled by carrying capacity", tick)
        self.logger.info("CULL tick=%d removed=%d", tick, excess)

    # ===================================================================
    # Snapshots
    # ===================================================================

    def save_snapshot(self, path: Path) -> None:
        save_snapshot(
            path,
            {
                "tick": self.tick,
                "breeding_events": self.breeding_events,
                "death_events": self.death_events,
                "emergent_count": self.monitor.emergent_count,
                "agents": [agent_to_dict(a) for a in self.agents.values()],
                "tombstones": [t.to_dict() for t in self.tombstones],
                "reputation": self.reputation.as_dict(),
            },
        )
        self.logger.info("Snapshot saved: path=%s agents=%d", path, len(self.agents))

    def restore_snapshot(self, path: Path) -> None:
        data = load_snapshot(path)
        self.tick = int(data["tick"])
        self.breeding_events = int(data["breeding_events"])
        self.death_events = int(data["death_events"])
        self.monitor.emergent_count = int(data.get("emergent_count", 0))
        self.agents = {}
        for raw in data["agents"]:
            agent = agent_from_dict(raw)
            self.names.restore(agent.id, agent.name)
            self.add_agent(agent)
        self.tombstones = [tombstone_from_dict(t) for t in data.get("tombstones", [])]
        self.reputation.load(data.get("reputation", {}))
        self.logger.info(
            "Snapshot restored: path=%s tick=%d agents=%d", path, self.tick, len(self.agents)
        )

    # ===================================================================
    # Logging
    # ===================================================================

    def _maybe_log_tick_progress(self, tick: int) -> None:
        interval = max(1, self.settings.simulation.log_tick_interval)
        if tick % interval != 0:
            return
        s = self.stats()
        if s.alive_agents == 0:
            self.logger.info("Tick %d: ALL AGENTS DEAD", tick)
            return
        self.logger.info(
            "Tick %d alive=%d dead=%d births=%d avg_balance=%.3f median=%.3f "
            "oldest=%d max_gen=%d stages=%s emergent=%d net=%+.4f",
            tick, s.alive_agents, s.death_events, s.breeding_events,
            s.average_balance, s.median_balance, s.oldest_agent,
            s.max_generation, s.stage_distribution, self.monitor.emergent_count,
            self.last_net_flow,
        )

    def close(self) -> None:
        if not self._loop.is_closed():
            self._loop.close()
