"""Per-agent survival tick.

Each tick an agent ages, is checked for death, and then runs nine economic
phases in fixed order:

  1. settle existing positions     6. negative events
  2. pay daily costs               7. decision calls
  3. open new positions            8. token management
  4. airdrops and token prices     9. breeding check
  5. human task market

Liquid capital is read from the wallet at tick start and written back at
tick end. Any phase that leaves the total balance at or below the death
threshold ends the tick with a tombstone.
"""
from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

from axo_sim.agents.agent import Agent
from axo_sim.agents.decision import MAX_PROMPT_STRATEGIES, DecisionProvider, with_fallback
from axo_sim.agents.emergence import (
    EMERGENT_FLAGS,
    EmergenceClassifier,
    RegexEmergenceClassifier,
    detect_anomalies,
)
from axo_sim.agents.perception import PopulationView, perceive, runway_ticks, stress_level
from axo_sim.agents.strategies import filter_strategies
from axo_sim.config.settings import AppSettings
from axo_sim.economy.reputation import ReputationBook
from axo_sim.economy.wallet import Wallet
from axo_sim.environment.catalogs import EnvironmentCatalog
from axo_sim.environment.policies import (
    airdrop_eligible,
    attempt_task,
    claim_airdrop,
    rank_opportunities,
    resolve_negative_event,
    roll_available,
    roll_daily_yield,
    roll_negative_events,
    roll_position_loss,
    should_sell,
    task_is_open_to,
    token_price,
)
from axo_sim.genome.epigenetics import EnvironmentSignal, apply_epigenetics
from axo_sim.genome.expression import named_expression
from axo_sim.genome.metabolism import tick_metabolic_cost
from axo_sim.genome.types import ExpressionResult
from axo_sim.lifecycle.breeding import MateCandidate, can_breed, select_mate
from axo_sim.lifecycle.death import (
    DeathVerdict,
    build_tombstone,
    check_death,
    emergency_verdict,
)
from axo_sim.lifecycle.development import determine_stage, stage_profile
from axo_sim.utils.types import (
    ActionRecord,
    BreedingRequest,
    PhaseResult,
    Position,
    SurvivalStatus,
    TickReport,
    Tombstone,
)

if TYPE_CHECKING:
    import aiohttp

    from axo_sim.memory.archive import MemoryArchive

logger = logging.getLogger("axo_sim.engine")

ACTION_SUCCESS_RATE = 0.7
WEEK_TICKS = 7
THRIVING_BALANCE = 10.0
STARVING_BALANCE = 2.0


@dataclass
class TickContext:
    """Read-only view of the population at tick start."""

    tick: int
    population: PopulationView = field(default_factory=PopulationView)
    mates: dict[str, MateCandidate] = field(default_factory=dict)
    session: "aiohttp.ClientSession | None" = None


PhaseFn = Callable[[Agent, ExpressionResult, TickContext, TickReport], Awaitable[PhaseResult]]


class SurvivalOrchestrator:
    def __init__(
        self,
        settings: AppSettings,
        wallet: Wallet,
        reputation: ReputationBook,
        provider: DecisionProvider,
        catalog: EnvironmentCatalog,
        rng: random.Random,
        classifier: EmergenceClassifier | None = None,
        memory: "MemoryArchive | None" = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.economy = settings.economy
        self.lifecycle = settings.lifecycle
        self.wallet = wallet
        self.reputation = reputation
        self.provider = provider
        self.catalog = catalog
        self.rng = rng
        self.classifier = classifier or RegexEmergenceClassifier()
        self.memory = memory
        self._clock = clock
        self._sleep = sleep
        self._phases: tuple[tuple[str, PhaseFn], ...] = (
            ("settle_positions", self._settle_positions),
            ("pay_costs", self._pay_costs),
            ("open_positions", self._open_positions),
            ("airdrops", self._check_airdrops),
            ("human_tasks", self._task_market),
            ("negative_events", self._negative_events),
            ("decisions", self._decide),
            ("token_management", self._manage_tokens),
            ("breeding", self._breeding_check),
        )

    # ===================================================================
    # Public interface
    # ===================================================================

    async def run_tick(self, agent: Agent, ctx: TickContext) -> TickReport:
        state = agent.state
        report = TickReport(agent_id=agent.id, tick=ctx.tick)
        if not state.alive:
            return report

        state.liquid = self.wallet.get_balance(agent.id)
        state.tick += 1

        expression = agent.expression()
        state.stage = determine_stage(state.tick, expression.max_lifespan, self.lifecycle)

        daily_burn = self.operating_cost(agent, expression)
        signal = EnvironmentSignal(
            balance=state.total_balance,
            days_since_last_income=state.days_since_last_income,
            days_starving=state.days_starving,
            days_thriving=state.days_thriving,
            stress_level=stress_level(state.total_balance, runway_ticks(state.liquid, daily_burn)),
        )
        update = apply_epigenetics(agent.genome, signal)
        agent.genome = update.genome
        if update.fired or update.pruned:
            expression = agent.expression()
            logger.debug(
                "EPIGENETICS agent=%s fired=%s pruned=%d", agent.id, update.fired, update.pruned
            )

        verdict = check_death(
            state,
            agent.genome.essential_gene_count(),
            expression,
            self.economy,
            self.lifecycle,
            self.rng,
        )
        if verdict.dead:
            report.tombstone = self.kill(agent, verdict, ctx.tick, expression)
            return report

        for label, phase in self._phases:
            result = await phase(agent, expression, ctx, report)
            report.phases.append(result)
            state.total_earned += result.earnings
            state.total_spent += result.costs + result.losses
            for text in result.events:
                state.record_event(text, self.settings.simulation.history_limit)
            logger.debug(
                "PHASE agent=%s tick=%d %s net=%+.4f liquid=%.4f",
                agent.id, ctx.tick, label, result.net, state.liquid,
            )
            mid_tick = emergency_verdict(state, self.economy)
            if mid_tick.dead:
                self.wallet.set_balance(agent.id, state.liquid)
                report.tombstone = self.kill(agent, mid_tick, ctx.tick, expression)
                return report

        self._close_tick(agent, report)
        self.wallet.set_balance(agent.id, state.liquid)
        if self.memory is not None and self.memory.due(state.tick):
            self.memory.snapshot(agent, ctx.tick)
        report.status = state.status
        return report

    def kill(
        self,
        agent: Agent,
        verdict: DeathVerdict,
        tick: int,
        expression: ExpressionResult | None = None,
    ) -> Tombstone:
        """Mark the agent dead and summarize it. Used for shocks and culling too."""
        agent.state.alive = False
        tombstone = build_tombstone(
            agent_id=agent.id,
            name=agent.name,
            generation=agent.generation,
            lineage_id=agent.genome.meta.lineage_id,
            parent_ids=agent.parent_ids,
            birth_tick=agent.birth_tick,
            death_tick=tick,
            state=agent.state,
            verdict=verdict,
            genome_hash=agent.genome.meta.genome_hash,
            expression=expression or agent.expression(),
        )
        logger.info(
            "DEATH agent=%s name=%s age=%d cause=%s reason=%s balance=%.4f",
            agent.id,
            agent.name,
            agent.state.tick,
            tombstone.cause.value,
            tombstone.reason,
            tombstone.final_balance,
        )
        logger.debug("DEATH-STATE agent=%s state=%s", agent.id, agent.state.survival_signature())
        return tombstone

    def operating_cost(self, agent: Agent, expression: ExpressionResult) -> float:
        """Daily cost before the dying discount."""
        state = agent.state
        variable = (
            self.economy.daily_inference_cost * (0.5 + expression.inference_quality)
            + self.economy.daily_gas_cost
            * expression.on_chain_affinity
            * (1 + len(state.positions))
        )
        base = self.economy.base_tick_cost + tick_metabolic_cost(agent.genome)
        return (base + variable) * stage_profile(state.stage).metabolism_multiplier

    # ===================================================================
    # Tick bookkeeping
    # ===================================================================

    def _close_tick(self, agent: Agent, report: TickReport) -> None:
        state = agent.state
        net = report.net_flow
        state.last_net_flow = net
        state.consecutive_failures = state.consecutive_failures + 1 if net < 0 else 0
        state.days_since_last_income = 0 if report.earnings > 0 else state.days_since_last_income + 1

        total = state.total_balance
        state.days_starving = state.days_starving + 1 if total < STARVING_BALANCE else 0
        state.days_thriving = (
            state.days_thriving + 1 if total >= THRIVING_BALANCE and net >= 0 else 0
        )

        if total < self.economy.dying_balance_threshold:
            if state.status is SurvivalStatus.ALIVE:
                state.status = SurvivalStatus.DYING
                state.dying_countdown = self.economy.dying_duration
                logger.info(
                    "DYING agent=%s balance=%.4f countdown=%d",
                    agent.id, total, state.dying_countdown,
                )
            elif not stage_profile(state.stage).protected_from_starvation:
                state.dying_countdown -= 1
        elif state.status is SurvivalStatus.DYING:
            state.status = SurvivalStatus.ALIVE
            state.dying_countdown = 0
            logger.info("RECOVERED agent=%s balance=%.4f", agent.id, total)

    # ===================================================================
    # Phases
    # ===================================================================

    async def _settle_positions(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 1: accrue yield, realize protocol losses, exit matured positions."""
        state = agent.state
        result = PhaseResult(phase="settle_positions")
        for position in list(state.positions):
            loss = roll_position_loss(
                position.invested, position.risk_level, self.economy.defi_risk_scale, self.rng
            )
            if loss > 0:
                position.invested -= loss
                result.losses += loss
                result.events.append(f"{position.protocol} lost {loss:.4f} to protocol risk")
            position.accrued += position.invested * position.daily_yield

            if state.status is SurvivalStatus.DYING and state.tick < position.matures_at:
                penalty = position.invested * position.early_exit_penalty
                state.liquid += position.invested - penalty
                result.losses += penalty
                result.events.append(
                    f"early exit from {position.protocol}, penalty {penalty:.4f}"
                )
            elif state.tick >= position.matures_at:
                payout = min(position.accrued, position.invested * self.economy.position_payout_cap)
                state.liquid += position.invested + payout
                result.earnings += payout
                result.events.append(f"{position.protocol} matured, yield {payout:.4f}")
            else:
                continue
            state.positions.remove(position)
            state.defi.positions_closed += 1
        return result

    async def _pay_costs(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 2: metabolic floor plus variable costs, paid from liquid only."""
        state = agent.state
        result = PhaseResult(phase="pay_costs")
        cost = self.operating_cost(agent, expression)
        if state.status is SurvivalStatus.DYING:
            cost *= 0.5
        paid = min(cost, state.liquid)
        state.liquid -= paid
        result.costs = paid
        if paid < cost:
            result.events.append(f"could only pay {paid:.4f} of {cost:.4f} daily cost")
        return result

    async def _open_positions(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 3: deploy spare liquid into the best qualifying opportunities."""
        state = agent.state
        result = PhaseResult(phase="open_positions")
        reserve = self.economy.defi_min_liquid
        budget = (state.liquid - reserve) * (1 - expression.savings_rate)
        if budget <= 0:
            return result

        held = {p.opportunity_id for p in state.positions}
        opened = 0
        for opp in rank_opportunities(roll_available(self.catalog.opportunities, self.rng), expression):
            if opened >= self.economy.max_new_positions_per_tick:
                break
            if opp.id in held:
                continue
            amount = min(opp.max_capital, budget)
            if amount < opp.min_capital or state.liquid - amount - opp.gas_cost < reserve:
                continue
            state.liquid -= amount + opp.gas_cost
            result.costs += opp.gas_cost
            state.positions.append(
                Position(
                    opportunity_id=opp.id,
                    protocol=opp.protocol,
                    invested=amount,
                    opened_tick=state.tick,
                    matures_at=state.tick + opp.lockup_ticks,
                    daily_yield=roll_daily_yield(opp, self.rng),
                    risk_level=opp.risk_level,
                    early_exit_penalty=opp.early_exit_penalty,
                )
            )
            state.defi.positions_opened += 1
            state.defi.capital_deployed += amount
            if opp.protocol not in state.defi.protocols_used:
                state.defi.protocols_used.append(opp.protocol)
            budget -= amount
            opened += 1
            result.events.append(f"opened {opp.id} with {amount:.4f}")
        return result

    async def _check_airdrops(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 4: claim airdrops earned by DeFi participation, mark tokens to market."""
        state = agent.state
        result = PhaseResult(phase="airdrops")
        if state.positions:
            state.defi.ticks_active += 1
        for offer in self.catalog.airdrops:
            if airdrop_eligible(offer, state.defi) and self.rng.random() < offer.probability:
                holding = claim_airdrop(offer, state.tick, self.rng)
                state.tokens.append(holding)
                state.defi.airdrops_claimed.append(offer.id)
                result.events.append(f"airdrop {holding.amount:.2f} {holding.token}")
        for holding in state.tokens:
            holding.current_price = token_price(
                holding.trajectory,
                holding.entry_price,
                state.tick - holding.acquired_tick,
                self.rng,
            )
        return result

    async def _task_market(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 5: attempt a bounded number of open human tasks."""
        state = agent.state
        result = PhaseResult(phase="human_tasks")
        reputation = self.reputation.get(agent.id)
        week_start = state.tick - WEEK_TICKS
        open_tasks = [
            task
            for task in roll_available(self.catalog.tasks, self.rng)
            if task_is_open_to(task, expression, reputation)
            and sum(1 for t in state.task_completions.get(task.id, []) if t > week_start)
            < task.weekly_limit
        ]
        for task in open_tasks[: self.economy.max_tasks_per_tick]:
            outcome = attempt_task(task, expression, self.rng)
            self.reputation.adjust(agent.id, outcome.reputation_change)
            if not outcome.success:
                result.events.append(f"failed task {task.id}")
                continue
            reward = min(outcome.reward, state.total_balance * self.economy.earnings_cap_percent)
            state.liquid += reward
            result.earnings += reward
            state.task_completions.setdefault(task.id, []).append(state.tick)
            result.events.append(f"completed task {task.id} for {reward:.4f}")
        return result

    async def _negative_events(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 6: independently rolled losses, taken from liquid capital."""
        state = agent.state
        result = PhaseResult(phase="negative_events")
        for event in roll_negative_events(
            self.catalog.negative_events, self.rng, self.economy.max_negative_events_per_tick
        ):
            outcome = resolve_negative_event(
                event, state.liquid, expression, self.rng, self.economy.negative_event_cap_percent
            )
            if outcome.avoided:
                result.events.append(f"avoided {event.id}")
                continue
            loss = min(outcome.loss, state.liquid)
            state.liquid -= loss
            result.losses += loss
            result.events.append(f"{event.id} cost {loss:.4f}")
        return result

    async def _decide(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 7: throttled, fee-bearing calls to the decision provider."""
        state = agent.state
        result = PhaseResult(phase="decisions")
        history_limit = self.settings.simulation.history_limit
        min_interval = self.economy.min_llm_interval_ms / 1000.0
        for _ in range(self.economy.llm_calls_per_tick):
            fee = (
                self.economy.llm_base_fee
                * (1 + expression.inference_quality)
                * (1 + min(state.total_balance, 100.0) / 100.0)
            )
            if state.liquid < fee:
                result.events.append(f"skipped decision, fee {fee:.4f} unaffordable")
                break
            if self.provider.throttled and state.last_llm_call_at is not None:
                wait = min_interval - (self._clock() - state.last_llm_call_at)
                if wait > 0:
                    await self._sleep(wait)
            state.last_llm_call_at = self._clock()
            state.liquid -= fee
            result.costs += fee
            state.llm_calls += 1
            state.llm_spend += fee

            strategies = filter_strategies(expression, state.liquid)
            memories = (
                self.memory.recall(agent.id, state.last_reasoning, ctx.tick)
                if self.memory is not None
                else []
            )
            perception = perceive(
                agent_id=agent.id,
                name=agent.name,
                generation=agent.generation,
                state=state,
                expression=expression,
                daily_burn=self.operating_cost(agent, expression),
                population=ctx.population,
                memories=memories,
            )
            decision = await with_fallback(
                self.provider.decide(perception, strategies, session=ctx.session),
                timeout_s=self.economy.per_request_timeout_s,
            )
            if decision.used_fallback:
                state.llm_failures += 1

            action_cost = min(decision.cost, state.liquid)
            state.liquid -= action_cost
            result.costs += action_cost
            success = self.rng.random() < ACTION_SUCCESS_RATE
            state.record_action(
                ActionRecord(
                    tick=state.tick,
                    action=decision.strategy_id,
                    reasoning=decision.reasoning,
                    confidence=decision.confidence,
                    success=success,
                    cost=fee + action_cost,
                ),
                history_limit,
            )
            state.last_reasoning = decision.reasoning

            flags = [] if decision.used_fallback else self.classifier.classify(decision)
            emergent = [f for f in flags if f in EMERGENT_FLAGS]
            report.emergent_flags.extend(emergent)
            report.decisions.append(
                {
                    "action": decision.strategy_id,
                    "index": decision.index,
                    "reasoning": decision.reasoning,
                    "confidence": decision.confidence,
                    "emotion": decision.emotion,
                    "fee": round(fee, 6),
                    "latency_ms": round(decision.latency_ms, 1),
                    "used_fallback": decision.used_fallback,
                    "fallback_reason": decision.fallback_reason,
                    "flags": flags,
                    "emergent": emergent,
                    "anomalies": detect_anomalies(
                        decision, min(len(strategies), MAX_PROMPT_STRATEGIES)
                    ),
                }
            )
            result.events.append(f"decided {decision.strategy_id}")
        return result

    async def _manage_tokens(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 8: take profit or stop loss per risk band; liquidate all when cash is short."""
        state = agent.state
        result = PhaseResult(phase="token_management")
        forced = state.liquid < self.economy.emergency_balance_threshold
        for holding in list(state.tokens):
            reason = "forced_liquidation" if forced else should_sell(holding, expression.risk_appetite)
            if reason is None:
                continue
            proceeds = holding.value
            state.liquid += proceeds
            result.earnings += proceeds
            state.tokens.remove(holding)
            result.events.append(f"sold {holding.token} for {proceeds:.4f} ({reason})")
        return result

    async def _breeding_check(
        self, agent: Agent, expression: ExpressionResult, ctx: TickContext, report: TickReport
    ) -> PhaseResult:
        """Phase 9: request breeding and pay the requester's share up front."""
        state = agent.state
        result = PhaseResult(phase="breeding")
        cost = self.lifecycle.breeding_cost_per_parent
        snapshot = ctx.mates.get(agent.id)
        balance = snapshot.balance if snapshot is not None else state.total_balance
        selectivity = named_expression(agent.genome, "breeding_selectivity")
        ready, _ = can_breed(state, balance, selectivity, self.lifecycle)
        if not ready or state.liquid < cost:
            return result
        mate_id = select_mate(
            agent.id, agent.genome, ctx.mates.values(), selectivity, cost, self.rng
        )
        if mate_id is None:
            result.events.append("no eligible mate")
            return result
        state.liquid -= cost
        result.costs += cost
        state.last_breeding_tick = state.tick
        report.breeding_request = BreedingRequest(
            requester_id=agent.id, mate_id=mate_id, tick=ctx.tick, cost_paid=cost
        )
        result.events.append(f"breeding requested with {mate_id}")
        return result


def mate_snapshot(agents: list[Agent]) -> dict[str, MateCandidate]:
    """Tick-start balances and stages used for every mate selection in the tick."""
    return {
        a.id: MateCandidate(
            agent_id=a.id,
            balance=a.state.total_balance,
            age=a.state.tick,
            stage=a.state.stage,
            alive=a.state.alive,
            genome=a.genome,
        )
        for a in agents
        if a.state.alive
    }
