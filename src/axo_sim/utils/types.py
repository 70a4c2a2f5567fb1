from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class SurvivalStatus(str, Enum):
    ALIVE = "alive"
    DYING = "dying"


class DevelopmentStage(str, Enum):
    NEONATE = "neonate"
    JUVENILE = "juvenile"
    ADULT = "adult"
    SENESCENT = "senescent"


class DeathCause(str, Enum):
    STARVATION = "starvation"
    ECONOMIC = "economic"
    GENETIC = "genetic"
    NATURAL = "natural"
    SENESCENCE = "senescence"
    COMPETITION = "competition"
    PLAGUE = "plague"


@dataclass
class Position:
    opportunity_id: str
    protocol: str
    invested: float
    opened_tick: int
    matures_at: int
    daily_yield: float
    risk_level: float
    early_exit_penalty: float
    accrued: float = 0.0


@dataclass
class TokenHolding:
    token: str
    amount: float
    entry_price: float
    current_price: float
    acquired_tick: int
    trajectory: str
    """Price path chosen at claim time: moon, pump_dump, steady or rug."""

    @property
    def value(self) -> float:
        return self.amount * self.current_price

    @property
    def pnl_pct(self) -> float:
        if self.entry_price <= 0:
            return 0.0
        return (self.current_price - self.entry_price) / self.entry_price


@dataclass
class DefiStats:
    positions_opened: int = 0
    positions_closed: int = 0
    capital_deployed: float = 0.0
    protocols_used: list[str] = field(default_factory=list)
    ticks_active: int = 0
    airdrops_claimed: list[str] = field(default_factory=list)


@dataclass
class ActionRecord:
    tick: int
    action: str
    reasoning: str
    confidence: float
    success: bool
    cost: float = 0.0


@dataclass
class SurvivalState:
    agent_id: str
    liquid: float
    tick: int = 0
    """Age in ticks."""
    alive: bool = True
    stage: DevelopmentStage = DevelopmentStage.NEONATE
    status: SurvivalStatus = SurvivalStatus.ALIVE
    dying_countdown: int = 0
    positions: list[Position] = field(default_factory=list)
    tokens: list[TokenHolding] = field(default_factory=list)
    defi: DefiStats = field(default_factory=DefiStats)

    # --- breeding ---
    last_breeding_tick: int | None = None
    """Age at which this agent last paid for breeding."""
    offspring_count: int = 0

    # --- flow tracking ---
    consecutive_failures: int = 0
    total_earned: float = 0.0
    total_spent: float = 0.0
    last_net_flow: float = 0.0
    days_since_last_income: int = 0
    days_starving: int = 0
    days_thriving: int = 0
    task_completions: dict[str, list[int]] = field(default_factory=dict)
    """Task id to the ticks it was completed, for weekly limits."""

    # --- decisions ---
    llm_calls: int = 0
    llm_failures: int = 0
    llm_spend: float = 0.0
    last_llm_call_at: float | None = None
    """Monotonic clock seconds of the last inference call."""
    last_reasoning: str = ""
    history: list[ActionRecord] = field(default_factory=list)
    events: list[str] = field(default_factory=list)

    @property
    def locked(self) -> float:
        return sum(p.invested for p in self.positions)

    @property
    def token_value(self) -> float:
        return sum(t.value for t in self.tokens)

    @property
    def total_balance(self) -> float:
        return self.liquid + self.locked

    def record_action(self, record: ActionRecord, limit: int) -> None:
        self.history.append(record)
        del self.history[:-limit]

    def record_event(self, text: str, limit: int) -> None:
        self.events.append(text)
        del self.events[:-limit]

    def recent_success_rate(self, window: int = 10) -> float | None:
        recent = self.history[-window:]
        if not recent:
            return None
        return sum(1 for r in recent if r.success) / len(recent)

    def survival_signature(self) -> dict[str, Any]:
        """Snapshot of survival-critical state for logging."""
        return {
            "age": self.tick,
            "stage": self.stage.value,
            "status": self.status.value,
            "liquid": round(self.liquid, 4),
            "locked": round(self.locked, 4),
            "tokens": round(self.token_value, 4),
            "positions": len(self.positions),
            "consecutive_failures": self.consecutive_failures,
            "dying_countdown": self.dying_countdown,
        }


@dataclass
class PhaseResult:
    phase: str
    events: list[str] = field(default_factory=list)
    earnings: float = 0.0
    costs: float = 0.0
    losses: float = 0.0

    @property
    def net(self) -> float:
        return self.earnings - self.costs - self.losses


@dataclass
class BreedingRequest:
    requester_id: str
    mate_id: str
    tick: int
    cost_paid: float


@dataclass
class Tombstone:
    agent_id: str
    name: str
    generation: int
    lineage_id: str
    parent_ids: list[str]
    birth_tick: int
    death_tick: int
    age: int
    cause: DeathCause
    reason: str
    final_balance: float
    genome_hash: str
    last_reasoning: str = ""
    total_earned: float = 0.0
    total_spent: float = 0.0
    offspring_count: int = 0
    lessons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["cause"] = self.cause.value
        return out


@dataclass
class TickReport:
    agent_id: str
    tick: int
    phases: list[PhaseResult] = field(default_factory=list)
    status: SurvivalStatus = SurvivalStatus.ALIVE
    tombstone: Tombstone | None = None
    breeding_request: BreedingRequest | None = None
    emergent_flags: list[str] = field(default_factory=list)
    decisions: list[dict[str, Any]] = field(default_factory=list)
    """Structured decision records produced by the decision phase."""

    @property
    def earnings(self) -> float:
        return sum(p.earnings for p in self.phases)

    @property
    def costs(self) -> float:
        return sum(p.costs for p in self.phases)

    @property
    def losses(self) -> float:
        return sum(p.losses for p in self.phases)

    @property
    def net_flow(self) -> float:
        return self.earnings - self.costs - self.losses


@dataclass
class EventRecord:
    tick: int
    agent: str
    kind: str
    detail: str
    payload: dict[str, Any] = field(default_factory=dict)
    earnings: float = 0.0
    costs: float = 0.0
    losses: float = 0.0


@dataclass
class BirthRecord:
    agent_id: str
    name: str
    generation: int
    parent_ids: list[str]
    founder_ids: list[str]
    tick: int
    genome_hash: str
    initial_balance: float
    mutation_count: int = 0


@dataclass
class MemorySnapshot:
    agent_id: str
    tick: int
    text: str
    balance: float
    genome_hash: str
    importance: float = 0.5


@dataclass
class TerminationReport:
    triggered: bool
    condition: str | None = None
    """One of A, B, C, D when triggered."""
    agent_id: str | None = None
    detail: str = ""
