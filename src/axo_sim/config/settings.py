from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


class ConfigurationError(RuntimeError):
    """Raised before the simulation loop starts when settings are unusable."""


@dataclass(frozen=True)
class DBSettings:
    host: str
    port: int
    name: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return (
            f"dbname={self.name} user={self.user} password={self.password} "
            f"host={self.host} port={self.port}"
        )


@dataclass(frozen=True)
class LLMSettings:
    provider: str = "openrouter"
    """One of openrouter, ollama, none. ``none`` always yields the idle fallback."""
    openrouter_api_key: str = ""
    openrouter_model: str = "moonshotai/kimi-k2"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:1.5b"
    embedding_model: str = "nomic-embed-text"
    temperature: float = 0.7
    max_tokens: int = 300
    timeout_seconds: int = 60
    max_retries: int = 2
    retry_backoff_seconds: float = 1.5

    @property
    def model(self) -> str:
        if self.provider == "ollama":
            return self.ollama_model
        return self.openrouter_model


@dataclass(frozen=True)
class SimulationSettings:
    initial_agent_count: int = 5
    initial_balance: float = 15.0
    max_ticks: int = 1000
    log_tick_interval: int = 10
    memory_snapshot_interval: int = 100
    """Ticks between per-agent memory snapshots written to the sink."""
    sink: str = "jsonl"
    """One of jsonl, postgres, memory."""
    history_limit: int = 50
    """Bounded length of each agent's action and event history."""


@dataclass(frozen=True)
class EconomySettings:
    """Per-tick economics of the survival loop."""

    # Costs
    base_tick_cost: float = 0.8
    """Flat metabolic floor paid every tick."""
    daily_inference_cost: float = 0.05
    """Variable cost scaled by the inference-quality trait."""
    daily_gas_cost: float = 0.02
    """Variable cost scaled by on-chain affinity and open positions."""

    # Survival thresholds
    dying_balance_threshold: float = 0.5
    """Total balance below this enters the dying state."""
    dying_duration: int = 5
    """Ticks of grace an agent spends dying before starvation."""
    death_balance_threshold: float = 0.001
    """Total balance at or below this is immediate economic death."""
    emergency_balance_threshold: float = 1.0
    """Liquid capital below this forces liquidation of every held token."""
    max_consecutive_failures: int = 100
    """More consecutive negative-flow ticks than this is economic death."""
    min_essential_genes: int = 8
    """Fewer essential genes than this is genetic death."""

    # Income and losses
    earnings_cap_percent: float = 0.30
    """Single task reward is capped at this share of current balance."""
    negative_event_cap_percent: float = 0.20
    """Single negative event loss is capped at this share of current balance."""
    max_negative_events_per_tick: int = 2
    max_tasks_per_tick: int = 2

    # Positions
    defi_min_liquid: float = 5.0
    """Liquid reserve that new positions may never dip into."""
    max_new_positions_per_tick: int = 2
    position_payout_cap: float = 0.5
    """Accrued yield paid out at maturity is capped at this multiple of principal."""
    defi_risk_scale: float = 0.05
    """Per-tick loss probability is risk_level times this scale."""

    # Decision calls
    llm_calls_per_tick: int = 1
    min_llm_interval_ms: int = 2000
    llm_base_fee: float = 0.01
    """Inference fee before the balance and quality multipliers."""
    per_request_timeout_s: float = 25.0


@dataclass(frozen=True)
class LifecycleSettings:
    neonate_duration: int = 5
    juvenile_duration: int = 10
    senescence_start_tick: int = 500
    senescence_base_death_rate: float = 0.05
    breeding_balance_threshold: float = 15.0
    breeding_cost_per_parent: float = 5.0
    offspring_initial_balance: float = 6.0
    breeding_cooldown: int = 20
    minimum_breeding_age: int = 15


@dataclass(frozen=True)
class GeneticsSettings:
    base_mutation_rate: float = 0.02
    base_duplication_rate: float = 0.01
    base_deletion_rate: float = 0.01
    base_hgt_rate: float = 0.001
    base_de_novo_rate: float = 0.001
    max_gene_count: int = 200
    recombination_probability: float = 0.5
    """Chance a chromosome pair is recombined instead of cloned from parent A."""


@dataclass(frozen=True)
class PopulationSettings:
    max_population: int = 30
    overcrowding_threshold: int = 25

    # Termination conditions
    descendant_ratio: float = 0.70
    lineage_min_population: int = 20
    economic_ratio: float = 0.80
    economic_min_population: int = 10
    survival_multiplier: float = 5.0
    survival_min_samples: int = 10
    survival_generations: int = 5
    emergent_stop_count: int = 10

    # Environment shocks
    market_crash_probability: float = 0.02
    resource_boom_probability: float = 0.02
    plague_probability: float = 0.01


@dataclass(frozen=True)
class AppSettings:
    db: DBSettings
    llm: LLMSettings
    simulation: SimulationSettings
    economy: EconomySettings
    lifecycle: LifecycleSettings
    genetics: GeneticsSettings
    population: PopulationSettings
    output_dir: Path

    @staticmethod
    def defaults(output_dir: Path | str = "outputs") -> "AppSettings":
        return AppSettings(
            db=DBSettings(
                host="localhost", port=5432, name="axo", user="axo", password="axo"
            ),
            llm=LLMSettings(provider="none"),
            simulation=SimulationSettings(),
            economy=EconomySettings(),
            lifecycle=LifecycleSettings(),
            genetics=GeneticsSettings(),
            population=PopulationSettings(),
            output_dir=Path(output_dir),
        )

    @staticmethod
    def from_env() -> "AppSettings":
        api_key = os.getenv("OPENROUTER_API_KEY") or os.getenv("KIMI_API_KEY", "")
        return AppSettings(
            db=DBSettings(
                host=os.getenv("DB_HOST", "localhost"),
                port=int(os.getenv("DB_PORT", "5432")),
                name=os.getenv("DB_NAME", "axo"),
                user=os.getenv("DB_USER", "axo"),
                password=os.getenv("DB_PASSWORD", "axo"),
            ),
            llm=LLMSettings(
                provider=os.getenv("LLM_PROVIDER", "openrouter").lower(),
                openrouter_api_key=api_key,
                openrouter_model=os.getenv("OPENROUTER_MODEL", "moonshotai/kimi-k2"),
                openrouter_base_url=os.getenv(
                    "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"
                ),
                ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
                ollama_model=os.getenv("LLM_MODEL", "qwen2.5:1.5b"),
                embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
                temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
                max_tokens=int(os.getenv("LLM_MAX_TOKENS", "300")),
                timeout_seconds=int(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
                max_retries=int(os.getenv("LLM_MAX_RETRIES", "2")),
                retry_backoff_seconds=float(
                    os.getenv("LLM_RETRY_BACKOFF_SECONDS", "1.5")
                ),
            ),
            simulation=SimulationSettings(
                initial_agent_count=int(os.getenv("INITIAL_AGENT_COUNT", "5")),
                initial_balance=float(os.getenv("INITIAL_USDC_PER_AGENT", "15")),
                max_ticks=int(os.getenv("MAX_TICKS", "1000")),
                log_tick_interval=int(os.getenv("LOG_TICK_INTERVAL", "10")),
                memory_snapshot_interval=int(
                    os.getenv("MEMORY_SNAPSHOT_INTERVAL", "100")
                ),
                sink=os.getenv("RECORD_SINK", "jsonl").lower(),
                history_limit=int(os.getenv("HISTORY_LIMIT", "50")),
            ),
            economy=EconomySettings(
                base_tick_cost=float(os.getenv("BASE_TICK_COST", "0.8")),
                daily_inference_cost=float(os.getenv("DAILY_INFERENCE_COST", "0.05")),
                daily_gas_cost=float(os.getenv("DAILY_GAS_COST", "0.02")),
                dying_balance_threshold=float(
                    os.getenv("DYING_BALANCE_THRESHOLD", "0.5")
                ),
                dying_duration=int(os.getenv("DYING_DURATION", "5")),
                death_balance_threshold=float(
                    os.getenv("DEATH_BALANCE_THRESHOLD", "0.001")
                ),
                emergency_balance_threshold=float(
                    os.getenv("EMERGENCY_BALANCE_THRESHOLD", "1.0")
                ),
                max_consecutive_failures=int(
                    os.getenv("MAX_CONSECUTIVE_FAILURES", "100")
                ),
                min_essential_genes=int(os.getenv("MIN_ESSENTIAL_GENES", "8")),
                earnings_cap_percent=float(os.getenv("EARNINGS_CAP_PERCENT", "0.30")),
                negative_event_cap_percent=float(
                    os.getenv("NEGATIVE_EVENT_CAP_PERCENT", "0.20")
                ),
                max_negative_events_per_tick=int(
                    os.getenv("MAX_NEGATIVE_EVENTS_PER_TICK", "2")
                ),
                max_tasks_per_tick=int(os.getenv("MAX_TASKS_PER_TICK", "2")),
                defi_min_liquid=float(os.getenv("DEFI_MIN_LIQUID", "5.0")),
                max_new_positions_per_tick=int(
                    os.getenv("MAX_NEW_POSITIONS_PER_TICK", "2")
                ),
                position_payout_cap=float(os.getenv("POSITION_PAYOUT_CAP", "0.5")),
                defi_risk_scale=float(os.getenv("DEFI_RISK_SCALE", "0.05")),
                llm_calls_per_tick=int(os.getenv("LLM_CALLS_PER_TICK", "1")),
                min_llm_interval_ms=int(os.getenv("MIN_LLM_INTERVAL_MS", "2000")),
                llm_base_fee=float(os.getenv("LLM_BASE_FEE", "0.01")),
                per_request_timeout_s=float(
                    os.getenv("LLM_REQUEST_TIMEOUT_S", "25.0")
                ),
            ),
            lifecycle=LifecycleSettings(
                neonate_duration=int(os.getenv("NEONATE_DURATION", "5")),
                juvenile_duration=int(os.getenv("JUVENILE_DURATION", "10")),
                senescence_start_tick=int(os.getenv("SENESCENCE_START_TICK", "500")),
                senescence_base_death_rate=float(
                    os.getenv("SENESCENCE_BASE_DEATH_RATE", "0.05")
                ),
                breeding_balance_threshold=float(
                    os.getenv("BREEDING_BALANCE_THRESHOLD", "15")
                ),
                breeding_cost_per_parent=float(
                    os.getenv("BREEDING_COST_PER_PARENT", "5")
                ),
                offspring_initial_balance=float(
                    os.getenv("OFFSPRING_INITIAL_BALANCE", "6")
                ),
                breeding_cooldown=int(os.getenv("BREEDING_COOLDOWN", "20")),
                minimum_breeding_age=int(os.getenv("MINIMUM_BREEDING_AGE", "15")),
            ),
            genetics=GeneticsSettings(
                base_mutation_rate=float(os.getenv("BASE_MUTATION_RATE", "0.02")),
                base_duplication_rate=float(
                    os.getenv("BASE_DUPLICATION_RATE", "0.01")
                ),
                base_deletion_rate=float(os.getenv("BASE_DELETION_RATE", "0.01")),
                base_hgt_rate=float(os.getenv("BASE_HGT_RATE", "0.001")),
                base_de_novo_rate=float(os.getenv("BASE_DE_NOVO_RATE", "0.001")),
                max_gene_count=int(os.getenv("MAX_GENE_COUNT", "200")),
                recombination_probability=float(
                    os.getenv("RECOMBINATION_PROBABILITY", "0.5")
                ),
            ),
            population=PopulationSettings(
                max_population=int(os.getenv("MAX_POPULATION", "30")),
                overcrowding_threshold=int(os.getenv("OVERCROWDING_THRESHOLD", "25")),
                descendant_ratio=float(
                    os.getenv("EXPERIMENT_END_DESCENDANT_RATIO", "0.70")
                ),
                lineage_min_population=int(
                    os.getenv("EXPERIMENT_END_MIN_POPULATION", "20")
                ),
                economic_ratio=float(os.getenv("EXPERIMENT_END_ECONOMIC_RATIO", "0.80")),
                economic_min_population=int(
                    os.getenv("EXPERIMENT_END_ECONOMIC_MIN_POPULATION", "10")
                ),
                survival_multiplier=float(
                    os.getenv("EXPERIMENT_END_SURVIVAL_MULTIPLIER", "5")
                ),
                survival_min_samples=int(os.getenv("SURVIVAL_MIN_SAMPLES", "10")),
                survival_generations=int(os.getenv("SURVIVAL_GENERATIONS", "5")),
                emergent_stop_count=int(os.getenv("EMERGENT_BEHAVIOR_STOP_COUNT", "10")),
                market_crash_probability=float(
                    os.getenv("MARKET_CRASH_PROBABILITY", "0.02")
                ),
                resource_boom_probability=float(
                    os.getenv("RESOURCE_BOOM_PROBABILITY", "0.02")
                ),
                plague_probability=float(os.getenv("PLAGUE_PROBABILITY", "0.01")),
            ),
            output_dir=Path(os.getenv("OUTPUT_DIR", "outputs")),
        )

    def validate(self) -> list[str]:
        """Collect every configuration problem; empty means the run may start."""
        problems: list[str] = []
        if self.llm.provider not in {"openrouter", "ollama", "none"}:
            problems.append(f"unknown LLM_PROVIDER {self.llm.provider!r}")
        if self.llm.provider == "openrouter" and not self.llm.openrouter_api_key:
            problems.append("OPENROUTER_API_KEY (or KIMI_API_KEY) is required")
        if self.simulation.sink not in {"jsonl", "postgres", "memory"}:
            problems.append(f"unknown RECORD_SINK {self.simulation.sink!r}")
        if self.simulation.initial_agent_count < 1:
            problems.append("INITIAL_AGENT_COUNT must be at least 1")
        if self.simulation.max_ticks < 1:
            problems.append("MAX_TICKS must be at least 1")
        if self.economy.death_balance_threshold >= self.economy.dying_balance_threshold:
            problems.append("DEATH_BALANCE_THRESHOLD must be below DYING_BALANCE_THRESHOLD")
        if self.population.overcrowding_threshold > self.population.max_population:
            problems.append("OVERCROWDING_THRESHOLD must not exceed MAX_POPULATION")
        if self.lifecycle.offspring_initial_balance > 2 * self.lifecycle.breeding_cost_per_parent:
            problems.append("OFFSPRING_INITIAL_BALANCE exceeds what both parents pay")
        return problems

    def require_valid(self) -> None:
        problems = self.validate()
        if problems:
            raise ConfigurationError("; ".join(problems))
