from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, Iterable

from axo_sim.agents.decision import DecisionProvider, IdleDecisionProvider, LLMDecisionEngine
from axo_sim.config.settings import AppSettings
from axo_sim.db.connection import DBClient
from axo_sim.db.repository import LedgerRepository
from axo_sim.db.sink import (
    InMemoryRecordSink,
    JsonlRecordSink,
    PostgresRecordSink,
    RecordSink,
)
from axo_sim.llm.inference import InferenceAdapter
from axo_sim.memory.archive import MemoryArchive
from axo_sim.metrics.engine import MetricsEngine
from axo_sim.world.population import PopulationManager

DECISION_MODES = ("llm", "idle")


@dataclass
class ExperimentSpec:
    mode: str
    """``llm`` asks the configured model; ``idle`` always conserves."""
    seed: int


class ExperimentRunner:
    def __init__(self, settings: AppSettings) -> None:
        self.logger = logging.getLogger("axo_sim.runner")
        self.settings = settings
        self.db: DBClient | None = None
        self.repo: LedgerRepository | None = None
        if settings.simulation.sink == "postgres":
            self.db = DBClient(settings.db)
            self.db.ensure_schema()
            self.db.connect()
            self.repo = LedgerRepository(self.db)
        self.adapter = (
            InferenceAdapter(settings.llm) if settings.llm.provider != "none" else None
        )
        self.metrics_engine = MetricsEngine()

    def run_many(self, specs: Iterable[ExperimentSpec]) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        specs_list = list(specs)
        self.logger.info("Starting batch execution: run_count=%d", len(specs_list))
        batch_start = time.perf_counter()
        for idx, spec in enumerate(specs_list, start=1):
            self.logger.info(
                "Run queued: index=%d/%d mode=%s seed=%d",
                idx,
                len(specs_list),
                spec.mode,
                spec.seed,
            )
            rows.append(self.run_one(spec.mode, spec.seed))
        metrics_path = self.metrics_engine.write_metrics_csv(
            self.settings.output_dir, rows, filename="metrics.csv"
        )
        self.logger.info(
            "Batch completed in %.2fs. Aggregate metrics at %s",
            time.perf_counter() - batch_start,
            metrics_path,
        )
        return rows

    def run_one(self, mode: str, seed: int) -> dict[str, Any]:
        run_id = self._run_id(mode, seed)
        run_start = time.perf_counter()
        self.logger.info("Starting run: %s", run_id)
        sink = self._open_sink(run_id, seed)
        memory = MemoryArchive(
            sink,
            embedder=self.adapter if self.settings.llm.provider == "ollama" else None,
            interval=self.settings.simulation.memory_snapshot_interval,
        )
        manager = PopulationManager(
            settings=self.settings,
            provider=self._provider(mode),
            sink=sink,
            rng=random.Random(seed),
            memory=memory,
        )
        try:
            manager.initialize()
            termination = manager.run()
            self.logger.info("Simulation completed for run: %s -> %s", run_id, termination)
            run_metrics = self.metrics_engine.compute(
                list(manager.agents.values()),
                manager.tombstones,
                manager.births,
                manager.totals,
            )
            run_metrics["termination_condition"] = termination.condition or ""
            run_metrics["termination_detail"] = termination.detail
            self.logger.info("Metrics computed for run: %s -> %s", run_id, run_metrics)
            self._write_run_artifacts(run_id, manager, run_metrics)
        finally:
            manager.close()
            sink.close()
        self.logger.info(
            "Completed run: %s in %.2fs", run_id, time.perf_counter() - run_start
        )
        return {"run_id": run_id, "mode": mode, "seed": seed, **run_metrics}

    def close(self) -> None:
        if self.db is not None:
            self.db.close()

    def _provider(self, mode: str) -> DecisionProvider:
        if mode == "llm" and self.adapter is not None:
            return LLMDecisionEngine(
                self.adapter, timeout_s=self.settings.economy.per_request_timeout_s
            )
        return IdleDecisionProvider()

    def _open_sink(self, run_id: str, seed: int) -> RecordSink:
        kind = self.settings.simulation.sink
        if kind == "postgres" and self.repo is not None:
            self.repo.create_run(
                run_id=run_id,
                seed=seed,
                agents=self.settings.simulation.initial_agent_count,
                ticks=self.settings.simulation.max_ticks,
                model=self.settings.llm.model,
            )
            return PostgresRecordSink(self.repo, run_id)
        if kind == "memory":
            return InMemoryRecordSink()
        return JsonlRecordSink(self.settings.output_dir / run_id)

    def _write_run_artifacts(
        self, run_id: str, manager: PopulationManager, run_metrics: dict[str, Any]
    ) -> None:
        run_dir = self.settings.output_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        (run_dir / "graveyard.json").write_text(
            json.dumps([t.to_dict() for t in manager.tombstones], indent=2, ensure_ascii=True),
            encoding="utf-8",
        )
        (run_dir / "population.json").write_text(
            json.dumps(asdict(manager.stats()), indent=2, ensure_ascii=True),
            encoding="utf-8",
        )
        (run_dir / "metrics.json").write_text(
            json.dumps(run_metrics, indent=2, ensure_ascii=True), encoding="utf-8"
        )
        manager.save_snapshot(run_dir / "snapshot.json")

    def _run_id(self, mode: str, seed: int) -> str:
        ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        return f"{ts}_{mode}_seed{seed}"


def parse_seed_list(raw: str) -> list[int]:
    out: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        out.append(int(part))
    return out


def build_specs(modes: list[str], seeds: list[int]) -> list[ExperimentSpec]:
    unknown = [m for m in modes if m not in DECISION_MODES]
    if unknown:
        raise ValueError(f"unknown EXPERIMENT_MODES {unknown}; expected {DECISION_MODES}")
    return [ExperimentSpec(mode=mode, seed=seed) for mode in modes for seed in seeds]
