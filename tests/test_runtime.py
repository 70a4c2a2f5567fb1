"""Settings, record sinks, memory archive and the experiment runner."""
from __future__ import annotations

import json
from dataclasses import replace

import pytest

from axo_sim.config.settings import AppSettings, ConfigurationError
from axo_sim.db.sink import InMemoryRecordSink, JsonlRecordSink
from axo_sim.experiments.runner import ExperimentRunner, build_specs, parse_seed_list
from axo_sim.experiments import run_experiments
from axo_sim.lifecycle.birth import create_founder
from axo_sim.memory.archive import MemoryArchive
from axo_sim.utils.types import BirthRecord, EventRecord, MemorySnapshot, TerminationReport


class TestSettings:
    def test_defaults_are_valid(self, tmp_path):
        settings = AppSettings.defaults(tmp_path)
        assert settings.validate() == []
        settings.require_valid()

    def test_problems_are_collected(self, tmp_path):
        base = AppSettings.defaults(tmp_path)
        broken = replace(
            base,
            llm=replace(base.llm, provider="openrouter", openrouter_api_key=""),
            simulation=replace(base.simulation, sink="kafka", max_ticks=0),
        )
        problems = broken.validate()
        assert len(problems) == 3
        with pytest.raises(ConfigurationError, match="RECORD_SINK"):
            broken.require_valid()

    def test_overcrowding_must_fit_the_ceiling(self, tmp_path):
        base = AppSettings.defaults(tmp_path)
        broken = replace(base, population=replace(base.population, overcrowding_threshold=31))
        assert broken.validate() == ["OVERCROWDING_THRESHOLD must not exceed MAX_POPULATION"]

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LLM_PROVIDER", "NONE")
        monkeypatch.setenv("MAX_TICKS", "42")
        monkeypatch.setenv("BREEDING_COOLDOWN", "7")
        monkeypatch.setenv("PLAGUE_PROBABILITY", "0.5")
        monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.setenv("KIMI_API_KEY", "sk-test")
        settings = AppSettings.from_env()
        assert settings.llm.provider == "none"
        assert settings.llm.openrouter_api_key == "sk-test"
        assert settings.simulation.max_ticks == 42
        assert settings.lifecycle.breeding_cooldown == 7
        assert settings.population.plague_probability == 0.5
        assert settings.output_dir == tmp_path

    def test_model_follows_provider(self, tmp_path):
        base = AppSettings.defaults(tmp_path)
        assert replace(base.llm, provider="ollama").model == "qwen2.5:1.5b"
        assert replace(base.llm, provider="openrouter").model == "moonshotai/kimi-k2"


def _memory(agent_id, tick, text="note"):
    return MemorySnapshot(agent_id=agent_id, tick=tick, text=text, balance=1.0, genome_hash="h")


class TestSinks:
    def test_jsonl_sink_writes_one_line_per_record(self, tmp_path):
        sink = JsonlRecordSink(tmp_path / "run")
        sink.record_event(EventRecord(tick=3, agent="a", kind="shock", detail="plague"))
        sink.record_event(EventRecord(tick=4, agent="b", kind="birth", detail="kid"))
        sink.record_birth(BirthRecord("kid", "Kid", 1, ["a", "b"], ["a"], 4, "h", 6.0))
        sink.record_termination(9, TerminationReport(triggered=True, condition="B"))
        sink.record_memory(_memory("a", 5), None)
        sink.close()

        events = (tmp_path / "run" / "events.jsonl").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["detail"] for line in events] == ["plague", "kid"]
        termination = json.loads((tmp_path / "run" / "terminations.jsonl").read_text())
        assert termination["tick"] == 9
        assert termination["condition"] == "B"
        memory = json.loads((tmp_path / "run" / "memories.jsonl").read_text())
        assert memory["embedded"] is False

    def test_recall_is_latest_first_and_bounded_by_tick(self):
        sink = InMemoryRecordSink()
        for tick in (10, 20, 30):
            sink.record_memory(_memory("a", tick, f"t{tick}"), None)
        sink.record_memory(_memory("b", 15, "other"), None)
        recalled = sink.recall_memories("a", tick=25, limit=5)
        assert [m.text for m in recalled] == ["t20", "t10"]
        assert sink.recall_memories("a", tick=30, limit=1)[0].text == "t30"


class VectorSink(InMemoryRecordSink):
    supports_vectors = True

    def __init__(self):
        super().__init__()
        self.embeddings = []

    def record_memory(self, snapshot, embedding):
        self.embeddings.append(embedding)
        super().record_memory(snapshot, embedding)


class BrokenEmbedder:
    def embed(self, text):
        raise ConnectionError("embedding service down")


class FixedEmbedder:
    def embed(self, text):
        return [0.1, 0.2, 0.3]


class TestMemoryArchive:
    def test_due_on_interval(self):
        archive = MemoryArchive(InMemoryRecordSink(), interval=10)
        assert [age for age in range(0, 31) if archive.due(age)] == [10, 20, 30]
        assert not MemoryArchive(InMemoryRecordSink(), interval=0).due(10)

    def test_snapshot_and_recall(self, rng):
        sink = InMemoryRecordSink()
        archive = MemoryArchive(sink, embedder=FixedEmbedder(), interval=10)
        agent = create_founder("Curie", 12.0, rng)
        snapshot = archive.snapshot(agent, tick=10)
        assert "liquid 12.00" in snapshot.text
        assert archive.embedder is None
        assert archive.recall(agent.id, "what happened", tick=10) == [snapshot.text]

    def test_embeddings_reach_vector_sinks(self, rng):
        sink = VectorSink()
        archive = MemoryArchive(sink, embedder=FixedEmbedder(), interval=10)
        archive.snapshot(create_founder("Curie", 12.0, rng), tick=10)
        assert sink.embeddings == [[0.1, 0.2, 0.3]]

    def test_embedding_failure_still_records(self, rng):
        sink = VectorSink()
        archive = MemoryArchive(sink, embedder=BrokenEmbedder(), interval=10)
        agent = create_founder("Curie", 12.0, rng)
        archive.snapshot(agent, tick=10)
        assert sink.embeddings == [None]
        assert len(sink.memories) == 1
        assert archive.recall(agent.id, "query", tick=10) == [sink.memories[0].text]


class TestRunner:
    def test_parse_seed_list(self):
        assert parse_seed_list("11, 42,,97 ") == [11, 42, 97]
        assert parse_seed_list("") == []

    def test_build_specs(self):
        specs = build_specs(["idle", "llm"], [1, 2])
        assert [(s.mode, s.seed) for s in specs] == [
            ("idle", 1),
            ("idle", 2),
            ("llm", 1),
            ("llm", 2),
        ]
        with pytest.raises(ValueError):
            build_specs(["random"], [1])

    def test_idle_run_writes_artifacts(self, settings):
        settings = replace(
            settings,
            simulation=replace(settings.simulation, initial_agent_count=3, max_ticks=5),
        )
        runner = ExperimentRunner(settings)
        try:
            rows = runner.run_many(build_specs(["idle"], [7]))
        finally:
            runner.close()

        [row] = rows
        assert row["mode"] == "idle"
        assert row["seed"] == 7
        assert row["total_agents"] >= 3
        assert row["decisions"] == 0
        run_dir = settings.output_dir / row["run_id"]
        for name in ("graveyard.json", "population.json", "metrics.json", "snapshot.json"):
            assert (run_dir / name).exists()
        assert (settings.output_dir / "metrics.csv").exists()
        metrics = json.loads((run_dir / "metrics.json").read_text(encoding="utf-8"))
        assert metrics["termination_detail"] == row["termination_detail"]

    def test_seeds_reproduce(self, settings):
        settings = replace(
            settings,
            simulation=replace(settings.simulation, initial_agent_count=3, max_ticks=4),
        )
        runner = ExperimentRunner(settings)
        try:
            first = runner.run_one("idle", 5)
            second = runner.run_one("idle", 5)
        finally:
            runner.close()
        for key in ("alive_agents", "births", "deaths", "mean_final_balance", "total_earnings"):
            assert first[key] == second[key]


class RecordingRunner:
    instances = []

    def __init__(self, settings):
        self.settings = settings
        self.specs = None
        self.closed = False
        RecordingRunner.instances.append(self)

    def run_many(self, specs):
        self.specs = list(specs)
        return []

    def close(self):
        self.closed = True


class TestCommandLine:
    @pytest.fixture(autouse=True)
    def _env(self, monkeypatch, tmp_path):
        RecordingRunner.instances = []
        monkeypatch.setattr(run_experiments, "ExperimentRunner", RecordingRunner)
        monkeypatch.setattr(run_experiments, "configure_logging", lambda level: None)
        monkeypatch.setenv("LLM_PROVIDER", "none")
        monkeypatch.setenv("RECORD_SINK", "memory")
        monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "out"))
        monkeypatch.delenv("EXPERIMENT_MODES", raising=False)
        monkeypatch.delenv("EXPERIMENT_SEEDS", raising=False)

    def test_flags_override_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MAX_TICKS", "500")
        assert run_experiments.main(["--seeds", "3,4", "--ticks", "12", "--agents", "6"]) == 0

        [runner] = RecordingRunner.instances
        assert [(s.mode, s.seed) for s in runner.specs] == [("idle", 3), ("idle", 4)]
        assert runner.settings.simulation.max_ticks == 12
        assert runner.settings.simulation.initial_agent_count == 6
        assert runner.closed
        assert (tmp_path / "out").is_dir()

    def test_environment_supplies_defaults(self, monkeypatch):
        monkeypatch.setenv("EXPERIMENT_MODES", "idle,llm")
        monkeypatch.setenv("EXPERIMENT_SEEDS", "9")
        assert run_experiments.main([]) == 0
        [runner] = RecordingRunner.instances
        assert [(s.mode, s.seed) for s in runner.specs] == [("idle", 9), ("llm", 9)]

    def test_bad_configuration_exits_without_running(self, monkeypatch):
        monkeypatch.setenv("RECORD_SINK", "kafka")
        assert run_experiments.main([]) == run_experiments.EXIT_BAD_CONFIG
        assert RecordingRunner.instances == []

    def test_unknown_mode_exits_without_running(self):
        assert run_experiments.main(["--modes", "random"]) == run_experiments.EXIT_BAD_CONFIG
        assert RecordingRunner.instances == []
