"""Command-line entry point: run a batch of seeded population experiments.

Flags override the matching environment variables; anything not given on
the command line falls back to ``AppSettings.from_env()``.
"""
from __future__ import annotations

import argparse
import logging
import os
from dataclasses import replace

from axo_sim.config.settings import AppSettings, ConfigurationError
from axo_sim.experiments.runner import (
    DECISION_MODES,
    ExperimentRunner,
    ExperimentSpec,
    build_specs,
    parse_seed_list,
)

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
EXIT_BAD_CONFIG = 2

logger = logging.getLogger("axo_sim.cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="axo-sim", description="Run seeded digital-organism population experiments."
    )
    parser.add_argument(
        "--modes",
        default=os.getenv("EXPERIMENT_MODES"),
        help=f"comma-separated decision modes from {', '.join(DECISION_MODES)}",
    )
    parser.add_argument(
        "--seeds", default=os.getenv("EXPERIMENT_SEEDS", "11,42,97"), help="comma-separated seeds"
    )
    parser.add_argument("--ticks", type=int, help="override MAX_TICKS")
    parser.add_argument("--agents", type=int, help="override INITIAL_AGENT_COUNT")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    changes = {}
    if args.ticks is not None:
        changes["max_ticks"] = args.ticks
    if args.agents is not None:
        changes["initial_agent_count"] = args.agents
    if not changes:
        return settings
    return replace(settings, simulation=replace(settings.simulation, **changes))


def plan(settings: AppSettings, args: argparse.Namespace) -> list[ExperimentSpec]:
    """Without ``--modes`` the batch uses the LLM unless no provider is configured."""
    modes_raw = args.modes or ("idle" if settings.llm.provider == "none" else "llm")
    modes = [m.strip() for m in modes_raw.split(",") if m.strip()]
    return build_specs(modes, parse_seed_list(args.seeds))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    settings = apply_overrides(AppSettings.from_env(), args)
    try:
        settings.require_valid()
        specs = plan(settings, args)
    except (ConfigurationError, ValueError) as exc:
        logger.error("Refusing to start: %s", exc)
        return EXIT_BAD_CONFIG
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "Batch plan: runs=%d modes=%s seeds=%s provider=%s sink=%s ticks=%d agents=%d",
        len(specs),
        sorted({s.mode for s in specs}),
        sorted({s.seed for s in specs}),
        settings.llm.provider,
        settings.simulation.sink,
        settings.simulation.max_ticks,
        settings.simulation.initial_agent_count,
    )
    runner = ExperimentRunner(settings)
    try:
        runner.run_many(specs)
    finally:
        runner.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
