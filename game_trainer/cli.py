"""Command-line entry point: ``python -m game_trainer <command>``."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
from functools import partial
import logging
from pathlib import Path
import random
import signal
import sys
from typing import Callable, Dict, Optional

from game_trainer.algorithms.policies import PolicyKind, create_policy
from game_trainer.algorithms.qlearning import QLearningConfig, QLearningTrainer
from game_trainer.config.settings import Settings, get_settings
from game_trainer.core.errors import GameTrainerError
from game_trainer.core.experience_store import ExperienceStore
from game_trainer.logging_config.helpers import log_constant
from game_trainer.logging_config.log_constants import (
    LOG_CLI_COMMAND_FAILED,
    LOG_CLI_COMMAND_STARTED,
    LOG_CLI_CONFIRMATION_DECLINED,
)
from game_trainer.logging_config.logger import configure_logging
from game_trainer.services.analyzer import DataAnalyzer
from game_trainer.services.collector import EpisodeCollector
from game_trainer.services.orchestrator import OrchestratorConfig, PhaseOrchestrator
from game_trainer.services.simulation import SimulatedGame
from game_trainer.storage.coordinator import StorageCoordinator
from game_trainer.storage.episodes import EpisodePersistence
from game_trainer.storage.models import ModelRegistry

_LOGGER = logging.getLogger(__name__)
_log = partial(log_constant, _LOGGER)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REFUSED = 2

ANALYSIS_REPORT_FILENAME = "analysis_report.json"


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="game-trainer", description="Game AI experience capture and Q-learning trainer")
    parser.add_argument("--data-dir", type=Path, default=None, help="Episode storage root")
    parser.add_argument("--models-dir", type=Path, default=None, help="Model registry root")
    parser.add_argument("--reports-dir", type=Path, default=None, help="Directory for JSON reports")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    sub = parser.add_subparsers(dest="command", required=True)

    train = sub.add_parser("train", help="Train a Q-learning model on all stored episodes")
    train.add_argument("--model", default="player", help="Model name in the registry")
    train.add_argument("--strict", action="store_true", help="Fail on malformed experiences instead of skipping")

    analyze = sub.add_parser("analyze", help="Print statistics and write a JSON report")
    analyze.add_argument("--window", type=int, default=10, help="Learning-curve window in episodes")
    analyze.add_argument("--report", type=Path, default=None, help="Report path")

    export = sub.add_parser("export", help="Write the consolidated training dataset")
    export.add_argument("--output", type=Path, default=None)

    clear = sub.add_parser("clear", help="Delete all stored episodes")
    clear.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    collect = sub.add_parser("collect", help="Collect simulated episodes for a number of hours")
    collect.add_argument("hours", type=float)
    collect.add_argument("--policy", choices=[kind.value for kind in PolicyKind], default=PolicyKind.HEURISTIC.value)
    collect.add_argument("--model", default="player", help="Model backing the greedy policy")

    orchestrate = sub.add_parser("orchestrate", help="Run the phased training orchestrator")
    orchestrate.add_argument("--profile", default="default", help="Profile name in the YAML file")
    orchestrate.add_argument("--config", type=Path, default=None, help="YAML file of orchestrator profiles")
    orchestrate.add_argument("--max-cycles", type=int, default=None)
    orchestrate.add_argument("--episodes-per-cycle", type=int, default=None)

    sub.add_parser("models", help="List stored models and their scores")
    return parser.parse_args(argv)


def _resolve_settings(args: argparse.Namespace) -> Settings:
    base = get_settings()
    overrides = {
        "data_dir": args.data_dir,
        "models_dir": args.models_dir,
        "reports_dir": args.reports_dir,
        "log_level": args.log_level,
    }
    return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def _rng(settings: Settings) -> random.Random:
    return random.Random(settings.seed)


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:  # pragma: no cover - Windows fallback
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_train(args: argparse.Namespace, settings: Settings) -> int:
    episodes = EpisodePersistence(settings.data_dir)
    corpus = list(episodes.load_all_episodes())
    if not corpus:
        print("No training data found. Run 'collect' first.")
        return EXIT_FAILURE

    trainer = QLearningTrainer(
        QLearningConfig.from_dict(settings.qlearning_options()),
        rng=_rng(settings),
        name=args.model,
    )
    metrics = trainer.train_on_episodes(corpus, strict=args.strict)
    score = trainer.get_average_reward()
    registry = ModelRegistry(settings.models_dir)
    path = registry.save_best_model(args.model, trainer.get_model_data(), score)

    print(f"Trained '{args.model}' on {metrics.episodes_processed} episodes ({metrics.experiences_processed} experiences)")
    if metrics.experiences_skipped:
        print(f"  Skipped experiences:  {metrics.experiences_skipped}")
    print(f"  Average reward:       {score:.4f}")
    print(f"  Average loss:         {metrics.average_loss:.6f}")
    print(f"  Q-table states:       {trainer.table_size}")
    print(f"  Best model:           {path}")
    return EXIT_OK


def _cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    episodes = EpisodePersistence(settings.data_dir)
    analyzer = DataAnalyzer(settings.action_size)
    corpus = list(episodes.load_all_episodes())
    stats = analyzer.analyze_data(episodes, corpus)
    print(analyzer.format_report(stats))
    if not stats.has_data:
        return EXIT_OK

    curve = list(analyzer.generate_learning_curve(episodes, args.window, corpus))
    rewards = analyzer.analyze_action_rewards(episodes, corpus)
    print("  Learning Curve:")
    for number, value in curve:
        print(f"    from episode {number:>6}: {value:8.3f}")
    print("  Action Ranking:")
    for name, value in analyzer.rank_actions(rewards):
        print(f"    {name:<10} {value:8.4f}")

    report = args.report or settings.reports_dir / ANALYSIS_REPORT_FILENAME
    analyzer.export_report(stats, report, curve, rewards)
    print(f"Report written to {report}")
    return EXIT_OK


def _cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    episodes = EpisodePersistence(settings.data_dir)
    path = episodes.export_for_training(args.output)
    count, experiences = episodes.get_data_stats()
    print(f"Exported {count} episodes ({experiences} experiences) to {path}")
    return EXIT_OK


def _cmd_clear(args: argparse.Namespace, settings: Settings) -> int:
    if not args.yes:
        try:
            answer = input(f"Delete all training data under {settings.data_dir}? (y/N): ")
        except EOFError:
            answer = ""
        if answer.strip().lower() != "y":
            _log(LOG_CLI_CONFIRMATION_DECLINED, extra={"command": "clear"})
            print("Aborted.")
            return EXIT_REFUSED
    removed = EpisodePersistence(settings.data_dir).clear_all_data()
    print(f"Removed {removed} files.")
    return EXIT_OK


async def _collect_async(args: argparse.Namespace, settings: Settings) -> int:
    rng = _rng(settings)
    trainer = None
    if PolicyKind(args.policy) is PolicyKind.GREEDY:
        artifact = ModelRegistry(settings.models_dir).load_best_model(args.model)
        if artifact is None:
            print(f"No stored model named '{args.model}'. Run 'train' first.")
            return EXIT_FAILURE
        trainer = QLearningTrainer(QLearningConfig.from_dict(settings.qlearning_options()), name=args.model)
        trainer.load_model_data(artifact.model_data)

    store = ExperienceStore(state_size=settings.state_size, action_size=settings.action_size)
    collector = EpisodeCollector(
        SimulatedGame(state_size=settings.state_size, action_size=settings.action_size, rng=rng),
        store,
        StorageCoordinator(EpisodePersistence(settings.data_dir)),
        create_policy(args.policy, action_size=settings.action_size, trainer=trainer, rng=random.Random(rng.random())),
    )
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)
    summary = await collector.run_for(args.hours * 3600.0, stop_event)

    print("Collection session complete")
    print(f"  Session:              {store.session.session_id}")
    print(f"  Episodes:             {summary.episodes}")
    print(f"  Experiences:          {summary.experiences}")
    print(f"  Duration:             {summary.elapsed_s / 3600.0:.2f} h")
    print(f"  Experiences/hour:     {summary.experiences_per_hour:.0f}")
    return EXIT_OK


def _cmd_collect(args: argparse.Namespace, settings: Settings) -> int:
    if args.hours <= 0:
        print("hours must be positive")
        return EXIT_REFUSED
    return asyncio.run(_collect_async(args, settings))


async def _orchestrate_async(args: argparse.Namespace, settings: Settings) -> int:
    config = OrchestratorConfig.from_yaml(args.profile, args.config).with_overrides(
        max_cycles=args.max_cycles,
        episodes_per_cycle=args.episodes_per_cycle,
        seed=settings.seed,
    )
    orchestrator = PhaseOrchestrator(
        config,
        episodes=EpisodePersistence(settings.data_dir),
        registry=ModelRegistry(settings.models_dir),
        reports_dir=settings.reports_dir,
        qlearning=QLearningConfig.from_dict(settings.qlearning_options()),
    )
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)
    summary = await orchestrator.run(stop_event)

    print("Orchestrator stopped")
    print(f"  Cycles completed:     {summary.cycles_completed}")
    print(f"  Cycles failed:        {summary.cycles_failed}")
    print(f"  Episodes generated:   {summary.episodes_generated}")
    print(f"  Runtime:              {summary.total_runtime_s:.1f} s")
    print(f"  Cycles/hour:          {summary.cycles_per_hour:.2f}")
    return EXIT_OK


def _cmd_orchestrate(args: argparse.Namespace, settings: Settings) -> int:
    return asyncio.run(_orchestrate_async(args, settings))


def _cmd_models(args: argparse.Namespace, settings: Settings) -> int:
    models = ModelRegistry(settings.models_dir).list_models()
    if not models:
        print("No stored models.")
        return EXIT_OK
    print(f"{'MODEL':<20} {'SCORE':>12}  UPDATED")
    for entry in models:
        print(f"{entry.model_name:<20} {entry.performance_score:>12.4f}  {entry.updated_at:%Y-%m-%d %H:%M:%S}")
    return EXIT_OK


_COMMANDS: Dict[str, Callable[[argparse.Namespace, Settings], int]] = {
    "train": _cmd_train,
    "analyze": _cmd_analyze,
    "export": _cmd_export,
    "clear": _cmd_clear,
    "collect": _cmd_collect,
    "orchestrate": _cmd_orchestrate,
    "models": _cmd_models,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    settings = _resolve_settings(args)
    configure_logging(level=settings.log_level, log_to_file=settings.log_to_file)
    _log(LOG_CLI_COMMAND_STARTED, extra={"command": args.command})
    try:
        return _COMMANDS[args.command](args, settings)
    except (GameTrainerError, ValueError) as exc:
        _log(LOG_CLI_COMMAND_FAILED, message=str(exc), extra={"command": args.command})
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
