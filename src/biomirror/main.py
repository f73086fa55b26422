"""Application entrypoint — run a synthetic session from the command line."""

from __future__ import annotations

import argparse
import asyncio
import sys

from biomirror.app import create_coordinator
from biomirror.config import Settings, get_settings
from biomirror.logger import setup_logging
from biomirror.sources.synthetic import (
    SCENARIOS,
    SyntheticFacialSource,
    SyntheticPhysiologicalSource,
)
from biomirror.therapy.coordinator import SessionState
from biomirror.therapy.models import SessionMetrics, SessionPhase


async def simulate(
    settings: Settings,
    *,
    scenario: str,
    seconds: float,
    phase: SessionPhase,
    seed: int | None,
) -> SessionMetrics:
    """Run one session against synthetic sources until it expires."""
    facial = SyntheticFacialSource(
        scenario, interval=settings.fusion_interval_seconds, seed=seed
    )
    physio = SyntheticPhysiologicalSource(
        scenario,
        interval=settings.fusion_interval_seconds,
        seed=None if seed is None else seed + 1,
    )
    coordinator = create_coordinator(
        settings, facial_source=facial, physiological_source=physio
    )
    coordinator.scheduler.responses.subscribe(
        lambda r: print(f"  [{r.response_type.value}] {r.verbal}")
    )

    done = asyncio.Event()
    coordinator.session_states.subscribe(
        lambda state: done.set() if state is SessionState.COMPLETED else None
    )
    await coordinator.start_session(phase, duration=seconds)
    await done.wait()
    return coordinator.session.metrics()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="biomirror",
        description="Real-time emotional state fusion and safety monitoring.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── simulate ──────────────────────────────────────────────
    sim_parser = sub.add_parser("simulate", help="Run a session on synthetic samples.")
    sim_parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="mixed")
    sim_parser.add_argument("--seconds", type=float, default=60.0)
    sim_parser.add_argument(
        "--phase", choices=[p.value for p in SessionPhase], default="connection"
    )
    sim_parser.add_argument("--sensitivity", type=float, default=None)
    sim_parser.add_argument("--seed", type=int, default=None)

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "simulate":
        overrides = {}
        if args.sensitivity is not None:
            overrides["response_sensitivity"] = args.sensitivity
        if args.seed is not None:
            overrides["random_seed"] = args.seed
        if overrides:
            settings = settings.model_copy(update=overrides)

        metrics = asyncio.run(
            simulate(
                settings,
                scenario=args.scenario,
                seconds=args.seconds,
                phase=SessionPhase(args.phase),
                seed=args.seed,
            )
        )
        print(metrics.model_dump_json(indent=2))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
