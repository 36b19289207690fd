"""Command-line surface for running battles without a chat front end.

Usage examples:
    python -m netbattle simulate --seed 7
    python -m netbattle simulate --entity Mettaur
    python -m netbattle simulate --duel --seed 3
"""

from __future__ import annotations

import argparse
import random
from typing import Sequence

from rich.console import Console

from netbattle.application.services.round_timer import RoundTimerRegistry
from netbattle.bootstrap import create_inmemory_battle_service
from netbattle.presentation.battle_console import BattleConsoleRenderer


SIMULATION_KEY = "simulate"
SIMULATION_PLAYER = "Lan"
SIMULATION_RIVAL = "Chaud"
MAX_SIMULATED_ROUNDS = 200


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="netbattle", description="Simultaneous-action chip battles")
    commands = parser.add_subparsers(dest="command")

    simulate = commands.add_parser("simulate", help="Run an in-memory battle driven entirely by stand-ins")
    simulate.add_argument("--seed", type=int, default=None, help="Seed for every random roll")
    simulate.add_argument("--entity", type=str, default=None, help="Virus to fight (weighted pick when omitted)")
    simulate.add_argument("--duel", action="store_true", help="Run a stand-in duel instead of an encounter")
    simulate.add_argument(
        "--max-rounds",
        type=int,
        default=MAX_SIMULATED_ROUNDS,
        help="Stop after this many resolution passes",
    )
    return parser


def run_simulation(
    *,
    seed: int | None = None,
    entity: str | None = None,
    duel: bool = False,
    max_rounds: int = MAX_SIMULATED_ROUNDS,
    console: Console | None = None,
) -> int:
    console = console or Console()
    timers = RoundTimerRegistry(start_timers=False)
    service = create_inmemory_battle_service(timers=timers, rng=random.Random(seed))
    BattleConsoleRenderer(console).attach(service.event_bus)

    if duel:
        started = service.start_duel(
            SIMULATION_KEY,
            SIMULATION_PLAYER,
            SIMULATION_RIVAL,
            stand_in_ids=(SIMULATION_PLAYER, SIMULATION_RIVAL),
        )
    else:
        started = service.start_encounter(SIMULATION_KEY, SIMULATION_PLAYER, entity, player_stand_in=True)
    if not started.ok:
        for message in started.messages:
            console.print(f"[red]{message}[/red]")
        return 1

    try:
        passes = 0
        while service.query_state(SIMULATION_KEY) is not None and passes < max_rounds:
            service.resolve_round(SIMULATION_KEY)
            passes += 1
        if service.query_state(SIMULATION_KEY) is not None:
            console.print(f"[yellow]Stopped after {passes} rounds without a winner.[/yellow]")
            return 2
    finally:
        service.shutdown()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != "simulate":
        parser.print_help()
        return 0
    return run_simulation(
        seed=args.seed,
        entity=args.entity,
        duel=args.duel,
        max_rounds=max(1, args.max_rounds),
    )
