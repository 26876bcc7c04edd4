"""Command-line entry point: build a fleet, run a simulation to exhaustion, export results."""

import argparse
import logging
import pathlib
import sys
from typing import List, Optional

from .config.loader import load_config, with_overrides
from .errors import FleetError, InvalidInput
from .reporting.export import export_csv, export_json
from .simulation.lifecycle import FleetService
from .simulation.runner import SimulationRunner
from .store import open_store


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fleetcnp-workbench",
        description="Contract Net task allocation for a heterogeneous spraying fleet."
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, ...).")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Create a fleet and a simulation, then step it until it stops.")
    run.add_argument("--config", type=pathlib.Path, help="Path to YAML config.")
    run.add_argument("--name", default="CLI run", help="Simulation name.")
    run.add_argument("--tasks", type=int, help="Number of tasks to generate.")
    run.add_argument("--workers", type=int, default=3, help="Worker drones to add.")
    run.add_argument("--scouts", type=int, default=0, help="Scout robots to add.")
    run.add_argument("--max-steps", type=int, dest="max_steps", help="Override step budget.")
    run.add_argument("--interval", type=float, default=0.0, help="Seconds between steps.")
    run.add_argument("--seed", type=int, help="Random seed for task generation.")
    run.add_argument("--store", choices=["memory", "sqlite"], help="Record store backend.")
    run.add_argument("--db", type=pathlib.Path, help="SQLite database path.")
    run.add_argument("--csv", type=pathlib.Path, help="Write step history CSV here.")
    run.add_argument("--json", type=pathlib.Path, help="Write full run JSON here.")
    return parser


def run_command(args: argparse.Namespace) -> int:
    overrides = {}
    if args.seed is not None:
        overrides["simulation.random_seed"] = args.seed
    if args.store is not None:
        overrides["store.backend"] = args.store
    if args.db is not None:
        overrides["store.sqlite_path"] = str(args.db)
    config = with_overrides(load_config(args.config), overrides)

    if args.workers < 0 or args.scouts < 0:
        raise InvalidInput("--workers and --scouts must be non-negative")

    store = open_store(config)
    service = FleetService(store, config)
    # Validates name and task count before the roster is touched
    sim_id = service.create_simulation(args.name, args.tasks)["id"]
    for i in range(args.workers):
        service.create_agent("worker", f"Worker {i + 1}")
    for i in range(args.scouts):
        service.create_agent("scout", f"Scout {i + 1}")

    result = SimulationRunner(service).run(sim_id, max_steps=args.max_steps, interval_seconds=args.interval)

    final = result.final
    print(f"Simulation {sim_id} stopped after {len(result.steps)} steps ({result.stop_reason.value})")
    print(f"  completed tasks:   {final.completed_tasks}/{final.total_tasks}")
    print(f"  energy used:       {final.total_energy_used}")
    print(f"  pesticide used:    {final.total_pesticide_used} ml")
    if result.invariant_errors:
        print(f"  invariant errors:  {len(result.invariant_errors)}")

    if args.csv:
        export_csv(result, str(args.csv))
        print(f"Wrote {args.csv}")
    if args.json:
        export_json(result, str(args.json), store=store, config=config)
        print(f"Wrote {args.json}")

    store.close()
    return 1 if result.invariant_errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run_command(args)
    except FleetError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
