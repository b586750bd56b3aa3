"""
Command-line interface for the patient admission scheduler.

Usage examples:
    python -m bed_scheduler.cli --instance data/small_short00.pasu
    python -m bed_scheduler.cli --instance inst.pasu --out result.txt --seed 7
    python -m bed_scheduler.cli --instance inst.pasu --config settings.json --solver exact

Exit codes:
    0  schedule produced (OPTIMAL or FEASIBLE)
    1  bad arguments, unreadable config/instance, or precheck found blocking errors
    2  instance infeasible (construction failed, or exact solver INFEASIBLE)
"""

from __future__ import annotations

import argparse
import sys
from typing import Dict, List, Optional

from bed_scheduler.instance_io import InputFormatError, format_result, load_instance, write_result
from bed_scheduler.io_json import ConfigError, load_config
from bed_scheduler.log import configure_logging
from bed_scheduler.models import DEFAULT_MOVE_WEIGHTS, Config
from bed_scheduler.solver.api import solve
from bed_scheduler.solver.construct import InfeasibleInstance
from bed_scheduler.solver.precheck import PrecheckError, precheck


def parse_move_weights(text: str) -> Dict[str, float]:
    """`change=0.5,swap=0.2` -> {"change": 0.5, "swap": 0.2}."""
    weights: Dict[str, float] = {}
    for part in filter(None, (p.strip() for p in text.split(","))):
        name, sep, value = part.partition("=")
        name = name.strip().lower()
        if not sep or name not in DEFAULT_MOVE_WEIGHTS:
            raise argparse.ArgumentTypeError(
                f"bad move weight {part!r}; expected NAME=WEIGHT with NAME in "
                f"{sorted(DEFAULT_MOVE_WEIGHTS)}"
            )
        try:
            weights[name] = float(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"bad weight value in {part!r}") from None
    return weights


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bed-scheduler",
        description="Patient admission scheduler: tabu search over room/bed assignments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  bed-scheduler --instance small_short00.pasu\n"
            "  bed-scheduler --instance inst.pasu --out result.txt --time-limit 30\n"
        ),
    )
    parser.add_argument("--instance", required=True, metavar="FILE",
                        help="path to the instance file")
    parser.add_argument("--out", default=None, metavar="FILE",
                        help="write the schedule to this path (optional)")
    parser.add_argument("--config", default=None, metavar="FILE",
                        help="settings JSON (weights + solver parameters)")
    parser.add_argument("--solver", default="tabu", choices=["tabu", "exact"],
                        help="tabu = construction + tabu search, exact = CP-SAT "
                             "single-room reference (default: tabu)")
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    parser.add_argument("--max-attempts", type=int, default=None, metavar="N",
                        help="construction attempts before giving up")
    parser.add_argument("--max-iterations", type=int, default=None, metavar="N",
                        help="tabu search iteration budget")
    parser.add_argument("--time-limit", type=float, default=None, metavar="SEC",
                        help="search time budget in seconds")
    parser.add_argument("--tenure", type=int, default=None, metavar="N",
                        help="tabu tenure (default: ~sqrt(#patients))")
    parser.add_argument("--move-weights", type=parse_move_weights, default=None,
                        metavar="K=W,...", help="move-type distribution")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _apply_overrides(cfg: Config, args: argparse.Namespace) -> None:
    s = cfg.solver
    if args.seed is not None:
        s.seed = args.seed
    if args.max_attempts is not None:
        s.max_attempts = args.max_attempts
    if args.max_iterations is not None:
        s.max_iterations = args.max_iterations
    if args.time_limit is not None:
        s.max_time_in_seconds = args.time_limit
    if args.tenure is not None:
        s.tabu_tenure = args.tenure
    if args.move_weights is not None:
        s.move_weights = args.move_weights


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    # ── 1. load settings and instance ─────────────────────────────────────────
    try:
        cfg = load_config(args.config) if args.config else Config()
        _apply_overrides(cfg, args)
        cfg.validate()
    except FileNotFoundError:
        print(f"[ERROR] File not found: {args.config}", file=sys.stderr)
        sys.exit(1)
    except (ConfigError, ValueError) as e:
        print(f"[ERROR] Could not load config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        instance = load_instance(args.instance)
    except FileNotFoundError:
        print(f"[ERROR] File not found: {args.instance}", file=sys.stderr)
        sys.exit(1)
    except InputFormatError as e:
        print(f"[ERROR] Malformed instance: {e}", file=sys.stderr)
        sys.exit(1)

    # ── 2. precheck ───────────────────────────────────────────────────────────
    errors, warnings = precheck(instance)
    for w in warnings:
        print(f"[WARNING] {w}")

    if errors:
        print(
            f"\n[ERROR] {len(errors)} precheck error(s) found — "
            "no schedule can be produced until these are fixed:\n",
            file=sys.stderr,
        )
        for i, err in enumerate(errors, 1):
            print(f"  {i}. {err}", file=sys.stderr)
        sys.exit(1)

    # ── 3. solve ──────────────────────────────────────────────────────────────
    print(f"Running solver ({args.solver}) on {instance.name}: "
          f"{len(instance.patients)} patients, {len(instance.rooms)} rooms, "
          f"{instance.num_days} days…")
    try:
        result = solve(instance, cfg, args.solver)
    except PrecheckError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    except InfeasibleInstance as e:
        print(f"[ERROR] Infeasible instance: {e}", file=sys.stderr)
        sys.exit(2)

    # ── 4. print summary ──────────────────────────────────────────────────────
    print(f"\nStatus      : {result.status}")
    if result.objective_value is not None:
        print(f"Total cost  : {result.objective_value}")
    if result.lower_bound is not None:
        print(f"Lower bound : {result.lower_bound}")
    if result.gap is not None:
        print(f"Gap         : {result.gap}")
    for k, v in result.stats.items():
        print(f"  {k}: {v}")
    for d in result.diagnostics:
        print(f"[DIAG] {d}")

    # ── 5. schedule: to file if requested, else to stdout ─────────────────────
    if result.entries:
        if args.out:
            write_result(result, args.out)
            print(f"\nSchedule written to: {args.out}")
        else:
            print()
            print(format_result(result), end="")

    sys.exit(0 if result.status in ("OPTIMAL", "FEASIBLE") else 2)


if __name__ == "__main__":
    main()
