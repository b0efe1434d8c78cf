"""CLI and main logic."""

import argparse
import logging
import os
import sys

from crypt_harvest.config import load_config_data
from crypt_harvest.constants import CONFIG_ENV_VAR
from crypt_harvest.console import print_harvest_result, print_harvest_summary, print_holder_balances, print_vault_report
from crypt_harvest.errors import CryptError
from crypt_harvest.simulation import SimulationParams, run_simulation
from crypt_harvest.store import clear_state, load_snapshot, save_snapshot

logger = logging.getLogger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _conversion_rate(value: str) -> tuple[int, int]:
    """Parse ``NUM/DEN`` or ``NUM``."""
    numerator, _, denominator = value.partition("/")
    try:
        return int(numerator), int(denominator or 1)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(f"invalid conversion rate {value!r}, expected NUM/DEN") from ex


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Share vault and single-strategy yield harvesting engine.")
    p.add_argument(
        "--log-level",
        type=str.lower,
        choices=LOG_LEVELS,
        default=os.getenv("LOG_LEVEL", "warning").lower(),
        help="Python logging level. Default: LOG_LEVEL env or warning.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Deploy a crypt on a fresh in-memory chain and harvest it.")
    sim.add_argument(
        "--config",
        default=None,
        help="JSON file with vault/strategy parameter overrides. Default: CRYPT_HARVEST_CONFIG env, if set.",
    )
    sim.add_argument("--depositors", type=int, default=3, help="Number of depositors.")
    sim.add_argument("--deposit", default="1000", help="Want each depositor deposits, in whole tokens.")
    sim.add_argument("--harvests", type=int, default=30, help="Number of harvests to run.")
    sim.add_argument("--interval", type=int, default=6 * 60 * 60, help="Seconds between harvests.")
    sim.add_argument("--reward-rate", default="0.0001", help="Farm rewards per second, in whole tokens.")
    sim.add_argument("--conversion-rate", type=_conversion_rate, default=(1, 2), help="Want per reward, NUM/DEN.")
    sim.add_argument("--apr-window", type=int, default=7, help="Harvests averaged for the APR.")
    sim.add_argument("--panic-at", type=int, default=None, help="Panic the strategy before this harvest index.")
    sim.add_argument("--withdraw-all", action="store_true", help="Withdraw every depositor at the end.")
    sim.add_argument("--verbose", action="store_true", help="Print every harvest.")
    sim.add_argument("--state", default=None, help="Where to save the final ledger. Default: XDG cache dir.")
    sim.add_argument("--no-save", action="store_true", help="Do not save the final ledger.")

    show = sub.add_parser("show", help="Print a saved ledger.")
    show.add_argument("--state", default=None, help="Ledger file. Default: XDG cache dir.")
    show.add_argument("--apr-window", type=int, default=7, help="Harvests averaged for the APR.")

    sub.add_parser("clear-state", help="Delete saved ledgers.")
    args = p.parse_args(argv)
    if args.log_level not in LOG_LEVELS:
        p.error(f"invalid LOG_LEVEL {args.log_level!r}, choose from {', '.join(LOG_LEVELS)}")
    return args


def _simulate(args: argparse.Namespace) -> int:
    overrides = None
    if args.config or os.getenv(CONFIG_ENV_VAR):
        overrides = load_config_data(args.config)

    params = SimulationParams(
        depositors=args.depositors,
        deposit=args.deposit,
        harvests=args.harvests,
        interval=args.interval,
        reward_rate=args.reward_rate,
        conversion_rate=args.conversion_rate,
        apr_window=args.apr_window,
        panic_at=args.panic_at,
        withdraw_all=args.withdraw_all,
    )
    outcome = run_simulation(params, overrides=overrides)

    want = outcome.environment.want
    if args.verbose:
        for result in outcome.results:
            print_harvest_result(result, symbol=want.symbol, decimals=want.decimals)

    if outcome.issues:
        print("⚠️  Validation warnings:", file=sys.stderr)
        for issue in outcome.issues:
            print(f"   {issue}", file=sys.stderr)

    print_vault_report(outcome.snapshot, apr_window=args.apr_window)
    print_holder_balances(outcome.snapshot)
    print_harvest_summary(outcome.summary, symbol=want.symbol, decimals=want.decimals)

    if not args.no_save:
        path = save_snapshot(outcome.snapshot, args.state)
        print(f"\n💾 Ledger saved to {path}", file=sys.stderr)
    return 0


def _show(args: argparse.Namespace) -> int:
    snapshot = load_snapshot(args.state)
    if snapshot is None:
        print("No saved ledger found. Run `crypt-harvest simulate` first.", file=sys.stderr)
        return 1
    print_vault_report(snapshot, apr_window=args.apr_window)
    print_holder_balances(snapshot)
    return 0


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")

    try:
        if args.command == "simulate":
            return _simulate(args)
        if args.command == "show":
            return _show(args)
        clear_state()
        return 0
    except CryptError as ex:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {ex}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
