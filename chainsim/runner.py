"""
Command-line runner for the cross-chain liquidity simulation.

Usage:
    chainsim [--ticks N] [--strategy example|idle] [--verbose] [--csv PATH]
"""
import argparse
import logging

from .config import ScenarioConfig
from .engine import SimulationEngine
from .strategy import STRATEGIES


def _positive_int(text):
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return value


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Deterministic cross-chain liquidity simulation"
    )
    parser.add_argument(
        "--ticks",
        type=_positive_int,
        default=1000,
        help="Number of ticks to simulate (default: 1000)"
    )
    parser.add_argument(
        "--strategy",
        type=str,
        default="example",
        choices=sorted(STRATEGIES),
        help="Strategy policy proposing actions each tick (default: example)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log ledger mutations at DEBUG level"
    )
    parser.add_argument(
        "--csv",
        type=str,
        default=None,
        metavar="PATH",
        help="Write per-tick network metrics to a CSV file"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    cfg = ScenarioConfig(iterations=args.ticks, debug_ledger=args.verbose)
    engine = SimulationEngine(cfg=cfg, strategy=STRATEGIES[args.strategy]())
    summary = engine.run()

    logging.getLogger(__name__).info(
        "Ticks [%d] executed [%d] failed [%d] pnl [%.6f]",
        summary.ticks, summary.actions_executed, summary.actions_failed, summary.pnl,
    )
    if args.csv:
        engine.metrics.network_df().to_csv(args.csv, index=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
