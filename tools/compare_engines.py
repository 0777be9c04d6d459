#!/usr/bin/env python3
"""
Run several engines side by side and report how often they agree.

Usage:
    python tools/compare_engines.py \\
        --engine stockfish=stockfish-native --engine maia=maia-1500 \\
        --fen "r1bqkbnr/pppp1ppp/2n5/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R w KQkq - 2 3"

    python tools/compare_engines.py --positions data/positions.fen --time 500
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from tqdm import tqdm

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from engine_bridge.config import EngineRegistry, default_registry
from engine_bridge.coordinator import AnalysisCoordinator
from engine_bridge.exceptions import EngineBridgeError

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_positions(args):
    """FENs from --positions (one per line, '#' comments) or --fen."""
    if not args.positions:
        return [args.fen]

    path = Path(args.positions)
    if not path.exists():
        print(f"Error: Positions file not found: {path}")
        sys.exit(1)

    positions = []
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if line and not line.startswith("#"):
                positions.append(line)
    return positions


def parse_engines(values):
    engines = {}
    for value in values:
        label, sep, engine_id = value.partition("=")
        if not sep:
            label = engine_id = value
        engines[label] = engine_id
    return engines


def print_report(position, report, comparison):
    print(f"\nPosition: {position}")
    for row in comparison:
        alternatives = ", ".join(f"{c['move']} ({c['eval']:+.2f})" for c in row["candidates"])
        print(f"  {row['engine']:<12} {row['move']:<6} {row['eval']:+.2f}   [{alternatives}]")
    for label, error in report.failures.items():
        print(f"  {label:<12} failed: {error}")

    if report.consensus is None:
        print("  No consensus (no engine produced a result)")
    else:
        print(
            f"  Consensus: {report.consensus} "
            f"(strength {report.consensus_strength:.3f}, divergence {report.divergence:.3f})"
        )


async def compare(args, registry: EngineRegistry, positions):
    engines = parse_engines(args.engine) if args.engine else None
    coordinator = AnalysisCoordinator(registry, engines, depth=args.depth, time_ms=args.time)
    await coordinator.initialize()

    agreed = 0
    try:
        for position in tqdm(positions, desc="Analysing positions", disable=len(positions) < 2):
            report = await coordinator.analyze_position(position)
            print_report(position, report, coordinator.get_comparison())
            if report.divergence == 0:
                agreed += 1
    finally:
        await coordinator.cleanup()

    if len(positions) > 1:
        print(f"\nFull agreement on {agreed}/{len(positions)} positions")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Compare engines on the same positions",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--fen", default=START_FEN, help="Position to analyse")
    parser.add_argument("--positions", default=None, help="File with one FEN per line")
    parser.add_argument(
        "--engine",
        action="append",
        default=None,
        help="label=engine_id pair, repeatable (default: registry dual-analysis labels)",
    )
    parser.add_argument("--depth", type=int, default=15, help="Search depth")
    parser.add_argument("--time", type=int, default=3000, help="Search time in milliseconds")
    parser.add_argument("--registry", default=None, help="JSON engine registry (default: built-in tables)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(args.verbose)

    registry = EngineRegistry.from_file(args.registry) if args.registry else default_registry()
    positions = load_positions(args)

    try:
        asyncio.run(compare(args, registry, positions))
    except EngineBridgeError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
