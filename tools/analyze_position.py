#!/usr/bin/env python3
"""
Analyse one position with a single engine or an engine pool.

Usage:
    python tools/analyze_position.py \\
        --fen "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1" \\
        --engine embedded --depth 3 --candidates 3

    python tools/analyze_position.py --pool maia --selection sequential \\
        --time 1000 --registry engines.json
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from engine_bridge.config import EngineRegistry, PoolSettings, default_registry
from engine_bridge.exceptions import EngineBridgeError
from engine_bridge.manager import EngineManager
from engine_bridge.pool import EnginePoolManager

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def print_result(result, candidates):
    print(f"\nEngine:     {result.engine_name} ({result.engine_id})")
    print(f"Best move:  {result.best_move}")
    print(f"Evaluation: {result.evaluation:+.2f}")
    print(f"Depth:      {result.depth}")
    print(f"PV:         {' '.join(result.pv)}")
    print(f"Time:       {result.elapsed_ms} ms")

    if candidates:
        print("\nCandidates:")
        for record in candidates:
            mate = f" (mate {record.mate})" if record.is_mate else ""
            print(f"  {record.rank}. {record.move:<6} {record.score:+.2f}{mate}")


async def analyze(args, registry: EngineRegistry):
    if args.pool:
        analyzer = EnginePoolManager(
            registry,
            PoolSettings(pool=args.pool, selection=args.selection, switch_every=args.switch_every),
        )
        await analyzer.initialize()
        shutdown = analyzer.cleanup
    else:
        analyzer = EngineManager(registry, args.engine)
        await analyzer.initialize()
        shutdown = analyzer.quit

    try:
        result = await analyzer.analyze_position(args.fen, depth=args.depth, time_ms=args.time, nodes=args.nodes)
        candidates = []
        if args.candidates > 0:
            candidates = await analyzer.get_candidate_moves(
                args.fen, args.candidates, depth=args.depth, time_ms=args.time, nodes=args.nodes
            )
        print_result(result, candidates)
    finally:
        await shutdown()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Analyse a chess position with a UCI engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--fen", default=START_FEN, help="Position to analyse")

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--engine", default="embedded", help="Engine identifier")
    source.add_argument("--pool", default=None, help="Engine pool name (overrides --engine)")

    parser.add_argument(
        "--selection",
        choices=["random", "sequential", "weighted", "single"],
        default="random",
        help="Pool selection strategy",
    )
    parser.add_argument("--switch-every", type=int, default=1, help="Switch pool engine every N moves")
    parser.add_argument("--depth", type=int, default=None, help="Search depth")
    parser.add_argument("--time", type=int, default=None, help="Search time in milliseconds")
    parser.add_argument("--nodes", type=int, default=None, help="Node limit")
    parser.add_argument("--candidates", type=int, default=3, help="Candidate lines to show (0 = none)")
    parser.add_argument("--registry", default=None, help="JSON engine registry (default: built-in tables)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(args.verbose)

    registry = EngineRegistry.from_file(args.registry) if args.registry else default_registry()

    try:
        asyncio.run(analyze(args, registry))
    except EngineBridgeError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
