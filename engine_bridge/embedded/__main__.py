"""
Run the embedded engine as a stdio UCI engine.

Usage:
    python -m engine_bridge.embedded [--quiet]
"""

import argparse

from engine_bridge.embedded.interface import UCIEngine
from engine_bridge.log import setup_logger


def main():
    parser = argparse.ArgumentParser(description="Embedded UCI engine")
    parser.add_argument("--quiet", action="store_true", help="Log at INFO instead of DEBUG")
    parser.add_argument("--log-file", type=str, default=None, help="Log file path")
    args = parser.parse_args()

    setup_logger(debug=not args.quiet, log_file=args.log_file)
    UCIEngine().run()


if __name__ == "__main__":
    main()
