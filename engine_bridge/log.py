"""
Logging setup for engines that own stdout.

A UCI engine cannot log to stdout without corrupting the protocol, so the
stdio entry point logs to a file instead.
"""

import logging
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_DIR = Path.home() / ".engine_bridge"


def setup_logger(debug: bool = True, log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Route the engine_bridge logger hierarchy to a file.

    Args:
        debug: If True, log at DEBUG level; otherwise INFO level
        log_file: Destination (default: ~/.engine_bridge/engine.log)

    Returns:
        Configured logger instance
    """
    if log_file is None:
        DEFAULT_LOG_DIR.mkdir(exist_ok=True)
        log_file = DEFAULT_LOG_DIR / "engine.log"
    else:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("engine_bridge")
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file, mode='w')
    handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    ))
    logger.addHandler(handler)

    logger.info(f"Log file: {log_file}")
    return logger
