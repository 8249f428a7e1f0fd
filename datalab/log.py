"""Logging setup for the command line and scripts."""

import logging

FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger once; later calls only change the level."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=FORMAT, datefmt="%H:%M:%S")
    logging.getLogger().setLevel(level)
    logging.getLogger("numba").setLevel(logging.WARNING)
