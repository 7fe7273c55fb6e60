"""Loguru logging configuration"""

import sys
from pathlib import Path
from loguru import logger

logger.remove()
logger.add(sys.stderr, level="INFO")


def setup_logging(level: str = "INFO", log_dir: Path | None = None) -> None:
    """Configure loguru sinks for the gateway."""
    logger.remove()

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=level,
        colorize=True,
    )

    if log_dir is None:
        return

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    logger.add(
        Path(log_dir) / "wa_rest_{time:YYYY-MM-DD}.log",
        rotation="00:00",
        retention="14 days",
        compression="gz",
        level="INFO",
    )


log = logger
