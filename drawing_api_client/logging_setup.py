import sys
from pathlib import Path
from typing import Union

from loguru import logger

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def configure_logging(
    name: str, log_dir: Union[str, Path] = "./logs", level: str = "INFO"
) -> Path:
    """Send INFO and above to stderr and everything to {log_dir}/{name}.log"""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{name}.log"

    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    logger.add(log_file, level="DEBUG", mode="w", encoding="utf-8")
    return log_file
