"""
Logging configuration for the coupon engine.

One package logger, configured once, level taken from settings.LOG_LEVEL.
"""
import logging
import sys

from coupon_engine.core.config import settings

logger = logging.getLogger("coupon_engine")
logger.setLevel(settings.LOG_LEVEL)

if not logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(settings.LOG_LEVEL)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

# Prevent propagation to root logger (avoid duplicate logs)
logger.propagate = False


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional child name (appended to 'coupon_engine')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"coupon_engine.{name}")
    return logger
