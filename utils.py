"""Utility functions and validation helpers."""

import logging
import math
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_amount(raw: Any) -> Optional[float]:
    """
    Parse user input into a finite number.

    Accepts numbers and numeric strings (surrounding whitespace and
    thousands separators are ignored). Returns None for anything else.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip().replace(",", "")
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value


def format_number(amount: Optional[float]) -> str:
    """Format a number with thousands separators and no decimals."""
    return f"{(amount or 0):,.0f}"


def format_percent(pct: float) -> str:
    """Format a fraction as a whole percentage."""
    return f"{round((pct or 0) * 100)}%"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")
        except OSError as e:
            logger.error(f"Failed to setup file logging: {e}")

    logger.info(f"Logging configured at level {log_level}")


def sanitize_input(text: Optional[str], max_length: int = 1000) -> str:
    """
    Trim user text to max_length and strip surrounding whitespace.

    Returns an empty string for None.
    """
    if not text:
        return ""

    # Trim to max length
    text = str(text)[:max_length]

    return text.strip()
