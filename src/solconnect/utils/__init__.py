"""Logging and amount conversion helpers."""

from .logger import get_logger, setup_console_logging, setup_file_logging, setup_json_logging
from .token_math import lamports_to_sol, sol_to_lamports, to_base_units, to_display_amount

__all__ = [
    "get_logger",
    "setup_console_logging",
    "setup_file_logging",
    "setup_json_logging",
    "lamports_to_sol",
    "sol_to_lamports",
    "to_base_units",
    "to_display_amount",
]
