"""
Colorized diagnostics for the terminal.

All diagnostics are written to stderr so that they never interleave with
any protocol traffic a host may be exchanging over stdout.
"""

from io import TextIOBase
import os
import sys

# ------------------------------------------------------------------------------
# Terminal Colors

_USE_COLORS = os.environ.get('RUNNABLES_NO_COLOR', 'False') != 'True'

# ANSI color codes
TERMINAL_FG_RED =           '\033[0;31m'
TERMINAL_FG_CYAN =          '\033[0;36m'
TERMINAL_FG_YELLOW =        '\033[0;33m'
TERMINAL_RESET =            '\033[0m'


def print_error(message: str, file: TextIOBase | None=None) -> None:
    print(colorize(TERMINAL_FG_RED, message), file=file or sys.stderr)


def print_warning(message: str, file: TextIOBase | None=None) -> None:
    print(colorize(TERMINAL_FG_YELLOW, message), file=file or sys.stderr)


def print_info(message: str, file: TextIOBase | None=None) -> None:
    print(colorize(TERMINAL_FG_CYAN, message), file=file or sys.stderr)


def colorize(color_code: str, str_value: str) -> str:
    return (color_code + str_value + TERMINAL_RESET) if _USE_COLORS else str_value


# ------------------------------------------------------------------------------
