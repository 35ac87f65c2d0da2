"""
Color utilities for console logging.
Provides colored output for the runner's verbose and debug messages.
"""

import os
import sys
from typing import Optional


class Colors:
    """ANSI color codes for terminal output."""

    RESET = '\033[0m'

    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BLUE = '\033[34m'
    MAGENTA = '\033[35m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'

    BRIGHT_RED = '\033[91m'
    BRIGHT_WHITE = '\033[97m'

    BOLD = '\033[1m'
    DIM = '\033[2m'


class ColorFormatter:
    """Handles colored output for runner logging."""

    def __init__(self, enabled: bool = True):
        """
        Initialize the color formatter.

        Args:
            enabled: Whether to enable color output (auto-detects TTY by default)
        """
        self.enabled = enabled and self._supports_color()

    def _supports_color(self) -> bool:
        """Check if the terminal supports color output."""
        if not hasattr(sys.stdout, 'isatty') or not sys.stdout.isatty():
            return False
        if os.environ.get("NO_COLOR"):
            return False

        if sys.platform == "win32":
            import colorama
            colorama.init()

        return True

    def format(self, text: str, color: str = '', style: str = '') -> str:
        """
        Format text with color and style.

        Args:
            text: Text to format
            color: Color code from Colors class
            style: Style code from Colors class

        Returns:
            Formatted text string
        """
        if not self.enabled:
            return text
        return f"{style}{color}{text}{Colors.RESET}"

    def debug(self, text: str) -> str:
        return self.format(text, Colors.CYAN, Colors.DIM)

    def info(self, text: str) -> str:
        return self.format(text, Colors.BLUE)

    def success(self, text: str) -> str:
        return self.format(text, Colors.GREEN, Colors.BOLD)

    def warning(self, text: str) -> str:
        return self.format(text, Colors.YELLOW, Colors.BOLD)

    def error(self, text: str) -> str:
        return self.format(text, Colors.RED, Colors.BOLD)

    def highlight(self, text: str) -> str:
        return self.format(text, Colors.BRIGHT_WHITE, Colors.BOLD)

    def raw(self, text: str) -> str:
        """Format captured wire traffic in magenta."""
        return self.format(text, Colors.MAGENTA)

    def status_code(self, code: int, text: Optional[str] = None) -> str:
        """Format HTTP status codes with appropriate colors."""
        if text is None:
            text = str(code)

        if 200 <= code < 300:
            return self.format(text, Colors.GREEN)
        elif 300 <= code < 400:
            return self.format(text, Colors.YELLOW)
        elif 400 <= code < 500:
            return self.format(text, Colors.RED)
        elif 500 <= code < 600:
            return self.format(text, Colors.BRIGHT_RED, Colors.BOLD)
        else:
            return self.format(text, Colors.WHITE)


# Global color formatter instance
color_formatter = ColorFormatter()


def colored_print(text: str, color_func: Optional[str] = None, **kwargs):
    """
    Print text with color formatting.

    Args:
        text: Text to print
        color_func: Color function name (debug, info, success, warning, error, etc.)
        **kwargs: Additional arguments for print()
    """
    if color_func and hasattr(color_formatter, color_func):
        formatter = getattr(color_formatter, color_func)
        text = formatter(text)

    print(text, **kwargs)


def format_log_prefix(prefix: str, message: str) -> str:
    """
    Format log messages with colored prefixes.

    Args:
        prefix: Log prefix (DEBUG, INFO, WARN, ERROR, RAW, ...)
        message: Log message

    Returns:
        Formatted log string
    """
    prefix_lower = prefix.lower()

    if prefix_lower == 'debug':
        colored_prefix = color_formatter.debug(f"[{prefix}]")
    elif prefix_lower == 'info':
        colored_prefix = color_formatter.info(f"[{prefix}]")
    elif prefix_lower in ('error', 'err'):
        colored_prefix = color_formatter.error(f"[{prefix}]")
    elif prefix_lower in ('warning', 'warn'):
        colored_prefix = color_formatter.warning(f"[{prefix}]")
    elif prefix_lower == 'raw':
        colored_prefix = color_formatter.raw(f"[{prefix}]")
    elif prefix_lower == 'success':
        colored_prefix = color_formatter.success(f"[{prefix}]")
    else:
        colored_prefix = color_formatter.highlight(f"[{prefix}]")

    return f"{colored_prefix} {message}"
