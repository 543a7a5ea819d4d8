"""Colored console status lines.

Messages are tagged by the first keyword they contain ("skip: ...",
"call: ...") which selects an emoji prefix and a color.
"""

from __future__ import annotations

import logging
import sys

from colorama import Fore, Style, just_fix_windows_console

_PREFIXES: list[tuple[str, str, str]] = [
    ("error", "❌", Fore.RED),
    ("skip", "⏭️", Fore.YELLOW),
    ("parse", "🔍", Fore.CYAN),
    ("add", "➕", Fore.GREEN),
    ("call", "🌐", Fore.BLUE),
    ("response", "✉️", Fore.MAGENTA),
    ("detect", "👀", Fore.CYAN),
    ("write", "✍️", Fore.GREEN),
    ("init", "🚀", Fore.GREEN),
    ("load", "📂", Fore.BLUE),
    ("trim", "✂️", Fore.YELLOW),
    ("unchanged", "🔄", Fore.YELLOW),
    ("monitoring", "👁️", Fore.CYAN),
]

_DEFAULT = ("💬", Fore.WHITE)


def style_for(message: str, levelno: int = logging.INFO) -> tuple[str, str]:
    """Return ``(emoji, color)`` for a status message."""
    lowered = message.lower()
    emoji, color = next(
        ((e, c) for key, e, c in _PREFIXES if key in lowered),
        _DEFAULT,
    )
    if levelno >= logging.ERROR:
        color = Fore.RED
    return emoji, color


class EmojiConsoleHandler(logging.StreamHandler):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        emoji, color = style_for(message, record.levelno)
        return f"{emoji} {color}{message}{Style.RESET_ALL}"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    just_fix_windows_console()
    root = logging.getLogger("chatwatch")
    for handler in list(root.handlers):
        if isinstance(handler, EmojiConsoleHandler):
            root.removeHandler(handler)
    handler = EmojiConsoleHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    return root
