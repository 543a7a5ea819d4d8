"""Turn-boundary queries over ``(content, cursor_pos)``.

``cursor_pos`` is the offset just past the last terminator in the buffer;
everything in ``content[:cursor_pos]`` counts as submitted text.  All
functions here are pure.
"""

from __future__ import annotations

from .protocol import DELIMITER, TERMINATOR


class TranscriptFormatError(Exception):
    """Buffer lacks a terminator where one was required."""


def find_cursor(content: str) -> int | None:
    """Offset just past the last ``TERMINATOR`` in the whole buffer."""
    idx = content.rfind(TERMINATOR)
    if idx < 0:
        return None
    return idx + len(TERMINATOR)


def require_cursor(content: str) -> int:
    cursor = find_cursor(content)
    if cursor is None:
        raise TranscriptFormatError("Invalid content format: no terminator in buffer")
    return cursor


def _last_delimiter(content: str, cursor_pos: int) -> int:
    return content[:cursor_pos].rfind(DELIMITER)


def is_last_message_from_ai(content: str, cursor_pos: int) -> bool:
    """True when nothing but whitespace follows the last delimiter.

    Assistant replies always end by emitting a delimiter, so an empty tail
    means the user has not typed anything since the last reply.  With no
    delimiter at all the buffer only holds the first user turn.
    """
    head = content[:cursor_pos]
    last_sep = head.rfind(DELIMITER)
    if last_sep < 0:
        return False
    return not head[last_sep + len(DELIMITER):].strip()


def extract_new_message(content: str, cursor_pos: int) -> str:
    """Return the user text submitted at ``cursor_pos``.

    1. trimmed text after the last delimiter, if any;
    2. otherwise the text between the second-to-last and last delimiter;
    3. otherwise everything before the last delimiter.

    With no delimiter the whole trimmed prefix is the message.
    """
    head = content[:cursor_pos]
    last_sep = head.rfind(DELIMITER)
    if last_sep < 0:
        return head.strip()

    message = head[last_sep + len(DELIMITER):].strip()
    if message:
        return message

    second_last_sep = head.rfind(DELIMITER, 0, last_sep)
    if second_last_sep < 0:
        return head[:last_sep].strip()
    return head[second_last_sep + len(DELIMITER):last_sep].strip()


def history_before(content: str, cursor_pos: int) -> str:
    """Buffer text preceding the current user turn ("" for the first turn)."""
    last_sep = _last_delimiter(content, cursor_pos)
    if last_sep < 0:
        return ""
    return content[:last_sep]
