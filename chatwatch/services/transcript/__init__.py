from .parser import parse_messages
from .protocol import DELIMITER, MAX_CONTEXT_MESSAGES, TERMINATOR, Message
from .resolver import (
    TranscriptFormatError,
    extract_new_message,
    find_cursor,
    history_before,
    is_last_message_from_ai,
)

__all__ = [
    "DELIMITER",
    "TERMINATOR",
    "MAX_CONTEXT_MESSAGES",
    "Message",
    "TranscriptFormatError",
    "extract_new_message",
    "find_cursor",
    "history_before",
    "is_last_message_from_ai",
    "parse_messages",
]
