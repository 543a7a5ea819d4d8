"""Turn delimiter convention for the plain-text transcript.

Turns are separated by ``DELIMITER``.  A user marks a message as finished by
leaving ``TERMINATOR`` (an empty line) at the end of the buffer.  Assistant
replies are always written as ``"\\n" + reply + DELIMITER`` so the buffer
never needs any other metadata.
"""

from __future__ import annotations

from typing import Literal, TypedDict

DELIMITER: str = "\n***\n"
TERMINATOR: str = "\n\n"

MAX_CONTEXT_MESSAGES: int = 6

Role = Literal["user", "assistant"]

USER: Role = "user"
ASSISTANT: Role = "assistant"


class Message(TypedDict):
    role: Role
    content: str


def format_reply(reply: str) -> str:
    """Text appended to the transcript for an assistant reply."""
    return f"\n{reply}{DELIMITER}"
