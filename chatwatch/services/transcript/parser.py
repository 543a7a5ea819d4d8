"""Split a transcript buffer into role-tagged messages.

Pure function over the buffer text: roles are inferred from position only
(even split index → user, odd → assistant).  Blank segments are dropped
without shifting the index of the segments that follow them.
"""

from __future__ import annotations

from .protocol import ASSISTANT, DELIMITER, MAX_CONTEXT_MESSAGES, USER, Message


def parse_messages(content: str, max_messages: int = MAX_CONTEXT_MESSAGES) -> list[Message]:
    """Return at most ``max_messages`` of the most recent turns in ``content``."""
    messages: list[Message] = []
    for i, part in enumerate(content.split(DELIMITER)):
        part = part.strip()
        if not part:
            continue
        messages.append(Message(role=USER if i % 2 == 0 else ASSISTANT, content=part))

    if max_messages <= 0:
        return []
    if len(messages) > max_messages:
        return messages[-max_messages:]
    return messages
