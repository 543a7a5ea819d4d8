"""Conversation driver: decide what to do with each transcript snapshot.

``evaluate`` is the pure half (snapshot + cached snapshot → ``Plan``);
``process`` executes the plan, calling the completion service and appending
the reply to the live file.  The only state carried between events is the
last-seen buffer and a few counters for the status endpoint.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from ..completion_client import CompletionError, CompletionResult
from .parser import parse_messages
from .protocol import MAX_CONTEXT_MESSAGES, TERMINATOR, USER, Message, format_reply
from .resolver import (
    TranscriptFormatError,
    extract_new_message,
    history_before,
    is_last_message_from_ai,
    require_cursor,
)
from .store import TranscriptIOError

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    UNCHANGED = "unchanged"
    AWAITING_TERMINATOR = "awaiting_terminator"
    SKIP_AI_JUST_RESPONDED = "skip_ai_just_responded"
    SKIP_EMPTY_MESSAGE = "skip_empty_message"
    READY_TO_SEND = "ready_to_send"
    RESPONDED = "responded"
    ERROR = "error"


class CompletionClientProtocol(Protocol):
    async def complete(self, messages: list[Message]) -> CompletionResult: ...


class TranscriptStoreProtocol(Protocol):
    def read(self) -> str: ...
    def append(self, text: str) -> None: ...


@dataclass(frozen=True)
class Plan:
    outcome: Outcome
    cursor_pos: int | None = None
    message: str = ""
    context: list[Message] = field(default_factory=list)


class ConversationDriver:
    def __init__(
        self,
        store: TranscriptStoreProtocol,
        completion: CompletionClientProtocol,
        *,
        initial_content: str = "",
        max_context: int = MAX_CONTEXT_MESSAGES,
    ) -> None:
        self.store = store
        self.completion = completion
        self.max_context = max_context

        self._lock = threading.Lock()
        self._last_content = initial_content
        self._last_outcome: Outcome | None = None
        self._last_error: str | None = None
        self._counts: dict[str, int] = {o.value: 0 for o in Outcome}

    # ------------------------------------------------------------------
    # cached state
    # ------------------------------------------------------------------

    @property
    def last_content(self) -> str:
        with self._lock:
            return self._last_content

    def _set_last_content(self, content: str) -> None:
        with self._lock:
            self._last_content = content

    def _record(self, outcome: Outcome, error: str | None = None) -> Outcome:
        with self._lock:
            self._last_outcome = outcome
            self._counts[outcome.value] += 1
            if error is not None:
                self._last_error = error
        return outcome

    def snapshot(self) -> dict[str, Any]:
        """Consistent view of driver state, safe to call from another thread."""
        with self._lock:
            return {
                "last_outcome": self._last_outcome.value if self._last_outcome else None,
                "last_error": self._last_error,
                "last_content_length": len(self._last_content),
                "counts": dict(self._counts),
            }

    # ------------------------------------------------------------------
    # decision
    # ------------------------------------------------------------------

    def evaluate(self, content: str) -> Plan:
        """Classify ``content`` against the cached snapshot.  No I/O."""
        if content == self.last_content:
            return Plan(Outcome.UNCHANGED)

        if not content.endswith(TERMINATOR):
            return Plan(Outcome.AWAITING_TERMINATOR)

        cursor_pos = require_cursor(content)

        if is_last_message_from_ai(content, cursor_pos):
            return Plan(Outcome.SKIP_AI_JUST_RESPONDED, cursor_pos=cursor_pos)

        message = extract_new_message(content, cursor_pos)
        if not message:
            return Plan(Outcome.SKIP_EMPTY_MESSAGE, cursor_pos=cursor_pos)

        context = parse_messages(history_before(content, cursor_pos), self.max_context)
        context.append(Message(role=USER, content=message))
        return Plan(Outcome.READY_TO_SEND, cursor_pos=cursor_pos, message=message, context=context)

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------

    async def process(self, content: str) -> Outcome:
        try:
            plan = self.evaluate(content)
        except TranscriptFormatError as exc:
            logger.error("error: %s", exc)
            return self._record(Outcome.ERROR, str(exc))

        if plan.outcome is Outcome.UNCHANGED:
            logger.debug("unchanged: no new content")
            return self._record(plan.outcome)

        if plan.outcome is not Outcome.READY_TO_SEND:
            self._set_last_content(content)
            if plan.outcome is Outcome.AWAITING_TERMINATOR:
                logger.debug("skip: waiting for double enter")
            elif plan.outcome is Outcome.SKIP_AI_JUST_RESPONDED:
                logger.info("skip: last message was from AI")
            else:
                logger.info("skip: empty message")
            return self._record(plan.outcome)

        logger.info("parse: sending message: %r", plan.message)
        logger.info("call: sending request with %d messages", len(plan.context))
        try:
            result = await self.completion.complete(plan.context)
        except CompletionError as exc:
            logger.error("error: completion failed: %s", exc)
            return self._record(Outcome.ERROR, str(exc))

        logger.info(
            "response: %d chars from %s (tokens in=%d out=%d total=%d, %d ms)",
            len(result["content"]),
            result["model"],
            result["tokens_in"],
            result["tokens_out"],
            result["tokens_total"],
            result["duration_ms"],
        )

        try:
            await asyncio.to_thread(self.store.append, format_reply(result["content"]))
            logger.info("write: added assistant response")
            self._set_last_content(await asyncio.to_thread(self.store.read))
        except TranscriptIOError as exc:
            logger.error("error: %s", exc)
            return self._record(Outcome.ERROR, str(exc))

        return self._record(Outcome.RESPONDED)

    async def process_latest(self) -> Outcome:
        """Read the live transcript and process it."""
        try:
            content = await asyncio.to_thread(self.store.read)
        except TranscriptIOError as exc:
            logger.error("error: %s", exc)
            return self._record(Outcome.ERROR, str(exc))
        return await self.process(content)
