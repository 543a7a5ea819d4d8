"""Tests for the conversation driver state machine."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from chatwatch.services.completion_client import CompletionClient, CompletionError, CompletionResult
from chatwatch.services.transcript.driver import ConversationDriver, Outcome
from chatwatch.services.transcript.protocol import DELIMITER, TERMINATOR
from chatwatch.services.transcript.store import TranscriptIOError


class FakeStore:
    def __init__(self, content: str = "") -> None:
        self.content = content
        self.appended: list[str] = []
        self.fail_append = False

    def read(self) -> str:
        return self.content

    def append(self, text: str) -> None:
        if self.fail_append:
            raise TranscriptIOError("disk full")
        self.appended.append(text)
        self.content += text


def _result(content: str = "Hi there") -> CompletionResult:
    return CompletionResult(
        content=content,
        tokens_in=10,
        tokens_out=3,
        tokens_total=13,
        model="deepseek-chat",
        duration_ms=42,
    )


def _make_driver(content: str = "", *, initial: str = "", reply: str = "Hi there"):
    store = FakeStore(content)
    completion = AsyncMock()
    completion.complete = AsyncMock(return_value=_result(reply))
    driver = ConversationDriver(store, completion, initial_content=initial)
    return driver, store, completion


# ---------------------------------------------------------------------------
# evaluate (pure planning)
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_unchanged(self):
        driver, _, _ = _make_driver(initial="Hello")
        assert driver.evaluate("Hello").outcome is Outcome.UNCHANGED

    def test_empty_file_awaits_terminator(self):
        driver, _, _ = _make_driver(initial="old text")
        assert driver.evaluate("").outcome is Outcome.AWAITING_TERMINATOR

    def test_single_newline_awaits_terminator(self):
        driver, _, _ = _make_driver()
        assert driver.evaluate("Hello\n").outcome is Outcome.AWAITING_TERMINATOR

    def test_first_message_ready(self):
        driver, _, _ = _make_driver()
        plan = driver.evaluate("Hello\n\n")
        assert plan.outcome is Outcome.READY_TO_SEND
        assert plan.message == "Hello"
        assert plan.context == [{"role": "user", "content": "Hello"}]

    def test_right_after_ai_reply_is_skipped(self):
        driver, _, _ = _make_driver()
        plan = driver.evaluate("Hello" + DELIMITER + TERMINATOR)
        assert plan.outcome is Outcome.SKIP_AI_JUST_RESPONDED

    def test_blank_buffer_is_empty_message(self):
        driver, _, _ = _make_driver(initial="x")
        assert driver.evaluate("\n\n").outcome is Outcome.SKIP_EMPTY_MESSAGE

    def test_reply_after_delimiter_is_ready(self):
        driver, _, _ = _make_driver(initial="Hi" + DELIMITER)
        plan = driver.evaluate("Hi" + DELIMITER + "How are you?" + TERMINATOR)
        assert plan.outcome is Outcome.READY_TO_SEND
        assert plan.message == "How are you?"
        assert plan.context[-1] == {"role": "user", "content": "How are you?"}
        assert plan.context[:-1] == [{"role": "user", "content": "Hi"}]

    def test_context_built_from_history_before_delimiter(self):
        content = "q1" + DELIMITER + "a1" + DELIMITER + "q2" + TERMINATOR
        driver, _, _ = _make_driver()
        plan = driver.evaluate(content)
        assert plan.context == [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]

    def test_context_window_is_bounded(self):
        turns = [f"t{i}" for i in range(20)]
        content = DELIMITER.join(turns) + TERMINATOR
        driver, _, _ = _make_driver()
        plan = driver.evaluate(content)
        # six history messages plus the new user message
        assert len(plan.context) == 7
        assert plan.context[-1]["content"] == "t19"
        assert plan.context[0]["content"] == "t13"

    def test_evaluate_does_not_touch_cache(self):
        driver, _, _ = _make_driver(initial="before")
        driver.evaluate("Hello\n")
        assert driver.last_content == "before"


# ---------------------------------------------------------------------------
# process (execution)
# ---------------------------------------------------------------------------


class TestProcess:
    @pytest.mark.asyncio
    async def test_unchanged_is_noop(self):
        driver, store, completion = _make_driver("Hello\n\n", initial="Hello\n\n")
        assert await driver.process("Hello\n\n") is Outcome.UNCHANGED
        completion.complete.assert_not_awaited()
        assert store.appended == []

    @pytest.mark.asyncio
    async def test_awaiting_terminator_updates_cache(self):
        driver, _, completion = _make_driver()
        assert await driver.process("Hel") is Outcome.AWAITING_TERMINATOR
        assert driver.last_content == "Hel"
        completion.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_just_responded_updates_cache_without_call(self):
        content = "Hello" + DELIMITER + TERMINATOR
        driver, _, completion = _make_driver(content)
        assert await driver.process(content) is Outcome.SKIP_AI_JUST_RESPONDED
        assert driver.last_content == content
        completion.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_message_updates_cache(self):
        driver, _, completion = _make_driver(initial="x")
        assert await driver.process("\n\n") is Outcome.SKIP_EMPTY_MESSAGE
        assert driver.last_content == "\n\n"
        completion.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ready_to_send_appends_reply(self):
        driver, store, completion = _make_driver("Hello\n\n")
        outcome = await driver.process("Hello\n\n")

        assert outcome is Outcome.RESPONDED
        completion.complete.assert_awaited_once_with([{"role": "user", "content": "Hello"}])
        assert store.appended == ["\nHi there" + DELIMITER]
        assert store.content == "Hello\n\n\nHi there" + DELIMITER
        assert driver.last_content == store.content

    @pytest.mark.asyncio
    async def test_reply_appended_to_live_buffer_not_snapshot(self):
        driver, store, _ = _make_driver("Hello\n\n")
        # the file gained text after the snapshot was taken
        store.content = "Hello\n\nextra"
        await driver.process("Hello\n\n")
        assert store.content == "Hello\n\nextra\nHi there" + DELIMITER
        assert driver.last_content == store.content

    @pytest.mark.asyncio
    async def test_completion_failure_leaves_cache(self):
        driver, store, completion = _make_driver("Hello\n\n", initial="Hel")
        completion.complete.side_effect = CompletionError("API error: status 500")

        assert await driver.process("Hello\n\n") is Outcome.ERROR
        assert driver.last_content == "Hel"
        assert store.appended == []
        assert driver.snapshot()["last_error"] == "API error: status 500"

    @pytest.mark.asyncio
    async def test_failed_message_is_resent_on_next_event(self):
        driver, _, completion = _make_driver("Hello\n\n")
        completion.complete.side_effect = [CompletionError("timeout"), _result()]

        assert await driver.process("Hello\n\n") is Outcome.ERROR
        assert await driver.process("Hello\n\n") is Outcome.RESPONDED
        assert completion.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_append_failure_is_error(self):
        driver, store, _ = _make_driver("Hello\n\n")
        store.fail_append = True
        assert await driver.process("Hello\n\n") is Outcome.ERROR
        assert driver.last_content == ""

    @pytest.mark.asyncio
    async def test_round_trip_then_ai_skip(self):
        driver, store, completion = _make_driver("Hi" + DELIMITER)
        await driver.process(store.read())

        store.content += "How are you?" + TERMINATOR
        assert await driver.process(store.read()) is Outcome.RESPONDED
        sent = completion.complete.await_args.args[0]
        assert sent[-1] == {"role": "user", "content": "How are you?"}

        # user presses Enter once more right after the reply
        store.content += "\n"
        assert await driver.process(store.read()) is Outcome.SKIP_AI_JUST_RESPONDED
        assert completion.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_process_latest_reads_store(self):
        driver, _, completion = _make_driver("Hello\n\n")
        assert await driver.process_latest() is Outcome.RESPONDED
        completion.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_process_latest_read_failure(self):
        driver, store, _ = _make_driver()
        store.read = MagicMock(side_effect=TranscriptIOError("gone"))
        assert await driver.process_latest() is Outcome.ERROR


# ---------------------------------------------------------------------------
# with the real completion client
# ---------------------------------------------------------------------------


class TestWithHttpClient:
    @pytest.mark.asyncio
    async def test_reply_with_malformed_usage_is_written(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"choices": [{"message": {"content": "hi"}}], "usage": "n/a"}
            )

        store = FakeStore("Hello\n\n")
        client = CompletionClient(
            "sk-test",
            api_url="https://api.example.test/v1/chat/completions",
            model="deepseek-chat",
            transport=httpx.MockTransport(handler),
        )
        driver = ConversationDriver(store, client)

        assert await driver.process("Hello\n\n") is Outcome.RESPONDED
        assert store.appended == ["\nhi" + DELIMITER]
        assert driver.snapshot()["last_outcome"] == "responded"

    @pytest.mark.asyncio
    async def test_server_error_recorded_as_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        store = FakeStore("Hello\n\n")
        client = CompletionClient(
            "sk-test",
            api_url="https://api.example.test/v1/chat/completions",
            model="deepseek-chat",
            transport=httpx.MockTransport(handler),
        )
        driver = ConversationDriver(store, client)

        assert await driver.process("Hello\n\n") is Outcome.ERROR
        assert store.appended == []
        assert "502" in driver.snapshot()["last_error"]


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_counts_outcomes(self):
        driver, _, _ = _make_driver("Hello\n\n")
        await driver.process("Hel")
        await driver.process("Hel")
        await driver.process("Hello\n\n")

        snap = driver.snapshot()
        assert snap["counts"]["awaiting_terminator"] == 1
        assert snap["counts"]["unchanged"] == 1
        assert snap["counts"]["responded"] == 1
        assert snap["last_outcome"] == "responded"
        assert snap["last_content_length"] == len(driver.last_content)

    def test_initial_snapshot(self):
        driver, _, _ = _make_driver(initial="abc")
        snap = driver.snapshot()
        assert snap["last_outcome"] is None
        assert snap["last_content_length"] == 3
