"""Process entry point: ``chatwatch`` / ``python -m chatwatch``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Callable, Sequence

from dotenv import load_dotenv

from .config import ConfigError, Settings
from .console import configure_logging
from .services.completion_client import CompletionClient
from .services.transcript.driver import ConversationDriver
from .services.transcript.notifier import ChangeNotifier
from .services.transcript.runtime import WatchRuntime
from .services.transcript.store import TranscriptIOError, TranscriptStore

logger = logging.getLogger(__name__)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chatwatch",
        description="Watch a transcript file and append model replies after a blank line.",
    )
    parser.add_argument("--file", help="transcript path (default: $CHATWATCH_FILE or chat.md)")
    parser.add_argument("--status-port", type=int, help="serve the status API on this port")
    return parser.parse_args(argv)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, on_stop: Callable[[], None]) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(on_stop))


async def serve(settings: Settings, store: TranscriptStore, completion: CompletionClient) -> int:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[None] = asyncio.Queue(maxsize=settings.queue_size)

    initial_content = store.read_or_empty()
    logger.info("load: initial content loaded, length: %d", len(initial_content))

    driver = ConversationDriver(
        store,
        completion,
        initial_content=initial_content,
        max_context=settings.max_context_messages,
    )
    runtime = WatchRuntime(driver, queue, debounce_s=settings.debounce_ms / 1000)
    notifier = ChangeNotifier(store.path, queue, loop)
    _install_signal_handlers(loop, runtime.request_stop)

    status_server = None
    if settings.status_port:
        from .main import StatusServer, app, bind_monitor

        bind_monitor(app, driver=driver, runtime=runtime, transcript=str(store.path))
        status_server = StatusServer(app, settings.status_port)
        status_server.start()

    notifier.start()
    logger.info("init: chat monitor started")
    print(f"Monitoring {store.path.name} for new messages...")
    print("Type your message and press Enter twice to send.")

    try:
        await runtime.run()
    finally:
        notifier.stop()
        if status_server is not None:
            status_server.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_arguments(argv)
    try:
        return _run(args)
    except KeyboardInterrupt:
        # interrupted before serve() installed its own signal handlers
        print()
        logger.info("Shutting down...")
        return 0


def _run(args: argparse.Namespace) -> int:
    load_dotenv()

    try:
        settings = Settings()
    except ConfigError as exc:
        configure_logging()
        logger.error("error: %s", exc)
        return 1
    if args.file:
        settings.chat_file = args.file
    if args.status_port:
        settings.status_port = args.status_port

    configure_logging(settings.log_level)

    try:
        completion = CompletionClient.from_settings(settings)
    except ConfigError as exc:
        logger.error("error: %s", exc)
        return 1

    store = TranscriptStore(settings.chat_file)
    try:
        store.ensure_exists()
    except TranscriptIOError as exc:
        logger.error("error: %s", exc)
        return 1

    return asyncio.run(serve(settings, store, completion))
