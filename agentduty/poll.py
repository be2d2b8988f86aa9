"""Waiting for human responses.

A poll invocation is a short-lived blocking process. Several of them may be
started by the same agent over time, so delivery state lives on disk:

- the watermark records the newest response already shown, so restarts never
  replay old replies;
- the poll lock records which process is currently waiting, so hooks can tell
  whether the agent is still listening.

Responses are printed before the watermark moves past them.
"""

import logging
import signal
import sys
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from .client import AgentDutyClient
from .errors import AgentDutyError
from .models import ResponseWithContext, SessionHistory, collect_responses_after
from .output import print_error, print_json, print_response_with_context
from .state import KeyValueStore, PollLock, WatermarkStore

logger = logging.getLogger(__name__)

EXIT_DELIVERED = 0
EXIT_TIMEOUT = 1
EXIT_TRANSPORT_ERROR = 2

# Seconds between attempts; the last value repeats
BACKOFF_SCHEDULE = (0.5, 1.0, 2.0, 3.0, 5.0)

DEFAULT_TIMEOUT = 30 * 60


def backoff_delay(attempt: int, schedule: tuple[float, ...] = BACKOFF_SCHEDULE) -> float:
    """Delay before the next attempt (attempt counts from 0)."""
    return schedule[min(attempt, len(schedule) - 1)]


@contextmanager
def exit_on_sigterm() -> Iterator[None]:
    """Turn SIGTERM into SystemExit so finally blocks run."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        raise SystemExit(128 + signum)

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def print_delivered(response: ResponseWithContext, as_json: bool = False) -> None:
    if as_json:
        print_json(response)
    else:
        print_response_with_context(response)
    sys.stdout.flush()


class Poller:
    """Polls one session until a new response arrives or time runs out."""

    def __init__(
        self,
        client: AgentDutyClient,
        store: KeyValueStore,
        session_key: str,
        emit: Optional[Callable[[ResponseWithContext], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.session_key = session_key
        self.lock = PollLock(store, session_key)
        self.watermarks = WatermarkStore(store)
        self.emit = emit or print_delivered
        self.sleep = sleep
        self.clock = clock

        self.watermark = ""
        self._initialized = False
        # Baseline taken from the single notification while the session query is down
        self._fallback_baseline = False

    def poll_for_response(self, notification_id: str, timeout: float = DEFAULT_TIMEOUT) -> int:
        """Block until a new response is delivered; returns the process exit code."""
        with exit_on_sigterm(), self.lock.hold():
            return self._run(notification_id, timeout)

    def _run(self, notification_id: str, timeout: float) -> int:
        deadline = self.clock() + timeout
        self._load_watermark()

        attempt = 0
        while True:
            try:
                delivered = self._poll_once(notification_id)
            except AgentDutyError as e:
                print_error(str(e))
                return EXIT_TRANSPORT_ERROR
            if delivered:
                return EXIT_DELIVERED

            remaining = deadline - self.clock()
            if remaining <= 0:
                print("Timeout waiting for response.", file=sys.stderr)
                return EXIT_TIMEOUT
            delay = backoff_delay(attempt)
            attempt += 1
            logger.debug(f"No new responses, sleeping {min(delay, remaining):.1f}s")
            self.sleep(min(delay, remaining))

    def _load_watermark(self) -> None:
        stored = self.watermarks.read()
        if stored:
            self.watermark = stored
            self._initialized = True
            return

        # First poll in this workspace: everything already answered is history
        try:
            history = self.client.fetch_session(self.session_key)
        except AgentDutyError as e:
            logger.debug(f"Could not initialize watermark: {e}")
            return
        self._initialize_from(history)

    def _initialize_from(self, history: Optional[SessionHistory]) -> None:
        self._initialized = True
        if history is None:
            return
        latest = history.latest_response_time()
        if latest:
            self.watermark = latest
            self.watermarks.advance(latest)
            logger.info(f"Initialized watermark to {latest}")

    def _poll_once(self, notification_id: str) -> bool:
        """One attempt. True if something was delivered.

        Raises AgentDutyError only when both the session fetch and the
        single-notification fallback failed.
        """
        try:
            history = self.client.fetch_session(self.session_key)
        except AgentDutyError as e:
            logger.info(f"Session fetch failed ({e}), falling back to notification {notification_id}")
            notification = self.client.fetch_notification(notification_id)
            if not self._initialized and not self._fallback_baseline:
                # No baseline yet: what this notification already has is history
                self._fallback_baseline = True
                latest = SessionHistory(self.session_key, notifications=(notification,)).latest_response_time()
                if latest > self.watermark:
                    self.watermark = latest
                    self.watermarks.advance(latest)
                return False
            return self._deliver(collect_responses_after([notification], self.watermark))

        if not self._initialized:
            self._initialize_from(history)
            return False
        if history is None:
            return False
        return self._deliver(history.responses_after(self.watermark))

    def _deliver(self, responses: list[ResponseWithContext]) -> bool:
        if not responses:
            return False
        for response in responses:
            self.emit(response)
            if response.response.created_at > self.watermark:
                self.watermark = response.response.created_at
        self.watermarks.advance(self.watermark)
        return True
