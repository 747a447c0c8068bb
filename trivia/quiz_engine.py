"""
Quiz engine core logic for the Trivia Quiz Bot.
Handles text decoding, question set building, and timing functionality.
"""
import asyncio
import html
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

from .models import Question

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class SessionLifecycleLogger:
    """Structured logging for session and timer lifecycle events."""

    @staticmethod
    def log_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log session state transitions."""
        logger.info(
            f"Session lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'session_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_deferred_scheduled(name: str, delay: float, replaced: bool) -> None:
        """Log a deferred action being (re)scheduled."""
        logger.debug(
            f"Timer lifecycle: SCHEDULED - {name}, Delay {delay:.3f}s" +
            (" (replaced pending action)" if replaced else ""),
            extra={
                'event_type': 'deferred_scheduled',
                'name': name,
                'delay': delay,
                'replaced': replaced,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_completion(name: str, completion_type: str, duration: float) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.debug(
            f"Timer lifecycle: COMPLETED - {name}, Type {completion_type}, Duration {duration}s",
            extra={
                'event_type': 'timer_completed',
                'name': name,
                'completion_type': completion_type,
                'duration': duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_request_error(session_id: str, operation: str, error: Exception) -> None:
        """Log a failed provider or store request with context."""
        logger.error(
            f"Session lifecycle: ERROR - Session {session_id}, Operation {operation}, "
            f"Type {type(error).__name__}: {error}",
            extra={
                'event_type': 'request_error',
                'session_id': session_id,
                'operation': operation,
                'error_type': type(error).__name__,
                'error_message': str(error),
                'timestamp': time.time()
            }
        )


def decode_string(text: str) -> str:
    """
    Turn provider text with HTML entity escapes into plain text.

    Runs a single unescape pass, so ``&amp;amp;`` becomes ``&amp;``.
    """
    return html.unescape(text)


def calculate_percentage(progress: int, total: int) -> int:
    """
    Percentage of progress through total, floored to an integer.

    Returns 0 when there is no progress yet or nothing to progress through.
    """
    if progress == 0 or total == 0:
        return 0
    return (progress * 100) // total


class QuestionSetBuilder:
    """Builds normalized, shuffled questions from raw provider records."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the builder.

        Args:
            rng: Source of randomness for option shuffling, a fresh Random if None
        """
        self._rng = rng or random.Random()

    def build(self, records: List[Dict[str, Any]]) -> List[Question]:
        """
        Convert raw question records into Question objects.

        Args:
            records: Raw records with question, correct_answer and incorrect_answers

        Returns:
            Questions in the same order as the records
        """
        batch_stamp = time.time_ns()
        questions = []

        for index, record in enumerate(records):
            answer = decode_string(record['correct_answer'])
            options = [decode_string(option) for option in record['incorrect_answers']]
            options.append(answer)
            self._rng.shuffle(options)

            questions.append(Question(
                id=f"{index}-{batch_stamp}",
                question=decode_string(record['question']),
                answer=answer,
                options=options
            ))

        return questions


async def _maybe_await(result: Any) -> Any:
    if asyncio.iscoroutine(result):
        return await result
    return result


class DeferredAction:
    """
    A replaceable scheduled callback.

    Scheduling again before the delay elapses cancels the pending run, so only
    the most recently scheduled callback ever fires.
    """

    def __init__(self, name: str = "deferred_action"):
        self._name = name
        self._task: Optional[asyncio.Task] = None

    def schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        """Run callback after delay seconds, replacing any pending run."""
        replaced = self.cancel()
        SessionLifecycleLogger.log_deferred_scheduled(self._name, delay, replaced)
        self._task = asyncio.create_task(self._run(delay, callback))

    async def _run(self, delay: float, callback: Callable[[], Any]) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            SessionLifecycleLogger.log_timer_completion(self._name, "cancelled", delay)
            raise

        if self._task is asyncio.current_task():
            self._task = None

        SessionLifecycleLogger.log_timer_completion(self._name, "natural_expiry", delay)
        try:
            await _maybe_await(callback())
        except Exception as e:
            logger.error(f"Deferred action {self._name} failed: {e}")
            raise

    def cancel(self) -> bool:
        """
        Cancel the pending run, if any.

        Returns:
            True if a pending run was cancelled
        """
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    @property
    def pending(self) -> bool:
        """Check if a run is scheduled and has not fired yet."""
        return self._task is not None and not self._task.done()


class QuestionTimer:
    """Counts down the time allowed for a single question."""

    def __init__(self, duration: int, tick: float = 1.0, name: str = "question_timer"):
        """
        Initialize the timer.

        Args:
            duration: Number of ticks the player has to answer
            tick: Length of one tick in seconds
            name: Label used in lifecycle logs
        """
        self._duration = duration
        self._tick = tick
        self._name = name
        self._elapsed = 0
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False

    def start(
        self,
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> asyncio.Task:
        """
        Start the countdown as a background task.

        Args:
            update_callback: Called after each tick with elapsed ticks
            completion_callback: Called once when time runs out
        """
        self.cancel()
        self._is_cancelled = False
        self._task = asyncio.create_task(self.run(update_callback, completion_callback))
        return self._task

    async def run(
        self,
        update_callback: Callable[[int], Any],
        completion_callback: Callable[[], Any]
    ) -> None:
        """Run the countdown in the current task."""
        self._elapsed = 0
        try:
            while self._elapsed < self._duration and not self._is_cancelled:
                await asyncio.sleep(self._tick)
                self._elapsed += 1
                await _maybe_await(update_callback(self._elapsed))

            if self._is_cancelled:
                SessionLifecycleLogger.log_timer_completion(self._name, "cancelled", self._duration)
                return

            SessionLifecycleLogger.log_timer_completion(self._name, "natural_expiry", self._duration)
            await _maybe_await(completion_callback())

        except asyncio.CancelledError:
            SessionLifecycleLogger.log_timer_completion(self._name, "asyncio_cancelled", self._duration)
            raise

    def cancel(self) -> None:
        """Stop the countdown without running the completion callback."""
        self._is_cancelled = True
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def elapsed(self) -> int:
        """Get elapsed ticks."""
        return self._elapsed

    @property
    def remaining_time(self) -> int:
        """Get remaining ticks."""
        return max(self._duration - self._elapsed, 0)

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled
