"""
Quiz session controller for the Trivia Quiz Bot.
Owns one quiz session: question loading, answer intake, scoring and game end.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional, Set

from .data_manager import TriviaDataManager
from .error_channel import TransientErrorChannel
from .models import (
    AnswerRecord, Category, DEFAULT_CATEGORY_LABEL, QuizOptions, QuizSession,
    SavedScore, Score
)
from .quiz_engine import (
    DeferredAction, QuestionSetBuilder, SessionLifecycleLogger, calculate_percentage
)
from .score_store import ScoreStore


class SessionState(Enum):
    """Enumeration of possible quiz session states."""
    IDLE = "idle"
    LOADING_QUESTIONS = "loading_questions"
    QUIZ_IN_PROGRESS = "quiz_in_progress"
    SCORING_PAUSE = "scoring_pause"
    GAME_ENDED = "game_ended"


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class InvalidSessionStateError(QuizControllerError):
    """Raised when session is in an invalid state for the requested operation."""
    pass


POINTS_PER_CORRECT_ANSWER = 100

CATEGORIES_ERROR_MESSAGE = "🙁 Error loading categories from the API. Please try again later."
QUESTIONS_ERROR_MESSAGE = "🙁 Error loading questions from the API. Please try again later."
NO_QUESTIONS_MESSAGE = "🙁 No questions found with the selected options. Please try again!"
MISSING_NAME_MESSAGE = "Please enter your name."
NO_SCORE_MESSAGE = "You didn't get a score! 😥"
GAME_NOT_ENDED_MESSAGE = "Finish the quiz before saving your score."
SAVE_FAILED_MESSAGE = "Failed to save score."

Listener = Callable[[str, QuizSession], Any]


class QuizController:
    """
    Orchestrates a single quiz session.

    The controller is the only writer of its QuizSession. Front-ends call its
    operations and observe changes through listeners registered with
    add_listener, which receive an event name and the session.
    """

    def __init__(
        self,
        data_manager: TriviaDataManager,
        score_store: Optional[ScoreStore] = None,
        builder: Optional[QuestionSetBuilder] = None,
        scoring_delay: float = 1.5,
        error_timeout: float = TransientErrorChannel.DEFAULT_TIMEOUT,
        session_id: str = "default"
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Client for the category and question provider
            score_store: Sink for finished-game scores
            builder: Question set builder, a default one if None
            scoring_delay: Quiet period in seconds between an answer and scoring
            error_timeout: Seconds a transient error stays visible
            session_id: Label used in lifecycle logs
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.score_store = score_store
        self.builder = builder or QuestionSetBuilder()
        self.scoring_delay = scoring_delay
        self.session_id = session_id

        self.session = QuizSession()
        self.categories: List[Category] = []
        self.errors = TransientErrorChannel(error_timeout, on_change=self._on_error_change)

        self._scoring = DeferredAction(f"scoring:{session_id}")
        self._category_request: Optional[asyncio.Task] = None
        self._question_request: Optional[asyncio.Task] = None
        self._started = False
        self._listeners: List[Listener] = []
        self._listener_tasks: Set[asyncio.Task] = set()
        self._last_state = SessionState.IDLE

    # ----- observation -----

    @property
    def state(self) -> SessionState:
        """Current state, derived from the session flags."""
        session = self.session
        if session.loading_questions:
            return SessionState.LOADING_QUESTIONS
        if session.game_ended:
            return SessionState.GAME_ENDED
        if session.quiz_in_progress:
            if session.score.pending:
                return SessionState.SCORING_PAUSE
            return SessionState.QUIZ_IN_PROGRESS
        return SessionState.IDLE

    @property
    def error(self) -> Optional[str]:
        """Get the visible transient error, if any."""
        return self.errors.message

    @property
    def percentage(self) -> int:
        """Progress through the question bank as a floored percentage."""
        return calculate_percentage(self.session.question_num, self.session.total_questions)

    @property
    def scoring_pending(self) -> bool:
        return self._scoring.pending

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, self.session)
            except Exception as e:
                self.logger.error(f"Listener failed on {event} for session {self.session_id}: {e}")
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._listener_tasks.add(task)
                task.add_done_callback(self._listener_tasks.discard)

    def _transition(self, reason: str) -> None:
        new_state = self.state
        if new_state != self._last_state:
            SessionLifecycleLogger.log_state_transition(
                self.session_id, self._last_state.value, new_state.value, reason
            )
            self._last_state = new_state

    def _on_error_change(self, message: Optional[str]) -> None:
        self._emit("error" if message is not None else "error_cleared")

    def _raise_error(self, message: str) -> None:
        self.errors.set(message)

    # ----- lifecycle -----

    async def startup(self) -> None:
        """
        Load the category list on first activation.

        A cancelled request leaves the session untouched. Any other failure
        clears the loading flag and raises a transient error.
        """
        if self._started:
            return
        self._started = True

        self.session.loading_categories = True
        request = asyncio.ensure_future(self.data_manager.fetch_categories())
        self._category_request = request

        try:
            categories = await request
        except asyncio.CancelledError:
            self.logger.debug(f"Category request cancelled for session {self.session_id}")
            return
        except Exception as e:
            SessionLifecycleLogger.log_request_error(self.session_id, "load_categories", e)
            self.session.loading_categories = False
            self._raise_error(CATEGORIES_ERROR_MESSAGE)
            return
        finally:
            if self._category_request is request:
                self._category_request = None

        self.categories = sorted(categories, key=lambda category: category.name)
        self.session.loading_categories = False
        self.logger.info(f"Loaded {len(self.categories)} categories for session {self.session_id}")
        self._emit("categories")

    def close(self) -> None:
        """Tear the session down, cancelling in-flight requests and timers."""
        for request in (self._category_request, self._question_request):
            if request is not None and not request.done():
                request.cancel()
        self._category_request = None
        self._question_request = None
        self._scoring.cancel()
        self.errors.close()
        self._listeners.clear()
        self.logger.info(f"Session {self.session_id} closed")

    # ----- quiz flow -----

    async def submit(self, options: QuizOptions, with_timer: bool = False) -> bool:
        """
        Start a new quiz with the given options.

        Args:
            options: Quiz options sent to the question provider
            with_timer: Whether questions are answered against a countdown

        Returns:
            True if a quiz is now in progress, False otherwise
        """
        self.reset()

        session = self.session
        session.amount = options.amount
        session.category = options.category
        session.with_timer = with_timer

        if options.category is not None:
            session.current_category = self._category_name(options.category)

        session.loading_questions = True
        self._transition("submit")

        previous = self._question_request
        if previous is not None and not previous.done():
            self.logger.info(f"Cancelling superseded question request for session {self.session_id}")
            previous.cancel()

        request = asyncio.ensure_future(self.data_manager.fetch_questions(options))
        self._question_request = request

        try:
            records = await request
        except asyncio.CancelledError:
            if self._question_request is not request:
                self.logger.debug(f"Superseded submit returned for session {self.session_id}")
                return False
            self._question_request = None
            session.loading_questions = False
            raise
        except Exception as e:
            if self._question_request is not request:
                return False
            self._question_request = None
            SessionLifecycleLogger.log_request_error(self.session_id, "load_questions", e)
            session.loading_questions = False
            self._raise_error(QUESTIONS_ERROR_MESSAGE)
            self._transition("question request failed")
            return False

        if self._question_request is not request:
            self.logger.debug(f"Discarding stale question batch for session {self.session_id}")
            return False
        self._question_request = None

        if not records:
            session.loading_questions = False
            self._raise_error(NO_QUESTIONS_MESSAGE)
            self._transition("no questions found")
            return False

        self._populate_bank(self.builder.build(records))
        session.quiz_in_progress = True
        session.loading_questions = False

        self.logger.info(
            f"Quiz started for session {self.session_id}: "
            f"category='{session.current_category}', questions={session.total_questions}"
        )
        self._transition("questions loaded")
        self._emit("question")
        return True

    def _category_name(self, category_id: int) -> str:
        for category in self.categories:
            if category.id == int(category_id):
                return category.name
        self.logger.warning(
            f"Category {category_id} not in loaded categories, using '{DEFAULT_CATEGORY_LABEL}'"
        )
        return DEFAULT_CATEGORY_LABEL

    def _populate_bank(self, questions) -> None:
        session = self.session
        session.questions_bank = list(questions)
        session.total_questions = len(session.questions_bank)
        session.current_question = session.questions_bank[0] if session.questions_bank else None
        session.question_num = 1

    def record_answer(self, answer: Optional[AnswerRecord]) -> bool:
        """
        Buffer an answer and schedule scoring.

        Args:
            answer: The answer outcome, or None for a skipped or timed out question

        Returns:
            True if the answer was accepted
        """
        session = self.session

        if not session.quiz_in_progress or session.game_ended:
            self.logger.warning(f"Answer ignored for session {self.session_id}: no quiz in progress")
            return False

        if len(session.answers) >= session.total_questions:
            self.logger.warning(f"Answer ignored for session {self.session_id}: all questions answered")
            return False

        session.answers.append(answer)
        session.score = Score.pending_score(session.score)
        self._transition("answer recorded")
        self._emit("score")

        self._scoring.schedule(self.scoring_delay, self._apply_scoring)
        return True

    @staticmethod
    def compute_score(answers: List[Optional[AnswerRecord]]) -> int:
        """Score for a list of answers; skipped answers count as wrong."""
        correct = sum(1 for answer in answers if answer is not None and answer.is_correct_answer)
        return POINTS_PER_CORRECT_ANSWER * correct

    def _apply_scoring(self) -> None:
        session = self.session
        session.score = Score(self.compute_score(session.answers))
        self._emit("score")

        # Answers merged by the debounce may already cover the last question
        if session.total_questions and len(session.answers) >= session.total_questions:
            session.question_num = session.total_questions
            session.current_question = session.questions_bank[-1]
            self._end_game()
        elif session.question_num < session.total_questions:
            session.current_question = session.questions_bank[session.question_num]
            session.question_num += 1
            self._transition("next question")
            self._emit("question")
        elif session.question_num == session.total_questions:
            self._end_game()

    def _end_game(self) -> None:
        session = self.session
        session.game_ended = True
        self.logger.info(
            f"Game ended for session {self.session_id} with score {session.score.value}"
        )
        self._transition("last question scored")
        self._emit("game_ended")

    def set_timer(self, elapsed: int) -> None:
        """Record the elapsed time reported by the question timer."""
        self.session.timer = elapsed

    def reset(self) -> None:
        """Return the session to its idle defaults."""
        self._scoring.cancel()

        session = self.session
        session.timer = 0
        session.questions_bank = []
        session.current_category = DEFAULT_CATEGORY_LABEL
        session.current_question = None
        session.question_num = 0
        session.total_questions = 0
        session.answers = []
        session.score = Score()
        session.quiz_in_progress = False
        session.game_ended = False

        self._transition("reset")
        self._emit("reset")

    def return_to_leaderboard(self) -> None:
        """Leave the end-of-game screen, abandoning any quiz still loading."""
        request, self._question_request = self._question_request, None
        if request is not None and not request.done():
            self.logger.info(f"Cancelling question request for session {self.session_id}")
            request.cancel()
        self.session.loading_questions = False
        self.reset()

    # ----- persistence -----

    async def save_score(self, player_name: str) -> bool:
        """
        Save the finished game's score and reset the session.

        Args:
            player_name: Name shown on the leaderboard

        Returns:
            True if the score was stored
        """
        session = self.session

        if not session.game_ended:
            self._raise_error(GAME_NOT_ENDED_MESSAGE)
            return False

        if not player_name or not player_name.strip():
            self._raise_error(MISSING_NAME_MESSAGE)
            return False

        if not session.score.value:
            self._raise_error(NO_SCORE_MESSAGE)
            return False

        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        entry = SavedScore(
            name=player_name.strip(),
            score=session.score.value,
            category=session.current_category,
            timestamp=timestamp.replace("+00:00", "Z")
        )

        try:
            if self.score_store is None:
                raise InvalidSessionStateError("No score store configured")
            await self.score_store.push(entry)
        except Exception as e:
            SessionLifecycleLogger.log_request_error(self.session_id, "save_score", e)
            self._raise_error(SAVE_FAILED_MESSAGE)
            return False

        self.logger.info(f"Score {entry.score} saved for {entry.name} in session {self.session_id}")
        self.reset()
        return True
