"""
Core data models for the Trivia Quiz Bot.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Category:
    """A trivia category as returned by the category provider."""
    id: int
    name: str


@dataclass(frozen=True)
class Question:
    """Represents a single normalized quiz question."""
    id: str
    question: str
    answer: str
    options: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AnswerRecord:
    """Outcome of a single answered question."""
    is_correct_answer: bool


@dataclass(frozen=True)
class Score:
    """
    Session score.

    A pending score keeps the last computed value but flags it as stale
    while a recomputation is scheduled.
    """
    value: int = 0
    pending: bool = False

    @classmethod
    def pending_score(cls, previous: Optional["Score"] = None) -> "Score":
        return cls(value=previous.value if previous else 0, pending=True)

    def __str__(self) -> str:
        return "?" if self.pending else str(self.value)


@dataclass
class QuizOptions:
    """Options a player can choose before starting a quiz."""
    amount: str = "5"
    category: Optional[int] = None
    difficulty: Optional[str] = None
    type: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        """Query parameters for the question provider, unset filters omitted."""
        params: Dict[str, Any] = {"amount": self.amount}
        if self.category is not None:
            params["category"] = self.category
        if self.difficulty:
            params["difficulty"] = self.difficulty
        if self.type:
            params["type"] = self.type
        return params


DEFAULT_CATEGORY_LABEL = "General Knowledge"


@dataclass
class QuizSession:
    """Mutable state of one quiz session, owned by a QuizController."""
    amount: str = "5"
    category: Optional[int] = None
    with_timer: bool = False
    timer: int = 0
    questions_bank: List[Question] = field(default_factory=list)
    current_category: str = DEFAULT_CATEGORY_LABEL
    current_question: Optional[Question] = None
    question_num: int = 0
    total_questions: int = 0
    answers: List[Optional[AnswerRecord]] = field(default_factory=list)
    score: Score = field(default_factory=Score)
    quiz_in_progress: bool = False
    game_ended: bool = False
    loading_categories: bool = False
    loading_questions: bool = False


@dataclass(frozen=True)
class SavedScore:
    """A leaderboard entry written to the score store."""
    name: str
    score: int
    category: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "score": self.score,
            "category": self.category,
            "timestamp": self.timestamp,
        }
