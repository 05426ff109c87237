"""
Quiz session state machine.

A session is an immutable QuizState value. Every transition is a plain
function that takes a state and returns a new one (plus a result object for
the caller to act on), so the engine can be tested without a database or a
Redis connection. SessionService is responsible for loading and storing the
state and for persisting attempt/progress side effects.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import Optional, Tuple

from core.exceptions import InvalidLessonState, InvalidState
from utils.common import round_half_up

IN_PROGRESS = "in_progress"
REVIEW = "review"
COMPLETED = "completed"


@dataclass(frozen=True)
class QuestionSnapshot:
    text: str
    options: Tuple[str, ...]
    correct_index: int
    explanation: str = ""
    image_url: Optional[str] = None


@dataclass(frozen=True)
class QuizState:
    session_id: str
    user_id: str
    lesson_id: str
    attempt_id: str
    xp_reward: int
    questions: Tuple[QuestionSnapshot, ...]
    answers: Tuple[Optional[int], ...]
    checked: Tuple[bool, ...]
    pointer: int = 0
    furthest: int = 0
    status: str = IN_PROGRESS

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def score(self) -> int:
        return compute_score(self)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "QuizState":
        questions = tuple(
            QuestionSnapshot(
                text=q["text"],
                options=tuple(q["options"]),
                correct_index=q["correct_index"],
                explanation=q.get("explanation", ""),
                image_url=q.get("image_url"),
            )
            for q in data["questions"]
        )
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            lesson_id=data["lesson_id"],
            attempt_id=data["attempt_id"],
            xp_reward=data["xp_reward"],
            questions=questions,
            answers=tuple(data["answers"]),
            checked=tuple(data["checked"]),
            pointer=data.get("pointer", 0),
            furthest=data.get("furthest", 0),
            status=data.get("status", IN_PROGRESS),
        )


@dataclass(frozen=True)
class CheckOutcome:
    question_index: int
    selected_option: int
    is_correct: bool
    explanation: str
    correct_index: int
    score: int


@dataclass(frozen=True)
class SessionResult:
    lesson_id: str
    attempt_id: str
    final_score: int
    question_count: int
    xp_reward: int
    answers: Tuple[Optional[int], ...] = field(default_factory=tuple)

    @property
    def earned_xp(self) -> int:
        return earned_xp(self.final_score, self.question_count, self.xp_reward)


def earned_xp(final_score: int, question_count: int, xp_reward: int) -> int:
    if question_count <= 0:
        raise InvalidLessonState("Lesson has no questions to score")
    return round_half_up(final_score / question_count * xp_reward)


def compute_score(state: QuizState) -> int:
    """Count of frozen answers that match their question's correct index."""
    return sum(
        1
        for answer, frozen, question in zip(state.answers, state.checked, state.questions)
        if frozen and answer == question.correct_index
    )


def start_lesson(session_id: str, user_id: str, lesson_id: str, attempt_id: str,
                 xp_reward: int, questions) -> QuizState:
    questions = tuple(questions)
    return QuizState(
        session_id=session_id,
        user_id=user_id,
        lesson_id=lesson_id,
        attempt_id=attempt_id,
        xp_reward=xp_reward,
        questions=questions,
        answers=tuple(None for _ in questions),
        checked=tuple(False for _ in questions),
    )


def _require_status(state: QuizState, *allowed: str):
    if state.status not in allowed:
        raise InvalidState(f"Not allowed while the session is {state.status}")


def _set(values: tuple, index: int, value) -> tuple:
    items = list(values)
    items[index] = value
    return tuple(items)


def select_answer(state: QuizState, question_index: int, option_index: int) -> QuizState:
    _require_status(state, IN_PROGRESS)
    if question_index != state.pointer:
        raise InvalidState(f"Question {question_index} is not the current question")
    if state.pointer >= state.question_count:
        raise InvalidState("Lesson has no questions")
    if state.checked[state.pointer]:
        raise InvalidState("Answer already checked")
    question = state.questions[state.pointer]
    if not 0 <= option_index < len(question.options):
        raise InvalidState(f"Option {option_index} does not exist")
    return replace(state, answers=_set(state.answers, state.pointer, option_index))


def check_answer(state: QuizState) -> Tuple[QuizState, CheckOutcome]:
    _require_status(state, IN_PROGRESS)
    if state.pointer >= state.question_count:
        raise InvalidState("Lesson has no questions")
    selected = state.answers[state.pointer]
    if selected is None:
        raise InvalidState("Select an answer before checking")

    question = state.questions[state.pointer]
    new_state = state
    if not state.checked[state.pointer]:
        new_state = replace(state, checked=_set(state.checked, state.pointer, True))

    outcome = CheckOutcome(
        question_index=state.pointer,
        selected_option=selected,
        is_correct=selected == question.correct_index,
        explanation=question.explanation,
        correct_index=question.correct_index,
        score=compute_score(new_state),
    )
    return new_state, outcome


def go_to(state: QuizState, question_index: int) -> QuizState:
    """Jump back (or forward again) to any question already reached."""
    _require_status(state, IN_PROGRESS)
    if not 0 <= question_index <= state.furthest or question_index >= state.question_count:
        raise InvalidState(f"Question {question_index} has not been reached yet")
    return replace(state, pointer=question_index)


def advance(state: QuizState) -> Tuple[QuizState, bool]:
    """Move to the next question; returns (state, done) where done means Review."""
    _require_status(state, IN_PROGRESS)
    if state.question_count == 0:
        return replace(state, status=REVIEW), True
    if not state.checked[state.pointer]:
        raise InvalidState("Check the current answer before moving on")
    if state.pointer < state.question_count - 1:
        nxt = state.pointer + 1
        return replace(state, pointer=nxt, furthest=max(state.furthest, nxt)), False
    return replace(state, status=REVIEW), True


def retry(state: QuizState, attempt_id: str) -> QuizState:
    _require_status(state, REVIEW)
    return replace(
        state,
        attempt_id=attempt_id,
        answers=tuple(None for _ in state.questions),
        checked=tuple(False for _ in state.questions),
        pointer=0,
        furthest=0,
        status=IN_PROGRESS,
    )


def finish(state: QuizState) -> Tuple[QuizState, SessionResult]:
    if state.question_count == 0:
        raise InvalidLessonState("Cannot finish a lesson without questions")
    _require_status(state, REVIEW)
    result = SessionResult(
        lesson_id=state.lesson_id,
        attempt_id=state.attempt_id,
        final_score=compute_score(state),
        question_count=state.question_count,
        xp_reward=state.xp_reward,
        answers=state.answers,
    )
    return replace(state, status=COMPLETED), result


def discard(state: QuizState) -> None:
    _require_status(state, REVIEW)
    return None
