from typing import List, Optional

from pydantic import BaseModel


class QuestionView(BaseModel):
    """Current question as shown to the student. Correctness only after checking."""
    index: int
    text: str
    options: List[str]
    image_url: Optional[str] = None
    selected_option: Optional[int] = None
    checked: bool = False
    is_correct: Optional[bool] = None
    correct_index: Optional[int] = None
    explanation: Optional[str] = None


class SessionOut(BaseModel):
    session_id: str
    lesson_id: str
    attempt_id: str
    status: str
    pointer: int
    question_count: int
    score: int
    answers: List[Optional[int]]
    checked: List[bool]
    question: Optional[QuestionView] = None


class CheckResult(BaseModel):
    is_correct: bool
    explanation: str
    correct_index: int
    score: int


class AdvanceResult(BaseModel):
    done: bool
