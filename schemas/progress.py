"""
Progress and analytics schemas.

Read models returned by the progress and analytics services.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: str
    user_name: Optional[str] = None
    xp: int = 0
    streak: int = 0
    completed_lesson_ids: List[str] = Field(default_factory=list)
    last_updated: Optional[str] = None


class CompletionResult(BaseModel):
    earned_xp: int
    new_xp: int
    new_streak: int


class LeaderboardRow(BaseModel):
    rank: int
    student_id: str
    user_name: Optional[str] = None
    xp: int
    streak: int
    completed_count: int
    progress_percent: int


class ClassStats(BaseModel):
    total_students: int
    avg_xp: int
    struggling_count: int
    total_lessons: int
    leaderboard: List[LeaderboardRow]


class ReportAnswer(BaseModel):
    question_index: int
    question_text: str
    selected_option: Optional[int] = None
    selected_text: str
    correct_text: str
    is_correct: bool


class ReportRow(BaseModel):
    lesson_id: str
    lesson_title: str
    attempt_id: str
    started_at: str
    updated_at: str
    completed_at: Optional[str] = None
    score: Optional[int] = None
    question_count: int
    answers: List[ReportAnswer]


class OptionCount(BaseModel):
    option_index: Optional[int] = None
    label: str
    count: int


class ResponseDistribution(BaseModel):
    lesson_id: str
    question_index: int
    question_text: Optional[str] = None
    total_students: int
    counts: List[OptionCount]
