import uuid
from sqlalchemy import Column, Integer, String, JSON, Index
from models.base import Base

class LessonAttempt(Base):
    __tablename__ = "lesson_attempts"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    student_id = Column(String(255), index=True, nullable=False)
    # No FK: attempts outlive deleted lessons and reports skip them
    lesson_id = Column(String(64), index=True, nullable=False)

    # ISO-8601 strings, compared lexicographically to find the latest attempt
    started_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)
    completed_at = Column(String(32), nullable=True)
    score = Column(Integer, nullable=True)

    # [{question_index, selected_option, is_correct}]
    answers = Column(JSON, nullable=False, default=list)

Index("idx_attempts_student_lesson", LessonAttempt.student_id, LessonAttempt.lesson_id)
