import uuid
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.attempt import LessonAttempt
from core.exceptions import NotFound
from core.logger import logger
from utils.common import utc_now_iso

class AttemptService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def start_attempt(self, student_id: str, lesson_id: str, commit: bool = True) -> LessonAttempt:
        now = utc_now_iso()
        attempt = LessonAttempt(
            id=uuid.uuid4().hex,
            student_id=student_id,
            lesson_id=lesson_id,
            started_at=now,
            updated_at=now,
            answers=[],
        )
        self.db.add(attempt)
        if commit:
            await self.db.commit()
        logger.info("Attempt started", student_id=student_id, lesson_id=lesson_id, attempt_id=attempt.id)
        return attempt

    async def get_attempt(self, attempt_id: str, student_id: str) -> LessonAttempt:
        result = await self.db.execute(
            select(LessonAttempt).filter(LessonAttempt.id == attempt_id).with_for_update()
        )
        attempt = result.scalar_one_or_none()
        # Someone else's attempt is reported the same way as a missing one
        if not attempt or attempt.student_id != student_id:
            raise NotFound(f"Attempt {attempt_id} not found")
        return attempt

    async def save_answer(self, attempt_id: str, student_id: str, question_index: int,
                          selected_option: Optional[int], is_correct: bool) -> LessonAttempt:
        """Store one answer, replacing any earlier answer for the same question."""
        attempt = await self.get_attempt(attempt_id, student_id)
        answers = [a for a in (attempt.answers or []) if a.get("question_index") != question_index]
        answers.append({
            "question_index": question_index,
            "selected_option": selected_option,
            "is_correct": bool(is_correct),
        })
        attempt.answers = answers
        attempt.updated_at = utc_now_iso()
        await self.db.commit()
        return attempt

    async def finalize_attempt(self, attempt_id: str, student_id: str, score: int,
                               commit: bool = True) -> LessonAttempt:
        attempt = await self.get_attempt(attempt_id, student_id)
        now = utc_now_iso()
        attempt.score = score
        attempt.completed_at = now
        attempt.updated_at = now
        if commit:
            await self.db.commit()
        return attempt

    async def get_by_student(self, student_id: str) -> List[LessonAttempt]:
        result = await self.db.execute(
            select(LessonAttempt).filter(LessonAttempt.student_id == student_id)
        )
        return list(result.scalars().all())

    async def get_by_lesson(self, lesson_id: str) -> List[LessonAttempt]:
        result = await self.db.execute(
            select(LessonAttempt).filter(LessonAttempt.lesson_id == lesson_id)
        )
        return list(result.scalars().all())
