from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, desc
from sqlalchemy.dialects import postgresql, sqlite
from models.progress import UserProgress
from models.attempt import LessonAttempt
from schemas.progress import CompletionResult, ProgressOut
from services.quiz_engine import earned_xp
from core.exceptions import NotFound, ValidationError
from core.logger import logger
from utils.common import utc_now_iso

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def apply_completion(progress: ProgressOut, lesson_id: str, xp_reward: int,
                     final_score: int, question_count: int) -> tuple[ProgressOut, CompletionResult]:
    """Fold one finished lesson into a progress snapshot.

    Streak goes up on every finish, retries of the same lesson included.
    """
    gained = earned_xp(final_score, question_count, xp_reward)
    completed = list(progress.completed_lesson_ids)
    if lesson_id not in completed:
        completed.append(lesson_id)

    updated = progress.model_copy(update={
        "xp": progress.xp + gained,
        "streak": progress.streak + 1,
        "completed_lesson_ids": completed,
    })
    result = CompletionResult(earned_xp=gained, new_xp=updated.xp, new_streak=updated.streak)
    return updated, result


class ProgressService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, student_id: str, for_update: bool = False) -> Optional[UserProgress]:
        query = select(UserProgress).filter(UserProgress.student_id == student_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _lock_row(self, student_id: str) -> UserProgress:
        """Create the row if missing, then lock it for a read-modify-write.

        The insert is ON CONFLICT DO NOTHING, so concurrent first writers for
        the same student end up waiting on the same locked row.
        """
        insert = _DIALECT_INSERTS[self.db.get_bind().dialect.name]
        await self.db.execute(
            insert(UserProgress)
            .values(student_id=student_id, xp=0, streak=0, completed_lesson_ids=[])
            .on_conflict_do_nothing(index_elements=["student_id"])
        )
        return await self._get_row(student_id, for_update=True)

    async def get_progress(self, student_id: str) -> ProgressOut:
        row = await self._get_row(student_id)
        if not row:
            raise NotFound(f"No progress for student {student_id}")
        return ProgressOut.model_validate(row)

    async def get_own_progress(self, student_id: str) -> ProgressOut:
        """Like get_progress, but a student who never finished a lesson sees zeros."""
        row = await self._get_row(student_id)
        if not row:
            return ProgressOut(student_id=student_id)
        return ProgressOut.model_validate(row)

    async def record_completion(self, student_id: str, lesson_id: str, xp_reward: int,
                                final_score: int, question_count: int,
                                commit: bool = True) -> CompletionResult:
        """Upsert the student's progress row with the result of one finished lesson.

        The row is locked for the read-modify-write. Write errors propagate to the caller.
        """
        row = await self._lock_row(student_id)
        updated, result = apply_completion(
            ProgressOut.model_validate(row), lesson_id, xp_reward, final_score, question_count
        )

        row.xp = updated.xp
        row.streak = updated.streak
        row.completed_lesson_ids = updated.completed_lesson_ids
        row.last_updated = utc_now_iso()

        if commit:
            await self.db.commit()
        logger.info("Progress updated", student_id=student_id, lesson_id=lesson_id,
                    earned_xp=result.earned_xp, xp=result.new_xp, streak=result.new_streak)
        return result

    async def set_user_name(self, student_id: str, user_name: str) -> ProgressOut:
        user_name = (user_name or "").strip()
        if not user_name:
            raise ValidationError("Name must not be empty")
        row = await self._lock_row(student_id)
        row.user_name = user_name[:255]
        await self.db.commit()
        return ProgressOut.model_validate(row)

    async def reset_progress(self, student_id: str) -> bool:
        row = await self._get_row(student_id, for_update=True)
        if not row:
            return False
        row.xp = 0
        row.streak = 0
        row.completed_lesson_ids = []
        row.last_updated = utc_now_iso()
        await self.db.commit()
        logger.info("Progress reset", student_id=student_id)
        return True

    async def remove_student(self, student_id: str) -> bool:
        """Permanently delete a student's progress and attempts."""
        await self.db.execute(delete(LessonAttempt).where(LessonAttempt.student_id == student_id))
        result = await self.db.execute(delete(UserProgress).where(UserProgress.student_id == student_id))
        await self.db.commit()
        success = result.rowcount > 0
        logger.info("Student removed", student_id=student_id, success=success)
        return success

    async def list_progress(self) -> List[ProgressOut]:
        result = await self.db.execute(select(UserProgress))
        return [ProgressOut.model_validate(row) for row in result.scalars().all()]

    async def top_students(self, limit: int = 10) -> List[dict]:
        result = await self.db.execute(
            select(UserProgress).order_by(desc(UserProgress.xp), UserProgress.student_id.asc()).limit(limit)
        )
        return [{
            "rank": i,
            "student_id": row.student_id,
            "name": row.user_name or f"Student {row.student_id}",
            "xp": row.xp,
            "streak": row.streak,
        } for i, row in enumerate(result.scalars().all(), 1)]
