import json
import uuid
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis
from services import quiz_engine
from services.quiz_engine import QuestionSnapshot, QuizState
from services.attempt_service import AttemptService
from services.content_service import ContentService
from services.progress_service import ProgressService
from services.storage_service import BlobStorage
from schemas.progress import CompletionResult
from schemas.session import AdvanceResult, CheckResult, QuestionView, SessionOut
from core.config import settings
from core.exceptions import Conflict, NotFound
from core.logger import logger

SESSION_KEY = "polymerlearn:session:{session_id}"
FINISH_CLAIM_KEY = "polymerlearn:session:{session_id}:finishing"
FINISH_CLAIM_SECONDS = 60


class SessionService:
    """Runs quiz sessions: engine state in Redis, attempts and progress in the database."""

    def __init__(self, db: AsyncSession, redis: Redis, storage: Optional[BlobStorage] = None):
        self.db = db
        self.redis = redis
        self.content = ContentService(db, storage)
        self.attempts = AttemptService(db)
        self.progress = ProgressService(db)

    async def _load(self, session_id: str, user_id: str) -> QuizState:
        raw = await self.redis.get(SESSION_KEY.format(session_id=session_id))
        if not raw:
            raise NotFound("Session not found or expired")
        state = QuizState.from_dict(json.loads(raw))
        if state.user_id != user_id:
            raise NotFound("Session not found or expired")
        return state

    async def _save(self, state: QuizState):
        await self.redis.set(
            SESSION_KEY.format(session_id=state.session_id),
            json.dumps(state.to_dict()),
            ex=settings.SESSION_TTL_SECONDS,
        )

    async def _drop(self, session_id: str):
        await self.redis.delete(SESSION_KEY.format(session_id=session_id))

    async def start_lesson(self, user_id: str, lesson_id: str) -> QuizState:
        lesson = await self.content.get_lesson(lesson_id)
        questions = [
            QuestionSnapshot(
                text=q["text"],
                options=tuple(q["options"]),
                correct_index=q["correct_index"],
                explanation=q.get("explanation", ""),
                image_url=self.content.resolve_image_url(q),
            )
            for q in lesson.questions_json or []
        ]
        attempt = await self.attempts.start_attempt(user_id, lesson.id)
        state = quiz_engine.start_lesson(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            lesson_id=lesson.id,
            attempt_id=attempt.id,
            xp_reward=lesson.xp_reward,
            questions=questions,
        )
        await self._save(state)
        logger.info("Quiz session created", user_id=user_id, session_id=state.session_id, lesson_id=lesson.id)
        return state

    async def get_session(self, user_id: str, session_id: str) -> QuizState:
        return await self._load(session_id, user_id)

    async def select_answer(self, user_id: str, session_id: str, question_index: int, option_index: int) -> QuizState:
        state = await self._load(session_id, user_id)
        state = quiz_engine.select_answer(state, question_index, option_index)
        await self._save(state)
        return state

    async def check_answer(self, user_id: str, session_id: str) -> CheckResult:
        state = await self._load(session_id, user_id)
        already_checked = state.pointer < state.question_count and state.checked[state.pointer]
        state, outcome = quiz_engine.check_answer(state)
        if not already_checked:
            await self.attempts.save_answer(
                state.attempt_id, user_id, outcome.question_index, outcome.selected_option, outcome.is_correct
            )
            await self._save(state)
        return CheckResult(
            is_correct=outcome.is_correct,
            explanation=outcome.explanation,
            correct_index=outcome.correct_index,
            score=outcome.score,
        )

    async def go_to(self, user_id: str, session_id: str, question_index: int) -> QuizState:
        state = await self._load(session_id, user_id)
        state = quiz_engine.go_to(state, question_index)
        await self._save(state)
        return state

    async def advance(self, user_id: str, session_id: str) -> AdvanceResult:
        state = await self._load(session_id, user_id)
        state, done = quiz_engine.advance(state)
        await self._save(state)
        return AdvanceResult(done=done)

    async def retry(self, user_id: str, session_id: str) -> QuizState:
        state = await self._load(session_id, user_id)
        # Validate the transition before creating a new attempt row
        quiz_engine.retry(state, state.attempt_id)
        attempt = await self.attempts.start_attempt(user_id, state.lesson_id)
        state = quiz_engine.retry(state, attempt.id)
        await self._save(state)
        logger.info("Quiz session retried", user_id=user_id, session_id=session_id, attempt_id=attempt.id)
        return state

    async def finish(self, user_id: str, session_id: str) -> CompletionResult:
        """Fold the session into progress, then clear it.

        Progress and the attempt are committed together; the Redis state is only
        removed after that commit, so a failed write leaves the session intact.
        A short-lived claim key keeps two concurrent finishes from both counting.
        """
        claim_key = FINISH_CLAIM_KEY.format(session_id=session_id)
        if not await self.redis.set(claim_key, user_id, nx=True, ex=FINISH_CLAIM_SECONDS):
            raise Conflict("Session is already being finished")
        # Loaded only after claiming, so a finish that already cleared the session is seen as gone
        try:
            state = await self._load(session_id, user_id)
            _, result = quiz_engine.finish(state)
        except Exception:
            await self.redis.delete(claim_key)
            raise
        try:
            completion = await self.progress.record_completion(
                user_id,
                result.lesson_id,
                result.xp_reward,
                result.final_score,
                result.question_count,
                commit=False,
            )
            await self.attempts.finalize_attempt(result.attempt_id, user_id, result.final_score, commit=False)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self.redis.delete(claim_key)
            logger.error("Failed to persist finished session", user_id=user_id, session_id=session_id)
            raise
        await self.redis.delete(SESSION_KEY.format(session_id=session_id), claim_key)
        logger.info("Lesson finished", user_id=user_id, session_id=session_id, lesson_id=result.lesson_id,
                    score=result.final_score, earned_xp=completion.earned_xp)
        return completion

    async def discard(self, user_id: str, session_id: str):
        state = await self._load(session_id, user_id)
        quiz_engine.discard(state)
        await self._drop(session_id)
        logger.info("Quiz session discarded", user_id=user_id, session_id=session_id)

    async def exit(self, user_id: str, session_id: str):
        await self._load(session_id, user_id)
        await self._drop(session_id)
        logger.info("Quiz session exited", user_id=user_id, session_id=session_id)


def session_view(state: QuizState) -> SessionOut:
    question = None
    if state.status == quiz_engine.IN_PROGRESS and state.pointer < state.question_count:
        q = state.questions[state.pointer]
        checked = state.checked[state.pointer]
        selected = state.answers[state.pointer]
        question = QuestionView(
            index=state.pointer,
            text=q.text,
            options=list(q.options),
            image_url=q.image_url,
            selected_option=selected,
            checked=checked,
            is_correct=(selected == q.correct_index) if checked else None,
            correct_index=q.correct_index if checked else None,
            explanation=q.explanation if checked else None,
        )
    return SessionOut(
        session_id=state.session_id,
        lesson_id=state.lesson_id,
        attempt_id=state.attempt_id,
        status=state.status,
        pointer=state.pointer,
        question_count=state.question_count,
        score=state.score,
        answers=list(state.answers),
        checked=list(state.checked),
        question=question,
    )
