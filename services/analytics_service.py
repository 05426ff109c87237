"""
Instructor-facing analytics.

The build_* functions are pure aggregations over plain records so they can be
unit tested without a database; AnalyticsService only loads the rows. Nothing
here writes. Missing lessons or attempts are left out of a report, never
raised as errors.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from models.attempt import LessonAttempt
from models.lesson import Lesson
from models.progress import UserProgress
from schemas.progress import (
    ClassStats,
    LeaderboardRow,
    OptionCount,
    ProgressOut,
    ReportAnswer,
    ReportRow,
    ResponseDistribution,
)
from utils.common import round_half_up

OPTION_UNAVAILABLE = "option unavailable"
QUESTION_UNAVAILABLE = "question unavailable"
NO_ANSWER = "no answer"


def build_class_stats(progress: Iterable[ProgressOut], total_lessons: int,
                      limit: Optional[int] = None,
                      struggling_threshold: Optional[int] = None) -> ClassStats:
    rows = list(progress)
    threshold = settings.STRUGGLING_XP_THRESHOLD if struggling_threshold is None else struggling_threshold
    total_students = len(rows)
    total_xp = sum(p.xp for p in rows)
    avg_xp = round_half_up(total_xp / total_students) if total_students else 0
    struggling = sum(1 for p in rows if p.xp < threshold)

    # sorted() is stable: equal xp keeps input order
    ranked = sorted(rows, key=lambda p: p.xp, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]

    leaderboard = []
    for rank, p in enumerate(ranked, 1):
        completed = len(set(p.completed_lesson_ids))
        percent = round_half_up(completed / total_lessons * 100) if total_lessons else 0
        leaderboard.append(LeaderboardRow(
            rank=rank,
            student_id=p.student_id,
            user_name=p.user_name,
            xp=p.xp,
            streak=p.streak,
            completed_count=completed,
            progress_percent=percent,
        ))

    return ClassStats(
        total_students=total_students,
        avg_xp=avg_xp,
        struggling_count=struggling,
        total_lessons=total_lessons,
        leaderboard=leaderboard,
    )


def latest_by_key(attempts: Iterable, key) -> Dict:
    """Pick, per key, the attempt with the greatest updated_at string.

    Plain string comparison of the ISO timestamps decides; on equal strings the
    first attempt seen wins.
    """
    latest = {}
    for attempt in attempts:
        k = key(attempt)
        current = latest.get(k)
        if current is None or attempt.updated_at > current.updated_at:
            latest[k] = attempt
    return latest


def _option_text(question: Optional[dict], option: Optional[int]) -> str:
    if option is None:
        return NO_ANSWER
    if question is None:
        return OPTION_UNAVAILABLE
    options = question.get("options") or []
    if 0 <= option < len(options):
        return options[option]
    return OPTION_UNAVAILABLE


def build_student_report(attempts: Iterable, lessons_by_id: Dict[str, Lesson]) -> List[ReportRow]:
    latest = latest_by_key(attempts, key=lambda a: a.lesson_id)
    rows = []
    for lesson_id, attempt in latest.items():
        lesson = lessons_by_id.get(lesson_id)
        if lesson is None:
            continue
        questions = lesson.questions_json or []
        answers = []
        for answer in sorted(attempt.answers or [], key=lambda a: a.get("question_index", 0)):
            index = answer.get("question_index", 0)
            question = questions[index] if 0 <= index < len(questions) else None
            selected = answer.get("selected_option")
            answers.append(ReportAnswer(
                question_index=index,
                question_text=question["text"] if question else QUESTION_UNAVAILABLE,
                selected_option=selected,
                selected_text=_option_text(question, selected),
                correct_text=_option_text(question, question.get("correct_index")) if question else OPTION_UNAVAILABLE,
                is_correct=bool(answer.get("is_correct")),
            ))
        rows.append((lesson.order, lesson.title, ReportRow(
            lesson_id=lesson_id,
            lesson_title=lesson.title,
            attempt_id=attempt.id,
            started_at=attempt.started_at,
            updated_at=attempt.updated_at,
            completed_at=attempt.completed_at,
            score=attempt.score,
            question_count=len(questions),
            answers=answers,
        )))
    rows.sort(key=lambda item: (item[0], item[1]))
    return [row for _, _, row in rows]


def build_response_distribution(attempts: Iterable, lesson: Optional[Lesson], lesson_id: str,
                                question_index: int) -> ResponseDistribution:
    if lesson is None:
        return ResponseDistribution(lesson_id=lesson_id, question_index=question_index,
                                    total_students=0, counts=[])

    questions = lesson.questions_json or []
    question = questions[question_index] if 0 <= question_index < len(questions) else None

    latest = latest_by_key(
        (a for a in attempts if a.lesson_id == lesson_id),
        key=lambda a: a.student_id,
    )
    votes = Counter()
    for attempt in latest.values():
        selected = None
        for answer in attempt.answers or []:
            if answer.get("question_index") == question_index:
                selected = answer.get("selected_option")
        votes[selected] += 1

    counts = []
    if question is not None:
        for i, text in enumerate(question.get("options") or []):
            counts.append(OptionCount(option_index=i, label=text, count=votes.pop(i, 0)))
    for option in sorted(k for k in votes if k is not None):
        counts.append(OptionCount(option_index=option, label=OPTION_UNAVAILABLE, count=votes[option]))
    counts.append(OptionCount(option_index=None, label=NO_ANSWER, count=votes.get(None, 0)))

    return ResponseDistribution(
        lesson_id=lesson_id,
        question_index=question_index,
        question_text=question["text"] if question else None,
        total_students=len(latest),
        counts=counts,
    )


class AnalyticsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _lessons_by_id(self) -> Dict[str, Lesson]:
        result = await self.db.execute(select(Lesson))
        return {lesson.id: lesson for lesson in result.scalars().all()}

    async def class_stats(self, limit: Optional[int] = None) -> ClassStats:
        progress = (await self.db.execute(select(UserProgress))).scalars().all()
        total_lessons = len(await self._lessons_by_id())
        return build_class_stats(
            [ProgressOut.model_validate(p) for p in progress],
            total_lessons,
            limit=limit,
        )

    async def student_report(self, student_id: str) -> List[ReportRow]:
        result = await self.db.execute(select(LessonAttempt).filter(LessonAttempt.student_id == student_id))
        return build_student_report(result.scalars().all(), await self._lessons_by_id())

    async def question_response_distribution(self, lesson_id: str, question_index: int) -> ResponseDistribution:
        lesson = (await self.db.execute(select(Lesson).filter(Lesson.id == lesson_id))).scalar_one_or_none()
        attempts = (await self.db.execute(
            select(LessonAttempt).filter(LessonAttempt.lesson_id == lesson_id)
        )).scalars().all()
        return build_response_distribution(attempts, lesson, lesson_id, question_index)
