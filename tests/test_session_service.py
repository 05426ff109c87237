import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from core.exceptions import Conflict, InvalidLessonState, InvalidState, NotFound
from models.attempt import LessonAttempt
from services.content_service import ContentService
from services.progress_service import ProgressService
from services.session_service import FINISH_CLAIM_KEY, SESSION_KEY, SessionService, session_view


@pytest.fixture
async def lesson(db, storage, lesson_payload):
    return await ContentService(db, storage).create_lesson(lesson_payload, lesson_id="L1")


@pytest.fixture
def service(db, redis, storage):
    return SessionService(db, redis, storage)


async def play(service, user_id, session_id, options):
    for i, option in enumerate(options):
        await service.select_answer(user_id, session_id, i, option)
        await service.check_answer(user_id, session_id)
        await service.advance(user_id, session_id)


async def test_start_lesson_stores_state_and_attempt(service, redis, db, lesson):
    state = await service.start_lesson("s1", lesson.id)
    raw = await redis.get(SESSION_KEY.format(session_id=state.session_id))
    assert json.loads(raw)["lesson_id"] == "L1"
    assert await redis.ttl(SESSION_KEY.format(session_id=state.session_id)) > 0

    attempt = await db.get(LessonAttempt, state.attempt_id)
    assert attempt.student_id == "s1"
    assert attempt.started_at == attempt.updated_at
    assert attempt.answers == []


async def test_start_unknown_lesson(service):
    with pytest.raises(NotFound):
        await service.start_lesson("s1", "missing")


async def test_two_of_three_correct_earns_sixty(service, lesson):
    state = await service.start_lesson("s1", lesson.id)
    await play(service, "s1", state.session_id, [1, 0, 3])
    result = await service.finish("s1", state.session_id)
    assert result.earned_xp == 60
    assert result.new_xp == 60
    assert result.new_streak == 1


async def test_check_answer_persists_to_attempt(service, db, lesson):
    state = await service.start_lesson("s1", lesson.id)
    await service.select_answer("s1", state.session_id, 0, 3)
    check = await service.check_answer("s1", state.session_id)
    assert check.is_correct is False
    assert check.correct_index == 1
    assert check.score == 0

    attempt = await db.get(LessonAttempt, state.attempt_id)
    assert attempt.answers == [{"question_index": 0, "selected_option": 3, "is_correct": False}]


async def test_check_without_selection(service, lesson):
    state = await service.start_lesson("s1", lesson.id)
    with pytest.raises(InvalidState):
        await service.check_answer("s1", state.session_id)


async def test_session_hidden_from_other_students(service, lesson):
    state = await service.start_lesson("s1", lesson.id)
    with pytest.raises(NotFound):
        await service.get_session("s2", state.session_id)


async def test_finish_updates_progress_and_clears_session(service, db, redis, lesson):
    await ProgressService(db).record_completion("s1", "other", 10, 1, 1)
    state = await service.start_lesson("s1", lesson.id)
    await play(service, "s1", state.session_id, [1, 0, 2])
    result = await service.finish("s1", state.session_id)

    assert result.earned_xp == 90
    progress = await ProgressService(db).get_progress("s1")
    assert progress.xp == 100
    assert progress.streak == 2
    assert progress.completed_lesson_ids == ["other", "L1"]

    attempt = await db.get(LessonAttempt, state.attempt_id)
    assert attempt.score == 3
    assert attempt.completed_at is not None
    assert await redis.get(SESSION_KEY.format(session_id=state.session_id)) is None


async def test_failed_progress_write_keeps_session(service, redis, lesson):
    state = await service.start_lesson("s1", lesson.id)
    await play(service, "s1", state.session_id, [1, 0, 2])
    service.progress.record_completion = AsyncMock(side_effect=RuntimeError("db down"))

    with pytest.raises(RuntimeError):
        await service.finish("s1", state.session_id)

    kept = await service.get_session("s1", state.session_id)
    assert kept.status == "review"
    assert await redis.get(FINISH_CLAIM_KEY.format(session_id=state.session_id)) is None

    del service.progress.record_completion
    result = await service.finish("s1", state.session_id)
    assert result.earned_xp == 90


async def test_retry_starts_new_attempt(service, lesson):
    state = await service.start_lesson("s1", lesson.id)
    await play(service, "s1", state.session_id, [0, 0, 0])
    retried = await service.retry("s1", state.session_id)
    assert retried.attempt_id != state.attempt_id
    assert retried.answers == (None, None, None)
    assert retried.status == "in_progress"


async def test_repeat_completion_keeps_single_lesson_id(service, db, lesson):
    for _ in range(2):
        state = await service.start_lesson("s1", lesson.id)
        await play(service, "s1", state.session_id, [1, 0, 2])
        await service.finish("s1", state.session_id)
    progress = await ProgressService(db).get_progress("s1")
    assert progress.completed_lesson_ids == ["L1"]
    assert progress.streak == 2
    assert progress.xp == 180


async def test_zero_question_lesson_finish(service, db, storage, lesson_payload):
    empty = await ContentService(db, storage).create_lesson(dict(lesson_payload, questions=[]))
    state = await service.start_lesson("s1", empty.id)
    done = await service.advance("s1", state.session_id)
    assert done.done is True
    with pytest.raises(InvalidLessonState):
        await service.finish("s1", state.session_id)


async def test_discard_and_exit(service, redis, db, lesson):
    state = await service.start_lesson("s1", lesson.id)
    with pytest.raises(InvalidState):
        await service.discard("s1", state.session_id)
    await play(service, "s1", state.session_id, [1, 0, 2])
    await service.discard("s1", state.session_id)
    with pytest.raises(NotFound):
        await service.get_session("s1", state.session_id)
    assert (await ProgressService(db).get_own_progress("s1")).xp == 0

    state = await service.start_lesson("s1", lesson.id)
    await service.exit("s1", state.session_id)
    assert await redis.get(SESSION_KEY.format(session_id=state.session_id)) is None


async def test_session_view_hides_answer_until_checked(service, lesson):
    state = await service.start_lesson("s1", lesson.id)
    state = await service.select_answer("s1", state.session_id, 0, 2)
    view = session_view(state)
    assert view.question.selected_option == 2
    assert view.question.correct_index is None
    assert view.question.explanation is None

    await service.check_answer("s1", state.session_id)
    view = session_view(await service.get_session("s1", state.session_id))
    assert view.question.checked is True
    assert view.question.correct_index == 1
    assert view.question.is_correct is False


async def test_concurrent_finish_counts_once(session_factory, redis, storage, db, lesson):
    first = SessionService(db, redis, storage)
    state = await first.start_lesson("s1", lesson.id)
    await play(first, "s1", state.session_id, [1, 0, 2])

    async def finish_in_own_session():
        async with session_factory() as session:
            return await SessionService(session, redis, storage).finish("s1", state.session_id)

    results = await asyncio.gather(finish_in_own_session(), finish_in_own_session(), return_exceptions=True)
    completions = [r for r in results if not isinstance(r, Exception)]
    assert len(completions) == 1
    assert all(isinstance(r, (Conflict, NotFound)) for r in results if isinstance(r, Exception))

    progress = await ProgressService(db).get_progress("s1")
    assert progress.xp == 90
    assert progress.streak == 1


async def test_finish_refused_while_claimed(service, redis, lesson):
    state = await service.start_lesson("s1", lesson.id)
    await play(service, "s1", state.session_id, [1, 0, 2])
    await redis.set(FINISH_CLAIM_KEY.format(session_id=state.session_id), "s1")

    with pytest.raises(Conflict):
        await service.finish("s1", state.session_id)
    assert (await service.get_session("s1", state.session_id)).status == "review"
