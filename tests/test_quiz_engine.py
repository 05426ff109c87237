import pytest

from core.exceptions import InvalidLessonState, InvalidState
from services import quiz_engine
from services.quiz_engine import QuestionSnapshot, QuizState, earned_xp


def make_state(correct=(1, 0, 2), xp_reward=90):
    questions = [
        QuestionSnapshot(text=f"Q{i}", options=("A", "B", "C", "D"), correct_index=c, explanation=f"E{i}")
        for i, c in enumerate(correct)
    ]
    return quiz_engine.start_lesson("s1", "student-1", "L1", "a1", xp_reward, questions)


def answer(state, option):
    state = quiz_engine.select_answer(state, state.pointer, option)
    state, outcome = quiz_engine.check_answer(state)
    return state, outcome


def test_start_lesson_initializes_empty_slots():
    state = make_state()
    assert state.status == quiz_engine.IN_PROGRESS
    assert state.pointer == 0
    assert state.answers == (None, None, None)
    assert state.checked == (False, False, False)
    assert state.score == 0


def test_check_correct_answer():
    state = quiz_engine.start_lesson(
        "s1", "u", "L1", "a1", 10,
        [QuestionSnapshot(text="Q", options=("A", "B", "C", "D"), correct_index=2, explanation="because")],
    )
    state = quiz_engine.select_answer(state, 0, 2)
    state, outcome = quiz_engine.check_answer(state)
    assert outcome.is_correct is True
    assert outcome.explanation == "because"
    assert state.score == 1


def test_check_without_selection_is_rejected():
    state = make_state()
    with pytest.raises(InvalidState):
        quiz_engine.check_answer(state)


def test_selection_frozen_after_check():
    state = make_state()
    state, _ = answer(state, 1)
    with pytest.raises(InvalidState):
        quiz_engine.select_answer(state, 0, 3)


def test_check_is_idempotent():
    state = make_state()
    state, first = answer(state, 1)
    again, second = quiz_engine.check_answer(state)
    assert again == state
    assert first.score == second.score == 1


def test_select_only_current_question():
    state = make_state()
    with pytest.raises(InvalidState):
        quiz_engine.select_answer(state, 1, 0)


def test_select_out_of_range_option():
    state = make_state()
    with pytest.raises(InvalidState):
        quiz_engine.select_answer(state, 0, 4)


def test_advance_requires_check():
    state = make_state()
    state = quiz_engine.select_answer(state, 0, 1)
    with pytest.raises(InvalidState):
        quiz_engine.advance(state)


def test_full_run_reaches_review():
    state = make_state()
    state, _ = answer(state, 1)
    state, done = quiz_engine.advance(state)
    assert not done and state.pointer == 1
    state, _ = answer(state, 3)  # wrong
    state, done = quiz_engine.advance(state)
    assert not done
    state, outcome = answer(state, 2)
    assert outcome.score == 2
    state, done = quiz_engine.advance(state)
    assert done
    assert state.status == quiz_engine.REVIEW


def test_score_counts_only_frozen_answers():
    state = make_state()
    state, _ = answer(state, 1)
    state, _ = quiz_engine.advance(state)
    # Selected but not checked yet: not counted
    state = quiz_engine.select_answer(state, 1, 0)
    assert state.score == 1


def test_go_to_restores_previous_answer():
    state = make_state()
    state, _ = answer(state, 1)
    state, _ = quiz_engine.advance(state)
    state = quiz_engine.go_to(state, 0)
    assert state.pointer == 0
    assert state.answers[0] == 1
    assert state.checked[0] is True
    with pytest.raises(InvalidState):
        quiz_engine.select_answer(state, 0, 2)
    state = quiz_engine.go_to(state, 1)
    assert state.checked[1] is False


def test_go_to_unreached_question_rejected():
    state = make_state()
    with pytest.raises(InvalidState):
        quiz_engine.go_to(state, 2)


def test_retry_clears_slots():
    state = make_state(correct=(0,))
    state, _ = answer(state, 0)
    state, _ = quiz_engine.advance(state)
    state = quiz_engine.retry(state, "a2")
    assert state.status == quiz_engine.IN_PROGRESS
    assert state.attempt_id == "a2"
    assert state.answers == (None,)
    assert state.checked == (False,)
    assert state.pointer == 0


def test_retry_only_from_review():
    with pytest.raises(InvalidState):
        quiz_engine.retry(make_state(), "a2")


def test_finish_returns_result():
    state = make_state()
    for option in (1, 0, 3):
        state, _ = answer(state, option)
        state, _ = quiz_engine.advance(state)
    state, result = quiz_engine.finish(state)
    assert state.status == quiz_engine.COMPLETED
    assert result.final_score == 2
    assert result.question_count == 3
    assert result.earned_xp == 60


def test_finish_before_review_rejected():
    with pytest.raises(InvalidState):
        quiz_engine.finish(make_state())


def test_zero_question_lesson_cannot_finish():
    state = quiz_engine.start_lesson("s1", "u", "L0", "a1", 50, [])
    state, done = quiz_engine.advance(state)
    assert done
    with pytest.raises(InvalidLessonState):
        quiz_engine.finish(state)


def test_discard_only_from_review():
    with pytest.raises(InvalidState):
        quiz_engine.discard(make_state())


@pytest.mark.parametrize("score,count,reward,expected", [
    (2, 3, 90, 60),
    (3, 3, 50, 50),
    (0, 3, 50, 0),
    (1, 2, 75, 38),  # 37.5 rounds half up
])
def test_earned_xp(score, count, reward, expected):
    assert earned_xp(score, count, reward) == expected


def test_earned_xp_zero_questions():
    with pytest.raises(InvalidLessonState):
        earned_xp(0, 0, 50)


def test_state_dict_round_trip():
    state = make_state()
    state, _ = answer(state, 1)
    assert QuizState.from_dict(state.to_dict()) == state
