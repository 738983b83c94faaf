"""
Quiz engine tests: grading, the open-attempt invariant and the completion
cascade.
"""
import pytest
from sqlalchemy.exc import IntegrityError

from kaderlearn.core.exceptions import ConflictError, NotFoundError
from kaderlearn.models import (
    ModuleStatus,
    QuizAttempt,
    UserModuleProgress,
    UserPoinProgress,
    UserSubMaterialProgress,
)
from kaderlearn.services.quiz_engine import QuizEngine
from kaderlearn.services.progress_aggregator import ProgressAggregator

from tests.conftest import make_quiz


def answers_for(quiz, picks):
    return [
        {"question_id": question.id, "selected_option_index": pick}
        for question, pick in zip(quiz.questions, picks)
    ]


@pytest.mark.unit
class TestScoring:
    def test_three_of_four_passes_at_70(self, db_session, learner, content):
        quiz = content.final_quiz
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [0, 1, 2, 0]))

        assert result.correct_answers == 3
        assert result.total_questions == 4
        assert result.score == 75.0
        assert result.passed is True
        assert result.passing_score == 70

    def test_two_of_four_fails_at_70(self, db_session, learner, content):
        quiz = content.final_quiz
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [0, 1, 0, 0]))

        assert result.score == 50.0
        assert result.passed is False

    def test_unanswered_questions_count_wrong(self, db_session, learner, content):
        quiz = content.final_quiz
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [0]))
        assert result.score == 25.0

    def test_unknown_question_is_wrong_without_answer_key(self, db_session, learner, content):
        quiz = content.final_quiz
        answers = answers_for(quiz, [0, 1, 2]) + [{"question_id": "nope", "selected_option_index": 0}]
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers)

        assert result.correct_answers == 3
        unknown = result.answers[-1]
        assert unknown["is_correct"] is False
        assert unknown["correct_answer_index"] is None

    def test_quiz_without_questions_scores_zero(self, db_session, learner, content):
        empty = make_quiz(db_session, content.module, correct_indexes=(), passing_score=0, title="Kosong")
        result = QuizEngine(db_session).submit(learner.id, empty.id, [])

        assert result.score == 0
        assert result.total_questions == 0
        assert result.passed is True

    def test_score_rounded_to_two_decimals(self, db_session, learner, content):
        quiz = make_quiz(db_session, content.module, correct_indexes=(0, 0, 0), title="Tiga Soal")
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [0, 1, 1]))
        assert result.score == 33.33

    def test_submit_always_inserts_completed_attempt(self, db_session, learner, content):
        engine = QuizEngine(db_session)
        quiz = content.final_quiz
        engine.start(learner.id, quiz.id)
        engine.submit(learner.id, quiz.id, answers_for(quiz, [0, 1, 2, 3]))
        engine.submit(learner.id, quiz.id, answers_for(quiz, [0, 1, 2, 3]))

        attempts = db_session.query(QuizAttempt).filter_by(user_id=learner.id, quiz_id=quiz.id).all()
        assert len(attempts) == 3
        assert sum(1 for attempt in attempts if attempt.completed_at is None) == 1

    def test_unknown_quiz(self, db_session, learner):
        with pytest.raises(NotFoundError):
            QuizEngine(db_session).submit(learner.id, "missing", [])


@pytest.mark.unit
class TestStart:
    def test_second_start_resumes_open_attempt(self, db_session, learner, content):
        engine = QuizEngine(db_session)
        first = engine.start(learner.id, content.quiz_a.id)
        second = engine.start(learner.id, content.quiz_a.id)

        assert first.is_existing is False
        assert second.is_existing is True
        assert second.attempt_id == first.attempt_id
        assert first.total_questions == 2

    def test_unpublished_quiz_conflicts(self, db_session, learner, content):
        draft = make_quiz(db_session, content.module, published=False, title="Draft")
        with pytest.raises(ConflictError) as exc_info:
            QuizEngine(db_session).start(learner.id, draft.id)
        assert exc_info.value.code == "QUIZ_NOT_PUBLISHED"

    def test_index_rejects_second_open_attempt(self, db_session, learner, content):
        db_session.add(QuizAttempt(user_id=learner.id, quiz_id=content.quiz_a.id))
        db_session.commit()

        db_session.add(QuizAttempt(user_id=learner.id, quiz_id=content.quiz_a.id))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_racing_start_resolves_to_existing_attempt(self, db_session, learner, content, monkeypatch):
        winner = QuizAttempt(user_id=learner.id, quiz_id=content.quiz_a.id)
        db_session.add(winner)
        db_session.commit()

        real_open_attempt = QuizEngine._open_attempt
        calls = []

        def open_attempt_missing_first(self, user_id, quiz_id):
            calls.append(quiz_id)
            if len(calls) == 1:
                return None
            return real_open_attempt(self, user_id, quiz_id)

        monkeypatch.setattr(QuizEngine, "_open_attempt", open_attempt_missing_first)
        result = QuizEngine(db_session).start(learner.id, content.quiz_a.id)

        assert result.is_existing is True
        assert result.attempt_id == winner.id
        assert db_session.query(QuizAttempt).filter_by(user_id=learner.id).count() == 1


@pytest.mark.unit
class TestCompletionCascade:
    def test_passing_sub_material_quiz_completes_and_unlocks(self, db_session, learner, content):
        quiz = content.quiz_a
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [1, 2]))
        assert result.passed is True

        sub_a = db_session.query(UserSubMaterialProgress).filter_by(
            user_id=learner.id, sub_material_id=content.sub_a.id
        ).one()
        sub_b = db_session.query(UserSubMaterialProgress).filter_by(
            user_id=learner.id, sub_material_id=content.sub_b.id
        ).one()
        module = db_session.query(UserModuleProgress).filter_by(
            user_id=learner.id, module_id=content.module.id
        ).one()
        poins = db_session.query(UserPoinProgress).filter_by(user_id=learner.id, is_completed=True).count()

        assert sub_a.is_completed is True
        assert sub_a.progress_percent == 100
        assert sub_b.is_unlocked is True
        assert sub_b.is_completed is False
        assert module.progress_percent == 50
        assert module.status == ModuleStatus.IN_PROGRESS.value
        assert poins == len(content.poins_a)

    def test_failing_quiz_cascades_nothing(self, db_session, learner, content):
        quiz = content.quiz_a
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [0, 0]))

        assert result.passed is False
        assert db_session.query(UserSubMaterialProgress).filter_by(user_id=learner.id).count() == 0
        assert db_session.query(UserModuleProgress).filter_by(user_id=learner.id).count() == 0

    def test_cascade_failure_keeps_attempt(self, db_session, learner, content, monkeypatch):
        def broken(self, user_id, module_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(ProgressAggregator, "update_module_progress", broken)
        quiz = content.quiz_a
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers_for(quiz, [1, 2]))

        assert result.passed is True
        assert db_session.query(QuizAttempt).filter_by(id=result.attempt_id).one().passed is True
        assert db_session.query(UserSubMaterialProgress).filter_by(user_id=learner.id).count() == 0
        assert db_session.query(UserPoinProgress).filter_by(user_id=learner.id).count() == 0


@pytest.mark.unit
class TestRepeatedAnswers:
    def test_repeated_answer_counts_once(self, db_session, learner, content):
        quiz = content.final_quiz
        first = quiz.questions[0]
        answers = [{"question_id": first.id, "selected_option_index": 0}] * 3
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers)

        assert result.correct_answers == 1
        assert result.score == 25.0
        assert result.passed is False
        assert len(result.answers) == 1

    def test_many_repeats_stay_within_range(self, db_session, learner, content):
        quiz = content.final_quiz
        answers = answers_for(quiz, [0, 1, 2, 3]) * 2
        result = QuizEngine(db_session).submit(learner.id, quiz.id, answers)

        assert result.score == 100.0
        stored = db_session.query(QuizAttempt).filter_by(id=result.attempt_id).one()
        assert stored.correct_answers == 4
        assert stored.score == 100.0
