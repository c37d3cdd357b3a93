"""
Local versions of the backend's grading and results procedures
"""
import pytest

from smarttryout.exceptions import BackendError
from smarttryout.extensions import db
from smarttryout.models import Attempt


def answer(backend, attempt_id, question_id, option_id):
    backend.insert('user_answers', [{
        'attempt_id': attempt_id,
        'question_id': question_id,
        'selected_option_id': option_id,
    }])


def test_score_is_percentage_of_points(backend, make_exam, make_attempt):
    exam = make_exam(questions=[(2, 0), (1, 1)])
    attempt_id = make_attempt(exam.id)
    answer(backend, attempt_id, exam.question_ids[0], exam.correct_ids[0])
    answer(backend, attempt_id, exam.question_ids[1], exam.option_ids[1][0])

    data = backend.rpc('submit_exam', {'p_attempt_id': attempt_id})

    assert data == [{'final_score': 66.67}]
    attempt = db.session.get(Attempt, attempt_id)
    assert attempt.status == 'completed'
    assert attempt.score == 66.67
    assert attempt.end_time is not None


def test_unanswered_exam_scores_zero(backend, make_exam, make_attempt):
    exam = make_exam()
    attempt_id = make_attempt(exam.id)

    assert backend.rpc('submit_exam', {'p_attempt_id': attempt_id}) == [{'final_score': 0}]


def test_exam_without_questions_scores_zero(backend, make_exam, make_attempt):
    exam = make_exam(questions=())
    attempt_id = make_attempt(exam.id)

    assert backend.rpc('submit_exam', {'p_attempt_id': attempt_id}) == [{'final_score': 0}]


def test_submit_is_idempotent(backend, make_exam, make_attempt):
    exam = make_exam(questions=[(1, 0)])
    attempt_id = make_attempt(exam.id)
    answer(backend, attempt_id, exam.question_ids[0], exam.correct_ids[0])

    first = backend.rpc('submit_exam', {'p_attempt_id': attempt_id})
    # Changing an answer afterwards does not regrade
    backend.update('user_answers', {'selected_option_id': exam.option_ids[0][1]},
                   eq={'attempt_id': attempt_id})
    second = backend.rpc('submit_exam', {'p_attempt_id': attempt_id})

    assert first == second == [{'final_score': 100.0}]


def test_unknown_procedure(backend):
    with pytest.raises(BackendError) as info:
        backend.rpc('grade_everything', {})
    assert 'grade_everything' in info.value.message


def test_submit_unknown_attempt(backend):
    with pytest.raises(BackendError):
        backend.rpc('submit_exam', {'p_attempt_id': 'missing'})


def test_results_rows(backend, seed, make_exam, make_attempt):
    exam = make_exam()
    make_attempt(exam.id)
    make_attempt(exam.id, user_id=seed.other_student_id, status='completed', score=90.0)

    rows = backend.rpc('get_exam_results', {'p_exam_id': exam.id})

    assert [r['full_name'] for r in rows] == ['Siti', 'Budi']
    assert rows[0]['user_email'] == 'siti@school.id'
    assert rows[1]['score'] is None
    assert set(rows[0]) == {'attempt_id', 'user_id', 'score', 'status', 'start_time',
                            'end_time', 'full_name', 'user_email'}
