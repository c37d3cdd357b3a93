"""
Stand-in Remote Procedures
Local versions of the database functions the hosted backend exposes
(submit_exam, reset_exam_attempt, get_exam_results). They run on the
backend side of the Backend interface; the application only sees rpc().
"""
import logging

from smarttryout.extensions import db
from smarttryout.models import Answer, Attempt, Option, Profile, Question, User
from smarttryout.models.base import now_utc

logger = logging.getLogger(__name__)


def submit_exam(p_attempt_id):
    """
    Grade an attempt and mark it completed.

    Score is the percentage of point_value earned over all questions of the
    exam. Calling it again on a completed attempt returns the stored score.
    """
    attempt = db.session.get(Attempt, p_attempt_id)
    if attempt is None:
        raise LookupError(f'attempt {p_attempt_id} not found')

    if attempt.status == 'completed':
        return [{'final_score': attempt.score or 0}]

    questions = Question.query.filter_by(exam_id=attempt.exam_id).all()
    total_points = sum(q.point_value or 0 for q in questions)

    correct_options = {
        option.id for option in Option.query.join(Question).filter(
            Question.exam_id == attempt.exam_id,
            Option.is_correct.is_(True),
        )
    }
    points_by_question = {q.id: q.point_value or 0 for q in questions}

    earned = sum(
        points_by_question.get(answer.question_id, 0)
        for answer in attempt.answers
        if answer.selected_option_id in correct_options
    )

    score = round(earned * 100.0 / total_points, 2) if total_points else 0
    attempt.score = score
    attempt.status = 'completed'
    attempt.end_time = now_utc()
    db.session.commit()

    logger.info('Attempt %s graded: %s/%s points -> %s', attempt.id, earned, total_points, score)
    return [{'final_score': score}]


def reset_exam_attempt(p_attempt_id):
    """Delete an attempt and its answers so the student can start over"""
    attempt = db.session.get(Attempt, p_attempt_id)
    if attempt is None:
        raise LookupError(f'attempt {p_attempt_id} not found')

    deleted = len(attempt.answers)
    db.session.delete(attempt)
    db.session.commit()
    return {'attempt_id': p_attempt_id, 'deleted_answers': deleted}


def get_exam_results(p_exam_id):
    """Attempts of an exam joined with the student's name and email"""
    rows = (
        db.session.query(Attempt, Profile.full_name, User.email)
        .outerjoin(Profile, Profile.id == Attempt.user_id)
        .outerjoin(User, User.id == Attempt.user_id)
        .filter(Attempt.exam_id == p_exam_id)
        .order_by(Attempt.score.desc().nulls_last(), Attempt.start_time.asc())
        .all()
    )

    results = []
    for attempt, full_name, email in rows:
        row = attempt.to_dict()
        results.append({
            'attempt_id': row['id'],
            'user_id': row['user_id'],
            'score': row['score'],
            'status': row['status'],
            'start_time': row['start_time'],
            'end_time': row['end_time'],
            'full_name': full_name,
            'user_email': email,
        })
    return results


PROCEDURES = {
    'submit_exam': submit_exam,
    'reset_exam_attempt': reset_exam_attempt,
    'get_exam_results': get_exam_results,
}
