"""
Student Routes
Exam room, answer autosave, submission and result review.
The live countdown runs over Socket.IO (see sockets/exam_events.py);
these endpoints cover page loads and socket-less clients.
"""
import logging

from flask import (
    Blueprint,
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from smarttryout.exceptions import (
    BackendError,
    NotFoundError,
    SessionStateError,
    ValidationError,
)
from smarttryout.services import AttemptService, SessionState
from smarttryout.services.exam_session import build_session, get_registry
from smarttryout.utils import format_clock, format_score, login_required

logger = logging.getLogger(__name__)

student_bp = Blueprint('student', __name__)


def error_response(exc, status):
    return jsonify({'success': False, 'error': exc.message}), status


def acquire_session(attempt_id):
    """Live session of this attempt, loading one if the process has none"""
    backend = g.auth.backend
    user_id = g.auth.user_id
    return get_registry().acquire(
        attempt_id, user_id, lambda: build_session(attempt_id, user_id, backend)
    )


@student_bp.route('/exam/<attempt_id>')
@login_required
def exam_room(attempt_id):
    """Render the exam room; completed attempts go straight to their result"""
    session = build_session(attempt_id, g.auth.user_id, g.auth.backend)
    try:
        state = session.load()
    except (NotFoundError, BackendError) as exc:
        logger.error('Error loading exam %s: %s', attempt_id, exc)
        flash('Failed to load exam.', 'danger')
        return redirect(url_for('dashboard.index'))

    if state == SessionState.COMPLETED:
        flash('You have already completed this exam. '
              f'Your score is {format_score(session.score)}', 'info')
        return redirect(url_for('student.result', attempt_id=attempt_id))

    if session.remaining <= 0:
        # Time ran out while the student was away
        session = get_registry().open(session)
        session.check_deadline()
        if session.state == SessionState.COMPLETED:
            flash("Time's up! Your exam has been submitted automatically. "
                  f'Your score: {format_score(session.score)}', 'info')
            return redirect(url_for('student.result', attempt_id=attempt_id))

    return render_template(
        'exam_room.html',
        room=session,
        exam=session.exam,
        questions=session.questions,
        answers=session.answers,
        clock=format_clock(session.remaining),
        live_timer=current_app.config['EXAM_TIMER_ENABLED'],
    )


@student_bp.route('/exam/<attempt_id>/answer', methods=['POST'])
@login_required
def save_answer(attempt_id):
    """Autosave one selection: {question_id, option_id}"""
    payload = request.get_json(silent=True) or request.form
    try:
        session = acquire_session(attempt_id)
        saved = session.select_option(payload.get('question_id'), payload.get('option_id'))
    except NotFoundError as exc:
        return error_response(exc, 404)
    except ValidationError as exc:
        return error_response(exc, 400)
    except SessionStateError as exc:
        return error_response(exc, 409)
    except BackendError as exc:
        return error_response(exc, 502)

    return jsonify({
        'success': saved,
        'question_id': payload.get('question_id'),
        'unconfirmed': sorted(session.unconfirmed),
    }), (200 if saved else 202)


@student_bp.route('/exam/<attempt_id>/submit', methods=['POST'])
@login_required
def submit_exam(attempt_id):
    """Manual submission; the client must have confirmed it"""
    payload = request.get_json(silent=True) or request.form
    as_json = request.is_json

    if str(payload.get('confirm', '')).lower() not in ('1', 'true', 'yes', 'on'):
        exc = ValidationError('Please confirm that you want to finish the exam.')
        if as_json:
            return error_response(exc, 400)
        flash(exc.message, 'warning')
        return redirect(url_for('student.exam_room', attempt_id=attempt_id))

    try:
        session = acquire_session(attempt_id)
        score = session.submit(automatic=False)
    except NotFoundError as exc:
        return error_response(exc, 404) if as_json else redirect(url_for('dashboard.index'))
    except (SessionStateError, BackendError) as exc:
        message = f'Failed to submit exam: {exc.message}'
        if as_json:
            return jsonify({'success': False, 'error': message}), 502
        flash(message, 'danger')
        return redirect(url_for('student.exam_room', attempt_id=attempt_id))

    result_url = url_for('student.result', attempt_id=attempt_id)
    if score is None:
        # The timer got there first; its outcome arrives over the socket
        if as_json:
            return jsonify({'success': True, 'pending': True, 'redirect': result_url}), 202
        return redirect(result_url)

    if as_json:
        return jsonify({'success': True, 'score': score, 'redirect': result_url})
    flash(f'Exam Submitted! Your score: {format_score(score)}', 'success')
    return redirect(result_url)


@student_bp.route('/exam/<attempt_id>/result')
@login_required
def result(attempt_id):
    """Score and per-question review of one of the student's attempts"""
    try:
        attempt, exam, details = AttemptService(g.auth.backend).get_result(attempt_id, g.auth.user_id)
    except NotFoundError:
        flash('Result not found.', 'warning')
        return redirect(url_for('dashboard.index'))
    except BackendError as exc:
        logger.error('Error loading results for %s: %s', attempt_id, exc)
        flash('Error loading results', 'danger')
        return redirect(url_for('dashboard.index'))

    return render_template(
        'exam_result.html',
        attempt=attempt,
        exam=exam,
        details=details,
        pass_score=current_app.config['PASS_SCORE'],
    )
