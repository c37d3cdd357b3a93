"""
Teacher Routes
Exam creation, answer-key editing, publishing and results review
"""
import logging

from flask import (
    Blueprint,
    abort,
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
    PartialFailureError,
    ValidationError,
)
from smarttryout.services import AttemptService, ExamService
from smarttryout.utils import teacher_required

logger = logging.getLogger(__name__)

teacher_bp = Blueprint('teacher', __name__)

NEW_QUESTION_OPTIONS = 4


def wants_json():
    return request.is_json or request.accept_mimetypes.best == 'application/json'


def load_own_exam(service, exam_id):
    """Exam row if it exists and belongs to the signed-in teacher, else 404"""
    try:
        exam = service.get_exam(exam_id)
    except NotFoundError:
        abort(404)
    except BackendError as exc:
        logger.error('Error loading exam %s: %s', exam_id, exc)
        abort(502)
    if exam.get('created_by') != g.auth.user_id:
        abort(404)
    return exam


@teacher_bp.route('/exams/create', methods=['GET', 'POST'])
@teacher_required
def create_exam():
    """Create a new exam, optionally with a question PDF"""
    service = ExamService(g.auth.backend)
    try:
        schools = service.list_schools()
    except BackendError as exc:
        logger.error('Error fetching schools: %s', exc)
        schools = []

    form = {
        'title': request.form.get('title', ''),
        'school_id': request.form.get('school_id', ''),
        'duration_minutes': request.form.get('duration_minutes', 60),
    }

    if request.method == 'POST':
        pdf = None
        upload = request.files.get('pdf_file')
        if upload and upload.filename:
            pdf = (upload.filename, upload.read())

        try:
            exam = service.create_exam(
                g.auth.user_id,
                form['title'],
                form['school_id'],
                form['duration_minutes'],
                pdf=pdf,
                bucket=current_app.config['PDF_BUCKET'],
                max_pdf_bytes=current_app.config['MAX_PDF_BYTES'],
            )
        except (ValidationError, BackendError) as exc:
            logger.error('Error creating exam: %s', exc)
            flash(f'Error: {exc.message}', 'danger')
            return render_template('create_exam.html', schools=schools, form=form), 400

        flash(f"Exam Created! Access Code: {exam['access_code']}", 'success')
        return redirect(url_for('dashboard.index'))

    return render_template('create_exam.html', schools=schools, form=form)


@teacher_bp.route('/exams/<exam_id>/delete', methods=['POST'])
@teacher_required
def delete_exam(exam_id):
    service = ExamService(g.auth.backend)
    load_own_exam(service, exam_id)
    try:
        service.delete_exam(exam_id)
        flash('Exam deleted.', 'success')
    except BackendError as exc:
        logger.error('Error deleting exam %s: %s', exam_id, exc)
        flash('Failed to delete exam', 'danger')
    return redirect(url_for('dashboard.index'))


@teacher_bp.route('/exams/<exam_id>/edit')
@teacher_required
def edit_exam(exam_id):
    """Answer-key editor"""
    service = ExamService(g.auth.backend)
    exam = load_own_exam(service, exam_id)
    try:
        questions = service.get_questions(exam_id, order_by='created_at')
    except BackendError as exc:
        logger.error('Error fetching questions for %s: %s', exam_id, exc)
        flash('Error loading exam data.', 'danger')
        questions = []

    return render_template(
        'edit_exam.html',
        exam=exam,
        questions=questions,
        option_slots=NEW_QUESTION_OPTIONS,
    )


@teacher_bp.route('/exams/<exam_id>/publish', methods=['POST'])
@teacher_required
def toggle_publish(exam_id):
    service = ExamService(g.auth.backend)
    exam = load_own_exam(service, exam_id)
    try:
        published = service.set_published(exam_id, not exam.get('is_published'))
        flash('Exam published.' if published else 'Exam moved back to draft.', 'success')
    except BackendError as exc:
        logger.error('Error updating exam %s: %s', exam_id, exc)
        flash('Failed to update exam', 'danger')
    return redirect(url_for('teacher.edit_exam', exam_id=exam_id))


@teacher_bp.route('/exams/<exam_id>/questions', methods=['POST'])
@teacher_required
def add_question(exam_id):
    """Add one question with NEW_QUESTION_OPTIONS options"""
    service = ExamService(g.auth.backend)
    load_own_exam(service, exam_id)

    correct = request.form.get('correct')
    options = [
        {
            'option_text': request.form.get(f'option_{i}', ''),
            'is_correct': correct == str(i),
        }
        for i in range(NEW_QUESTION_OPTIONS)
    ]

    try:
        existing = service.get_questions(exam_id)
        service.add_question(
            exam_id,
            request.form.get('question_text'),
            request.form.get('point_value', 1),
            options,
            order_index=len(existing) + 1,
        )
        flash('Question added.', 'success')
    except ValidationError as exc:
        flash(exc.message, 'warning')
    except BackendError as exc:
        logger.error('Error adding question to %s: %s', exam_id, exc)
        flash('Failed to add question', 'danger')
    return redirect(url_for('teacher.edit_exam', exam_id=exam_id))


@teacher_bp.route('/exams/<exam_id>/questions/bulk', methods=['POST'])
@teacher_required
def bulk_add_questions(exam_id):
    """Quick answer sheet: N blank questions with options A-E"""
    service = ExamService(g.auth.backend)
    load_own_exam(service, exam_id)

    try:
        existing = service.get_questions(exam_id)
        created = service.bulk_add_questions(exam_id, request.form.get('count'), len(existing))
        flash(f'Added {len(created)} questions!', 'success')
    except ValidationError as exc:
        flash(exc.message, 'warning')
    except PartialFailureError as exc:
        flash(f'{exc.message}. Delete or complete the remaining questions by hand.', 'danger')
    except BackendError as exc:
        logger.error('Error adding bulk questions to %s: %s', exam_id, exc)
        flash('Failed to add some questions', 'danger')
    return redirect(url_for('teacher.edit_exam', exam_id=exam_id))


@teacher_bp.route('/exams/<exam_id>/questions/<question_id>/delete', methods=['POST'])
@teacher_required
def delete_question(exam_id, question_id):
    service = ExamService(g.auth.backend)
    load_own_exam(service, exam_id)
    try:
        service.delete_question(question_id)
    except BackendError as exc:
        logger.error('Error deleting question %s: %s', question_id, exc)
        flash('Failed to delete question', 'danger')
    return redirect(url_for('teacher.edit_exam', exam_id=exam_id))


@teacher_bp.route('/exams/<exam_id>/questions/<question_id>/correct', methods=['POST'])
@teacher_required
def set_correct_option(exam_id, question_id):
    """Make one option the answer; JSON callers get the question's options back"""
    service = ExamService(g.auth.backend)
    load_own_exam(service, exam_id)

    payload = request.get_json(silent=True) or request.form
    option_id = payload.get('option_id')

    try:
        question = next((q for q in service.get_questions(exam_id) if q['id'] == question_id), None)
        if question is None:
            abort(404)
        options = service.set_correct_option(question, option_id)
    except NotFoundError as exc:
        if wants_json():
            return jsonify({'success': False, 'error': exc.message}), 404
        flash(exc.message, 'warning')
        return redirect(url_for('teacher.edit_exam', exam_id=exam_id))
    except BackendError as exc:
        logger.error('Error setting correct option for %s: %s', question_id, exc)
        if wants_json():
            # Local copy is stale now; hand back what the backend holds
            try:
                fresh = next((q['options'] for q in service.get_questions(exam_id)
                              if q['id'] == question_id), [])
            except BackendError:
                fresh = None
            return jsonify({'success': False, 'error': 'Failed to update answer key',
                            'options': fresh}), 502
        flash('Failed to update answer key', 'danger')
        return redirect(url_for('teacher.edit_exam', exam_id=exam_id))

    if wants_json():
        return jsonify({'success': True, 'options': options})
    return redirect(url_for('teacher.edit_exam', exam_id=exam_id))


@teacher_bp.route('/exams/<exam_id>/results')
@teacher_required
def exam_results(exam_id):
    """Per-student attempts with average score"""
    service = AttemptService(g.auth.backend)
    load_own_exam(ExamService(g.auth.backend), exam_id)
    try:
        results = service.get_exam_results(exam_id)
    except BackendError as exc:
        logger.error('Error fetching results for %s: %s', exam_id, exc)
        flash('Could not load results.', 'danger')
        return redirect(url_for('dashboard.index'))

    return render_template(
        'exam_results.html',
        results=results,
        pass_score=current_app.config['PASS_SCORE'],
    )


@teacher_bp.route('/exams/<exam_id>/results/<attempt_id>/reset', methods=['POST'])
@teacher_required
def reset_attempt(exam_id, attempt_id):
    """Drop a student's attempt so they can retake the exam"""
    load_own_exam(ExamService(g.auth.backend), exam_id)
    student_name = request.form.get('student_name') or 'student'
    try:
        AttemptService(g.auth.backend).reset_attempt(attempt_id)
        flash(f'Attempt for "{student_name}" has been reset. They can now retake the exam.', 'success')
    except BackendError as exc:
        logger.error('Reset failed for %s: %s', attempt_id, exc)
        flash(f'Failed to reset: {exc.message}', 'danger')
    return redirect(url_for('teacher.exam_results', exam_id=exam_id))
