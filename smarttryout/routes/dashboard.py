"""
Dashboard Routes
Role dispatch and the student's access-code entry
"""
import logging

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from smarttryout.exceptions import (
    BackendError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from smarttryout.services import AttemptService, ExamService
from smarttryout.services.attempt_service import ENTRY_COMPLETED
from smarttryout.utils import login_required

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__)


@dashboard_bp.route('/dashboard')
@login_required
def index():
    """Teacher dashboard for teachers, student dashboard for everyone else"""
    if g.auth.role == 'teacher':
        return teacher_dashboard()
    return render_template('student_dashboard.html', name=g.auth.display_name)


def teacher_dashboard():
    exams = []
    try:
        exams = ExamService(g.auth.backend).list_exams(g.auth.user_id)
    except BackendError as exc:
        logger.error('Error fetching exams: %s', exc)
        flash('Could not load your exams.', 'danger')
    return render_template('teacher_dashboard.html', exams=exams)


@dashboard_bp.route('/enter', methods=['POST'])
@login_required
def enter_exam():
    """Resolve an access code and send the student to the exam room"""
    code = request.form.get('access_code', '')
    try:
        entry = AttemptService(g.auth.backend).enter_exam(g.auth.user_id, code)
    except (ValidationError, NotFoundError, PreconditionError, BackendError) as exc:
        return render_template(
            'student_dashboard.html',
            name=g.auth.display_name,
            access_code=code,
            error=exc.message,
        ), 400

    if entry.outcome == ENTRY_COMPLETED:
        flash(entry.notice, 'info')
        return redirect(url_for('student.result', attempt_id=entry.attempt['id']))

    return redirect(url_for('student.exam_room', attempt_id=entry.attempt['id']))
