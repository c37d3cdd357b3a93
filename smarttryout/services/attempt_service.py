"""
Attempt Service
Student entry by access code, result review and the teacher's results list
"""
from dataclasses import dataclass
import logging

from smarttryout.exceptions import BackendError, NotFoundError, PreconditionError, ValidationError
from smarttryout.services.exam_service import ExamService
from smarttryout.utils import format_score, normalize_access_code, now_utc, parse_timestamp

logger = logging.getLogger(__name__)

ENTRY_NEW = 'new'
ENTRY_RESUME = 'resume'
ENTRY_COMPLETED = 'completed'


@dataclass
class EntryResult:
    """Outcome of entering an access code"""
    outcome: str
    attempt: dict
    exam: dict

    @property
    def notice(self):
        if self.outcome != ENTRY_COMPLETED:
            return None
        return ('You have already completed this exam. '
                f'Your score is {format_score(self.attempt.get("score"))}')


@dataclass
class ExamResults:
    """Rows for the teacher's results table"""
    exam: dict
    attempts: list
    rpc_error: str = None

    @property
    def average_score(self):
        if not self.attempts:
            return 0
        return round(sum(a.get('score') or 0 for a in self.attempts) / len(self.attempts), 1)


class AttemptService:
    """Attempts of the signed-in student, plus the teacher-side aggregates"""

    def __init__(self, backend):
        self.backend = backend

    # ---------------- student entry ----------------

    def find_attempt(self, exam_id, user_id):
        """Earliest attempt of a user for an exam (two tabs can create two)"""
        return self.backend.select_one(
            'exam_attempts', eq={'exam_id': exam_id, 'user_id': user_id},
            order_by='start_time',
        )

    def enter_exam(self, user_id, access_code):
        """
        Resolve an access code to an attempt: create it, resume it, or report
        that it is already completed.
        """
        code = normalize_access_code(access_code)
        if not code:
            raise ValidationError('Please enter an access code.')

        exams = self.backend.select('exams', eq={'access_code': code})
        if not exams:
            raise NotFoundError('Exam not found! Please check the code.')

        exam = exams[0]
        if not exam.get('is_published'):
            raise PreconditionError(
                'This exam is not yet active (Draft mode). '
                'Please ask your teacher to publish it.'
            )

        attempt = self.find_attempt(exam['id'], user_id)
        if attempt is None:
            attempt = self.backend.insert('exam_attempts', [{
                'exam_id': exam['id'],
                'user_id': user_id,
                'start_time': now_utc().isoformat(),
            }])[0]
            logger.info('Attempt %s started for exam %s', attempt['id'], exam['id'])
            return EntryResult(ENTRY_NEW, attempt, exam)

        if attempt.get('status') == 'completed':
            return EntryResult(ENTRY_COMPLETED, attempt, exam)

        logger.info('Attempt %s resumed', attempt['id'])
        return EntryResult(ENTRY_RESUME, attempt, exam)

    def get_own_attempt(self, attempt_id, user_id):
        attempt = self.backend.select_one('exam_attempts', eq={'id': attempt_id})
        if not attempt or attempt.get('user_id') != user_id:
            raise NotFoundError('Result not found.')
        return attempt

    def get_result(self, attempt_id, user_id):
        """
        Attempt, exam and per-question review rows.
        is_correct is for display only; the score shown is the stored one.
        """
        attempt = self.get_own_attempt(attempt_id, user_id)
        exams = ExamService(self.backend)
        exam = exams.get_exam(attempt['exam_id'])
        questions = exams.get_questions(exam['id'], order_by='order_index')
        answers = self.backend.select('user_answers', eq={'attempt_id': attempt_id})
        selected = {a['question_id']: a['selected_option_id'] for a in answers}

        details = []
        for question in questions:
            options = question['options']
            user_option = next((o for o in options if o['id'] == selected.get(question['id'])), None)
            correct_option = next((o for o in options if o.get('is_correct')), None)
            details.append({
                'question': question,
                'user_option': user_option,
                'correct_option': correct_option,
                'is_correct': bool(user_option and correct_option
                                   and user_option['id'] == correct_option['id']),
            })
        return attempt, exam, details

    # ---------------- teacher views ----------------

    def get_exam_results(self, exam_id):
        """
        Results through the get_exam_results procedure; when the procedure is
        missing or fails, fall back to plain queries (names only, no email).
        """
        exam = ExamService(self.backend).get_exam(exam_id)
        try:
            rows = self.backend.rpc('get_exam_results', {'p_exam_id': exam_id}) or []
        except BackendError as exc:
            logger.error('RPC get_exam_results failed: %s', exc)
            attempts = self._results_fallback(exam_id)
            return ExamResults(
                exam, attempts,
                rpc_error=f'RPC Error: {exc.message} (install the get_exam_results function on the backend)',
            )

        attempts = [
            {
                'id': r['attempt_id'],
                'user_id': r['user_id'],
                'score': r.get('score'),
                'status': r.get('status'),
                'start_time': parse_timestamp(r.get('start_time')),
                'end_time': parse_timestamp(r.get('end_time')),
                'full_name': r.get('full_name') or r.get('user_email') or 'Unknown',
            }
            for r in rows
        ]
        return ExamResults(exam, attempts)

    def _results_fallback(self, exam_id):
        rows = self.backend.select('exam_attempts', eq={'exam_id': exam_id},
                                   order_by='score', desc=True)
        user_ids = sorted({r['user_id'] for r in rows})
        names = {}
        if user_ids:
            profiles = self.backend.select('profiles', columns='id, full_name',
                                           in_=('id', user_ids))
            names = {p['id']: p.get('full_name') for p in profiles}

        return [
            {
                'id': r['id'],
                'user_id': r['user_id'],
                'score': r.get('score'),
                'status': r.get('status'),
                'start_time': parse_timestamp(r.get('start_time')),
                'end_time': parse_timestamp(r.get('end_time')),
                'full_name': names.get(r['user_id']) or '(No Name)',
            }
            for r in rows
        ]

    def reset_attempt(self, attempt_id):
        """Privileged procedure: drops the attempt and its answers"""
        result = self.backend.rpc('reset_exam_attempt', {'p_attempt_id': attempt_id})
        logger.info('Attempt %s reset: %s', attempt_id, result)
        return result
