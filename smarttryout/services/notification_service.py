"""
Notification Service
Tells the exam's teacher about a finished attempt. Strictly best-effort:
runs detached from the submission and only ever logs its failures.
"""
import logging

import httpx

from smarttryout.exceptions import BackendError

logger = logging.getLogger(__name__)


class TeacherNotifier:
    """POSTs {teacher_id, teacher_name, student_name, exam_title, score} to NOTIFY_URL"""

    def __init__(self, backend, url, token=None, timeout=10.0, spawn=None):
        self.backend = backend
        self.url = url
        self.token = token
        self.timeout = timeout
        # spawn(fn, *args) starts fn detached; None runs it inline
        self.spawn = spawn

    def dispatch(self, attempt, score):
        """Fire and forget; never raises"""
        if not self.url:
            logger.debug('NOTIFY_URL not set, skipping teacher notification')
            return
        try:
            if self.spawn is None:
                self.notify(attempt, score)
            else:
                self.spawn(self.notify, attempt, score)
        except Exception:
            logger.warning('Could not start teacher notification', exc_info=True)

    def build_payload(self, attempt, score):
        exam = self.backend.select_one('exams', columns='title, created_by',
                                       eq={'id': attempt['exam_id']})
        if not exam:
            return None

        teacher = self.backend.select_one('profiles', columns='full_name',
                                          eq={'id': exam['created_by']})
        student = self.backend.select_one('profiles', columns='full_name',
                                          eq={'id': attempt['user_id']})
        return {
            'teacher_id': exam['created_by'],
            'teacher_name': (teacher or {}).get('full_name') or 'Teacher',
            'student_name': (student or {}).get('full_name') or 'Student',
            'exam_title': exam['title'],
            'score': score,
        }

    def notify(self, attempt, score):
        try:
            payload = self.build_payload(attempt, score)
            if payload is None:
                logger.warning('Exam %s not found, teacher not notified', attempt['exam_id'])
                return

            headers = {}
            if self.token:
                headers['Authorization'] = f'Bearer {self.token}'
            response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            if response.is_success:
                logger.info('Teacher %s notified about attempt %s', payload['teacher_id'], attempt['id'])
            else:
                logger.warning('Teacher notification failed: %s %s',
                               response.status_code, response.text[:200])
        except (httpx.HTTPError, BackendError) as exc:
            logger.warning('Teacher notification failed (non-critical): %s', exc)
