"""
Exam Service
Teacher-side exam management: dashboard listing, creation with optional
PDF upload, publishing and answer-key authoring.
"""
import logging
import os
import uuid

from smarttryout.exceptions import (
    BackendError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from smarttryout.utils import generate_access_code

logger = logging.getLogger(__name__)

BULK_OPTION_LABELS = ['A', 'B', 'C', 'D', 'E']


class ExamService:
    """Exam CRUD and answer keys, over one backend client"""

    def __init__(self, backend):
        self.backend = backend

    # ---------------- exams ----------------

    def list_exams(self, teacher_id):
        """Teacher's exams, newest first"""
        return self.backend.select(
            'exams', eq={'created_by': teacher_id}, order_by='created_at', desc=True
        )

    def list_schools(self):
        return self.backend.select('schools', order_by='name')

    def get_exam(self, exam_id):
        exam = self.backend.select_one('exams', eq={'id': exam_id})
        if not exam:
            raise NotFoundError('Exam not found')
        return exam

    def delete_exam(self, exam_id):
        self.backend.delete('exams', eq={'id': exam_id})
        logger.info('Exam %s deleted', exam_id)

    def set_published(self, exam_id, published):
        self.backend.update('exams', {'is_published': bool(published)}, eq={'id': exam_id})
        logger.info('Exam %s %s', exam_id, 'published' if published else 'unpublished')
        return bool(published)

    def upload_pdf(self, owner_id, filename, data, bucket, max_bytes):
        """Store a question PDF under <owner_id>/<random>.pdf and return its public URL"""
        ext = os.path.splitext(filename or '')[1].lower().lstrip('.')
        if ext != 'pdf':
            raise ValidationError('Only PDF files can be uploaded.')
        if len(data) > max_bytes:
            raise ValidationError(f'PDF is larger than {max_bytes // (1024 * 1024)}MB.')

        path = f'{owner_id}/{uuid.uuid4().hex}.{ext}'
        self.backend.upload(bucket, path, data, content_type='application/pdf')
        return self.backend.public_url(bucket, path)

    def create_exam(self, owner_id, title, school_id, duration_minutes, pdf=None,
                    bucket='soal_pdf', max_pdf_bytes=10 * 1024 * 1024):
        """
        Create an unpublished exam with a generated access code.

        pdf is an optional (filename, bytes) pair uploaded before the row is
        written; a failed insert leaves the uploaded file behind.
        """
        title = (title or '').strip()
        if not title:
            raise ValidationError('Exam title is required.')
        try:
            duration_minutes = int(duration_minutes)
        except (TypeError, ValueError):
            raise ValidationError('Duration must be a whole number of minutes.') from None
        if duration_minutes < 1:
            raise ValidationError('Duration must be at least 1 minute.')

        schools = self.list_schools()
        school = next((s for s in schools if s['id'] == school_id), None) if school_id else None
        school_name = school['name'] if school else 'VIRTUAL'
        if not school_id and schools:
            school_id = schools[0]['id']

        access_code = generate_access_code(school_name, title)

        pdf_url = None
        if pdf is not None:
            filename, data = pdf
            pdf_url = self.upload_pdf(owner_id, filename, data, bucket, max_pdf_bytes)

        rows = self.backend.insert('exams', [{
            'title': title,
            'school_id': school_id or None,
            'created_by': owner_id,
            'duration_minutes': duration_minutes,
            'access_code': access_code,
            'pdf_url': pdf_url,
            'is_published': False,
        }])
        exam = rows[0]
        logger.info('Exam %s created with access code %s', exam['id'], access_code)
        return exam

    # ---------------- questions ----------------

    def get_questions(self, exam_id, order_by='order_index'):
        """Questions of an exam, each with its 'options' list attached"""
        questions = self.backend.select('questions', eq={'exam_id': exam_id}, order_by=order_by)
        if not questions:
            return []

        options = self.backend.select(
            'options', in_=('question_id', [q['id'] for q in questions])
        )
        by_question = {}
        for option in options:
            by_question.setdefault(option['question_id'], []).append(option)
        for question in questions:
            question['options'] = by_question.get(question['id'], [])
        return questions

    def add_question(self, exam_id, question_text, point_value, options, order_index):
        """
        Add one question with its options.

        options is a list of {'option_text', 'is_correct'}; exactly one must be
        correct. The question row is written before the options, so a failure on
        the second call leaves a question without options.
        """
        question_text = (question_text or '').strip()
        if not question_text:
            raise ValidationError('Question text is required')
        if sum(1 for o in options if o.get('is_correct')) != 1:
            raise ValidationError('Select exactly one correct answer')
        try:
            point_value = int(point_value)
        except (TypeError, ValueError):
            raise ValidationError('Points must be a whole number') from None
        if point_value < 1:
            raise ValidationError('Points must be at least 1')

        question = self.backend.insert('questions', [{
            'exam_id': exam_id,
            'question_text': question_text,
            'point_value': point_value,
            'order_index': order_index,
        }])[0]

        question['options'] = self.backend.insert('options', [
            {
                'question_id': question['id'],
                'option_text': (o.get('option_text') or '').strip(),
                'is_correct': bool(o.get('is_correct')),
            }
            for o in options
        ])
        return question

    def bulk_add_questions(self, exam_id, count, existing_count):
        """
        Append `count` blank questions (options A-E, none correct).

        Sequential and not transactional: on failure the questions created so
        far stay and PartialFailureError reports how many there are.
        """
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise ValidationError('Enter how many questions to add') from None
        if count <= 0:
            raise ValidationError('Enter how many questions to add')

        created = []
        for i in range(count):
            number = existing_count + i + 1
            try:
                question = self.backend.insert('questions', [{
                    'exam_id': exam_id,
                    'question_text': f'Question {number}',
                    'point_value': 1,
                    'order_index': number,
                }])[0]
                question['options'] = self.backend.insert('options', [
                    {'question_id': question['id'], 'option_text': label, 'is_correct': False}
                    for label in BULK_OPTION_LABELS
                ])
            except BackendError as exc:
                logger.error('Bulk add stopped after %d of %d questions: %s',
                             len(created), count, exc)
                raise PartialFailureError(
                    f'Failed to add some questions ({len(created)} of {count} added)',
                    applied=len(created),
                    cause=exc,
                ) from exc
            created.append(question)

        logger.info('Added %d questions to exam %s', count, exam_id)
        return created

    def delete_question(self, question_id):
        self.backend.delete('questions', eq={'id': question_id})

    def set_correct_option(self, question, option_id):
        """
        Mark option_id as the only correct option of `question`.

        The caller's copy of the question is updated first; the backend is then
        updated with one upsert over every sibling. On BackendError the caller
        re-fetches, since the local copy no longer matches the backend.
        """
        options = question.get('options') or []
        if not any(o['id'] == option_id for o in options):
            raise NotFoundError('Option does not belong to this question')

        for option in options:
            option['is_correct'] = option['id'] == option_id

        self.backend.upsert('options', [
            {
                'id': o['id'],
                'question_id': question['id'],
                'option_text': o['option_text'],
                'is_correct': o['is_correct'],
            }
            for o in options
        ])
        return options
