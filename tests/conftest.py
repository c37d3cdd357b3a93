"""
Shared fixtures: an app on the local backend with seeded accounts, and an
in-memory backend for exercising the exam room without a database.
"""
from collections import defaultdict
import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
import uuid

import pytest
from werkzeug.security import generate_password_hash

from smarttryout import create_app
from smarttryout.backend import Backend, get_backend
from smarttryout.exceptions import BackendError
from smarttryout.extensions import db, socketio
from smarttryout.models import Attempt, Exam, Option, Profile, Question, School, User

PASSWORD = 'rahasia123'
T0 = datetime(2024, 3, 18, 2, 0, 0, tzinfo=timezone.utc)


# ---------------- local backend app ----------------

def add_user(email, full_name, role):
    user = User(email=email, password_hash=generate_password_hash(PASSWORD))
    db.session.add(user)
    db.session.flush()
    db.session.add(Profile(id=user.id, full_name=full_name, role=role))
    return user


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config['STORAGE_ROOT'] = str(tmp_path / 'storage')
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def seed(app):
    with app.app_context():
        school = School(name='SMA Negeri 1')
        db.session.add(school)
        teacher = add_user('guru@school.id', 'Bu Ani', 'teacher')
        other_teacher = add_user('pak.joko@school.id', 'Pak Joko', 'teacher')
        student = add_user('budi@school.id', 'Budi', 'student')
        other_student = add_user('siti@school.id', 'Siti', 'student')
        db.session.commit()
        return SimpleNamespace(
            school_id=school.id,
            teacher_id=teacher.id,
            other_teacher_id=other_teacher.id,
            student_id=student.id,
            other_student_id=other_student.id,
        )


@pytest.fixture
def make_exam(app, seed):
    """
    Create an exam directly in the local database.

    questions is a list of (point_value, correct_index) pairs; every question
    gets options A-D. Returns ids of everything created.
    """
    def factory(title='Matematika', access_code='MATH-01', published=True,
                duration_minutes=60, questions=((1, 0), (1, 1)), created_by=None):
        with app.app_context():
            exam = Exam(
                title=title,
                school_id=seed.school_id,
                duration_minutes=duration_minutes,
                access_code=access_code,
                is_published=published,
                created_by=created_by or seed.teacher_id,
            )
            db.session.add(exam)
            db.session.flush()

            question_ids, option_ids, correct_ids = [], [], []
            for number, (points, correct_index) in enumerate(questions, start=1):
                question = Question(exam_id=exam.id, question_text=f'Soal {number}',
                                    point_value=points, order_index=number)
                db.session.add(question)
                db.session.flush()
                options = [
                    Option(question_id=question.id, option_text=label,
                           is_correct=(i == correct_index))
                    for i, label in enumerate('ABCD')
                ]
                db.session.add_all(options)
                db.session.flush()
                question_ids.append(question.id)
                option_ids.append([o.id for o in options])
                correct_ids.append(options[correct_index].id)

            db.session.commit()
            return SimpleNamespace(
                id=exam.id,
                access_code=access_code,
                question_ids=question_ids,
                option_ids=option_ids,
                correct_ids=correct_ids,
            )

    return factory


@pytest.fixture
def make_attempt(app, seed):
    def factory(exam_id, user_id=None, start_time=None, status='in_progress', score=None):
        with app.app_context():
            attempt = Attempt(
                exam_id=exam_id,
                user_id=user_id or seed.student_id,
                start_time=start_time or datetime.now(timezone.utc),
                status=status,
                score=score,
            )
            db.session.add(attempt)
            db.session.commit()
            return attempt.id

    return factory


@pytest.fixture
def backend(app):
    """Local backend client inside an app context"""
    with app.app_context():
        yield get_backend()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def do_login(email, password=PASSWORD):
        return client.post('/login', data={'email': email, 'password': password})

    return do_login


@pytest.fixture
def socket_client(app, client):
    def connect():
        return socketio.test_client(app, flask_test_client=client)

    return connect


# ---------------- in-memory backend ----------------

class FakeBackend(Backend):
    """Dict-of-lists backend; failures[(method, table)] makes a call raise"""

    def __init__(self):
        self.tables = defaultdict(list)
        self.procedures = {}
        self.failures = {}
        self.rpc_calls = []

    def _check(self, method, table):
        exc = self.failures.get((method, table))
        if exc is not None:
            raise exc

    @staticmethod
    def _matches(row, eq=None, in_=None):
        if any(row.get(k) != v for k, v in (eq or {}).items()):
            return False
        if in_:
            column, values = in_
            return row.get(column) in set(values)
        return True

    def select(self, table, columns='*', eq=None, in_=None, order_by=None, desc=False):
        self._check('select', table)
        rows = [copy.deepcopy(r) for r in self.tables[table] if self._matches(r, eq, in_)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=desc)
        return rows

    def insert(self, table, rows):
        self._check('insert', table)
        created = []
        for row in rows:
            row = dict(row)
            row.setdefault('id', str(uuid.uuid4()))
            self.tables[table].append(row)
            created.append(copy.deepcopy(row))
        return created

    def update(self, table, values, eq):
        self._check('update', table)
        changed = [r for r in self.tables[table] if self._matches(r, eq)]
        for row in changed:
            row.update(values)
        return copy.deepcopy(changed)

    def upsert(self, table, rows, on_conflict='id'):
        self._check('upsert', table)
        keys = [k.strip() for k in on_conflict.split(',')]
        written = []
        for row in rows:
            match = {k: row[k] for k in keys if k in row}
            existing = next((r for r in self.tables[table] if self._matches(r, match)), None)
            if existing is None:
                existing = dict(row)
                existing.setdefault('id', str(uuid.uuid4()))
                self.tables[table].append(existing)
            else:
                existing.update(row)
            written.append(copy.deepcopy(existing))
        return written

    def delete(self, table, eq):
        self._check('delete', table)
        doomed = [r for r in self.tables[table] if self._matches(r, eq)]
        self.tables[table] = [r for r in self.tables[table] if r not in doomed]
        return doomed

    def rpc(self, name, params):
        self.rpc_calls.append((name, params))
        self._check('rpc', name)
        return self.procedures[name](**params)


class FixedClock:
    """Clock for ExamSession; advance() moves it forward"""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def fake_backend():
    """
    One exam (60 minutes, started at T0) with two questions:
    q1 worth 2 points (answer q1-a), q2 worth 1 point (answer q2-b).
    """
    fake = FakeBackend()
    fake.tables['exams'].append({
        'id': 'exam-1', 'title': 'Matematika', 'duration_minutes': 60,
        'access_code': 'SMAMAT18090000123', 'is_published': True,
        'created_by': 'teacher-1', 'pdf_url': None,
    })
    fake.tables['questions'].extend([
        {'id': 'q1', 'exam_id': 'exam-1', 'question_text': 'Soal 1', 'point_value': 2, 'order_index': 1},
        {'id': 'q2', 'exam_id': 'exam-1', 'question_text': 'Soal 2', 'point_value': 1, 'order_index': 2},
    ])
    fake.tables['options'].extend([
        {'id': 'q1-a', 'question_id': 'q1', 'option_text': 'A', 'is_correct': True},
        {'id': 'q1-b', 'question_id': 'q1', 'option_text': 'B', 'is_correct': False},
        {'id': 'q2-a', 'question_id': 'q2', 'option_text': 'A', 'is_correct': False},
        {'id': 'q2-b', 'question_id': 'q2', 'option_text': 'B', 'is_correct': True},
    ])
    fake.tables['exam_attempts'].append({
        'id': 'attempt-1', 'exam_id': 'exam-1', 'user_id': 'student-1',
        'start_time': T0.isoformat(), 'end_time': None,
        'status': 'in_progress', 'score': None,
    })
    fake.tables['profiles'].extend([
        {'id': 'teacher-1', 'full_name': 'Bu Ani', 'role': 'teacher'},
        {'id': 'student-1', 'full_name': 'Budi', 'role': 'student'},
    ])
    fake.procedures['submit_exam'] = lambda p_attempt_id: [{'final_score': 66.67}]
    return fake


@pytest.fixture
def backend_error():
    return BackendError('connection reset by peer')
