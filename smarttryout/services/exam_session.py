"""
Exam Session
Server-side state machine behind one student's exam room:

    LOADING -> ACTIVE -> SUBMITTING -> COMPLETED
    LOADING -> COMPLETED            (attempt already finished)
    SUBMITTING -> ACTIVE            (submit_exam failed; timer stays stopped)

Remaining time comes from the attempt's start_time plus the exam's duration.
A countdown ticks it down once per second; answers are saved as they are
picked; submission happens on expiry or on request, at most once.
"""
from datetime import timedelta
from enum import Enum
import logging
import threading
import time

from flask import current_app

from smarttryout.exceptions import BackendError, NotFoundError, SessionStateError, ValidationError
from smarttryout.extensions import socketio
from smarttryout.services.exam_service import ExamService
from smarttryout.services.notification_service import TeacherNotifier
from smarttryout.utils import format_clock, now_utc, parse_timestamp

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = 'loading'
    ACTIVE = 'active'
    SUBMITTING = 'submitting'
    COMPLETED = 'completed'


def seconds_remaining(start_time, duration_minutes, now):
    """Whole seconds until start_time + duration, never below 0"""
    deadline = parse_timestamp(start_time) + timedelta(minutes=duration_minutes)
    return max(0, int((deadline - now).total_seconds()))


def extract_final_score(data):
    """submit_exam returns [{final_score}]; be lenient about the envelope"""
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        data = data.get('final_score')
    if data is None:
        return 0.0
    return float(data)


class ExamSession:
    """One attempt's exam room"""

    def __init__(self, attempt_id, user_id, backend, notifier=None, clock=now_utc):
        self.attempt_id = attempt_id
        self.user_id = user_id
        self.backend = backend
        self.notifier = notifier
        self.clock = clock

        self.state = SessionState.LOADING
        self.attempt = None
        self.exam = None
        self.questions = []
        self.answers = {}
        self.unconfirmed = set()
        self.remaining = 0
        self.score = None
        self.error = None

        self.timer = None
        self.timer_stopped = False
        self.listeners = []
        self._option_index = {}
        self._retired = False
        self._lock = threading.Lock()
        self.last_active = time.monotonic()

    def __repr__(self):
        return f'<ExamSession {self.attempt_id} {self.state.value} {self.remaining}s>'

    # ---------------- events ----------------

    def subscribe(self, listener):
        """listener(event, payload) is called for tick / answer / submission events"""
        self.listeners.append(listener)

    def _emit(self, event, payload=None):
        for listener in list(self.listeners):
            listener(event, payload or {})

    def snapshot(self):
        return {
            'attempt_id': self.attempt_id,
            'state': self.state.value,
            'remaining': self.remaining,
            'clock': format_clock(self.remaining),
            'answers': dict(self.answers),
            'unconfirmed': sorted(self.unconfirmed),
            'score': self.score,
            'error': self.error,
        }

    # ---------------- loading ----------------

    def load(self):
        """Fetch attempt, exam, questions and saved answers; returns the new state"""
        attempt = self.backend.select_one('exam_attempts', eq={'id': self.attempt_id})
        if not attempt or attempt.get('user_id') != self.user_id:
            raise NotFoundError('Exam session not found.')
        self.attempt = attempt

        if attempt.get('status') == 'completed':
            self.score = attempt.get('score')
            self.state = SessionState.COMPLETED
            logger.info('Attempt %s already completed, no exam room', self.attempt_id)
            return self.state

        exams = ExamService(self.backend)
        self.exam = exams.get_exam(attempt['exam_id'])

        # Students never receive the answer key
        self.questions = [
            {
                'id': q['id'],
                'question_text': q['question_text'],
                'point_value': q.get('point_value'),
                'options': [{'id': o['id'], 'option_text': o['option_text']} for o in q['options']],
            }
            for q in exams.get_questions(self.exam['id'], order_by='order_index')
        ]
        self._option_index = {
            q['id']: {o['id'] for o in q['options']} for q in self.questions
        }

        saved = self.backend.select('user_answers', columns='question_id, selected_option_id',
                                    eq={'attempt_id': self.attempt_id})
        self.answers = {a['question_id']: a['selected_option_id'] for a in saved}

        self.remaining = seconds_remaining(
            attempt['start_time'], self.exam['duration_minutes'], self.clock()
        )
        self.state = SessionState.ACTIVE
        logger.info('Attempt %s active: %d answers restored, %ds left',
                    self.attempt_id, len(self.answers), self.remaining)
        return self.state

    # ---------------- timer ----------------

    def start(self, timer=None):
        """Begin the countdown; an expired session is submitted right away"""
        if self.state != SessionState.ACTIVE:
            return
        if timer is not None:
            self.attach_timer(timer)
        if self.remaining <= 0:
            self._auto_submit()
        elif self.timer is not None and not self.timer_stopped:
            self.timer.start()

    def attach_timer(self, timer):
        if self.timer is not None and self.timer is not timer:
            self.timer.cancel()
        self.timer = timer
        self.timer_stopped = False

    def stop_timer(self):
        self.timer_stopped = True
        if self.timer is not None:
            self.timer.cancel()

    def tick(self):
        """One second elapsed; returns False once the countdown should stop"""
        if self.state != SessionState.ACTIVE or self.timer_stopped:
            return False
        if self.remaining <= 1:
            self.remaining = 0
            self._emit('tick', {'remaining': 0, 'clock': format_clock(0)})
            self._auto_submit()
            return False
        self.remaining -= 1
        self._emit('tick', {'remaining': self.remaining, 'clock': format_clock(self.remaining)})
        return True

    def resync(self, now=None):
        """Correct local drift against the wall clock"""
        if self.state != SessionState.ACTIVE or self.attempt is None:
            return self.remaining
        self.remaining = seconds_remaining(
            self.attempt['start_time'], self.exam['duration_minutes'], now or self.clock()
        )
        return self.remaining

    def check_deadline(self):
        """
        Submit an Active session whose deadline has passed. Covers clients
        without a running countdown. Returns True when time is up.
        """
        if self.state != SessionState.ACTIVE or self.resync() > 0:
            return False
        if not self.timer_stopped:
            self._auto_submit()
        return True

    def touch(self):
        self.last_active = time.monotonic()

    # ---------------- answers ----------------

    def select_option(self, question_id, option_id):
        """
        Record a choice locally, then persist it.

        Returns True when saved. On a failed save the local choice stays and is
        reported as unconfirmed until a later save of that question succeeds.
        """
        if self.state != SessionState.ACTIVE:
            raise SessionStateError('Answers can no longer be changed.')
        if option_id not in self._option_index.get(question_id, ()):
            raise ValidationError('That option does not belong to this question.')
        self.touch()
        if self.check_deadline():
            raise SessionStateError("Time's up! Answers can no longer be changed.")

        self.answers[question_id] = option_id
        self.unconfirmed.add(question_id)

        try:
            self.backend.upsert('user_answers', [{
                'attempt_id': self.attempt_id,
                'question_id': question_id,
                'selected_option_id': option_id,
            }], on_conflict='attempt_id,question_id')
        except BackendError as exc:
            logger.error('Failed to save answer for %s/%s: %s', self.attempt_id, question_id, exc)
            self._emit('answer_unconfirmed', {'question_id': question_id, 'option_id': option_id,
                                              'error': exc.message})
            return False

        # A newer pick for the same question may still be in flight
        if self.answers.get(question_id) == option_id:
            self.unconfirmed.discard(question_id)
        self._emit('answer_saved', {'question_id': question_id, 'option_id': option_id})
        return True

    # ---------------- submission ----------------

    def retire(self):
        """
        Called when a reload replaces this session. Returns False (and keeps
        the session) if it is already submitting or completed.
        """
        with self._lock:
            if self.state in (SessionState.SUBMITTING, SessionState.COMPLETED):
                return False
            self._retired = True
        self.stop_timer()
        return True

    def _auto_submit(self):
        try:
            self.submit(automatic=True)
        except (BackendError, SessionStateError) as exc:
            # Already reported through submit_failed; nothing retries automatically
            logger.warning('Automatic submission of %s did not complete: %s', self.attempt_id, exc)

    def submit(self, automatic=False):
        """
        Grade the attempt through submit_exam and return the final score.

        Both the timer and the student can call this; only the first caller
        reaches the backend. Later callers get None while it is in flight and
        the stored score once it is done.
        """
        with self._lock:
            if self.state == SessionState.COMPLETED:
                return self.score
            if self.state == SessionState.SUBMITTING:
                return None
            if self.state != SessionState.ACTIVE or self._retired:
                raise SessionStateError()
            self.state = SessionState.SUBMITTING

        self.touch()
        self.stop_timer()
        self.error = None
        logger.info('Submitting attempt %s (%s)', self.attempt_id,
                    'time expired' if automatic else 'student request')

        # Whatever goes wrong before grading, the session must not stay SUBMITTING
        try:
            self._emit('submitting', {'automatic': automatic})
            data = self.backend.rpc('submit_exam', {'p_attempt_id': self.attempt_id})
        except Exception as exc:
            message = exc.message if isinstance(exc, BackendError) else str(exc)
            with self._lock:
                self.state = SessionState.ACTIVE
                self.error = message
            logger.error('submit_exam failed for %s: %s', self.attempt_id, exc)
            self._emit('submit_failed', {'error': message})
            raise

        score = extract_final_score(data)
        with self._lock:
            self.score = score
            self.attempt['status'] = 'completed'
            self.attempt['score'] = score
            self.state = SessionState.COMPLETED

        logger.info('Attempt %s submitted, score %.1f', self.attempt_id, score)
        if self.notifier is not None:
            self.notifier.dispatch(dict(self.attempt), score)
        self._emit('exam_submitted', {'score': score, 'automatic': automatic})
        return score


class CountdownTimer:
    """Repeating one-second timer driving ExamSession.tick in a background task"""

    def __init__(self, session, app, interval=1.0, resync_every=30,
                 start_task=None, sleep=None):
        self.session = session
        self.app = app
        self.interval = interval
        self.resync_every = resync_every
        self.start_task = start_task or socketio.start_background_task
        self.sleep = sleep or socketio.sleep
        self.cancelled = False
        self.started = False

    def start(self):
        if self.started:
            return
        self.started = True
        self.start_task(self._run)

    def cancel(self):
        self.cancelled = True

    def _run(self):
        ticks = 0
        with self.app.app_context():
            while not self.cancelled:
                self.sleep(self.interval)
                if self.cancelled:
                    break
                ticks += 1
                if not self.session.tick():
                    break
                if self.resync_every and ticks % self.resync_every == 0:
                    self.session.resync()


class ExamSessionRegistry:
    """
    Live exam sessions of this process, one per attempt. Completed sessions
    drop out on their own; sessions without a countdown (socket-less
    clients) are swept once idle for idle_timeout seconds.
    """

    def __init__(self, idle_timeout=None):
        self._sessions = {}
        self._lock = threading.Lock()
        self.idle_timeout = idle_timeout

    def get(self, attempt_id):
        return self._sessions.get(attempt_id)

    def _track(self, session):
        def on_event(event, payload):
            if event == 'exam_submitted':
                self.discard(session)

        session.subscribe(on_event)

    def open(self, session):
        """
        Register a freshly loaded session (page load / reload). A session that is
        already submitting or completed wins over the new one and is returned.
        """
        with self._lock:
            existing = self._sessions.get(session.attempt_id)
            if existing is session:
                return session
            if existing is not None and not existing.retire():
                return existing
            self._sessions[session.attempt_id] = session
        self._track(session)
        return session

    def acquire(self, attempt_id, user_id, factory):
        """Existing session for the attempt, or a new one built by factory()"""
        self.sweep()
        existing = self._sessions.get(attempt_id)
        if existing is not None:
            if existing.user_id != user_id:
                raise NotFoundError('Exam session not found.')
            existing.touch()
            return existing
        session = factory()
        session.load()
        if session.state == SessionState.COMPLETED:
            return session
        with self._lock:
            live = self._sessions.setdefault(attempt_id, session)
        if live is session:
            self._track(session)
        return live

    def discard(self, session):
        """Forget a session that is done"""
        with self._lock:
            if self._sessions.get(session.attempt_id) is session:
                del self._sessions[session.attempt_id]

    def sweep(self, now=None):
        """Drop countdown-less Active sessions idle longer than idle_timeout"""
        if not self.idle_timeout:
            return 0
        now = now if now is not None else time.monotonic()
        with self._lock:
            idle = [
                attempt_id for attempt_id, s in self._sessions.items()
                if s.timer is None and s.state == SessionState.ACTIVE
                and now - s.last_active > self.idle_timeout
            ]
            for attempt_id in idle:
                del self._sessions[attempt_id]
        if idle:
            logger.info('Swept %d idle exam sessions', len(idle))
        return len(idle)

    def close(self, attempt_id, session=None):
        """Tear a session down (socket gone); an in-flight submission is left alone"""
        with self._lock:
            current = self._sessions.get(attempt_id)
            if current is None or (session is not None and current is not session):
                return
            if current.state == SessionState.SUBMITTING:
                return
            current.stop_timer()
            del self._sessions[attempt_id]

    def __len__(self):
        return len(self._sessions)


def make_spawner(app):
    """Detached-task starter for fire-and-forget work, with an app context"""
    if app.config.get('INLINE_BACKGROUND_TASKS'):
        return None

    def spawn(fn, *args):
        def run():
            with app.app_context():
                fn(*args)
        socketio.start_background_task(run)

    return spawn


def get_registry():
    return current_app.extensions['exam_sessions']


def build_session(attempt_id, user_id, backend):
    """ExamSession wired with the configured teacher notifier"""
    app = current_app._get_current_object()
    notifier = TeacherNotifier(
        backend,
        app.config['NOTIFY_URL'],
        token=app.config['NOTIFY_TOKEN'],
        timeout=app.config['NOTIFY_TIMEOUT'],
        spawn=make_spawner(app),
    )
    return ExamSession(attempt_id, user_id, backend, notifier=notifier)


def build_timer(session):
    app = current_app._get_current_object()
    return CountdownTimer(
        session,
        app,
        interval=app.config['EXAM_TICK_SECONDS'],
        resync_every=app.config['EXAM_RESYNC_SECONDS'],
    )
