"""
Socket.IO Event Handlers
Live exam room: countdown ticks, answer autosave and submission
"""
import logging
import threading

from flask import current_app, request, session, url_for
from flask_socketio import emit, join_room

from smarttryout.exceptions import (
    BackendError,
    NotFoundError,
    SessionStateError,
    ValidationError,
)
from smarttryout.extensions import socketio
from smarttryout.services import SessionState
from smarttryout.services.exam_session import build_session, build_timer, get_registry
from smarttryout.utils import SessionContext

logger = logging.getLogger(__name__)

# Socket id -> attempt id of the exam room it joined
connected_rooms = {}
rooms_lock = threading.Lock()


def track_socket(sid, attempt_id):
    with rooms_lock:
        connected_rooms[sid] = attempt_id


def release_socket(sid, on_last):
    """
    Forget a socket. When it was the last one in its exam room, on_last(attempt_id)
    runs under the same lock so a concurrent join cannot slip in between.
    """
    with rooms_lock:
        attempt_id = connected_rooms.pop(sid, None)
        if attempt_id is None or attempt_id in connected_rooms.values():
            return None
        on_last(attempt_id)
        return attempt_id


def room_name(attempt_id):
    return f'attempt_{attempt_id}'


def current_user_id():
    auth = SessionContext(session).initialize()
    try:
        return auth.user_id
    finally:
        auth.close()


def relay_to_room(attempt_id, result_url):
    """Session listener forwarding state-machine events to the attempt's room"""
    room = room_name(attempt_id)

    def relay(event, payload):
        if event == 'exam_submitted':
            payload = dict(payload, redirect=result_url)
        socketio.emit(event, payload, to=room)

    return relay


def register_socket_events():
    """Register all Socket.IO event handlers"""

    @socketio.on('join_exam')
    def join_exam(data):
        """Student opens (or reloads) the exam room"""
        attempt_id = str((data or {}).get('attempt_id', ''))
        auth = SessionContext(session).initialize()
        try:
            if auth.user is None:
                emit('exam_error', {'error': 'Please sign in again.',
                                    'redirect': url_for('auth.login')})
                return

            exam_session = build_session(attempt_id, auth.user_id, auth.backend)
            try:
                state = exam_session.load()
            except (NotFoundError, BackendError) as exc:
                logger.error('Error loading exam %s: %s', attempt_id, exc)
                emit('exam_error', {'error': 'Failed to load exam.',
                                    'redirect': url_for('dashboard.index')})
                return
        finally:
            auth.close()

        result_url = url_for('student.result', attempt_id=attempt_id)
        if state == SessionState.COMPLETED:
            emit('exam_completed', {'score': exam_session.score, 'redirect': result_url})
            return

        join_room(room_name(attempt_id))
        track_socket(request.sid, attempt_id)

        live = get_registry().open(exam_session)
        emit('exam_state', live.snapshot())
        if live is not exam_session:
            # A submission from before the reload is still the one that counts
            logger.info('Attempt %s rejoined while %s', attempt_id, live.state.value)
            return

        live.subscribe(relay_to_room(attempt_id, result_url))
        if current_app.config['EXAM_TIMER_ENABLED']:
            live.start(build_timer(live))
        else:
            live.start()

    @socketio.on('select_option')
    def select_option(data):
        """Autosave one answer"""
        data = data or {}
        attempt_id = connected_rooms.get(request.sid)
        live = get_registry().get(attempt_id) if attempt_id else None
        if live is None or live.user_id != current_user_id():
            emit('exam_error', {'error': 'Exam session not found.'})
            return

        try:
            live.select_option(data.get('question_id'), data.get('option_id'))
        except (ValidationError, SessionStateError) as exc:
            emit('exam_error', {'error': exc.message})

    @socketio.on('submit_exam')
    def submit_exam(data):
        """Manual submission after the student confirmed it"""
        data = data or {}
        attempt_id = connected_rooms.get(request.sid)
        live = get_registry().get(attempt_id) if attempt_id else None
        if live is None or live.user_id != current_user_id():
            emit('exam_error', {'error': 'Exam session not found.'})
            return
        if not data.get('confirm'):
            emit('exam_error', {'error': 'Please confirm that you want to finish the exam.'})
            return

        try:
            live.submit(automatic=False)
        except BackendError as exc:
            # submit_failed already went out to the room
            logger.info('Manual submission of %s failed: %s', attempt_id, exc)
        except SessionStateError as exc:
            emit('exam_error', {'error': exc.message})

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        """Tear the session down once its last socket is gone"""
        attempt_id = release_socket(request.sid, get_registry().close)
        if attempt_id is not None:
            logger.info('Exam room %s closed', attempt_id)
