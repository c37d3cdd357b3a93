"""
Auth Session Context
Per-request holder of the signed-in user and profile.

Created in before_request from the tokens kept in the Flask session,
torn down in teardown_request. The context owns exactly one subscription
to its backend client's auth-change stream and refreshes itself from it.
"""
import logging

from smarttryout.backend import get_backend
from smarttryout.exceptions import BackendError

logger = logging.getLogger(__name__)

TOKEN_KEYS = ('access_token', 'refresh_token')


class SessionContext:
    """Current user, profile and loading flag for one request"""

    def __init__(self, store):
        # store is the Flask session (or any dict-like) holding the tokens
        self.store = store
        self.user = None
        self.profile = None
        self.loading = True
        self.backend = None
        self._unsubscribe = None

    @property
    def role(self):
        return (self.profile or {}).get('role')

    @property
    def user_id(self):
        return self.user['id'] if self.user else None

    @property
    def display_name(self):
        return (self.profile or {}).get('full_name') or (self.user or {}).get('email') or 'Student'

    # ---------------- lifecycle ----------------

    def initialize(self):
        """Bind a backend client to the stored tokens and load user + profile"""
        self.loading = True
        self.backend = get_backend(
            access_token=self.store.get('access_token'),
            refresh_token=self.store.get('refresh_token'),
        )
        self._unsubscribe = self.backend.on_auth_change(self._handle_auth_event)

        try:
            user = self.backend.get_user()
            if user:
                self._set_user(user)
            else:
                self._clear()
        except BackendError as exc:
            logger.error('Auth initialization error: %s', exc)
            self._clear()
        return self

    def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    # ---------------- actions ----------------

    def sign_in(self, email, password):
        """Raises BackendError when the backend rejects the credentials"""
        session = self.backend.sign_in(email, password)
        self.store['access_token'] = session.access_token
        self.store['refresh_token'] = session.refresh_token
        # The SIGNED_IN event normally loaded the profile already
        if self.user is None:
            self._set_user({'id': session.user_id, 'email': session.email})
        return session

    def sign_out(self):
        try:
            self.backend.sign_out()
        finally:
            for key in TOKEN_KEYS:
                self.store.pop(key, None)
            self._clear()

    # ---------------- internals ----------------

    def _handle_auth_event(self, event, session):
        logger.debug('Auth event %s', event)
        if session is not None:
            self._set_user({'id': session.user_id, 'email': session.email})
        else:
            self._clear()

    def _set_user(self, user):
        self.user = user
        try:
            self.profile = self.backend.select_one('profiles', eq={'id': user['id']})
        except BackendError as exc:
            logger.error('Profile lookup failed for %s: %s', user['id'], exc)
            self.profile = None
        self.loading = False

    def _clear(self):
        self.user = None
        self.profile = None
        self.loading = False
