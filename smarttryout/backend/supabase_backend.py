"""
Supabase Backend
Production client over the supabase SDK. One instance per request,
bound to the signed-in user's access token so row-level security applies.
"""
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import create_client

from smarttryout.backend.base import AuthSession, Backend
from smarttryout.exceptions import BackendError

logger = logging.getLogger(__name__)


class SupabaseBackend(Backend):
    """Backend implementation over supabase-py"""

    def __init__(self, url, key, access_token=None, refresh_token=None):
        if not url or not key:
            raise BackendError('SUPABASE_URL and SUPABASE_ANON_KEY must be configured.')
        self.client = create_client(url, key)
        self.access_token = access_token
        self.refresh_token = refresh_token
        if access_token:
            self.client.postgrest.auth(access_token)

    # ---------------- auth ----------------

    def sign_in(self, email, password):
        try:
            response = self.client.auth.sign_in_with_password(
                {'email': email, 'password': password}
            )
        except Exception as exc:  # the auth client raises its own error family
            raise BackendError(str(exc)) from exc

        session = response.session
        self.access_token = session.access_token
        self.refresh_token = session.refresh_token
        self.client.postgrest.auth(self.access_token)
        return AuthSession(
            user_id=response.user.id,
            email=response.user.email,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
        )

    def sign_out(self):
        try:
            if self.access_token:
                self.client.auth.admin.sign_out(self.access_token)
        except Exception as exc:
            raise BackendError(str(exc)) from exc
        finally:
            self.access_token = None
            self.refresh_token = None

    def get_user(self):
        if not self.access_token:
            return None
        try:
            response = self.client.auth.get_user(self.access_token)
        except Exception as exc:
            logger.info('Access token rejected: %s', exc)
            return None
        if not response or not response.user:
            return None
        return {'id': response.user.id, 'email': response.user.email}

    def on_auth_change(self, listener):
        def relay(event, session):
            auth = None
            if session is not None and session.user is not None:
                auth = AuthSession(
                    user_id=session.user.id,
                    email=session.user.email,
                    access_token=session.access_token,
                    refresh_token=session.refresh_token,
                )
            listener(str(event), auth)

        subscription = self.client.auth.on_auth_state_change(relay)
        return subscription.unsubscribe

    # ---------------- tables ----------------

    def _execute(self, query, action, table):
        try:
            return query.execute().data or []
        except APIError as exc:
            logger.error('%s on %s failed: %s', action, table, exc.message)
            raise BackendError(exc.message) from exc
        except httpx.HTTPError as exc:
            logger.error('%s on %s failed: %s', action, table, exc)
            raise BackendError(f'Network error: {exc}') from exc

    def select(self, table, columns='*', eq=None, in_=None, order_by=None, desc=False):
        query = self.client.table(table).select(columns)
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        if in_:
            column, values = in_
            query = query.in_(column, list(values))
        if order_by:
            query = query.order(order_by, desc=desc)
        return self._execute(query, 'select', table)

    def insert(self, table, rows):
        return self._execute(self.client.table(table).insert(rows), 'insert', table)

    def update(self, table, values, eq):
        query = self.client.table(table).update(values)
        for column, value in eq.items():
            query = query.eq(column, value)
        return self._execute(query, 'update', table)

    def upsert(self, table, rows, on_conflict='id'):
        query = self.client.table(table).upsert(rows, on_conflict=on_conflict)
        return self._execute(query, 'upsert', table)

    def delete(self, table, eq):
        query = self.client.table(table).delete()
        for column, value in eq.items():
            query = query.eq(column, value)
        return self._execute(query, 'delete', table)

    # ---------------- procedures ----------------

    def rpc(self, name, params):
        try:
            return self.client.rpc(name, params).execute().data
        except APIError as exc:
            logger.error('rpc %s failed: %s', name, exc.message)
            raise BackendError(exc.message) from exc
        except httpx.HTTPError as exc:
            logger.error('rpc %s failed: %s', name, exc)
            raise BackendError(f'Network error: {exc}') from exc

    # ---------------- storage ----------------

    def upload(self, bucket, path, data, content_type='application/octet-stream'):
        try:
            self.client.storage.from_(bucket).upload(
                path, data, {'content-type': content_type}
            )
        except Exception as exc:  # storage3 raises its own error family
            logger.error('upload to %s/%s failed: %s', bucket, path, exc)
            raise BackendError(str(exc)) from exc

    def public_url(self, bucket, path):
        return self.client.storage.from_(bucket).get_public_url(path)
