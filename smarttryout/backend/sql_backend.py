"""
SQL Backend
Local stand-in for the hosted backend, used for development and tests.
Tables live in Flask-SQLAlchemy models, files in a directory per bucket,
and access tokens are signed user ids.
"""
import logging
import os

from flask import url_for
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash
from werkzeug.utils import secure_filename

from smarttryout.backend.base import AuthSession, Backend
from smarttryout.backend.procedures import PROCEDURES
from smarttryout.exceptions import BackendError
from smarttryout.extensions import db
from smarttryout.models import TABLES, User

logger = logging.getLogger(__name__)

TOKEN_MAX_AGE = 60 * 60 * 24


class SQLBackend(Backend):
    """Backend implementation over the local database"""

    def __init__(self, secret_key, storage_root, access_token=None):
        self.serializer = URLSafeTimedSerializer(secret_key, salt='sql-backend-auth')
        self.storage_root = storage_root
        self.access_token = access_token
        self._listeners = []

    # ---------------- auth ----------------

    def _emit(self, event, session):
        for listener in list(self._listeners):
            listener(event, session)

    def sign_in(self, email, password):
        user = User.query.filter_by(email=email).first()
        if not user or not check_password_hash(user.password_hash, password):
            raise BackendError('Invalid login credentials')

        self.access_token = self.serializer.dumps(user.id)
        session = AuthSession(user_id=user.id, email=user.email,
                              access_token=self.access_token)
        self._emit('SIGNED_IN', session)
        return session

    def sign_out(self):
        self.access_token = None
        self._emit('SIGNED_OUT', None)

    def get_user(self):
        if not self.access_token:
            return None
        try:
            user_id = self.serializer.loads(self.access_token, max_age=TOKEN_MAX_AGE)
        except (BadSignature, SignatureExpired):
            return None
        user = db.session.get(User, user_id)
        if user is None:
            return None
        return {'id': user.id, 'email': user.email}

    def on_auth_change(self, listener):
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------------- tables ----------------

    def _model(self, table):
        try:
            return TABLES[table]
        except KeyError:
            raise BackendError(f'relation "{table}" does not exist') from None

    def _query(self, model, eq=None, in_=None):
        query = model.query.filter_by(**(eq or {}))
        if in_:
            column, values = in_
            query = query.filter(getattr(model, column).in_(list(values)))
        return query

    def _commit(self, action, table):
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error('%s on %s failed: %s', action, table, exc)
            raise BackendError(str(exc.orig) if getattr(exc, 'orig', None) else str(exc)) from exc

    @staticmethod
    def _project(row, columns):
        if columns == '*':
            return row
        wanted = [c.strip() for c in columns.split(',')]
        return {key: row[key] for key in wanted if key in row}

    def select(self, table, columns='*', eq=None, in_=None, order_by=None, desc=False):
        model = self._model(table)
        query = self._query(model, eq, in_)
        if order_by:
            column = getattr(model, order_by)
            query = query.order_by(column.desc() if desc else column.asc())
        try:
            rows = query.all()
        except SQLAlchemyError as exc:
            logger.error('select on %s failed: %s', table, exc)
            raise BackendError(str(exc)) from exc
        return [self._project(row.to_dict(), columns) for row in rows]

    def insert(self, table, rows):
        model = self._model(table)
        if isinstance(rows, dict):
            rows = [rows]
        created = [model(**model.coerce(row)) for row in rows]
        db.session.add_all(created)
        self._commit('insert', table)
        return [obj.to_dict() for obj in created]

    def update(self, table, values, eq):
        model = self._model(table)
        values = model.coerce(values)
        changed = self._query(model, eq).all()
        for obj in changed:
            for key, value in values.items():
                setattr(obj, key, value)
        self._commit('update', table)
        return [obj.to_dict() for obj in changed]

    def upsert(self, table, rows, on_conflict='id'):
        model = self._model(table)
        if isinstance(rows, dict):
            rows = [rows]
        keys = [c.strip() for c in on_conflict.split(',')]

        written = []
        for row in rows:
            values = model.coerce(row)
            match = {key: values[key] for key in keys if key in values}
            existing = model.query.filter_by(**match).first() if len(match) == len(keys) else None
            if existing is None:
                existing = model(**values)
                db.session.add(existing)
            else:
                for key, value in values.items():
                    setattr(existing, key, value)
            written.append(existing)
        self._commit('upsert', table)
        return [obj.to_dict() for obj in written]

    def delete(self, table, eq):
        model = self._model(table)
        doomed = self._query(model, eq).all()
        rows = [obj.to_dict() for obj in doomed]
        # Row by row so relationship cascades behave like ON DELETE CASCADE
        for obj in doomed:
            db.session.delete(obj)
        self._commit('delete', table)
        return rows

    # ---------------- procedures ----------------

    def rpc(self, name, params):
        procedure = PROCEDURES.get(name)
        if procedure is None:
            raise BackendError(f'Could not find the function public.{name}')
        try:
            return procedure(**params)
        except (LookupError, SQLAlchemyError) as exc:
            db.session.rollback()
            logger.error('rpc %s failed: %s', name, exc)
            raise BackendError(str(exc)) from exc

    # ---------------- storage ----------------

    def _storage_path(self, bucket, path):
        parts = [secure_filename(part) for part in path.split('/') if part]
        return os.path.join(self.storage_root, secure_filename(bucket), *parts)

    def upload(self, bucket, path, data, content_type='application/octet-stream'):
        target = self._storage_path(bucket, path)
        if os.path.exists(target):
            raise BackendError('The resource already exists')
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, 'wb') as fh:
                fh.write(data)
        except OSError as exc:
            logger.error('upload to %s/%s failed: %s', bucket, path, exc)
            raise BackendError(str(exc)) from exc

    def public_url(self, bucket, path):
        return url_for('storage.public_file', bucket=bucket, path=path, _external=True)
