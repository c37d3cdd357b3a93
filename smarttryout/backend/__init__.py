"""
Backend Package
Builds backend clients for the configured BACKEND
"""
from flask import current_app

from smarttryout.backend.base import AuthSession, Backend

__all__ = ['AuthSession', 'Backend', 'init_backend', 'get_backend']


def init_backend(app):
    """Register the client factory for app.config['BACKEND']"""
    kind = app.config['BACKEND']

    if kind == 'sql':
        from smarttryout.backend.sql_backend import SQLBackend

        def factory(access_token=None, refresh_token=None):
            return SQLBackend(
                app.config['SECRET_KEY'],
                app.config['STORAGE_ROOT'],
                access_token=access_token,
            )
    elif kind == 'supabase':
        from smarttryout.backend.supabase_backend import SupabaseBackend

        def factory(access_token=None, refresh_token=None):
            return SupabaseBackend(
                app.config['SUPABASE_URL'],
                app.config['SUPABASE_ANON_KEY'],
                access_token=access_token,
                refresh_token=refresh_token,
            )
    else:
        raise ValueError(f'Unknown BACKEND {kind!r}')

    app.extensions['backend_factory'] = factory


def get_backend(access_token=None, refresh_token=None):
    """New client, bound to the given user tokens when present"""
    factory = current_app.extensions['backend_factory']
    return factory(access_token=access_token, refresh_token=refresh_token)
