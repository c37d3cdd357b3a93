"""
Backend Interface
Everything the application needs from the hosted backend-as-a-service:
table CRUD, remote procedures, storage and auth.
"""
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class AuthSession:
    """Tokens and identity returned by a successful sign-in"""
    user_id: str
    email: str
    access_token: str
    refresh_token: Optional[str] = None


AuthListener = Callable[[str, Optional[AuthSession]], None]


class Backend:
    """
    Client for the backend, bound to at most one signed-in user.

    Row filters follow the backend's query builder:
        eq       -- {column: value} equality filters
        in_      -- (column, values) membership filter
        order_by -- column name, with desc=True for descending order

    Every failed call raises BackendError.
    """

    # ---------------- auth ----------------

    def sign_in(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    def sign_out(self) -> None:
        raise NotImplementedError

    def get_user(self) -> Optional[dict]:
        """Return {'id', 'email'} for the bound access token, or None"""
        raise NotImplementedError

    def on_auth_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to SIGNED_IN / SIGNED_OUT events; returns an unsubscribe callable"""
        raise NotImplementedError

    # ---------------- tables ----------------

    def select(self, table, columns='*', eq=None, in_=None, order_by=None, desc=False):
        raise NotImplementedError

    def insert(self, table, rows):
        raise NotImplementedError

    def update(self, table, values, eq):
        raise NotImplementedError

    def upsert(self, table, rows, on_conflict='id'):
        raise NotImplementedError

    def delete(self, table, eq):
        raise NotImplementedError

    # ---------------- procedures ----------------

    def rpc(self, name, params):
        raise NotImplementedError

    # ---------------- storage ----------------

    def upload(self, bucket, path, data: bytes, content_type='application/octet-stream'):
        raise NotImplementedError

    def public_url(self, bucket, path) -> str:
        raise NotImplementedError

    # ---------------- helpers ----------------

    def select_one(self, table, **kwargs):
        """First matching row or None"""
        rows = self.select(table, **kwargs)
        return rows[0] if rows else None
