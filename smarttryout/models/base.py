"""
Model helpers
Row serialization shared by the stand-in backend tables
"""
from datetime import datetime, timezone
import uuid

from sqlalchemy import DateTime


def now_utc():
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


def as_utc(value):
    """SQLite drops tzinfo on the way back; treat naive values as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RowMixin:
    """Expose rows the way the hosted backend returns them: plain dicts, ISO timestamps"""

    def to_dict(self):
        row = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                value = as_utc(value).isoformat()
            row[column.key] = value
        return row

    @classmethod
    def coerce(cls, values):
        """Turn incoming ISO strings into datetimes for DateTime columns"""
        coerced = {}
        columns = cls.__table__.columns
        for key, value in values.items():
            if key not in columns:
                continue
            if isinstance(value, str) and isinstance(columns[key].type, DateTime):
                value = datetime.fromisoformat(value)
            coerced[key] = value
        return coerced
