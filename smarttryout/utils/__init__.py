"""
Utils Package
"""
from smarttryout.utils.helpers import (
    now_utc,
    parse_timestamp,
    to_local,
    format_clock,
    format_score,
    generate_access_code,
    normalize_access_code,
    login_required,
    teacher_required
)
from smarttryout.utils.auth_context import SessionContext

__all__ = [
    'now_utc',
    'parse_timestamp',
    'to_local',
    'format_clock',
    'format_score',
    'generate_access_code',
    'normalize_access_code',
    'login_required',
    'teacher_required',
    'SessionContext'
]
