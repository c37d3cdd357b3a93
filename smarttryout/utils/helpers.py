"""
Helper Functions
Utility functions used across the application
"""
from datetime import datetime, timezone
from functools import wraps
import random
import re

from flask import current_app, flash, g, redirect, url_for
import pytz


def now_utc():
    """Get current UTC timestamp"""
    return datetime.now(timezone.utc)


def parse_timestamp(value):
    """Parse an ISO timestamp coming from the backend into an aware datetime"""
    if value is None or isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_local(value, tz_name=None):
    """Convert a backend timestamp to the configured timezone for display"""
    dt = parse_timestamp(value)
    if not dt:
        return None
    tz = pytz.timezone(tz_name or current_app.config['TIMEZONE'])
    return dt.astimezone(tz)


def format_clock(seconds):
    """Seconds as MM:SS (minutes keep growing past 59)"""
    seconds = max(0, int(seconds))
    return f'{seconds // 60:02d}:{seconds % 60:02d}'


def format_score(score):
    if score is None:
        return 'Not released'
    return f'{float(score):.1f}'


def _code_part(text):
    cleaned = re.sub(r'[^a-zA-Z0-9]', '', text or '').upper()[:3]
    return cleaned or 'XXX'


def generate_access_code(school_name, exam_title, now=None, rng=random):
    """
    School initials + title initials + DDHHMMSS + 3 random digits,
    e.g. SMAMAT18093015042. Uniqueness is not checked.
    """
    if now is None:
        now = datetime.now(pytz.timezone(current_app.config['TIMEZONE']))
    stamp = now.strftime('%d%H%M%S')
    suffix = f'{rng.randrange(1000):03d}'
    return f'{_code_part(school_name or "SCH")}{_code_part(exam_title or "EXAM")}{stamp}{suffix}'


def normalize_access_code(code):
    return (code or '').strip().upper()


# Decorators
def login_required(f):
    """Decorator to require a signed-in user; anonymous users go to login"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.auth.user is None:
            return redirect(url_for('auth.login'))
        return f(*args, **kwargs)
    return decorated_function


def teacher_required(f):
    """
    Decorator to require teacher role
    Students land back on their dashboard, not on login
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.auth.user is None:
            return redirect(url_for('auth.login'))
        if g.auth.role != 'teacher':
            flash('Teacher access required', 'danger')
            return redirect(url_for('dashboard.index'))
        return f(*args, **kwargs)
    return decorated_function
