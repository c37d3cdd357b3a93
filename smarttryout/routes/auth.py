"""
Authentication Routes
Handles login and logout against the backend's auth service
"""
import logging

from flask import Blueprint, g, redirect, render_template, request, url_for

from smarttryout.exceptions import BackendError

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/')
def index():
    """Homepage"""
    return redirect(url_for('dashboard.index'))


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """User login"""
    error = None
    email = ''

    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')

        if not email or not password:
            error = 'Email and password are required.'
        else:
            try:
                g.auth.sign_in(email, password)
            except BackendError as exc:
                logger.info('Login failed for %s: %s', email, exc)
                error = exc.message or 'Login failed. Please check your credentials.'
            else:
                return redirect(url_for('dashboard.index'))

    if g.auth.user is not None and request.method == 'GET':
        return redirect(url_for('dashboard.index'))

    return render_template('login.html', error=error, email=email), (400 if error else 200)


@auth_bp.route('/logout')
def logout():
    """User logout"""
    try:
        g.auth.sign_out()
    except BackendError as exc:
        # Tokens are already dropped locally
        logger.error('Sign-out error: %s', exc)
    return redirect(url_for('auth.login'))
