"""
Application Factory
Creates and configures the Flask application
"""
import logging

from flask import Flask, g, redirect, session, url_for

from smarttryout.backend import init_backend
from smarttryout.config import DEFAULT_SECRET_KEY, get_config
from smarttryout.extensions import db, socketio
from smarttryout.services import ExamSessionRegistry
from smarttryout.utils import SessionContext, format_clock, format_score, to_local


def configure_logging(app):
    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    app.logger.setLevel(app.config['LOG_LEVEL'])


def create_app(config_name=None):
    """
    Application factory pattern
    Creates and configures Flask app
    """
    app = Flask(__name__, template_folder='../templates', static_folder='../static')

    # Load configuration
    if config_name:
        from smarttryout.config import config
        app.config.from_object(config[config_name])
    else:
        app.config.from_object(get_config())

    if app.config.get('REQUIRE_SECRET_KEY') and app.config['SECRET_KEY'] in (None, '', DEFAULT_SECRET_KEY):
        raise RuntimeError('SECRET_KEY must be set to a private value in production.')

    configure_logging(app)

    # Initialize extensions
    socketio.init_app(
        app,
        cors_allowed_origins=app.config['SOCKETIO_CORS_ALLOWED_ORIGINS'],
        async_mode=app.config['SOCKETIO_ASYNC_MODE']
    )
    if app.config['BACKEND'] == 'sql':
        db.init_app(app)
    init_backend(app)
    app.extensions['exam_sessions'] = ExamSessionRegistry(
        idle_timeout=app.config['EXAM_SESSION_IDLE_SECONDS']
    )

    # Template helpers
    app.jinja_env.filters['local_time'] = to_local
    app.jinja_env.filters['score'] = format_score
    app.jinja_env.filters['clock'] = format_clock

    # Auth session context: one per request, torn down with it
    @app.before_request
    def load_session_context():
        g.auth = SessionContext(session).initialize()

    @app.teardown_request
    def close_session_context(exc):
        auth = g.pop('auth', None)
        if auth is not None:
            auth.close()

    @app.context_processor
    def inject_auth():
        return {'auth': g.get('auth')}

    # Register blueprints
    from smarttryout.routes import auth_bp, dashboard_bp, teacher_bp, student_bp, storage_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(teacher_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(storage_bp)

    # Unknown pages land on the dashboard
    @app.errorhandler(404)
    def not_found(exc):
        return redirect(url_for('dashboard.index'))

    # Register Socket.IO events
    from smarttryout.sockets import register_socket_events
    with app.app_context():
        register_socket_events()

    # Create local backend tables
    if app.config['BACKEND'] == 'sql':
        with app.app_context():
            import smarttryout.models  # noqa: F401
            db.create_all()
            app.logger.info('Local backend tables created/verified')

    return app
