# QR Attendance Session System - App Package
"""
Flask service for QR-code attendance sessions.
Teachers issue short-lived QR sessions, students scan them to be marked
present, and issuers or admins manage and review the sessions.
"""

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import get_config, validate_config
from .modules.attendance_manager import AttendanceManager
from .modules.database_manager import DatabaseManager
from .modules.errors import AttendanceError
from .modules.token_codec import ScopeKey, TokenCodec

__version__ = "1.0.0"
__description__ = "QR code attendance sessions with replay-safe scanning"

__all__ = [
    'create_app',
    'AttendanceManager',
    'AttendanceError',
    'DatabaseManager',
    'ScopeKey',
    'TokenCodec'
]


def create_app(config_name=None, database_path=None, clock=None, enrollment=None):
    """
    Build the Flask application.

    Args:
        config_name: Configuration name ('development', 'testing', 'production')
            or a configuration class
        database_path: Overrides the configured SQLite file
        clock: Clock used for every temporal decision
        enrollment: Enrollment directory replacing the database-backed one

    Returns:
        Flask: Configured application
    """
    config_class = config_name if isinstance(config_name, type) else get_config(config_name)

    logging.basicConfig(
        level=getattr(logging, config_class.LOG_LEVEL.upper(), logging.INFO),
        format=config_class.LOG_FORMAT
    )
    logger = logging.getLogger(__name__)

    errors = validate_config(config_class)
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    app = Flask(__name__)
    app.config.from_object(config_class)
    config_class.init_app(app)

    db_manager = DatabaseManager(database_path or config_class.DATABASE_PATH)
    app.extensions['db_manager'] = db_manager
    app.extensions['attendance_manager'] = AttendanceManager(
        db_manager, config_class, clock=clock, enrollment=enrollment
    )

    from .routes import api_bp
    app.register_blueprint(api_bp)

    @app.teardown_appcontext
    def close_db_connection(exception):
        db_manager.close_connection()

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'success': False,
            'message': error.description,
            'error_type': error.name.lower().replace(' ', '_')
        }), error.code

    logger.info(f"QR attendance service configured ({config_class.__name__})")
    return app
