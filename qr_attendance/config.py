# QR Attendance Session System Configuration

import logging
import os
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.parent.absolute()


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'qr-attendance-secret-key-change-me'

    # Database Configuration
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'attendance.db')

    # Attendance Session Configuration
    SESSION_MIN_DURATION_MINUTES = 1
    SESSION_MAX_DURATION_MINUTES = 60
    SESSION_DEFAULT_DURATION_MINUTES = 10
    SESSION_TYPES = ('lecture', 'practical', 'tutorial', 'seminar', 'exam')
    SESSION_DEFAULT_TYPE = 'lecture'
    HISTORY_PAGE_SIZE = 20
    HISTORY_MAX_PAGE_SIZE = 100

    # QR Code Configuration
    QR_CODE_VERSION = None  # let qrcode pick the smallest version that fits
    QR_CODE_SIZE = 10
    QR_CODE_BORDER = 4
    QR_CODE_ERROR_CORRECT = 'M'  # Medium error correction
    QR_CODE_FORMAT = 'PNG'
    QR_CODE_CAPTION = True

    # Session cookie Configuration (cookies are issued by the login service)
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FORMAT = '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    LOG_FILE = BASE_DIR / 'logs' / 'attendance.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = os.environ.get('DEBUG', 'False').lower() in ['true', 'on', '1']
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        app.config.update({
            'SECRET_KEY': cls.SECRET_KEY,
            'PERMANENT_SESSION_LIFETIME': cls.PERMANENT_SESSION_LIFETIME,
            'SESSION_COOKIE_SECURE': cls.SESSION_COOKIE_SECURE,
            'SESSION_COOKIE_HTTPONLY': cls.SESSION_COOKIE_HTTPONLY,
            'SESSION_COOKIE_SAMESITE': cls.SESSION_COOKIE_SAMESITE,
        })


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'attendance_dev.db')

    # More verbose logging
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Tests point this at a temporary file; per-thread connections
    # cannot share an in-memory database
    DATABASE_PATH = BASE_DIR / 'database' / 'attendance_test.db'

    QR_CODE_CAPTION = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Enhanced security for production
    SESSION_COOKIE_SECURE = True  # Requires HTTPS

    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'attendance_prod.db')

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        # Setup file logging
        if not app.debug:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(cls.LOG_FORMAT))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('QR Attendance Session System startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


class DatabaseConfig:
    """Database specific configuration"""

    # Connection settings
    TIMEOUT = 30.0
    CHECK_SAME_THREAD = False

    # WAL mode settings for better concurrency
    JOURNAL_MODE = 'WAL'
    SYNCHRONOUS = 'NORMAL'


# Environment-specific configurations
def get_config(config_name=None):
    """Get configuration based on name or the FLASK_ENV environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(config_class):
    """Validate configuration settings"""
    errors = []

    min_minutes = config_class.SESSION_MIN_DURATION_MINUTES
    max_minutes = config_class.SESSION_MAX_DURATION_MINUTES
    if min_minutes < 1:
        errors.append("SESSION_MIN_DURATION_MINUTES must be at least 1")
    if max_minutes < min_minutes:
        errors.append("SESSION_MAX_DURATION_MINUTES must not be below the minimum")
    if not min_minutes <= config_class.SESSION_DEFAULT_DURATION_MINUTES <= max_minutes:
        errors.append("SESSION_DEFAULT_DURATION_MINUTES is outside the allowed range")
    if config_class.SESSION_DEFAULT_TYPE not in config_class.SESSION_TYPES:
        errors.append("SESSION_DEFAULT_TYPE must be one of SESSION_TYPES")
    if config_class.QR_CODE_ERROR_CORRECT not in ('L', 'M', 'Q', 'H'):
        errors.append("QR_CODE_ERROR_CORRECT must be one of L, M, Q, H")

    return errors
