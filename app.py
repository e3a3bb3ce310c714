"""
QR Attendance Session System - Main Application

Entry point for running the attendance session service with the Flask
development server. The configuration is selected with FLASK_ENV
('development', 'testing' or 'production').
"""

import os

from qr_attendance import create_app

app = create_app()

if __name__ == '__main__':
    app.run(
        host=os.environ.get('HOST', '127.0.0.1'),
        port=int(os.environ.get('PORT', 5000)),
        debug=app.config.get('DEBUG', False),
        threaded=True
    )
