"""
HTTP routes for QR attendance sessions.

Identity comes from the Flask session (``user_id`` and ``user_type``), which the
login service populates; these routes never check credentials themselves.
"""

from functools import wraps

from flask import Blueprint, current_app, jsonify, request, session

from qr_attendance.modules.errors import http_status_for


api_bp = Blueprint('api', __name__, url_prefix='/api')

ROLE_STUDENT = 'student'
ROLE_TEACHER = 'teacher'
ROLE_ADMIN = 'admin'


def role_required(*roles):
    """Decorator to require a logged-in user with one of the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if 'user_id' not in session:
                return jsonify({
                    'success': False,
                    'message': 'Please log in to access this resource.',
                    'error_type': 'unauthorized'
                }), 401
            if session.get('user_type') not in roles:
                return jsonify({
                    'success': False,
                    'message': 'You do not have permission to access this resource.',
                    'error_type': 'forbidden'
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _manager():
    return current_app.extensions['attendance_manager']


def _is_admin():
    return session.get('user_type') == ROLE_ADMIN


def _respond(result, success_status=200):
    if result['success']:
        return jsonify(result), success_status
    return jsonify(result), http_status_for(result['error_type'])


@api_bp.route('/sessions', methods=['POST'])
@role_required(ROLE_TEACHER, ROLE_ADMIN)
def issue_session():
    """Issue a new QR attendance session"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        data = {}
    class_id = data.get('class_id')
    subject_id = data.get('subject_id')

    if class_id is None or subject_id is None:
        return jsonify({
            'success': False,
            'message': 'class_id and subject_id are required',
            'error_type': 'invalid_scope'
        }), 400

    result = _manager().issue_session(
        session['user_id'],
        class_id,
        subject_id,
        session_type=data.get('session_type'),
        duration_minutes=data.get('duration')
    )
    return _respond(result, success_status=201)


@api_bp.route('/sessions/<code>/cancel', methods=['POST'])
@role_required(ROLE_TEACHER, ROLE_ADMIN)
def cancel_session(code):
    """Cancel a session the user issued (admins may cancel any)"""
    result = _manager().cancel_session(code, session['user_id'], is_admin=_is_admin())
    return _respond(result)


@api_bp.route('/sessions/active')
@role_required(ROLE_TEACHER, ROLE_ADMIN)
def list_active_sessions():
    """Sessions currently accepting scans"""
    issuer_id = None if _is_admin() else session['user_id']
    return _respond(_manager().list_active_sessions(issuer_id))


@api_bp.route('/sessions/history')
@role_required(ROLE_TEACHER, ROLE_ADMIN)
def session_history():
    """Paginated session history, newest first"""
    issuer_id = None if _is_admin() else session['user_id']
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', type=int)
    return _respond(_manager().list_session_history(issuer_id, page=page, per_page=per_page))


@api_bp.route('/sessions/<code>/attendance')
@role_required(ROLE_TEACHER, ROLE_ADMIN)
def session_attendance(code):
    """Students marked present in one session"""
    result = _manager().get_session_attendance(code, session['user_id'], is_admin=_is_admin())
    return _respond(result)


@api_bp.route('/scan', methods=['POST'])
@role_required(ROLE_STUDENT)
def submit_scan():
    """Process a student's QR code scan"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        data = {}
    qr_data = data.get('qr_data') or data.get('token')

    if not qr_data:
        return jsonify({
            'success': False,
            'status': 'invalid_token',
            'message': 'No QR code data provided',
            'error_type': 'invalid_token'
        }), 400

    return _respond(_manager().submit_scan(session['user_id'], qr_data))
