from flask import Blueprint, request, session, current_app, jsonify

from extensions import limiter
from utils.security import verify_admin_password
from utils.tenant import get_or_create_school

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
# Throttle brute-force attempts on the shared password
@limiter.limit(lambda: current_app.config.get('LOGIN_RATE_LIMIT', '10 per minute'), methods=['POST'])
def login():
    """Log in with the single shared admin password.

    Optional ``school_code`` selects the tenant for the session.
    """
    data = request.get_json(silent=True) or request.form
    password = (data.get('password') or '').strip()
    if not verify_admin_password(current_app.config.get('ADMIN_PASSWORD'), password):
        current_app.logger.warning("Failed admin login from %s", request.remote_addr)
        return jsonify({"error": "Invalid password"}), 401

    session.clear()
    session.permanent = True
    session['admin_logged_in'] = True
    code = (data.get('school_code') or current_app.config.get('DEFAULT_SCHOOL_CODE') or 'main').strip()
    school = get_or_create_school(code)
    session['school_id'] = school.id
    current_app.logger.info("Admin logged in (school %s)", school.code)
    return jsonify({"ok": True, "school": {"id": school.id, "code": school.code, "name": school.name}})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({"ok": True})


@auth_bp.route('/status', methods=['GET'])
def status():
    return jsonify({"authenticated": bool(session.get('admin_logged_in')), "school_id": session.get('school_id')})
