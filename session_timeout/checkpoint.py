# session_timeout/checkpoint.py
"""
Server-side session checkpoint.

The client mirrors its session clock into the ``session_last_active_at`` and
``session_start_at`` cookies; this before_request hook applies the same
exam-safe policy to them, then enforces role routing and the admin 2FA gate.
"""
import logging

from flask import current_app, jsonify, redirect, request, session

import persistence
from admin_2fa import clear_2fa_cookie, verify_2fa_token
from config.session_config import (
    ADMIN_2FA_COOKIE,
    COOKIE_LAST_ACTIVE_AT,
    COOKIE_SESSION_START_AT,
    LOGIN_PATH,
)
from session_timeout.attempts import ExamAttemptWindow
from session_timeout.guard import is_exam_route
from session_timeout.policy import Role, TerminationReason, evaluate_session, now_ms
from session_timeout.store import parse_epoch_ms
from session_timeout.termination import build_expired_login_url

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {
    LOGIN_PATH,
    "/api/login",
    "/api/logout",
    "/api/me",
    "/api/health",
    "/auth/callback",
}
PUBLIC_PREFIXES = ("/api/auth/", "/static/", "/uploaded_docs/")
PROTECTED_PREFIXES = ("/api/", "/admin", "/student", "/exam", "/result")
OTP_API_PATHS = {"/api/admin/send-otp", "/api/admin/verify-otp"}
VERIFY_OTP_PAGE = "/admin/verify-otp"


def is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


def is_protected(path: str) -> bool:
    return not is_public(path) and path.startswith(PROTECTED_PREFIXES)


def is_api(path: str) -> bool:
    return path.startswith("/api/")


def _has_running_attempt(user_id) -> bool:
    try:
        window = ExamAttemptWindow.from_row(persistence.fetch_active_attempt(user_id))
    except Exception as e:
        # fail open: a failed lookup counts as an exam in progress
        logger.warning("Active attempt lookup failed for user %s: %s", user_id, e)
        return True
    return window is not None and window.is_running()


def clear_session_cookies(response):
    for name in (COOKIE_LAST_ACTIVE_AT, COOKIE_SESSION_START_AT):
        response.delete_cookie(name, path="/")
    return clear_2fa_cookie(response)


def evaluate_request(path: str, role: Role, user_id, cookies, now=None):
    """Timeout verdict for one request, from the mirrored cookies."""
    last_active_at = parse_epoch_ms(cookies.get(COOKIE_LAST_ACTIVE_AT))
    session_start_at = parse_epoch_ms(cookies.get(COOKIE_SESSION_START_AT))
    now = now_ms() if now is None else now

    decision = evaluate_session(
        last_active_at, session_start_at, role, exam_in_progress=is_exam_route(path), now=now
    )
    if decision.reason is TerminationReason.IDLE and _has_running_attempt(user_id):
        decision = evaluate_session(
            last_active_at, session_start_at, role, exam_in_progress=True, now=now
        )
    return decision


def _unauthorized(path: str):
    if is_api(path):
        return jsonify({"status": "error", "message": "Unauthorized"}), 401
    return redirect(LOGIN_PATH)


def _expired(path: str, reason: TerminationReason):
    session.clear()
    if is_api(path):
        response = jsonify({
            "status": "error",
            "message": "Session expired",
            "expired": True,
            "reason": reason.value,
        })
        response.status_code = 401
    else:
        response = redirect(build_expired_login_url(reason))
    return clear_session_cookies(response)


def _route_for_role(path: str, role: Role, user_id):
    if path.startswith("/api/admin/") or path == "/api/admin":
        if role is not Role.ADMIN:
            return jsonify({"status": "error", "message": "Forbidden - Admin only"}), 403
        if path not in OTP_API_PATHS and not _two_factor_ok(user_id):
            return jsonify({
                "status": "error",
                "message": "Admin verification required",
                "code": "2FA_REQUIRED",
            }), 403
        return None

    if path.startswith("/admin"):
        if role is not Role.ADMIN:
            return redirect("/student")
        if path != VERIFY_OTP_PAGE and not _two_factor_ok(user_id):
            return redirect(VERIFY_OTP_PAGE)
        return None

    if path.startswith(("/student", "/result")) and role is not Role.STUDENT:
        return redirect("/admin")
    return None


def _two_factor_ok(user_id) -> bool:
    return verify_2fa_token(current_app.secret_key, request.cookies.get(ADMIN_2FA_COOKIE), user_id)


def check_request():
    path = request.path
    if not is_protected(path):
        return None

    user_id = session.get("user_id")
    if user_id is None:
        return _unauthorized(path)

    role = Role.from_profile(session.get("role"))
    if role is None:
        logger.warning("Session for user %s carries no usable role", user_id)
        session.clear()
        return _unauthorized(path)

    decision = evaluate_request(path, role, user_id, request.cookies)
    if decision.terminate:
        logger.info("Session expired at checkpoint (user=%s, reason=%s, path=%s)",
                    user_id, decision.reason.value, path)
        return _expired(path, decision.reason)

    return _route_for_role(path, role, user_id)


def init_app(app):
    app.before_request(check_request)
