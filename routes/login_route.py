# routes/login_route.py
import logging
import os
import secrets
from urllib.parse import urlencode

import bcrypt
import requests
from flask import Blueprint, jsonify, redirect, request, session, url_for
from pydantic import BaseModel, ValidationError, field_validator

import persistence
from config.session_config import LOGIN_PATH
from session_timeout.checkpoint import clear_session_cookies
from session_timeout.policy import Role, TerminationReason

logger = logging.getLogger(__name__)

login_bp = Blueprint("login_bp", __name__)

EXPIRED_MESSAGES = {
    TerminationReason.IDLE.value: "Your session expired because of inactivity. Please sign in again.",
    TerminationReason.ABSOLUTE.value: "Your session has expired. Please sign in again.",
}
GENERIC_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."
OAUTH_TIMEOUT = 30


class LoginIn(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def email_non_empty(cls, v: str):
        if not v or not v.strip():
            raise ValueError("email is required")
        return v.strip()

    @field_validator("password")
    @classmethod
    def password_non_empty(cls, v: str):
        if not v:
            raise ValueError("password is required")
        return v


def _is_probably_bcrypt(value: str) -> bool:
    """
    Best-effort check whether a stored password looks like a bcrypt hash.
    """
    return isinstance(value, str) and (
        value.startswith("$2a$") or value.startswith("$2b$") or value.startswith("$2y$")
    )


def _check_password(password: str, stored_password) -> bool:
    if stored_password and _is_probably_bcrypt(stored_password):
        try:
            return bcrypt.checkpw(password.encode("utf-8"), stored_password.encode("utf-8"))
        except ValueError:
            return False
    # Plaintext fallback (for legacy rows)
    return bool(stored_password) and stored_password == password


def default_redirect_path(role) -> str:
    role = Role.from_profile(role)
    if role is Role.ADMIN:
        return "/admin/verify-otp"
    if role is Role.STUDENT:
        return "/student"
    return LOGIN_PATH


def _user_payload(profile: dict) -> dict:
    return {
        "id": profile["id"],
        "email": profile.get("email"),
        "name": profile.get("full_name"),
        "role": Role.from_profile(profile.get("role")).value,
    }


def _start_session(profile: dict) -> dict:
    user = _user_payload(profile)
    session.clear()
    session.permanent = True
    session["user_id"] = user["id"]
    session["role"] = user["role"]
    session["email"] = user["email"]
    session["name"] = user["name"]
    return user


@login_bp.route("/api/login", methods=["POST"])
def login():
    """
    POST /api/login
    Body: { "email": "...", "password": "..." }

    Success (200):
    { "status": "success", "user": {...}, "redirect": "/student" | "/admin/verify-otp" }

    Failure (400/401/403/500):
    { "status": "error", "message": "..." }
    """
    try:
        try:
            data = LoginIn(**(request.get_json(silent=True) or {}))
        except (ValidationError, TypeError):
            return jsonify({"status": "error", "message": "Missing email or password"}), 400

        profile = persistence.select_one(
            "profiles",
            ["id", "email", "full_name", "role", "password_hash"],
            {"email": data.email.lower()},
        )
        if not profile or not _check_password(data.password, profile.get("password_hash")):
            return jsonify({"status": "error", "message": "Invalid email or password"}), 401

        if Role.from_profile(profile.get("role")) is None:
            logger.warning("Login refused for %s: profile has no usable role", data.email)
            return jsonify({"status": "error", "message": "Account has no role assigned"}), 403

        user = _start_session(profile)
        logger.info("User %s signed in (role=%s)", user["id"], user["role"])
        return jsonify({
            "status": "success",
            "user": user,
            "redirect": default_redirect_path(user["role"]),
        }), 200

    except Exception as e:
        logger.exception("Login API error: %s", e)
        return jsonify({"status": "error", "message": "Server error"}), 500


@login_bp.route("/api/logout", methods=["POST"])
def logout():
    user_id = session.get("user_id")
    session.clear()
    response = jsonify({"status": "success"})
    if user_id is not None:
        logger.info("User %s signed out", user_id)
    return clear_session_cookies(response), 200


@login_bp.route("/api/me", methods=["GET"])
def current_user():
    if session.get("user_id") is None:
        return jsonify({"status": "success", "user": None}), 200
    return jsonify({
        "status": "success",
        "user": {
            "id": session["user_id"],
            "email": session.get("email"),
            "name": session.get("name"),
            "role": session.get("role"),
        },
    }), 200


@login_bp.route(LOGIN_PATH, methods=["GET"])
def login_surface():
    """
    GET /login[?expired=true&reason=idle|absolute]
    Tells the login screen which message to show.
    """
    expired = request.args.get("expired") == "true"
    payload = {"status": "success", "expired": expired, "message": None}
    if expired:
        reason = request.args.get("reason")
        payload["reason"] = reason if reason in EXPIRED_MESSAGES else None
        payload["message"] = EXPIRED_MESSAGES.get(reason, GENERIC_EXPIRED_MESSAGE)
        session.clear()
        return clear_session_cookies(jsonify(payload)), 200

    if session.get("user_id") is not None:
        payload["redirect"] = default_redirect_path(session.get("role"))
    return jsonify(payload), 200


# ----------------------------
# OAuth
# ----------------------------
def _oauth_setting(provider: str, name: str):
    return os.getenv(f"OAUTH_{provider.upper()}_{name}")


@login_bp.route("/api/auth/oauth/<provider>", methods=["GET"])
def oauth_start(provider):
    authorize_url = _oauth_setting(provider, "AUTHORIZE_URL")
    client_id = _oauth_setting(provider, "CLIENT_ID")
    if not authorize_url or not client_id:
        return jsonify({"status": "error", "message": f"Unsupported provider: {provider}"}), 400

    state = secrets.token_urlsafe(24)
    session["oauth_state"] = state
    session["oauth_provider"] = provider
    session["oauth_redirect_to"] = request.args.get("redirect_to")

    query = urlencode({
        "client_id": client_id,
        "redirect_uri": url_for("login_bp.oauth_callback", _external=True),
        "response_type": "code",
        "scope": _oauth_setting(provider, "SCOPE") or "openid email profile",
        "state": state,
    })
    return redirect(f"{authorize_url}?{query}")


def _exchange_code(provider: str, code: str) -> dict:
    token_response = requests.post(
        _oauth_setting(provider, "TOKEN_URL"),
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": url_for("login_bp.oauth_callback", _external=True),
            "client_id": _oauth_setting(provider, "CLIENT_ID"),
            "client_secret": _oauth_setting(provider, "CLIENT_SECRET"),
        },
        timeout=OAUTH_TIMEOUT,
    )
    token_response.raise_for_status()
    access_token = token_response.json()["access_token"]

    userinfo = requests.get(
        _oauth_setting(provider, "USERINFO_URL"),
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=OAUTH_TIMEOUT,
    )
    userinfo.raise_for_status()
    return userinfo.json()


@login_bp.route("/auth/callback", methods=["GET"])
def oauth_callback():
    provider = session.pop("oauth_provider", None)
    expected_state = session.pop("oauth_state", None)
    redirect_to = session.pop("oauth_redirect_to", None)

    code = request.args.get("code")
    if not provider or not code or request.args.get("state") != expected_state:
        return redirect(f"{LOGIN_PATH}?{urlencode({'error': 'oauth_failed'})}")

    try:
        info = _exchange_code(provider, code)
        email = (info.get("email") or "").strip().lower()
        if not email:
            return redirect(f"{LOGIN_PATH}?{urlencode({'error': 'oauth_no_email'})}")

        profile = persistence.select_one("profiles", ["id", "email", "full_name", "role"], {"email": email})
        if profile is None:
            profile = persistence.insert("profiles", {
                "email": email,
                "full_name": info.get("name") or email.split("@")[0],
                "role": Role.STUDENT.value,
            })
            logger.info("Created student profile for OAuth user %s", email)

        if Role.from_profile(profile.get("role")) is None:
            return redirect(f"{LOGIN_PATH}?{urlencode({'error': 'no_role'})}")

        user = _start_session(profile)
    except Exception as e:
        logger.exception("OAuth callback failed (%s): %s", provider, e)
        return redirect(f"{LOGIN_PATH}?{urlencode({'error': 'oauth_failed'})}")

    if user["role"] == Role.ADMIN.value or not redirect_to or not redirect_to.startswith("/"):
        redirect_to = default_redirect_path(user["role"])
    return redirect(redirect_to)
