# routes/otp_routes.py
import logging

from flask import Blueprint, current_app, jsonify, request, session
from pydantic import BaseModel, ValidationError, field_validator

import persistence
from admin_2fa import (
    deliver_otp,
    generate_otp,
    is_otp_expired,
    is_valid_otp_format,
    otp_expiration,
    set_2fa_cookie,
)
from config.session_config import OTP_EXPIRATION_MINUTES
from session_timeout.policy import Role

logger = logging.getLogger(__name__)

otp_bp = Blueprint("otp_bp", __name__)

OTP_TABLE = "admin_otp_codes"


class VerifyOtpIn(BaseModel):
    otp: str

    @field_validator("otp")
    @classmethod
    def six_digits(cls, v: str):
        v = (v or "").strip()
        if not is_valid_otp_format(v):
            raise ValueError("OTP must be 6 digits")
        return v


def _error(message, status, code=None):
    body = {"status": "error", "message": message}
    if code:
        body["code"] = code
    return jsonify(body), status


def _current_admin():
    user_id = session.get("user_id")
    if user_id is None:
        return None
    profile = persistence.select_one("profiles", ["id", "email", "full_name", "role"], {"id": user_id})
    if profile is None or Role.from_profile(profile.get("role")) is not Role.ADMIN:
        return None
    return profile


@otp_bp.route("/api/admin/send-otp", methods=["POST"])
def send_otp():
    """
    POST /api/admin/send-otp
    Issues a fresh 6-digit code to the signed-in admin. Older unused codes are retired.

    Success (200):
    { "status": "success", "message": "OTP sent", "expires_in_minutes": 5 }
    """
    try:
        admin = _current_admin()
        if admin is None:
            return _error("Forbidden - Admin only", 403)

        persistence.update(OTP_TABLE, {"is_used": True}, {"user_id": admin["id"], "is_used": False})

        otp = generate_otp()
        persistence.insert(OTP_TABLE, {
            "user_id": admin["id"],
            "otp_code": otp,
            "expires_at": otp_expiration(),
            "is_used": False,
        })

        if not deliver_otp(admin.get("email"), otp, admin.get("full_name") or "Admin"):
            return _error("Email service not configured", 500)

        logger.info("OTP issued for admin %s", admin["id"])
        return jsonify({
            "status": "success",
            "message": "OTP sent",
            "expires_in_minutes": OTP_EXPIRATION_MINUTES,
        }), 200

    except Exception as e:
        logger.exception("send-otp failed: %s", e)
        return _error("Server error", 500)


@otp_bp.route("/api/admin/verify-otp", methods=["POST"])
def verify_otp():
    """
    POST /api/admin/verify-otp
    Body: { "otp": "123456" }

    Success sets the admin_2fa_verified cookie.
    Failure (400): code INVALID_FORMAT | INVALID_OTP | OTP_EXPIRED
    """
    try:
        admin = _current_admin()
        if admin is None:
            return _error("Forbidden - Admin only", 403)

        try:
            data = VerifyOtpIn(**(request.get_json(silent=True) or {}))
        except (ValidationError, TypeError):
            return _error("OTP must be 6 digits", 400, "INVALID_FORMAT")

        row = persistence.select_one(
            OTP_TABLE,
            filters={"user_id": admin["id"], "otp_code": data.otp, "is_used": False},
            order_by="created_at",
            descending=True,
        )
        if row is None:
            logger.warning("Invalid OTP attempt for admin %s", admin["id"])
            return _error("Invalid OTP", 400, "INVALID_OTP")

        if is_otp_expired(row["expires_at"]):
            persistence.update(OTP_TABLE, {"is_used": True}, {"id": row["id"]})
            return _error("OTP has expired. Please request a new one.", 400, "OTP_EXPIRED")

        persistence.update(OTP_TABLE, {"is_used": True}, {"id": row["id"]})

        response = jsonify({"status": "success", "message": "Verified", "redirect": "/admin"})
        set_2fa_cookie(response, current_app.secret_key, admin["id"])
        logger.info("Admin %s completed 2FA", admin["id"])
        return response, 200

    except Exception as e:
        logger.exception("verify-otp failed: %s", e)
        return _error("Server error", 500)
