# admin_2fa.py - Admin OTP (2FA) helpers
"""
- OTP is 6 numeric digits, expires after 5 minutes, single use
- Successful verification sets the admin_2fa_verified cookie: a signed token
  bound to the admin's user id, valid for 6 hours
"""
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config.session_config import (
    ADMIN_2FA_COOKIE,
    ADMIN_2FA_EXPIRATION_SECONDS,
    OTP_EXPIRATION_MINUTES,
    OTP_LENGTH,
)

logger = logging.getLogger(__name__)

TOKEN_SALT = "admin-2fa-verified"


def generate_otp() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))


def otp_expiration(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(minutes=OTP_EXPIRATION_MINUTES)


def is_otp_expired(expires_at: Any, now: Optional[datetime] = None) -> bool:
    if isinstance(expires_at, str):
        expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return now > expires_at


def is_valid_otp_format(otp: Any) -> bool:
    return isinstance(otp, str) and len(otp) == OTP_LENGTH and otp.isdigit()


def format_otp_for_display(otp: str) -> str:
    """'123456' -> '123 456'"""
    return f"{otp[:3]} {otp[3:]}"


# ----------------------------
# 2FA cookie
# ----------------------------
def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)


def issue_2fa_token(secret_key: str, user_id: Any) -> str:
    return _serializer(secret_key).dumps({"uid": str(user_id)})


def verify_2fa_token(secret_key: str, token: Optional[str], user_id: Any) -> bool:
    if not token:
        return False
    try:
        data = _serializer(secret_key).loads(token, max_age=ADMIN_2FA_EXPIRATION_SECONDS)
    except SignatureExpired:
        return False
    except BadSignature:
        logger.warning("Rejected tampered 2FA cookie for user %s", user_id)
        return False
    return isinstance(data, dict) and data.get("uid") == str(user_id)


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "LOCAL").upper() == "PRODUCTION"


def set_2fa_cookie(response, secret_key: str, user_id: Any):
    response.set_cookie(
        ADMIN_2FA_COOKIE,
        issue_2fa_token(secret_key, user_id),
        max_age=ADMIN_2FA_EXPIRATION_SECONDS,
        path="/",
        httponly=True,
        secure=is_production(),
        samesite="Strict",
    )
    return response


def clear_2fa_cookie(response):
    response.delete_cookie(ADMIN_2FA_COOKIE, path="/", samesite="Strict")
    return response


def deliver_otp(email: str, otp: str, user_name: str) -> bool:
    """
    Hand the code to the admin. Only development mode has a delivery channel
    (the log); any other environment reports failure.
    """
    environment = os.getenv("ENVIRONMENT", "LOCAL").upper()
    if environment in ("LOCAL", "DEVELOPMENT"):
        logger.info("[DEV MODE] OTP for %s (%s): %s", email, user_name, format_otp_for_display(otp))
        return True
    logger.critical("No OTP delivery channel configured in %s", environment)
    return False
