# routes/attempts_routes.py
import logging

from flask import Blueprint, jsonify, request, session

import persistence
from session_timeout.attempts import ExamAttemptWindow
from session_timeout.policy import Role

logger = logging.getLogger(__name__)

attempts_bp = Blueprint("attempts_bp", __name__)


@attempts_bp.route("/api/attempts/active", methods=["GET"])
def active_attempt():
    """
    GET /api/attempts/active
    The signed-in student's running attempt, for the resume banner.

    200: { "status": "success", "attempt": {...} | null }
    """
    if Role.from_profile(session.get("role")) is not Role.STUDENT:
        return jsonify({"status": "success", "attempt": None}), 200

    try:
        window = ExamAttemptWindow.from_row(persistence.fetch_active_attempt(session["user_id"]))
    except Exception as e:
        logger.exception("Active attempt lookup failed: %s", e)
        return jsonify({"status": "error", "message": "Server error"}), 500

    if window is None or not window.is_running():
        return jsonify({"status": "success", "attempt": None}), 200
    return jsonify({"status": "success", "attempt": window.to_dict()}), 200


@attempts_bp.route("/api/attempts/<attempt_id>/anti-cheat", methods=["POST"])
def log_anti_cheat(attempt_id):
    """
    POST /api/attempts/<attempt_id>/anti-cheat
    Body: { "event_type": "tab_switch", "metadata": {...} }
    """
    data = request.get_json(silent=True) or {}
    event_type = data.get("event_type")
    if not event_type:
        return jsonify({"status": "error", "message": "event_type is required"}), 400

    try:
        attempt = persistence.select_one(
            "exam_attempts", ["id", "student_id"], {"id": attempt_id}
        )
        if attempt is None or str(attempt["student_id"]) != str(session.get("user_id")):
            return jsonify({"status": "error", "message": "Attempt not found"}), 404

        persistence.insert("anti_cheat_logs", {
            "attempt_id": attempt_id,
            "event_type": event_type,
            "metadata": persistence.Jsonb(data.get("metadata") or {}),
        })
        return jsonify({"status": "success"}), 200
    except Exception as e:
        logger.exception("Anti-cheat log failed for attempt %s: %s", attempt_id, e)
        return jsonify({"status": "error", "message": "Server error"}), 500
