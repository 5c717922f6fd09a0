# app.py
import atexit
import logging
import os
import sys
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS

# ─────────────────────────────────────────────────────────────
# ✅ Load environment variables early
# ─────────────────────────────────────────────────────────────
load_dotenv()

LOG_FILE = os.getenv("APP_LOG", "./exam_session.log")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ],
)
logger = logging.getLogger("app")

from admin_2fa import is_production  # noqa: E402
from session_timeout import checkpoint  # noqa: E402

ENVIRONMENT = os.getenv("ENVIRONMENT", "LOCAL")


def _cors_origins():
    raw = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_app(config=None):
    # ─────────────────────────────────────────────────────────
    # ✅ Initialize Flask
    # ─────────────────────────────────────────────────────────
    app = Flask(__name__)
    app.secret_key = os.getenv("FLASK_SECRET", "dev-secret-change-me")
    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=is_production(),
        PERMANENT_SESSION_LIFETIME=timedelta(hours=24),
    )
    if config:
        app.config.update(config)

    # credentials carry the session clock cookie mirror
    CORS(
        app,
        resources={r"/api/*": {"origins": _cors_origins()}},
        supports_credentials=True,
    )

    # ─────────────────────────────────────────────────────────
    # ✅ Import & register blueprints (routes)
    # ─────────────────────────────────────────────────────────
    from routes.attempts_routes import attempts_bp
    from routes.login_route import login_bp
    from routes.otp_routes import otp_bp

    app.register_blueprint(login_bp)
    app.register_blueprint(otp_bp)
    app.register_blueprint(attempts_bp)

    checkpoint.init_app(app)

    # ─────────────────────────────────────────────────────────
    # ✅ Simple health check
    # ─────────────────────────────────────────────────────────
    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "environment": ENVIRONMENT}), 200

    # ─────────────────────────────────────────────────────────
    # ✅ Error handlers (nice JSON for common cases)
    # ─────────────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(err):
        return jsonify({"status": "error", "message": "Not found"}), 404

    @app.errorhandler(500)
    def server_error(err):
        return jsonify({"status": "error", "message": "Server error"}), 500

    return app


app = create_app()

# ─────────────────────────────────────────────────────────────
# ✅ Entrypoint
# ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    from config.db_config import close_pool
    atexit.register(close_pool)

    try:
        from otp_cleanup import start_cleanup_scheduler
        start_cleanup_scheduler()
    except Exception as e:
        logger.warning("Could not start OTP cleanup scheduler: %s", e)

    logger.info("Environment: %s", ENVIRONMENT)
    app.run(host="0.0.0.0", port=30010, debug=ENVIRONMENT != "PRODUCTION", use_reloader=False)
