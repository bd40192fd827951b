# app.py
"""
Main Flask application entrypoint.

- Loads env/config
- Builds the service context (Firebase app, Firestore profile store, identity client)
- Enables CORS for /api/*
- Registers blueprints: Auth, Adventure
- Without credentials every /api/* call except health answers with the
  "service not configured" screen instead of crashing
"""

from __future__ import annotations
import atexit
import logging
import os
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

# ---- Load .env early ----
load_dotenv()

# ---- Config & blueprints ----
from config import Config
from routes.auth import auth_bp
from services.adventure_service import presenter
from services.adventure_service.routes import adventure_bp
from services.adventure_service.rooms import validate_graph
from services.context import EXTENSION_KEY, ServiceContext
from services.errors import AdventureError, ConfigMissing

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(config=Config, context: ServiceContext | None = None) -> Flask:
    logging.basicConfig(
        level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    problems = validate_graph()
    if problems:
        raise RuntimeError("Room graph is invalid: " + "; ".join(problems))

    app = Flask(__name__)
    app.config.from_object(config)

    # CORS for the browser client; lock down origins in production
    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    ctx = context or ServiceContext.initialize(config)
    app.extensions[EXTENSION_KEY] = ctx
    if context is None:
        atexit.register(ctx.shutdown)

    # --- Register blueprints ---
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(adventure_bp, url_prefix="/api/adventure")

    @app.before_request
    def block_when_unconfigured():
        if ctx.configured or not request.path.startswith("/api/"):
            return None
        if request.path == "/api/health":
            return None
        err = ConfigMissing(ctx.missing)
        return jsonify({**err.to_dict(), "view": presenter.render_config_missing(ctx.missing)}), err.status_code

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({
            "ok": True,
            "service": "flask",
            "version": "1.0.0",
            "configured": ctx.configured,
            "missing": ctx.missing,
        })

    # --- JSON error handlers ---
    @app.errorhandler(AdventureError)
    def handle_adventure_error(err):
        body = err.to_dict()
        if isinstance(err, ConfigMissing):
            body["view"] = presenter.render_config_missing(err.missing)
        return jsonify(body), err.status_code

    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"ok": False, "error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"ok": False, "error": "Not found"}), 404

    @app.errorhandler(500)
    def handle_500(err):
        logger.error("Unhandled error: %s", err)
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
if __name__ == "__main__":
    port = int(os.getenv("PORT", "5001"))
    create_app().run(host="0.0.0.0", port=port, debug=True)
