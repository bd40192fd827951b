# auth_middleware.py
from functools import wraps
from flask import current_app, request, jsonify

from services.context import EXTENSION_KEY
from services.errors import AuthFailure


def require_auth(fn):
    """
    Verify Firebase ID token from 'Authorization: Bearer <token>'.
    Sets request.user = {"uid": ..., "email": ..., "name": ...}
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        hdr = request.headers.get("Authorization", "")
        if not hdr.startswith("Bearer "):
            return jsonify({"ok": False, "error": "Missing Firebase ID token", "screen": "auth"}), 401
        ctx = current_app.extensions[EXTENSION_KEY]
        ctx.require_configured()
        try:
            token = hdr.split(" ", 1)[1]
            request.user = ctx.identity.verify_token(token)
        except AuthFailure as e:
            return jsonify({**e.to_dict(), "screen": "auth"}), 401
        return fn(*args, **kwargs)
    return wrapper
