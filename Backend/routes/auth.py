# routes/auth.py
"""
Sign-up / sign-in / anonymous / sign-out.

Failures come back as 401 with the auth screen and an inline message,
so the player can correct the form and retry.
"""
import logging

from flask import Blueprint, current_app, request, jsonify

from auth_middleware import require_auth
from services.adventure_service import presenter
from services.context import EXTENSION_KEY
from services.errors import AuthFailure

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


def _identity():
    ctx = current_app.extensions[EXTENSION_KEY]
    ctx.require_configured()
    return ctx.identity


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""
    if not (email and password):
        raise AuthFailure("請輸入電子信箱和密碼")
    return email, password


def _auth_failed(err: AuthFailure):
    return jsonify({**err.to_dict(), **presenter.render_auth(err.message)}), err.status_code


@auth_bp.post("/signup")
def signup():
    """
    POST /api/auth/signup {"email": ..., "password": ...}
    """
    try:
        email, password = _credentials()
        return jsonify(_identity().sign_up(email, password)), 200
    except AuthFailure as e:
        return _auth_failed(e)


@auth_bp.post("/signin")
def signin():
    """
    POST /api/auth/signin {"email": ..., "password": ...}
    """
    try:
        email, password = _credentials()
        return jsonify(_identity().sign_in(email, password)), 200
    except AuthFailure as e:
        return _auth_failed(e)


@auth_bp.post("/anonymous")
def anonymous():
    """POST /api/auth/anonymous - play without an account."""
    try:
        return jsonify(_identity().sign_in_anonymously()), 200
    except AuthFailure as e:
        return _auth_failed(e)


@auth_bp.post("/signout")
@require_auth
def signout():
    uid = request.user["uid"]
    logger.info("[auth/signout] %s", uid)
    return jsonify(_identity().sign_out(uid)), 200
