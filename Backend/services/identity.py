# services/identity.py
"""
Firebase Authentication boundary.

Password and anonymous sign-in go through the Identity Toolkit REST API
(the Admin SDK cannot check passwords); ID token verification and sign-out
(refresh token revocation) go through firebase_admin.auth.

Listeners registered with add_listener() receive ("signed_in", uid) and
("signed_out", uid) events.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from firebase_admin import auth as fb_auth

from .errors import AuthFailure

logger = logging.getLogger(__name__)

IdentityListener = Callable[[str, str], None]

# Identity Toolkit error codes -> message shown inline on the login screen
AUTH_ERROR_MESSAGES = {
    "EMAIL_EXISTS": "這個電子信箱已經註冊過了",
    "EMAIL_NOT_FOUND": "電子信箱或密碼錯誤",
    "INVALID_PASSWORD": "電子信箱或密碼錯誤",
    "INVALID_LOGIN_CREDENTIALS": "電子信箱或密碼錯誤",
    "INVALID_EMAIL": "電子信箱格式不正確",
    "MISSING_PASSWORD": "請輸入密碼",
    "WEAK_PASSWORD": "密碼至少需要 6 個字元",
    "USER_DISABLED": "這個帳號已被停用",
    "OPERATION_NOT_ALLOWED": "這種登入方式尚未啟用",
    "ADMIN_ONLY_OPERATION": "這種登入方式尚未啟用",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "嘗試次數太多，請稍後再試",
}


def _error_code(payload: Dict[str, Any]) -> str:
    # "WEAK_PASSWORD : Password should be at least 6 characters" -> "WEAK_PASSWORD"
    message = ((payload or {}).get("error") or {}).get("message") or "UNKNOWN"
    return message.split(":", 1)[0].strip()


class IdentityClient:
    def __init__(self, api_key: str, firebase_app=None, base_url: str = "https://identitytoolkit.googleapis.com/v1",
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.firebase_app = firebase_app
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._listeners: List[IdentityListener] = []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_listener(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: str, uid: str) -> None:
        for listener in list(self._listeners):
            listener(event, uid)

    # ------------------------------------------------------------------
    # REST calls
    # ------------------------------------------------------------------

    def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/accounts:{endpoint}"
        try:
            resp = self.session.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("[auth/%s] request failed: %s", endpoint, e)
            raise AuthFailure("無法連線登入服務，請稍後再試", detail=str(e)) from e

        try:
            payload = resp.json()
        except ValueError:
            payload = {}

        if resp.status_code != 200:
            code = _error_code(payload)
            logger.info("[auth/%s] rejected: %s", endpoint, code)
            raise AuthFailure("認證失敗: " + AUTH_ERROR_MESSAGES.get(code, code), detail=code)
        return payload

    def _signed_in(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        uid = payload.get("localId")
        if not uid:
            raise AuthFailure("認證失敗: 登入服務沒有回傳使用者")
        self._emit("signed_in", uid)
        return {
            "ok": True,
            "uid": uid,
            "email": payload.get("email") or "",
            "anonymous": not payload.get("email"),
            "id_token": payload.get("idToken"),
            "refresh_token": payload.get("refreshToken"),
            "expires_in": int(payload.get("expiresIn", 3600)),
        }

    def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        """Create an email/password account and sign it in."""
        payload = self._post("signUp", {"email": email, "password": password, "returnSecureToken": True})
        return self._signed_in(payload)

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        payload = self._post("signInWithPassword", {"email": email, "password": password, "returnSecureToken": True})
        return self._signed_in(payload)

    def sign_in_anonymously(self) -> Dict[str, Any]:
        # signUp without credentials creates an anonymous user
        payload = self._post("signUp", {"returnSecureToken": True})
        return self._signed_in(payload)

    def sign_out(self, uid: str) -> Dict[str, Any]:
        """Revoke refresh tokens so the client cannot mint new ID tokens."""
        try:
            fb_auth.revoke_refresh_tokens(uid, app=self.firebase_app)
        except (fb_auth.UserNotFoundError, ValueError) as e:
            logger.warning("[auth/signout] could not revoke tokens for %s: %s", uid, e)
        self._emit("signed_out", uid)
        return {"ok": True, "uid": uid}

    # ------------------------------------------------------------------
    # Token verification
    # ------------------------------------------------------------------

    def verify_token(self, id_token: str) -> Dict[str, Any]:
        """Verify a Firebase ID token and return the identity it carries."""
        try:
            decoded = fb_auth.verify_id_token(id_token, app=self.firebase_app, check_revoked=True)
        except (ValueError, fb_auth.InvalidIdTokenError, fb_auth.ExpiredIdTokenError,
                fb_auth.RevokedIdTokenError, fb_auth.CertificateFetchError,
                fb_auth.UserDisabledError) as e:
            raise AuthFailure(f"Invalid or expired token: {e}") from e
        return {
            "uid": decoded["uid"],
            "email": decoded.get("email"),
            "name": decoded.get("name"),
        }
