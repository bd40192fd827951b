# services/errors.py
"""
Error taxonomy shared by the identity, persistence and game layers.

- ConfigMissing        credentials absent, app renders a blocking notice
- AuthFailure          bad credentials / weak password / email taken, user may retry
- SyncError            Firestore subscription or write failed, non-blocking
- ValidationRejection  local-only rule violation (e.g. not enough gold)
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class AdventureError(Exception):
    status_code = 500
    kind = "error"

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": False, "error": self.message, "kind": self.kind}
        if self.detail:
            data["detail"] = self.detail
        return data


class ConfigMissing(AdventureError):
    status_code = 503
    kind = "config_missing"

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(
            "Firebase 未設定",
            detail="Missing settings: " + ", ".join(self.missing),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["missing"] = self.missing
        return data


class AuthFailure(AdventureError):
    status_code = 401
    kind = "auth_failure"


class SyncError(AdventureError):
    status_code = 502
    kind = "sync_error"


class ValidationRejection(AdventureError):
    status_code = 400
    kind = "validation"
