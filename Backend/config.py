# config.py
import os, json
from pathlib import Path
from typing import List, Optional


class Config:
    # Fixed application namespace; every profile lives under artifacts/<APP_ID>/
    APP_ID = os.getenv("EGG_APP_ID", "egg-adventure-prod-v1")

    FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY", "")
    IDENTITY_TOOLKIT_URL = os.getenv(
        "IDENTITY_TOOLKIT_URL", "https://identitytoolkit.googleapis.com/v1"
    )
    IDENTITY_TIMEOUT = float(os.getenv("IDENTITY_TIMEOUT", "10"))

    # Per-question countdown, in seconds
    QUESTION_SECONDS = int(os.getenv("QUESTION_SECONDS", "20"))

    # Signed-in sessions with no request for this long are closed
    SESSION_IDLE_SECONDS = int(os.getenv("SESSION_IDLE_SECONDS", "1800"))

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @staticmethod
    def resolve_firebase_cred_path() -> Optional[str]:
        """
        Tries multiple ways to get a valid credential:
          1) FIREBASE_SERVICE_ACCOUNT_JSON (env contains the full JSON blob)
          2) GOOGLE_APPLICATION_CREDENTIALS (absolute or relative file path)
             - If relative or not found, try <repo>/firebase/credentials/<basename>
          3) First *.json found under <repo>/firebase/credentials
        Returns a string path if a file exists, or None if using JSON blob.
        Raises FileNotFoundError on total failure.
        """
        # 1) JSON blob provided in env (no file path needed)
        json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
        if json_blob:
            try:
                json.loads(json_blob)
                return None
            except ValueError as e:
                raise FileNotFoundError(f"Invalid FIREBASE_SERVICE_ACCOUNT_JSON: {e}") from e

        # 2) A path provided in env (normalize quotes, slashes, vars)
        p = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        repo_root = Path(__file__).resolve().parent
        if p:
            p = p.strip().strip('"').strip("'")
            p = os.path.expanduser(os.path.expandvars(p))
            path = Path(p)

            if path.exists():
                return str(path)

            fallback = repo_root / "firebase" / "credentials" / path.name
            if fallback.exists():
                return str(fallback)

            rel_try = (repo_root / p).resolve()
            if rel_try.exists():
                return str(rel_try)

            raise FileNotFoundError(
                "Firebase credential file not found. Tried:\n"
                f" - {path}\n - {fallback}\n - {rel_try}\n"
                "Set FIREBASE_SERVICE_ACCOUNT_JSON or GOOGLE_APPLICATION_CREDENTIALS."
            )

        # 3) Auto-pick first json in firebase/credentials
        cred_dir = repo_root / "firebase" / "credentials"
        if cred_dir.exists():
            matches = sorted(cred_dir.glob("*.json"))
            if matches:
                return str(matches[0])

        raise FileNotFoundError(
            "No Firebase credentials found. Provide FIREBASE_SERVICE_ACCOUNT_JSON, "
            "or set GOOGLE_APPLICATION_CREDENTIALS, or put a JSON in firebase/credentials/."
        )

    @classmethod
    def missing_settings(cls) -> List[str]:
        """Names of required settings that are absent (empty list when fully configured)."""
        missing = []
        if not cls.FIREBASE_WEB_API_KEY:
            missing.append("FIREBASE_WEB_API_KEY")
        try:
            cls.resolve_firebase_cred_path()
        except FileNotFoundError:
            missing.append("FIREBASE_SERVICE_ACCOUNT_JSON / GOOGLE_APPLICATION_CREDENTIALS")
        return missing
