import os, json
import logging
import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)


def _certificate(config):
    """Service-account credential from the location Config resolves."""
    path = config.resolve_firebase_cred_path()
    if path is None:
        return credentials.Certificate(json.loads(os.environ["FIREBASE_SERVICE_ACCOUNT_JSON"]))
    return credentials.Certificate(path)


def init_firebase_app(config):
    """Return the default Firebase app, initializing it once per process."""
    try:
        app = firebase_admin.get_app()
        logger.info("Using existing Firebase default app.")
    except ValueError:
        app = firebase_admin.initialize_app(_certificate(config))
        logger.info("Firebase default app initialized.")
    return app


def get_db(app):
    """Firestore client bound to the given Firebase app."""
    return firestore.client(app=app)
