# services/profile_store.py
"""
Firestore access for player profiles.

One document per user:
    artifacts/{app_id}/users/{uid}/profile/gameData

Only full-document overwrites are used; there is no field-level update path.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gexc

from .adventure_service.profile import META_KEY
from .errors import SyncError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Optional[Dict[str, Any]]], None]
ErrorCallback = Callable[[SyncError], None]


class ProfileStore:
    def __init__(self, db, app_id: str):
        self.db = db
        self.app_id = app_id

    def _profile_ref(self, uid: str):
        """Reference to the user's game profile document"""
        return (
            self.db.collection("artifacts").document(self.app_id)
            .collection("users").document(uid)
            .collection("profile").document("gameData")
        )

    def write(self, uid: str, data: Dict[str, Any], version: Optional[int] = None) -> None:
        """
        Overwrite the whole profile document.

        With a `version`, sync metadata is stamped under META_KEY so listeners
        can tell newer writes from stale echoes (last write wins).
        """
        doc = dict(data)
        if version is not None:
            doc[META_KEY] = {"version": version, "updatedAt": firestore.SERVER_TIMESTAMP}
        try:
            self._profile_ref(uid).set(doc)
        except gexc.GoogleAPICallError as e:
            raise SyncError("儲存雲端資料失敗", detail=str(e)) from e

    def subscribe(self, uid: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Callable[[], None]:
        """
        Listen for changes on the user's profile document.

        `on_snapshot` receives the stored dict, or None while no document exists.
        Returns a zero-argument function that releases the listener.
        """
        def _callback(doc_snapshots, changes, read_time):
            try:
                snap = doc_snapshots[0] if doc_snapshots else None
                data = (snap.to_dict() or {}) if snap is not None and snap.exists else None
                on_snapshot(data)
            except Exception as e:
                logger.exception("[profile/subscribe] snapshot handler failed for %s", uid)
                on_error(SyncError("同步雲端資料失敗", detail=str(e)))

        try:
            watch = self._profile_ref(uid).on_snapshot(_callback)
        except gexc.GoogleAPICallError as e:
            logger.error("[profile/subscribe] listener failed for %s: %s", uid, e)
            on_error(SyncError("無法連線雲端資料", detail=str(e)))
            return lambda: None

        logger.info("[profile/subscribe] listening on %s", uid)
        return watch.unsubscribe
