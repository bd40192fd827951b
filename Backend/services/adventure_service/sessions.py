# services/adventure_service/sessions.py
"""
One GameController per signed-in user.

The registry follows identity events: a sign-in creates the controller and
starts its Firestore listener, a sign-out closes it so no snapshot for that
account is acted on afterwards. Sessions that are abandoned without a
sign-out are closed once they have been idle for `idle_seconds`; the sweep
runs on every lookup.
"""

from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .controller import GameController

logger = logging.getLogger(__name__)

SESSION_IDLE_SECONDS = 30 * 60


class SessionRegistry:
    def __init__(self, controller_factory: Callable[[str], GameController],
                 idle_seconds: Optional[float] = SESSION_IDLE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.controller_factory = controller_factory
        self.idle_seconds = idle_seconds
        self.clock = clock
        self._controllers: Dict[str, GameController] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    def _take_idle(self, now: float, keep: str) -> List[GameController]:
        """Pop controllers idle longer than idle_seconds. Caller holds the lock."""
        if not self.idle_seconds:
            return []
        stale = [uid for uid, seen in self._last_seen.items()
                 if uid != keep and now - seen > self.idle_seconds]
        out = []
        for uid in stale:
            self._last_seen.pop(uid, None)
            controller = self._controllers.pop(uid, None)
            if controller is not None:
                out.append(controller)
        return out

    def get(self, uid: str) -> GameController:
        """Controller for `uid`, created and subscribed on first use."""
        now = self.clock()
        with self._lock:
            idle = self._take_idle(now, keep=uid)
            self._last_seen[uid] = now
            controller = self._controllers.get(uid)
            if controller is None:
                controller = self.controller_factory(uid)
                self._controllers[uid] = controller
                created = True
            else:
                created = False

        for stale in idle:
            stale.close()
            logger.info("[sessions] closed idle %s", stale.uid)
        if created:
            logger.info("[sessions] opened %s", uid)
            controller.load_profile()
        return controller

    def peek(self, uid: str) -> Optional[GameController]:
        with self._lock:
            return self._controllers.get(uid)

    def release(self, uid: str) -> None:
        with self._lock:
            self._last_seen.pop(uid, None)
            controller = self._controllers.pop(uid, None)
        if controller is not None:
            controller.close()
            logger.info("[sessions] released %s", uid)

    def on_identity_event(self, event: str, uid: str) -> None:
        if event == "signed_in":
            self.get(uid)
        elif event == "signed_out":
            self.release(uid)

    def close_all(self) -> None:
        with self._lock:
            uids = list(self._controllers)
        for uid in uids:
            self.release(uid)
