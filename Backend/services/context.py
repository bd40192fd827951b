# services/context.py
"""
Service clients for one running app, built once in create_app() and stored
on app.extensions["egg_adventure"]. Blueprints and middleware read it from
current_app; nothing is looked up through module globals.
"""

from __future__ import annotations
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .adventure_service.controller import GameController, QuestionTimer
from .adventure_service.sessions import SessionRegistry
from .errors import ConfigMissing
from .firebase import get_db, init_firebase_app
from .identity import IdentityClient
from .profile_store import ProfileStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "egg_adventure"


@dataclass
class ServiceContext:
    config: Any
    missing: List[str] = field(default_factory=list)
    firebase_app: Any = None
    identity: Optional[IdentityClient] = None
    store: Any = None
    executor: Optional[Executor] = None
    registry: Optional[SessionRegistry] = None

    @property
    def configured(self) -> bool:
        return not self.missing

    def require_configured(self) -> None:
        if self.missing:
            raise ConfigMissing(self.missing)

    @classmethod
    def initialize(cls, config) -> "ServiceContext":
        """Connect to Firebase, or return an unconfigured context listing what is missing."""
        missing = config.missing_settings()
        if missing:
            logger.warning("Service not configured, missing: %s", ", ".join(missing))
            return cls(config=config, missing=missing)

        try:
            app = init_firebase_app(config)
        except (ValueError, OSError) as e:
            logger.error("Firebase initialization failed: %s", e)
            return cls(config=config, missing=["valid Firebase service account credentials"])

        identity = IdentityClient(
            config.FIREBASE_WEB_API_KEY,
            firebase_app=app,
            base_url=config.IDENTITY_TOOLKIT_URL,
            timeout=config.IDENTITY_TIMEOUT,
        )
        store = ProfileStore(get_db(app), config.APP_ID)
        return cls.build(config, store=store, identity=identity, firebase_app=app)

    @classmethod
    def build(cls, config, *, store, identity, firebase_app=None,
              executor: Optional[Executor] = None, timer_factory=QuestionTimer) -> "ServiceContext":
        # A single worker keeps profile writes in submission order
        executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="profile-writes")

        def make_controller(uid: str) -> GameController:
            return GameController(
                uid, store, executor,
                question_seconds=config.QUESTION_SECONDS,
                timer_factory=timer_factory,
            )

        registry = SessionRegistry(make_controller, idle_seconds=config.SESSION_IDLE_SECONDS)
        identity.add_listener(registry.on_identity_event)
        return cls(
            config=config,
            firebase_app=firebase_app,
            identity=identity,
            store=store,
            executor=executor,
            registry=registry,
        )

    def shutdown(self) -> None:
        if self.registry is not None:
            self.registry.close_all()
        if self.executor is not None:
            self.executor.shutdown(wait=True)
