"""Shared fixtures: in-memory profile store, inline write executor, stub identity."""

import copy
import random
from concurrent.futures import Executor, Future

import pytest

from config import Config
from services.adventure_service.controller import GameController
from services.adventure_service.profile import META_KEY
from services.errors import SyncError
from services.identity import IdentityClient


class FakeProfileStore:
    """
    Mimics the Firestore listener contract: subscribe() delivers the current
    document right away and every write is pushed to live subscribers.
    """

    def __init__(self):
        self.docs = {}
        self.writes = []
        self.subscribers = {}
        self.fail_writes = False
        self.fail_subscribe = False

    def subscribe(self, uid, on_snapshot, on_error):
        if self.fail_subscribe:
            on_error(SyncError("無法連線雲端資料", detail="PERMISSION_DENIED"))
            return lambda: None
        self.subscribers.setdefault(uid, []).append(on_snapshot)
        on_snapshot(copy.deepcopy(self.docs.get(uid)))

        def unsubscribe():
            self.subscribers[uid].remove(on_snapshot)
        return unsubscribe

    def write(self, uid, data, version=None):
        if self.fail_writes:
            raise SyncError("儲存雲端資料失敗", detail="PERMISSION_DENIED")
        doc = copy.deepcopy(data)
        if version is not None:
            doc[META_KEY] = {"version": version}
        self.docs[uid] = doc
        self.writes.append((uid, copy.deepcopy(doc)))
        self._deliver(uid)

    def push(self, uid, doc):
        """Simulate a change made by another client."""
        self.docs[uid] = copy.deepcopy(doc)
        self._deliver(uid)

    def _deliver(self, uid):
        for callback in list(self.subscribers.get(uid, [])):
            callback(copy.deepcopy(self.docs[uid]))


class InlineExecutor(Executor):
    """Runs submitted writes immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class StubIdentity(IdentityClient):
    """Accepts "token-<uid>" bearer tokens and skips token revocation."""

    def verify_token(self, id_token):
        if not id_token.startswith("token-"):
            return super().verify_token(id_token)
        return {"uid": id_token[len("token-"):], "email": None, "name": None}

    def sign_out(self, uid):
        self._emit("signed_out", uid)
        return {"ok": True, "uid": uid}


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class FakeSession:
    """Records Identity Toolkit calls and replays queued responses."""

    def __init__(self):
        self.calls = []
        self.responses = []

    def queue(self, status_code, payload):
        self.responses.append(FakeResponse(status_code, payload))

    def post(self, url, params=None, json=None, timeout=None):
        self.calls.append({"url": url, "params": params, "json": json})
        return self.responses.pop(0)


class GameTestConfig(Config):
    FIREBASE_WEB_API_KEY = "test-key"
    QUESTION_SECONDS = 3
    LOG_LEVEL = "WARNING"

    @classmethod
    def missing_settings(cls):
        return []


@pytest.fixture
def store():
    return FakeProfileStore()


@pytest.fixture
def executor():
    return InlineExecutor()


@pytest.fixture
def make_controller(store, executor):
    def _make(uid="kid-1", **kwargs):
        kwargs.setdefault("timer_factory", None)
        kwargs.setdefault("question_seconds", 3)
        kwargs.setdefault("rng", random.Random(7))
        controller = GameController(uid, store, executor, **kwargs)
        controller.load_profile()
        return controller
    return _make


@pytest.fixture
def controller(make_controller):
    return make_controller()


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def identity(fake_session):
    return StubIdentity("test-key", session=fake_session)


def answer_correctly(controller):
    question = controller.session.current()
    return controller.answer(question.id, question.answer)


def answer_wrongly(controller):
    question = controller.session.current()
    wrong = next(o for o in question.options if o != question.answer)
    return controller.answer(question.id, wrong)
