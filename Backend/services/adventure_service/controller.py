# services/adventure_service/controller.py
"""
Game state controller: the single owner of one player's state.

Every mutation goes through mutate(): the next profile is computed as a whole,
published locally right away (optimistic update) and then written to Firestore
as a full-document overwrite on the write queue. Each write carries a
monotonic version; snapshots older than the newest local write are ignored,
so an echo of an earlier write never rolls the player back.

State machine:  explore -> quiz -> summary -> explore
"""

from __future__ import annotations
import copy
import logging
import random
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import AdventureError, SyncError, ValidationRejection
from . import progression
from .profile import (
    INITIAL_STATS, default_profile, normalize_profile, stored_version,
    wrong_ids, with_wrong_ids,
)
from .quiz_content import (
    REFLECTION, Question, build_queue, generate_bank, reflection_pool, validate_selection,
)
from .rooms import ROOMS, resolve_room

logger = logging.getLogger(__name__)

# ============================================================================
# Config
# ============================================================================

EXPLORE = "explore"
QUIZ = "quiz"
SUMMARY = "summary"

QUESTIONS_PER_CHALLENGE = 10
GOLD_PER_CORRECT = 10
EXP_PER_CORRECT = 10
HP_PENALTY = 10
QUESTION_SECONDS = 20
MAX_NOTIFICATIONS = 20

# ============================================================================
# Countdown
# ============================================================================


class QuestionTimer:
    """
    Calls `on_tick` once per interval on a chain of daemon threading.Timers
    until it is cancelled or `on_tick` returns a falsy value.
    """

    def __init__(self, on_tick: Callable[[], bool], interval: float = 1.0):
        self.on_tick = on_tick
        self.interval = interval
        self._cancelled = threading.Event()
        self._timer: Optional[threading.Timer] = None

    def start(self) -> None:
        self._schedule()

    def _schedule(self) -> None:
        if self._cancelled.is_set():
            return
        self._timer = threading.Timer(self.interval, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self) -> None:
        if self._cancelled.is_set():
            return
        if self.on_tick():
            self._schedule()

    def cancel(self) -> None:
        self._cancelled.set()
        if self._timer is not None:
            self._timer.cancel()

# ============================================================================
# Quiz session
# ============================================================================


@dataclass
class QuizSession:
    session_id: int
    subject: str
    grade: str
    difficulty: str
    queue: List[Question]
    index: int = 0
    seconds_left: int = 0
    correct: int = 0
    gold: int = 0
    answers: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def token(self):
        return (self.session_id, self.index)

    def current(self) -> Optional[Question]:
        return self.queue[self.index] if self.index < len(self.queue) else None

    def results(self) -> Dict[str, Any]:
        answered = len(self.answers)
        return {
            "subject": self.subject,
            "grade": self.grade,
            "difficulty": self.difficulty,
            "correct": self.correct,
            "answered": answered,
            "total": len(self.queue),
            "accuracy": round(self.correct / answered, 2) if answered else 0.0,
            "gold": self.gold,
            "exp": self.correct * EXP_PER_CORRECT,
        }

# ============================================================================
# Controller
# ============================================================================


class GameController:
    def __init__(self, uid: str, store, executor, *,
                 question_seconds: int = QUESTION_SECONDS,
                 timer_factory: Optional[Callable[[Callable[[], bool]], Any]] = QuestionTimer,
                 rng: Optional[random.Random] = None):
        self.uid = uid
        self.store = store
        self.executor = executor
        self.question_seconds = question_seconds
        self.timer_factory = timer_factory
        self.rng = rng or random.Random()

        self.state = EXPLORE
        self.profile: Optional[Dict[str, Any]] = None
        self.session: Optional[QuizSession] = None
        self.loading = True
        self.saving = False
        self.notifications: List[Dict[str, Any]] = []

        self._lock = threading.RLock()
        self._version = 0
        self._pending = set()
        self._sessions_started = 0
        self._timer = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def add_listener(self, listener: Callable[[Dict[str, Any]], None]) -> None:
        self._listeners.append(listener)

    def snapshot(self, drain: bool = False) -> Dict[str, Any]:
        """
        Copy of everything the presentation layer needs. With `drain`, the
        notifications in the copy are cleared under the same lock.
        """
        with self._lock:
            session = None
            if self.session is not None:
                current = self.session.current()
                session = {
                    "question": current.to_public() if current else None,
                    "index": self.session.index,
                    "total": len(self.session.queue),
                    "seconds_left": self.session.seconds_left,
                    "results": self.session.results(),
                }
            return {
                "state": self.state,
                "loading": self.loading,
                "saving": self.saving,
                "profile": copy.deepcopy(self.profile),
                "session": session,
                "notifications": self.drain_notifications() if drain else list(self.notifications),
            }

    def _publish(self) -> None:
        if not self._listeners:
            return
        view = self.snapshot()
        for listener in list(self._listeners):
            listener(view)

    def _notify(self, error: AdventureError) -> None:
        logger.info("[controller] %s for %s: %s", error.kind, self.uid, error.message)
        self.notifications.append({"kind": error.kind, "message": error.message, "detail": error.detail})
        del self.notifications[:-MAX_NOTIFICATIONS]

    def _reject(self, message: str) -> Dict[str, Any]:
        """Local-only rejection: notification, no state change, nothing persisted."""
        self._notify(ValidationRejection(message))
        self._publish()
        return {"ok": False, "error": message}

    def drain_notifications(self) -> List[Dict[str, Any]]:
        with self._lock:
            out, self.notifications = self.notifications, []
            return out

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def load_profile(self) -> None:
        """Subscribe to the player's profile document."""
        with self._lock:
            if self._unsubscribe is not None or self._closed:
                return
            self._unsubscribe = self.store.subscribe(self.uid, self._on_snapshot, self._on_sync_error)

    def _on_snapshot(self, data: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            if self._closed:
                return

            if data is None:
                if self.profile is None:
                    logger.info("[profile/load] no profile for %s, creating defaults", self.uid)
                    self.profile = default_profile()
                    self.loading = False
                    self._persist(copy.deepcopy(INITIAL_STATS), None)
                else:
                    logger.warning("[profile/load] profile for %s vanished, rewriting", self.uid)
                    self._commit(self.profile)
                self._publish()
                return

            version = stored_version(data)
            if version < self._version:
                logger.debug("[profile/load] stale snapshot v%s < v%s for %s", version, self._version, self.uid)
                return

            self._version = version
            self.profile = normalize_profile(data)
            self.loading = False
            self._publish()

    def _on_sync_error(self, error: SyncError) -> None:
        with self._lock:
            self.loading = False
            self._notify(error)
            self._publish()

    def _persist(self, data: Dict[str, Any], version: Optional[int]) -> None:
        self.saving = True
        future = self.executor.submit(self.store.write, self.uid, data, version)
        self._pending.add(future)
        future.add_done_callback(self._write_settled)

    def _write_settled(self, future) -> None:
        with self._lock:
            self._pending.discard(future)
            self.saving = bool(self._pending)
            error = future.exception()
            if error is not None:
                logger.error("[profile/save] write failed for %s: %s", self.uid, error)
                if not isinstance(error, SyncError):
                    error = SyncError("儲存雲端資料失敗", detail=str(error))
                # local optimistic state is kept
                self._notify(error)
            self._publish()

    def _commit(self, next_profile: Dict[str, Any]) -> None:
        self.profile = next_profile
        self._version += 1
        self._persist(copy.deepcopy(next_profile), self._version)
        self._publish()

    def mutate(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """Apply `partial` over the profile, publish, and queue the full write."""
        with self._lock:
            if self.profile is None:
                raise ValidationRejection("資料載入中，請稍候")
            next_profile = normalize_profile({**self.profile, **partial})
            self._commit(next_profile)
            return copy.deepcopy(next_profile)

    # ------------------------------------------------------------------
    # Quiz
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start_question(self) -> None:
        self._cancel_timer()
        session = self.session
        session.seconds_left = self.question_seconds
        if self.timer_factory is not None:
            token = session.token
            self._timer = self.timer_factory(lambda: self.tick(token))
            self._timer.start()

    def start_challenge(self, subject: str, grade: str, difficulty: str) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            if self.state != EXPLORE:
                return self._reject("挑戰正在進行中")
            error = validate_selection(subject, grade, difficulty)
            if error:
                return self._reject(error)
            if self.profile["hp"] <= 0:
                return self._reject("體力不足，請先回到安全的地方休息")

            if difficulty == REFLECTION:
                pool = reflection_pool(subject, grade, wrong_ids(self.profile, subject, grade), self.rng)
                if not pool:
                    return self._reject("目前沒有需要複習的錯題")
            else:
                pool = generate_bank(subject, grade, difficulty, self.rng)

            self._sessions_started += 1
            self.session = QuizSession(
                session_id=self._sessions_started,
                subject=subject,
                grade=grade,
                difficulty=difficulty,
                queue=build_queue(pool, QUESTIONS_PER_CHALLENGE, self.rng),
            )
            self.state = QUIZ
            self._start_question()
            logger.info("[quiz/start] %s %s/%s/%s, %d questions",
                        self.uid, subject, grade, difficulty, len(self.session.queue))
            self._publish()
            return {
                "ok": True,
                "question": self.session.current().to_public(),
                "total_questions": len(self.session.queue),
                "seconds": self.question_seconds,
            }

    def answer(self, question_id: str, option: Optional[str]) -> Dict[str, Any]:
        """
        Grade the current question. `None` means the countdown ran out.

        An answer for any question other than the one on screen (already
        timed out, or never asked) is refused without touching the session.
        """
        with self._lock:
            session = self.session
            if self.state != QUIZ or session is None:
                return {"ok": False, "error": "No active quiz."}

            question = session.current()
            if question_id != question.id:
                logger.info("[quiz/answer] %s answered %s but %s is current",
                            self.uid, question_id, question.id)
                return {"ok": False, "error": "Question already answered or not in this quiz.",
                        "current_question_id": question.id}

            self._cancel_timer()
            is_correct = option is not None and str(option) == question.answer
            ids = wrong_ids(self.profile, question.subject, question.grade)

            if is_correct:
                session.correct += 1
                session.gold += GOLD_PER_CORRECT
                if question.id in ids:
                    ids.remove(question.id)
                    self.mutate({"wrongQuestions": with_wrong_ids(self.profile, question.subject, question.grade, ids)})
            else:
                if question.id not in ids:
                    ids.append(question.id)
                self.mutate({
                    "hp": max(0, self.profile["hp"] - HP_PENALTY),
                    "wrongQuestions": with_wrong_ids(self.profile, question.subject, question.grade, ids),
                })

            session.answers.append({
                "question_id": question.id,
                "selected": option,
                "is_correct": is_correct,
                "timed_out": option is None,
            })
            session.index += 1

            complete = session.index >= len(session.queue) or self.profile["hp"] <= 0
            if complete:
                self.state = SUMMARY
                logger.info("[quiz/answer] %s finished: %s", self.uid, session.results())
            else:
                self._start_question()
            self._publish()

            return {
                "ok": True,
                "is_correct": is_correct,
                "timed_out": option is None,
                "correct_answer": question.answer,
                "selected": option,
                "gold_earned": GOLD_PER_CORRECT if is_correct else 0,
                "hp": self.profile["hp"],
                "questions_answered": len(session.answers),
                "total_questions": len(session.queue),
                "quiz_complete": complete,
                "next_question": None if complete else session.current().to_public(),
            }

    def tick(self, token=None) -> bool:
        """
        One countdown second. At zero the question is answered as timed out.
        Returns True while the countdown for the same question should continue.
        """
        with self._lock:
            session = self.session
            if self._closed or self.state != QUIZ or session is None:
                return False
            if token is not None and token != session.token:
                return False
            session.seconds_left -= 1
            if session.seconds_left > 0:
                self._publish()
                return True
            logger.info("[quiz/timeout] %s question %s", self.uid, session.current().id)
            self.answer(session.current().id, None)
            return False

    def acknowledge_summary(self) -> Dict[str, Any]:
        with self._lock:
            session = self.session
            if self.state != SUMMARY or session is None:
                return self._reject("沒有可以領取的挑戰結果")

            results = session.results()
            exp = self.profile["exp"] + results["exp"]
            self.state = EXPLORE
            self.session = None
            profile = self.mutate({
                "gold": self.profile["gold"] + results["gold"],
                "exp": exp,
                "lv": max(self.profile["lv"], progression.calculate_level(exp)),
            })
            return {"ok": True, "results": results, "gold": profile["gold"], "lv": profile["lv"]}

    # ------------------------------------------------------------------
    # Map
    # ------------------------------------------------------------------

    def set_room(self, room_key: str) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            if self.state == QUIZ:
                return self._reject("挑戰中不能離開")
            if room_key not in ROOMS:
                return self._reject(f"找不到這個地點: {room_key}")
            self.mutate({"currentRoom": room_key})
            return {"ok": True, "room": ROOMS[room_key].to_dict()}

    def rest(self) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            if resolve_room(self.profile["currentRoom"]).type != "safe":
                return self._reject("這裡不能休息")
            profile = self.mutate({"hp": self.profile["maxHp"]})
            return {"ok": True, "hp": profile["hp"]}

    # ------------------------------------------------------------------
    # Family / parent settings
    # ------------------------------------------------------------------

    def toggle_role(self) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            role = "student" if self.profile["role"] == "parent" else "parent"
            self.mutate({"role": role})
            return {"ok": True, "role": role}

    def set_parent_email(self, email: str) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            self.mutate({"parentEmail": (email or "").strip()})
            return {"ok": True, "parentEmail": self.profile["parentEmail"]}

    def add_reward(self, name: str, cost) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            if self.profile["role"] != "parent":
                return self._reject("只有家長可以設定獎勵")
            name = (name or "").strip()
            if not name:
                return self._reject("請輸入獎勵名稱")
            try:
                cost = int(cost)
            except (TypeError, ValueError):
                return self._reject("獎勵價格必須是數字")
            if cost <= 0:
                return self._reject("獎勵價格必須大於 0")

            reward = {"id": uuid.uuid4().hex[:12], "name": name, "cost": cost}
            self.mutate({"familyRewards": self.profile["familyRewards"] + [reward]})
            return {"ok": True, "reward": reward}

    def remove_reward(self, reward_id: str) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            if self.profile["role"] != "parent":
                return self._reject("只有家長可以設定獎勵")
            rewards = self.profile["familyRewards"]
            remaining = [r for r in rewards if r["id"] != reward_id]
            if len(remaining) == len(rewards):
                return self._reject("找不到這個獎勵")
            self.mutate({"familyRewards": remaining})
            return {"ok": True, "removed": reward_id}

    def redeem_reward(self, reward_id: str) -> Dict[str, Any]:
        with self._lock:
            if self.profile is None:
                return self._reject("資料載入中，請稍候")
            reward = next((r for r in self.profile["familyRewards"] if r["id"] == reward_id), None)
            if reward is None:
                return self._reject("找不到這個獎勵")
            if self.profile["gold"] < reward["cost"]:
                return self._reject(f"金幣不足，還需要 {reward['cost'] - self.profile['gold']} 金幣")
            profile = self.mutate({"gold": self.profile["gold"] - reward["cost"]})
            logger.info("[rewards/redeem] %s redeemed %s for %d", self.uid, reward["name"], reward["cost"])
            return {"ok": True, "reward": reward, "gold": profile["gold"]}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop listening and cancel the countdown; the controller is unusable afterwards."""
        with self._lock:
            self._closed = True
            self._cancel_timer()
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            self._listeners.clear()
