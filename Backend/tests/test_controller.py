"""
Game state controller: loading, optimistic sync, the quiz state machine
and family rewards.
"""

import threading

import pytest

from conftest import answer_correctly, answer_wrongly
from services.adventure_service.controller import (
    EXPLORE, GOLD_PER_CORRECT, HP_PENALTY, QUIZ, SUMMARY, QuestionTimer,
)
from services.adventure_service.profile import INITIAL_STATS, META_KEY


def kinds(controller):
    return [n["kind"] for n in controller.notifications]


# ============================================================================
# Loading & sync
# ============================================================================

def test_first_load_creates_default_profile(controller, store):
    assert controller.loading is False
    assert controller.profile == INITIAL_STATS
    assert store.docs["kid-1"] == INITIAL_STATS
    assert controller.state == EXPLORE


def test_existing_profile_is_backfilled(store, make_controller):
    store.docs["kid-2"] = {"gold": 777, "hp": 55}
    controller = make_controller("kid-2")
    assert controller.profile["gold"] == 777
    assert controller.profile["hp"] == 55
    assert controller.profile["familyRewards"] == []
    assert controller.profile["wrongQuestions"] == {}
    # loading alone never writes
    assert store.writes == []


def test_mutation_is_published_and_persisted_in_full(controller, store):
    seen = []
    controller.add_listener(seen.append)
    controller.mutate({"gold": 150})

    assert controller.profile["gold"] == 150
    assert seen[0]["profile"]["gold"] == 150
    doc = store.docs["kid-1"]
    assert doc["gold"] == 150
    assert doc["hp"] == 100
    assert doc[META_KEY]["version"] == 1
    assert controller.saving is False


def test_stale_snapshot_is_ignored(controller, store):
    controller.mutate({"gold": 150})
    controller.mutate({"gold": 160})

    store.push("kid-1", dict(INITIAL_STATS, gold=5, **{META_KEY: {"version": 1}}))
    assert controller.profile["gold"] == 160

    store.push("kid-1", dict(INITIAL_STATS, gold=999, **{META_KEY: {"version": 9}}))
    assert controller.profile["gold"] == 999

    controller.mutate({"gold": 1000})
    assert store.docs["kid-1"][META_KEY]["version"] == 10


def test_failed_write_keeps_local_state_and_notifies(controller, store):
    store.fail_writes = True
    controller.mutate({"gold": 500})

    assert controller.profile["gold"] == 500
    assert controller.saving is False
    assert kinds(controller) == ["sync_error"]
    assert store.docs["kid-1"]["gold"] == 100


def test_subscription_error_does_not_crash(store, make_controller):
    store.fail_subscribe = True
    controller = make_controller("kid-3")
    assert controller.loading is False
    assert controller.profile is None
    assert kinds(controller) == ["sync_error"]
    assert controller.start_challenge("math", "一上", "simple")["ok"] is False


def test_close_releases_listener(controller, store):
    controller.close()
    store.push("kid-1", dict(INITIAL_STATS, gold=1, **{META_KEY: {"version": 50}}))
    assert controller.profile["gold"] == 100
    assert store.subscribers["kid-1"] == []


def test_drain_notifications_empties_the_list(controller):
    controller.set_room("moon")
    assert len(controller.drain_notifications()) == 1
    assert controller.notifications == []


def test_snapshot_can_drain_notifications(controller):
    controller.set_room("moon")
    view = controller.snapshot(drain=True)
    assert [n["kind"] for n in view["notifications"]] == ["validation"]
    assert controller.notifications == []
    assert controller.snapshot()["notifications"] == []

# ============================================================================
# Challenges
# ============================================================================

def test_all_correct_scenario(controller, store):
    result = controller.start_challenge("math", "一上", "simple")
    assert result["ok"] is True
    assert controller.state == QUIZ
    assert sorted(q.id for q in controller.session.queue) == [f"math_一上_simple_{i}" for i in range(10)]

    for _ in range(10):
        answer_correctly(controller)

    assert controller.state == SUMMARY
    results = controller.session.results()
    assert results["correct"] == 10
    assert results["gold"] == 100

    ack = controller.acknowledge_summary()
    assert ack["ok"] is True
    assert controller.profile["gold"] == 200
    assert store.docs["kid-1"]["gold"] == 200
    assert controller.profile["exp"] == 100
    assert controller.state == EXPLORE
    assert controller.session is None


def test_gold_only_reaches_profile_on_acknowledge(controller):
    controller.start_challenge("math", "一上", "simple")
    feedback = answer_correctly(controller)
    assert feedback["is_correct"] is True
    assert feedback["gold_earned"] == GOLD_PER_CORRECT
    assert controller.profile["gold"] == 100


def test_wrong_answer_costs_hp_and_logs_mistake_once(controller):
    controller.start_challenge("math", "一上", "simple")
    question = controller.session.current()
    feedback = answer_wrongly(controller)

    assert feedback["is_correct"] is False
    assert feedback["correct_answer"] == question.answer
    assert controller.profile["hp"] == 100 - HP_PENALTY
    assert controller.profile["wrongQuestions"]["math"]["一上"] == [question.id]

    # finish and replay the mistake, wrong again
    while controller.state == QUIZ:
        answer_correctly(controller)
    controller.acknowledge_summary()
    controller.start_challenge("math", "一上", "reflection")
    assert [q.id for q in controller.session.queue] == [question.id]
    answer_wrongly(controller)

    assert controller.profile["wrongQuestions"]["math"]["一上"] == [question.id]
    assert controller.profile["hp"] == 100 - 2 * HP_PENALTY


def test_correct_reflection_answer_clears_mistake(controller, store):
    controller.mutate({"wrongQuestions": {"math": {"二上": ["math_二上_hard_4", "math_二上_simple_0"]}}})
    controller.start_challenge("math", "二上", "reflection")
    assert len(controller.session.queue) == 2

    answer_correctly(controller)
    answer_correctly(controller)

    assert controller.profile["wrongQuestions"]["math"]["二上"] == []
    assert store.docs["kid-1"]["wrongQuestions"]["math"]["二上"] == []
    assert controller.state == SUMMARY


def test_reflection_without_mistakes_stays_in_explore(controller):
    result = controller.start_challenge("math", "一上", "reflection")
    assert result["ok"] is False
    assert controller.state == EXPLORE
    assert controller.session is None
    assert kinds(controller) == ["validation"]


def test_hp_reaching_zero_ends_the_challenge(controller):
    controller.mutate({"hp": HP_PENALTY})
    controller.start_challenge("english", "二下", "medium")
    question = controller.session.current()
    feedback = answer_wrongly(controller)

    assert controller.profile["hp"] == 0
    assert feedback["quiz_complete"] is True
    assert controller.state == SUMMARY
    assert controller.answer(question.id, "anything")["ok"] is False


def test_hp_never_goes_below_zero(controller):
    controller.mutate({"hp": 3})
    controller.start_challenge("math", "一上", "simple")
    answer_wrongly(controller)
    assert controller.profile["hp"] == 0


def test_cannot_start_with_no_hp_or_twice(controller):
    controller.start_challenge("math", "一上", "simple")
    assert controller.start_challenge("math", "一上", "simple")["ok"] is False

    while controller.state == QUIZ:
        answer_correctly(controller)
    controller.acknowledge_summary()
    controller.mutate({"hp": 0})
    assert controller.start_challenge("math", "一上", "simple")["ok"] is False
    assert controller.state == EXPLORE


def test_unknown_selection_is_rejected(controller):
    assert controller.start_challenge("history", "一上", "simple")["ok"] is False
    assert controller.state == EXPLORE


def test_acknowledge_requires_summary(controller):
    assert controller.acknowledge_summary()["ok"] is False
    assert controller.profile["gold"] == 100

# ============================================================================
# Countdown
# ============================================================================

def test_countdown_forces_one_timeout(controller):
    controller.start_challenge("math", "一上", "simple")
    first = controller.session.current()
    token = controller.session.token

    assert controller.tick(token) is True
    assert controller.tick(token) is True
    assert controller.tick(token) is False

    assert controller.session.index == 1
    assert controller.profile["hp"] == 100 - HP_PENALTY
    assert controller.profile["wrongQuestions"]["math"]["一上"] == [first.id]
    assert controller.session.answers[0]["timed_out"] is True

    # a late tick for the old question does nothing
    assert controller.tick(token) is False
    assert controller.session.index == 1
    assert controller.session.seconds_left == 3


def test_answer_arriving_after_timeout_is_refused(controller):
    controller.start_challenge("math", "一上", "simple")
    first = controller.session.current()
    token = controller.session.token
    for _ in range(3):
        controller.tick(token)
    assert controller.session.index == 1
    second = controller.session.current()

    result = controller.answer(first.id, first.answer)

    assert result["ok"] is False
    assert result["current_question_id"] == second.id
    assert controller.session.index == 1
    assert len(controller.session.answers) == 1
    assert controller.profile["hp"] == 100 - HP_PENALTY
    assert controller.profile["wrongQuestions"]["math"]["一上"] == [first.id]
    assert controller.session.seconds_left == 3


def test_answer_for_unknown_question_changes_nothing(controller, store):
    controller.start_challenge("math", "一上", "simple")
    writes = len(store.writes)
    assert controller.answer("math_一上_simple_99", "1")["ok"] is False
    assert controller.session.index == 0
    assert len(store.writes) == writes


def test_tick_outside_quiz_is_ignored(controller):
    assert controller.tick() is False
    assert controller.profile["hp"] == 100


def test_timer_is_cancelled_when_answered(make_controller):
    timers = []

    class RecordingTimer:
        def __init__(self, on_tick):
            self.on_tick = on_tick
            self.cancelled = False
            timers.append(self)

        def start(self):
            pass

        def cancel(self):
            self.cancelled = True

    controller = make_controller("kid-9", timer_factory=RecordingTimer)
    controller.start_challenge("math", "一上", "simple")
    answer_correctly(controller)

    assert len(timers) == 2
    assert timers[0].cancelled is True
    assert timers[0].on_tick() is False
    assert timers[1].cancelled is False


def test_question_timer_runs_until_told_to_stop():
    done = threading.Event()
    ticks = []

    def on_tick():
        ticks.append(1)
        if len(ticks) == 3:
            done.set()
            return False
        return True

    timer = QuestionTimer(on_tick, interval=0.01)
    timer.start()
    assert done.wait(2)
    timer.cancel()
    assert len(ticks) == 3

# ============================================================================
# Map
# ============================================================================

def test_set_room_persists_known_rooms(controller, store):
    assert controller.set_room("forest")["ok"] is True
    assert store.docs["kid-1"]["currentRoom"] == "forest"


def test_set_room_rejects_unknown_rooms(controller, store):
    writes = len(store.writes)
    result = controller.set_room("moon")
    assert result["ok"] is False
    assert controller.profile["currentRoom"] == "start"
    assert len(store.writes) == writes


def test_rest_only_in_safe_rooms(controller):
    controller.mutate({"hp": 20})
    controller.set_room("forest")
    assert controller.rest()["ok"] is False
    controller.set_room("start")
    assert controller.rest()["hp"] == 100

# ============================================================================
# Family rewards
# ============================================================================

def test_toggle_role(controller, store):
    assert controller.toggle_role()["role"] == "parent"
    assert store.docs["kid-1"]["role"] == "parent"
    assert controller.toggle_role()["role"] == "student"


def test_only_parents_define_rewards(controller):
    assert controller.add_reward("冰淇淋", 30)["ok"] is False
    controller.toggle_role()
    reward = controller.add_reward("冰淇淋", 30)["reward"]
    assert controller.profile["familyRewards"] == [reward]

    assert controller.remove_reward(reward["id"])["ok"] is True
    assert controller.profile["familyRewards"] == []
    assert controller.remove_reward(reward["id"])["ok"] is False


@pytest.mark.parametrize("name,cost", [("", 10), ("玩具", 0), ("玩具", "many")])
def test_invalid_rewards_are_rejected(controller, name, cost):
    controller.toggle_role()
    assert controller.add_reward(name, cost)["ok"] is False
    assert controller.profile["familyRewards"] == []


def test_redeem_requires_enough_gold(controller, store):
    controller.toggle_role()
    cheap = controller.add_reward("貼紙", 40)["reward"]
    pricey = controller.add_reward("樂高", 500)["reward"]
    controller.toggle_role()
    controller.drain_notifications()

    before = dict(controller.profile)
    result = controller.redeem_reward(pricey["id"])
    assert result["ok"] is False
    assert controller.profile == before
    assert kinds(controller) == ["validation"]

    result = controller.redeem_reward(cheap["id"])
    assert result["ok"] is True
    assert controller.profile["gold"] == 60
    assert store.docs["kid-1"]["gold"] == 60


def test_parent_email(controller, store):
    controller.set_parent_email("  mom@example.com ")
    assert store.docs["kid-1"]["parentEmail"] == "mom@example.com"
