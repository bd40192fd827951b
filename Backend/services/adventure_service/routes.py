# services/adventure_service/routes.py
from flask import Blueprint, current_app, request, jsonify
import logging

from auth_middleware import require_auth
from services.context import EXTENSION_KEY

from . import presenter
from .quiz_content import catalog
from .rooms import ROOMS

logger = logging.getLogger(__name__)

adventure_bp = Blueprint("adventure_bp", __name__)


def _controller():
    ctx = current_app.extensions[EXTENSION_KEY]
    return ctx.registry.get(request.user["uid"])


def _respond(controller, result=None, status=200):
    """Operation result plus the screen to draw. Notifications are delivered once."""
    body = dict(result or {"ok": True})
    body["view"] = presenter.render(controller.snapshot(drain=True))
    return jsonify(body), status


def _body():
    return request.get_json(silent=True) or {}

# -------------------- State --------------------

@adventure_bp.get("/state")
@require_auth
def state():
    """Current screen for the signed-in player."""
    return _respond(_controller())

# -------------------- Map --------------------

@adventure_bp.post("/room")
@require_auth
def move():
    room = _body().get("room")
    if not room:
        return jsonify({"ok": False, "error": "room required"}), 400
    controller = _controller()
    return _respond(controller, controller.set_room(room))

@adventure_bp.post("/rest")
@require_auth
def rest():
    controller = _controller()
    return _respond(controller, controller.rest())

@adventure_bp.get("/rooms")
def rooms():
    """Public map listing."""
    return jsonify({"ok": True, "rooms": [r.to_dict() for r in ROOMS.values()]}), 200

# -------------------- Challenge --------------------

@adventure_bp.get("/catalog")
def quiz_catalog():
    """Public list of subjects, grades and difficulties."""
    return jsonify({"ok": True, **catalog()}), 200

@adventure_bp.post("/challenge/start")
@require_auth
def challenge_start():
    """
    Request body:
    {
        "subject": "math",
        "grade": "一上",
        "difficulty": "simple" | "medium" | "hard" | "reflection"
    }
    """
    data = _body()
    subject, grade, difficulty = data.get("subject"), data.get("grade"), data.get("difficulty")
    if not (subject and grade and difficulty):
        return jsonify({"ok": False, "error": "subject, grade and difficulty required"}), 400
    controller = _controller()
    return _respond(controller, controller.start_challenge(subject, grade, difficulty))

@adventure_bp.post("/challenge/answer")
@require_auth
def challenge_answer():
    """
    Request body: {"question_id": "math_一上_simple_3", "option": "8"};
    {"option": null} when the countdown ran out.

    Response:
    {
        "ok": true,
        "is_correct": false,
        "correct_answer": "7",
        "gold_earned": 0,
        "hp": 90,
        "questions_answered": 3,
        "total_questions": 10,
        "quiz_complete": false,
        "view": {...}
    }
    """
    data = _body()
    if "option" not in data or not data.get("question_id"):
        return jsonify({"ok": False, "error": "question_id and option required"}), 400
    option = data.get("option")
    controller = _controller()
    result = controller.answer(str(data["question_id"]), None if option is None else str(option))
    logger.info("[quiz/answer] %s: is_correct=%s", request.user["uid"], result.get("is_correct"))
    return _respond(controller, result)

@adventure_bp.post("/summary/ack")
@require_auth
def summary_ack():
    controller = _controller()
    return _respond(controller, controller.acknowledge_summary())

# -------------------- Parent settings / rewards --------------------

@adventure_bp.post("/role/toggle")
@require_auth
def role_toggle():
    controller = _controller()
    return _respond(controller, controller.toggle_role())

@adventure_bp.post("/parent/email")
@require_auth
def parent_email():
    controller = _controller()
    return _respond(controller, controller.set_parent_email(_body().get("email", "")))

@adventure_bp.post("/rewards")
@require_auth
def reward_add():
    """Request body: {"name": "看卡通 30 分鐘", "cost": 50}"""
    data = _body()
    controller = _controller()
    return _respond(controller, controller.add_reward(data.get("name"), data.get("cost")))

@adventure_bp.delete("/rewards/<reward_id>")
@require_auth
def reward_remove(reward_id):
    controller = _controller()
    return _respond(controller, controller.remove_reward(reward_id))

@adventure_bp.post("/rewards/<reward_id>/redeem")
@require_auth
def reward_redeem(reward_id):
    controller = _controller()
    return _respond(controller, controller.redeem_reward(reward_id))
