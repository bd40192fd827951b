# services/adventure_service/quiz_content.py
"""
Practice question banks per subject / grade / difficulty.

Every bank has exactly BANK_SIZE questions with ids of the form
`subject_grade_difficulty_index`. Question content is seeded by its id, so a
regenerated bank keeps the same ids and the same prompts; only the order of
the four options is shuffled again. Mistake logs recorded in earlier sessions
therefore keep pointing at the same questions.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import random

# ============================================================================
# Config
# ============================================================================

BANK_SIZE = 10
OPTION_COUNT = 4

SUBJECTS = {
    "math": "數學",
    "english": "英文",
}

# 一上 = first grade, first semester ... 六下 = sixth grade, second semester
GRADES = [f"{year}{term}" for year in "一二三四五六" for term in "上下"]

DIFFICULTIES = ["simple", "medium", "hard"]
REFLECTION = "reflection"  # replays the mistake log instead of a generated bank

# ============================================================================
# Types
# ============================================================================


@dataclass(frozen=True)
class Question:
    id: str
    prompt: str
    answer: str
    options: Tuple[str, ...]
    difficulty: str
    subject: str
    grade: str

    def to_public(self) -> Dict[str, object]:
        """Client view, without the answer."""
        return {
            "id": self.id,
            "prompt": self.prompt,
            "options": list(self.options),
            "difficulty": self.difficulty,
        }


def question_id(subject: str, grade: str, difficulty: str, index: int) -> str:
    return f"{subject}_{grade}_{difficulty}_{index}"


def grade_level(grade: str) -> int:
    """School year (1-6) for a semester label like 三下."""
    return GRADES.index(grade) // 2 + 1


# ============================================================================
# Math
# ============================================================================

def _int_distractors(answer: int, rng: random.Random, spread: int) -> List[int]:
    """Three distinct wrong answers near the correct one, never negative."""
    opts = set()
    tries = 0
    while len(opts) < OPTION_COUNT - 1 and tries < 50:
        tries += 1
        cand = answer + rng.randint(-spread, spread)
        if cand != answer and cand >= 0:
            opts.add(cand)
    # Pad upward if the neighbourhood was too small (answer close to 0)
    cand = answer + spread + 1
    while len(opts) < OPTION_COUNT - 1:
        opts.add(cand)
        cand += 1
    return sorted(opts)


def _math_question(rng: random.Random, level: int, difficulty: str) -> Tuple[str, int, int]:
    """Returns (prompt, answer, distractor spread)."""
    step = DIFFICULTIES.index(difficulty)

    # Years 1-2: addition and subtraction
    if level <= 2:
        top = (10, 20, 50)[step] * level
        a, b = rng.randint(1, top), rng.randint(1, top)
        if rng.random() < 0.5:
            return f"{a} + {b} = ?", a + b, 3 + step * 2
        a, b = max(a, b), min(a, b)
        return f"{a} - {b} = ?", a - b, 3 + step * 2

    # Years 3-4: multiplication and division
    if level <= 4:
        if difficulty == "simple":
            a, b = rng.randint(2, 9), rng.randint(2, 9)
            return f"{a} × {b} = ?", a * b, 5
        if difficulty == "medium":
            a, b = rng.randint(11, 20 * (level - 1)), rng.randint(2, 9)
            return f"{a} × {b} = ?", a * b, 10
        b, q = rng.randint(2, 9), rng.randint(3, 12 * (level - 2))
        return f"{b * q} ÷ {b} = ?", q, 4

    # Years 5-6: mixed operations
    a, b, c = rng.randint(2, 20), rng.randint(2, 9), rng.randint(2, 9)
    if difficulty == "simple":
        return f"{a} + {b} × {c} = ?", a + b * c, 6
    if difficulty == "medium":
        return f"({a} + {b}) × {c} = ?", (a + b) * c, 10
    d = rng.randint(2, 9)
    e = d * rng.randint(2, 9)
    # keep the result non-negative
    a = a + e // d
    return f"{a} × {b} - {e} ÷ {d} = ?", a * b - e // d, 12


def _math_item(qid: str, grade: str, difficulty: str, index: int) -> Tuple[str, str, List[str]]:
    rng = random.Random(qid)
    prompt, answer, spread = _math_question(rng, grade_level(grade), difficulty)
    return prompt, str(answer), [str(x) for x in _int_distractors(answer, rng, spread)]


# ============================================================================
# English vocabulary
# ============================================================================

VOCABULARY: Dict[str, List[Tuple[str, str]]] = {
    "simple": [
        ("apple", "蘋果"), ("banana", "香蕉"), ("cat", "貓"), ("dog", "狗"),
        ("book", "書"), ("pen", "筆"), ("red", "紅色"), ("blue", "藍色"),
        ("sun", "太陽"), ("egg", "蛋"), ("fish", "魚"), ("bird", "鳥"),
        ("milk", "牛奶"), ("one", "一"), ("two", "二"),
    ],
    "medium": [
        ("school", "學校"), ("teacher", "老師"), ("window", "窗戶"), ("family", "家人"),
        ("friend", "朋友"), ("rabbit", "兔子"), ("orange", "柳橙"), ("yellow", "黃色"),
        ("happy", "快樂的"), ("water", "水"), ("morning", "早上"), ("kitchen", "廚房"),
        ("flower", "花"), ("river", "河流"),
    ],
    "hard": [
        ("library", "圖書館"), ("breakfast", "早餐"), ("umbrella", "雨傘"), ("elephant", "大象"),
        ("weather", "天氣"), ("birthday", "生日"), ("vegetable", "蔬菜"), ("hospital", "醫院"),
        ("mountain", "山"), ("beautiful", "美麗的"), ("dictionary", "字典"), ("science", "科學"),
        ("holiday", "假期"), ("restaurant", "餐廳"),
    ],
}


def _english_item(qid: str, grade: str, difficulty: str, index: int) -> Tuple[str, str, List[str]]:
    words = VOCABULARY[difficulty]
    # Each grade gets its own fixed selection of words for the bank
    picks = random.Random(f"english_{grade}_{difficulty}").sample(range(len(words)), BANK_SIZE)
    word, meaning = words[picks[index]]
    others = [m for w, m in words if w != word]
    distractors = random.Random(qid).sample(others, OPTION_COUNT - 1)
    return f"「{word}」是什麼意思？", meaning, distractors


ITEM_BUILDERS: Dict[str, Callable[[str, str, str, int], Tuple[str, str, List[str]]]] = {
    "math": _math_item,
    "english": _english_item,
}

# ============================================================================
# Public API
# ============================================================================


def validate_selection(subject: str, grade: str, difficulty: str) -> Optional[str]:
    """Return an error message for an unknown subject/grade/difficulty, else None."""
    if subject not in SUBJECTS:
        return f"Unknown subject: {subject}"
    if grade not in GRADES:
        return f"Unknown grade: {grade}"
    if difficulty not in DIFFICULTIES and difficulty != REFLECTION:
        return f"Unknown difficulty: {difficulty}"
    return None


def generate_bank(subject: str, grade: str, difficulty: str,
                  rng: Optional[random.Random] = None) -> List[Question]:
    """
    Build the BANK_SIZE questions for (subject, grade, difficulty).

    `rng` only drives option ordering; content is fixed by question id.
    """
    error = validate_selection(subject, grade, difficulty)
    if error or difficulty == REFLECTION:
        raise ValueError(error or "The reflection pool is built from the mistake log")

    shuffler = rng or random
    builder = ITEM_BUILDERS[subject]
    bank = []
    for i in range(BANK_SIZE):
        qid = question_id(subject, grade, difficulty, i)
        prompt, answer, distractors = builder(qid, grade, difficulty, i)
        options = [answer] + list(distractors)
        shuffler.shuffle(options)
        bank.append(Question(
            id=qid,
            prompt=prompt,
            answer=answer,
            options=tuple(options),
            difficulty=difficulty,
            subject=subject,
            grade=grade,
        ))
    return bank


def reflection_pool(subject: str, grade: str, wrong_ids,
                    rng: Optional[random.Random] = None) -> List[Question]:
    """Questions from every difficulty whose id is in the mistake log."""
    wanted = set(wrong_ids or [])
    if not wanted:
        return []
    pool = []
    for difficulty in DIFFICULTIES:
        pool.extend(q for q in generate_bank(subject, grade, difficulty, rng) if q.id in wanted)
    return pool


def build_queue(pool: List[Question], size: int, rng: Optional[random.Random] = None) -> List[Question]:
    """Random permutation of the pool, truncated to `size`."""
    queue = list(pool)
    (rng or random).shuffle(queue)
    return queue[:size]


def catalog() -> Dict[str, object]:
    return {
        "subjects": [{"key": k, "name": v} for k, v in SUBJECTS.items()],
        "grades": list(GRADES),
        "difficulties": DIFFICULTIES + [REFLECTION],
        "questions_per_bank": BANK_SIZE,
    }
