"""
Answer checking for quiz questions.

Multiple choice is matched by option index (or option text). Numeric
open-ended answers accept a 5 % tolerance. Free-text answers accept an
exact normalised match or a word-overlap fuzzy match.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional, Union

NUMERIC_TOLERANCE = 0.05
FUZZY_MATCH_THRESHOLD = 0.7

_NUMBER_RE = re.compile(r"-?\d+\.?\d*")

Answer = Union[int, str]


def normalize_answer(value: str) -> str:
    text = str(value).lower().strip()
    text = re.sub(r"[^\w\s]", "", text)
    return re.sub(r"\s+", " ", text)


def extract_first_number(value: str) -> Optional[float]:
    match = _NUMBER_RE.search(str(value))
    return float(match.group(0)) if match else None


def is_numeric_correct(expected: Iterable[Any], user_input: str, tolerance: float = NUMERIC_TOLERANCE) -> bool:
    user_number = extract_first_number(user_input)
    if user_number is None:
        return False
    for raw in expected:
        expected_number = extract_first_number(str(raw))
        if expected_number is None:
            continue
        if abs(user_number - expected_number) <= abs(expected_number * tolerance):
            return True
    return False


def is_fuzzy_text_correct(expected: Iterable[Any], user_input: str, threshold: float = FUZZY_MATCH_THRESHOLD) -> bool:
    """
    True when enough significant expected words appear in the answer.

    Words of two characters or fewer are ignored; answers with two or fewer
    significant words must match exactly.
    """
    user_normalized = normalize_answer(user_input)
    user_words = user_normalized.split(" ")
    for raw in expected:
        expected_normalized = normalize_answer(str(raw))
        if user_normalized == expected_normalized:
            return True

        expected_words = [w for w in expected_normalized.split(" ") if len(w) > 2]
        if len(expected_words) <= 2:
            continue

        matching = [
            word for word in expected_words
            if any(uw and (word in uw or uw in word) for uw in user_words)
        ]
        if len(matching) / len(expected_words) >= threshold:
            return True
    return False


def _field(question: Any, name: str, default=None):
    if isinstance(question, Mapping):
        return question.get(name, default)
    return getattr(question, name, default)


def _question_type(question: Any) -> str:
    qtype = _field(question, "type")
    qtype = getattr(qtype, "value", qtype)
    qtype = str(qtype or "").lower()
    if qtype in ("mcq", "multiple-choice", "multiplechoice"):
        return "multiple_choice"
    return qtype


def _correct_index(question: Any) -> Optional[int]:
    for name in ("correct_index", "correct"):
        value = _field(question, name)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_answer_correct(question: Any, user_answer: Answer) -> bool:
    """
    Evaluate *user_answer* against *question*.

    *question* may be an ORM ``Question`` or a plain dict using either the
    stored field names (``correct_index``) or the generator's (``correct``).
    """
    qtype = _question_type(question)
    options = _field(question, "options") or []

    if qtype == "multiple_choice":
        correct_index = _correct_index(question)
        index_for_text = correct_index if correct_index is not None else 0
        correct_text = None
        if 0 <= index_for_text < len(options):
            correct_text = options[index_for_text]
        correct_text = correct_text or _field(question, "a")

        if isinstance(user_answer, int) and not isinstance(user_answer, bool):
            if correct_index is not None:
                return user_answer == correct_index
            if not correct_text or user_answer < 0 or user_answer >= len(options):
                return False
            return normalize_answer(options[user_answer]) == normalize_answer(correct_text)

        if not correct_text:
            return False
        return normalize_answer(str(user_answer)) == normalize_answer(correct_text)

    expected = list(_field(question, "expected_answers") or [])
    user_text = str(user_answer)

    answer_format = str(_field(question, "answer_format") or "").lower()
    if answer_format in ("number", "numeric"):
        if not expected:
            return False
        return is_numeric_correct(expected, user_text)

    if qtype == "open_ended":
        if not expected:
            fallback = _field(question, "a")
            return bool(fallback) and normalize_answer(user_text) == normalize_answer(fallback)
        user_normalized = normalize_answer(user_text)
        if any(normalize_answer(str(e)) == user_normalized for e in expected):
            return True
        return is_fuzzy_text_correct(expected, user_text)

    return False
