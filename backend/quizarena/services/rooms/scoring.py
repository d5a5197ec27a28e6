import math
from typing import Dict, Mapping, Optional

BASE_SCORE = 100
MAX_SPEED_BONUS = 50


def answer_points(correct: bool, elapsed_ms: float, question_time_ms: int) -> int:
    """Points for one submission: 0 if wrong, else base plus a linear speed bonus.

    The bonus is 50 for an instant answer and 0 at the full time budget.
    Halves round up.
    """
    if not correct:
        return 0
    if math.isnan(elapsed_ms):
        elapsed_ms = question_time_ms
    elapsed = min(max(elapsed_ms, 0), question_time_ms)
    bonus = MAX_SPEED_BONUS * (1 - elapsed / question_time_ms)
    return BASE_SCORE + int(math.floor(bonus + 0.5))


def score_question(question: Mapping, answers: Mapping[str, Optional[Mapping]],
                   question_time_ms: int) -> Dict[str, int]:
    """Score one completed question.

    ``answers`` maps each username to its recorded ``{selected, timeElapsedMs}``
    entry, or None when the player did not answer. Every username gets a delta.
    """
    deltas = {}
    for username, answer in answers.items():
        if answer is None:
            deltas[username] = 0
            continue
        correct = answer['selected'] == question['answer']
        deltas[username] = answer_points(correct, answer['timeElapsedMs'], question_time_ms)
    return deltas
