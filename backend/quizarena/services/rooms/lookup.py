"""Quiz lookup backed by the quiz table.

Consumed once per game, at start. Returns a ``QuizSnapshot`` or None when the
quiz does not exist or cannot be read. Question validation happens in the
room manager.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from quizarena import db
from quizarena.models import Quiz
from .manager import QuizSnapshot

logger = logging.getLogger(__name__)


def load_quiz(quiz_id):
    try:
        pk = int(quiz_id)
    except (TypeError, ValueError):
        return None
    try:
        quiz = db.session.get(Quiz, pk)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(f"[quiz-lookup] quiz={quiz_id} storage error")
        return None
    if quiz is None:
        return None
    questions = quiz.question_list()
    if questions is None:
        logger.warning(f"[quiz-lookup] quiz={quiz_id} has unreadable questions")
        return None
    return QuizSnapshot(quiz.title, questions)
