from flask import Blueprint, jsonify, request

from quizarena import db
from quizarena.models import Quiz

quizzes = Blueprint('quizzes', __name__)


@quizzes.route('', methods=['GET'])
def list_quizzes():
    """
    Lists quizzes newest first, optionally filtered by course.
    """
    query = Quiz.query
    course = request.args.get('course')
    if course and course not in ('null', 'All'):
        query = query.filter_by(course=course)
    rows = query.order_by(Quiz.created_at.desc(), Quiz.id.desc()).all()
    return jsonify([q.to_dict() for q in rows])


@quizzes.route('/<int:quiz_id>', methods=['GET'])
def get_quiz(quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if quiz is None:
        return jsonify({'error': 'Quiz not found'}), 404
    return jsonify(quiz.to_dict(include_questions=True))
