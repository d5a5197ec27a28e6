from datetime import datetime, timezone
import json

from quizarena import db


def _utcnow():
    return datetime.now(timezone.utc)


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    course = db.Column(db.String(128), nullable=True, index=True)
    difficulty = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    questions = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of question objects
    items_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def set_questions(self, questions):
        self.questions = json.dumps(questions)
        self.items_count = len(questions)

    def question_list(self):
        try:
            return json.loads(self.questions or '[]')
        except ValueError:
            return None

    def to_dict(self, include_questions=False):
        data = {
            'id': self.id,
            'title': self.title,
            'course': self.course,
            'difficulty': self.difficulty,
            'description': self.description,
            'items_count': self.items_count,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_questions:
            data['questions'] = self.question_list()
        return data
