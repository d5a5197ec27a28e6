import json

import click
from flask.cli import with_appcontext

from quizarena import db

SAMPLE_QUIZ = {
    'title': 'World Capitals',
    'course': 'Geography',
    'difficulty': 'easy',
    'description': 'Warm-up round for multiplayer testing',
    'questions': [
        {
            'question': 'What is the capital of France?',
            'options': ['Paris', 'Lyon', 'Marseille', 'Nice'],
            'answer': 'Paris',
            'explanation': 'Paris has been the capital of France since 987.',
        },
        {
            'question': 'What is the capital of Japan?',
            'options': ['Osaka', 'Kyoto', 'Tokyo', 'Sapporo'],
            'answer': 'Tokyo',
            'explanation': 'Tokyo became the capital in 1868.',
        },
        {
            'question': 'What is the capital of Canada?',
            'options': ['Toronto', 'Ottawa', 'Montreal', 'Vancouver'],
            'answer': 'Ottawa',
            'explanation': 'Ottawa was chosen by Queen Victoria in 1857.',
        },
    ],
}


def save_quiz(data):
    """Validate a quiz document and store it. Returns the new Quiz."""
    from quizarena.models import Quiz
    from quizarena.services.rooms.manager import normalize_questions

    if not isinstance(data, dict) or not data.get('title') or not isinstance(data.get('questions'), list):
        raise ValueError('Invalid quiz format: a title and a questions array are required')
    questions = normalize_questions(data['questions'])
    if questions is None:
        raise ValueError('Invalid quiz format: every question needs question, options and answer')
    quiz = Quiz(
        title=data['title'],
        course=data.get('course'),
        difficulty=data.get('difficulty'),
        description=data.get('description'),
    )
    quiz.set_questions(questions)
    db.session.add(quiz)
    db.session.commit()
    return quiz


@click.command('db-reset')
@with_appcontext
def db_reset_command():
    """Drops, recreates, and seeds the database."""
    db.drop_all()
    db.create_all()
    quiz = save_quiz(SAMPLE_QUIZ)
    click.echo(f'Database has been reset and seeded with quiz {quiz.id}!')


@click.command('import-quiz')
@with_appcontext
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
def import_quiz_command(path):
    """Imports a quiz from a JSON file."""
    try:
        with open(path, encoding='utf-8') as fh:
            data = json.load(fh)
        quiz = save_quiz(data)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    click.echo(f'Imported quiz {quiz.id}: {quiz.title} ({quiz.items_count} questions)')


def register_cli(flask_app):
    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(import_quiz_command)
