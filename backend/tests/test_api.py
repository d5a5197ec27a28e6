import json

from quizarena import room_manager
from quizarena.cli import save_quiz
from quizarena.services.rooms.lookup import load_quiz


def _quiz(title, course=None, n=2):
    return save_quiz({
        'title': title,
        'course': course,
        'questions': [
            {'question': f'{title} {i}?', 'options': ['A', 'B', 'C', 'D'], 'answer': 'A'}
            for i in range(n)
        ],
    })


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ok'
    assert res.get_json()['active_rooms'] == 0


def test_index_counts_active_rooms(client, sio_factory):
    host = sio_factory()
    host.emit('createRoom', {'username': 'host', 'quizId': '1'})
    assert client.get('/').get_json()['active_rooms'] == 1
    assert room_manager.count() == 1


def test_list_quizzes_with_course_filter(client):
    _quiz('Algebra', course='Math')
    _quiz('Rivers', course='Geography')
    res = client.get('/api/quizzes')
    assert res.status_code == 200
    assert {q['title'] for q in res.get_json()} == {'Algebra', 'Rivers'}
    assert 'questions' not in res.get_json()[0]

    only_math = client.get('/api/quizzes?course=Math').get_json()
    assert [q['title'] for q in only_math] == ['Algebra']
    assert len(client.get('/api/quizzes?course=All').get_json()) == 2


def test_get_quiz(client):
    quiz = _quiz('Algebra', n=3)
    data = client.get(f'/api/quizzes/{quiz.id}').get_json()
    assert data['items_count'] == 3
    assert data['questions'][0]['explanation'] == ''
    assert client.get('/api/quizzes/9999').status_code == 404


def test_room_snapshot_unknown(client):
    res = client.get('/api/rooms/ABCD')
    assert res.status_code == 404


def test_room_snapshot(client, sio_factory):
    host = sio_factory()
    host.emit('createRoom', {'username': 'host', 'quizId': '1'})
    code = [p['args'][0] for p in host.get_received() if p['name'] == 'lobbyUpdate'][0]['roomCode']
    state = client.get(f'/api/rooms/{code.lower()}').get_json()
    assert state['roomCode'] == code
    assert state['phase'] == 'lobby'
    assert state['players'] == [{'username': 'host', 'score': 0, 'lastScore': 0}]
    assert room_manager.get_room(code) is not None


def test_load_quiz(flask_app):
    quiz = _quiz('Algebra')
    snapshot = load_quiz(str(quiz.id))
    assert snapshot.title == 'Algebra'
    assert len(snapshot.questions) == 2
    assert load_quiz('nope') is None
    assert load_quiz(9999) is None


def test_import_quiz_command(flask_app, tmp_path):
    path = tmp_path / 'quiz.json'
    path.write_text(json.dumps({
        'title': 'Imported',
        'questions': [{'question': 'Q?', 'options': ['x', 'y'], 'answer': 'x'}],
    }))
    runner = flask_app.test_cli_runner()
    result = runner.invoke(args=['import-quiz', str(path)])
    assert result.exit_code == 0, result.output
    assert 'Imported quiz' in result.output

    bad = tmp_path / 'bad.json'
    bad.write_text(json.dumps({'questions': []}))
    result = runner.invoke(args=['import-quiz', str(bad)])
    assert result.exit_code != 0
    assert 'Invalid quiz format' in result.output


def test_db_reset_seeds_sample_quiz(flask_app, client):
    runner = flask_app.test_cli_runner()
    result = runner.invoke(args=['db-reset'])
    assert result.exit_code == 0, result.output
    quizzes = client.get('/api/quizzes').get_json()
    assert [q['title'] for q in quizzes] == ['World Capitals']
