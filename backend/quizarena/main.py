from flask import Blueprint, jsonify

from quizarena import room_manager

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'status': 'ok', 'message': 'Quiz arena server', 'active_rooms': room_manager.count()})
