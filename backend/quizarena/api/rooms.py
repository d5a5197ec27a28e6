from flask import Blueprint, jsonify

from quizarena import room_manager

rooms = Blueprint('rooms', __name__)


@rooms.route('/<string:room_code>', methods=['GET'])
def get_room_state(room_code):
    """
    Read-only snapshot of an active room.
    """
    state = room_manager.snapshot(room_code.upper())
    if state is None:
        return jsonify({'error': 'Room not found'}), 404
    return jsonify(state)
