"""Socket.IO gateway for multiplayer rooms.

Handlers translate client commands into ``room_manager`` calls and report
``RoomError`` back to the calling socket as ``roomError``. Everything the
state machine broadcasts goes out through ``SocketIOBroadcaster``.
"""

import math
from typing import Dict

from flask import current_app, request
from flask_socketio import emit

from quizarena import room_manager, socketio
from quizarena.services.rooms import InvalidCommand, RoomError

NAMESPACE = '/'


def _channel(code: str) -> str:
    return f"room:{code}"


class SocketIOBroadcaster:
    """Fan-out of room events over Socket.IO rooms, one channel per room code."""

    def __init__(self, sio, namespace=NAMESPACE):
        self.socketio = sio
        self.namespace = namespace

    def attach(self, sid, code):
        self.socketio.server.enter_room(sid, _channel(code), namespace=self.namespace)

    def detach(self, sid, code):
        self.socketio.server.leave_room(sid, _channel(code), namespace=self.namespace)

    def to_room(self, code, event, payload, skip_sid=None):
        self.socketio.emit(event, payload, to=_channel(code), skip_sid=skip_sid, namespace=self.namespace)

    def to_connection(self, sid, event, payload):
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def close(self, code):
        self.socketio.close_room(_channel(code), namespace=self.namespace)


# sid -> code of the room that connection currently plays in.
# Entries can outlive their room; the manager ignores unknown players.
_sid_to_room: Dict[str, str] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _payload(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidCommand('Payload must be an object')
    return data


def _report(command: str, exc: RoomError) -> None:
    current_app.logger.info(f"[rejected] cmd={command} sid={_get_sid()} error={type(exc).__name__}: {exc}")
    emit('roomError', str(exc))


def _switch_room(sid: str, code: str) -> None:
    """Record the connection's new room and drop it from the previous one."""
    previous = _sid_to_room.get(sid)
    _sid_to_room[sid] = code
    if previous and previous != code:
        room_manager.leave_room(previous, sid)


def handle_connect(auth=None):
    current_app.logger.debug(f"[connect] sid={_get_sid()}")


def handle_disconnect(reason=None):
    sid = _get_sid()
    code = _sid_to_room.pop(sid, None)
    current_app.logger.debug(f"[disconnect] sid={sid} room={code} reason={reason}")
    if code:
        room_manager.leave_room(code, sid)


def handle_create_room(data):
    sid = _get_sid()
    try:
        data = _payload(data)
        room = room_manager.create_room(data.get('username'), data.get('quizId'), sid)
    except RoomError as exc:
        _report('createRoom', exc)
        return
    _switch_room(sid, room.code)


def handle_join_room(data):
    sid = _get_sid()
    try:
        data = _payload(data)
        room = room_manager.join_room(data.get('roomCode'), data.get('username'), sid)
    except RoomError as exc:
        _report('joinRoom', exc)
        return
    _switch_room(sid, room.code)


def handle_start_game(data):
    try:
        data = _payload(data)
        room_manager.start_game(data.get('roomCode'), data.get('quizId'), _get_sid())
    except RoomError as exc:
        _report('startGame', exc)


def handle_submit_answer(data):
    # Answers that cannot be recorded are dropped without a reply
    if not isinstance(data, dict) or 'selected' not in data:
        return
    elapsed = data.get('time_ms')
    if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)) or not math.isfinite(elapsed):
        elapsed = None
    room_manager.submit_answer(data.get('roomCode'), _get_sid(), data['selected'], elapsed)


def handle_leave_room(data=None):
    sid = _get_sid()
    code = data.get('roomCode') if isinstance(data, dict) else None
    current = _sid_to_room.get(sid)
    if not code:
        code = current
    if not code:
        return
    room_manager.leave_room(code, sid)
    if current and isinstance(code, str) and code.strip().upper() == current:
        _sid_to_room.pop(sid, None)


def register_socketio_handlers(namespace: str = NAMESPACE) -> None:
    """Register the room commands on the given namespace."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('createRoom', handle_create_room, namespace=namespace)
    socketio.on_event('joinRoom', handle_join_room, namespace=namespace)
    socketio.on_event('startGame', handle_start_game, namespace=namespace)
    socketio.on_event('submitAnswer', handle_submit_answer, namespace=namespace)
    socketio.on_event('leaveRoom', handle_leave_room, namespace=namespace)
