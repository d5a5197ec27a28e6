"""In-memory room registry and the multiplayer game state machine.

Rooms live in this process only and are gone on restart. Each room moves
through lobby -> countdown -> question(i) -> reveal(i) -> ... -> finished and
is deleted right after the final results are broadcast, or as soon as its
last player leaves.

Every command takes the room's lock for its whole duration, so commands and
timer firings touching one room never interleave. The registry lock only
guards the code -> room map and is always taken after a room lock, never
before one.
"""

import copy
import logging
import math
import random
import string
import threading
from collections import namedtuple
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import DuplicateUsername, InvalidCommand, NotHost, QuizUnavailable, RoomNotFound
from .scheduler import TimerHandle, now_ms
from .scoring import score_question

logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 4
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits

DEFAULT_COUNTDOWN_MS = 5000
DEFAULT_QUESTION_TIME_MS = 10000
DEFAULT_REVEAL_DELAY_MS = 3000

PHASE_LOBBY = 'lobby'
PHASE_STARTING = 'starting'
PHASE_COUNTDOWN = 'countdown'
PHASE_QUESTION = 'question'
PHASE_REVEAL = 'reveal'
PHASE_FINISHED = 'finished'

QuizSnapshot = namedtuple('QuizSnapshot', ['title', 'questions'])


def generate_room_code(length=ROOM_CODE_LENGTH):
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def normalize_room_code(code) -> str:
    if not isinstance(code, str):
        raise InvalidCommand('roomCode is required')
    code = code.strip().upper()
    if len(code) != ROOM_CODE_LENGTH or not all(c in ROOM_CODE_ALPHABET for c in code):
        raise InvalidCommand(f'Room code must be {ROOM_CODE_LENGTH} letters or digits')
    return code


def normalize_username(username) -> str:
    if not isinstance(username, str) or not username.strip():
        raise InvalidCommand('username is required')
    return username.strip()


def normalize_questions(raw) -> Optional[list]:
    """Validate and deep-copy a raw question list; None if it is not usable."""
    if not isinstance(raw, list) or not raw:
        return None
    questions = []
    for item in raw:
        if not isinstance(item, Mapping):
            return None
        text = item.get('question')
        options = item.get('options')
        if not isinstance(text, str) or not text:
            return None
        if not isinstance(options, list) or not options:
            return None
        if 'answer' not in item:
            return None
        questions.append({
            'question': text,
            'options': copy.deepcopy(options),
            'answer': copy.deepcopy(item['answer']),
            'explanation': item.get('explanation') or '',
        })
    return questions


@dataclass
class Player:
    username: str
    connection_id: str
    score: int = 0
    last_score: int = 0
    # question index -> {'selected': ..., 'timeElapsedMs': ...}; write-once
    answers: Dict[int, dict] = field(default_factory=dict)

    def to_dict(self):
        return {
            'username': self.username,
            'score': self.score,
            'lastScore': self.last_score,
        }


@dataclass
class Room:
    code: str
    host: str
    quiz_id: Any
    players: List[Player] = field(default_factory=list)
    phase: str = PHASE_LOBBY
    quiz_title: Optional[str] = None
    quiz_data: Optional[list] = None
    current_question_index: int = 0
    question_started_at: Optional[int] = None
    question_deadline: Optional[int] = None
    # runtime
    question_deadline_timer: Optional[TimerHandle] = field(default=None, repr=False)
    phase_timer: Optional[TimerHandle] = field(default=None, repr=False)
    lock: Any = field(default_factory=threading.RLock, repr=False)

    def find_player(self, username) -> Optional[Player]:
        return next((p for p in self.players if p.username == username), None)

    def player_by_connection(self, connection_id) -> Optional[Player]:
        return next((p for p in self.players if p.connection_id == connection_id), None)

    def all_answered(self) -> bool:
        idx = self.current_question_index
        return bool(self.players) and all(idx in p.answers for p in self.players)

    def ranked_players(self) -> List[dict]:
        # sorted() is stable, so equal scores keep join order
        return [p.to_dict() for p in sorted(self.players, key=lambda p: p.score, reverse=True)]

    def lobby_state(self) -> dict:
        return {
            'roomCode': self.code,
            'quizId': self.quiz_id,
            'host': self.host,
            'players': [p.to_dict() for p in self.players],
        }

    def snapshot(self) -> dict:
        state = self.lobby_state()
        state.update({
            'phase': self.phase,
            'currentQuestionIndex': self.current_question_index,
            'totalQuestions': len(self.quiz_data) if self.quiz_data else 0,
            'questionDeadline': self.question_deadline if self.phase == PHASE_QUESTION else None,
        })
        return state


class RoomManager:
    """Process-wide registry of rooms plus the commands that drive them.

    Collaborators are injected (see ``init_app``):

    - ``broadcaster``: ``attach(sid, code)``, ``detach(sid, code)``,
      ``to_room(code, event, payload, skip_sid=None)``,
      ``to_connection(sid, event, payload)``, ``close(code)``
    - ``scheduler``: ``call_later(delay_ms, callback, *args, label=...)``
      returning a handle with ``cancel()``
    - ``quiz_lookup``: ``quiz_id -> QuizSnapshot | None``
    - ``clock``: epoch milliseconds
    """

    def __init__(self, broadcaster=None, scheduler=None, quiz_lookup=None, clock=now_ms,
                 countdown_ms=DEFAULT_COUNTDOWN_MS, question_time_ms=DEFAULT_QUESTION_TIME_MS,
                 reveal_delay_ms=DEFAULT_REVEAL_DELAY_MS, code_factory=generate_room_code):
        self.rooms: Dict[str, Room] = {}
        self._registry_lock = threading.Lock()
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.quiz_lookup = quiz_lookup
        self.clock = clock
        self.countdown_ms = countdown_ms
        self.question_time_ms = question_time_ms
        self.reveal_delay_ms = reveal_delay_ms
        self.code_factory = code_factory

    def init_app(self, app, broadcaster, scheduler, quiz_lookup):
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.quiz_lookup = quiz_lookup
        self.countdown_ms = int(app.config.get('COUNTDOWN_DURATION_MS', DEFAULT_COUNTDOWN_MS))
        self.question_time_ms = int(app.config.get('QUESTION_TIME_MS', DEFAULT_QUESTION_TIME_MS))
        self.reveal_delay_ms = int(app.config.get('REVEAL_DELAY_MS', DEFAULT_REVEAL_DELAY_MS))
        app.extensions['quizarena.rooms'] = self

    # Registry ------------------------------------------------------------
    def get_room(self, code) -> Optional[Room]:
        with self._registry_lock:
            return self.rooms.get(code)

    def count(self) -> int:
        with self._registry_lock:
            return len(self.rooms)

    def snapshot(self, code) -> Optional[dict]:
        room = self.get_room(code)
        if room is None:
            return None
        with room.lock:
            return room.snapshot() if self._is_live(room) else None

    def reset(self) -> None:
        """Drop every room and cancel its timers."""
        with self._registry_lock:
            rooms = list(self.rooms.values())
            self.rooms.clear()
        for room in rooms:
            with room.lock:
                self._cancel_timers(room)

    def _is_live(self, room: Room) -> bool:
        with self._registry_lock:
            return self.rooms.get(room.code) is room

    def _require_room(self, code) -> Room:
        room = self.get_room(code)
        if room is None:
            raise RoomNotFound(f'Room {code} not found')
        return room

    def _register(self, room_factory) -> Room:
        with self._registry_lock:
            code = self.code_factory()
            while code in self.rooms:
                logger.debug(f"[room-code-collision] code={code}")
                code = self.code_factory()
            room = room_factory(code)
            self.rooms[code] = room
            return room

    def _delete_room(self, room: Room) -> None:
        self._cancel_timers(room)
        with self._registry_lock:
            if self.rooms.get(room.code) is room:
                del self.rooms[room.code]
        self.broadcaster.close(room.code)
        logger.info(f"[room-delete] room={room.code}")

    @staticmethod
    def _cancel_timers(room: Room) -> None:
        for timer in (room.question_deadline_timer, room.phase_timer):
            if timer is not None:
                timer.cancel()
        room.question_deadline_timer = None
        room.phase_timer = None

    # Lobby ---------------------------------------------------------------
    def create_room(self, username, quiz_id, connection_id) -> Room:
        username = normalize_username(username)
        if quiz_id is None or quiz_id == '':
            raise InvalidCommand('quizId is required')
        room = self._register(lambda code: Room(code=code, host=username, quiz_id=quiz_id))
        with room.lock:
            room.players.append(Player(username=username, connection_id=connection_id))
            self.broadcaster.attach(connection_id, room.code)
            self.broadcaster.to_connection(connection_id, 'lobbyUpdate', room.lobby_state())
        logger.info(f"[room-create] room={room.code} host={username} quiz={quiz_id}")
        return room

    def join_room(self, code, username, connection_id) -> Room:
        code = normalize_room_code(code)
        username = normalize_username(username)
        room = self._require_room(code)
        with room.lock:
            if not self._is_live(room):
                raise RoomNotFound(f'Room {code} not found')
            if room.find_player(username) is not None:
                raise DuplicateUsername(f"Username '{username}' is already taken in room {code}")
            if room.player_by_connection(connection_id) is not None:
                raise InvalidCommand(f'Already joined room {code}')
            room.players.append(Player(username=username, connection_id=connection_id))
            self.broadcaster.attach(connection_id, code)
            self.broadcaster.to_room(code, 'lobbyUpdate', room.lobby_state())
            self.broadcaster.to_room(code, 'playerJoined', {'username': username})
        logger.info(f"[room-join] room={code} player={username} players={len(room.players)}")
        return room

    def leave_room(self, code, connection_id) -> bool:
        """Remove the connection's player. Also used for disconnects."""
        try:
            code = normalize_room_code(code)
        except InvalidCommand:
            return False
        room = self.get_room(code)
        if room is None:
            return False
        with room.lock:
            if not self._is_live(room):
                return False
            player = room.player_by_connection(connection_id)
            if player is None:
                return False
            room.players.remove(player)
            self.broadcaster.detach(connection_id, code)
            logger.info(f"[room-leave] room={code} player={player.username} remaining={len(room.players)}")
            if not room.players:
                self._delete_room(room)
                return True
            if player.username == room.host:
                room.host = room.players[0].username
                logger.info(f"[host-handover] room={code} from={player.username} to={room.host}")
            self.broadcaster.to_room(code, 'lobbyUpdate', room.lobby_state())
            # the leaver may have been the last one the question was waiting on
            if room.phase == PHASE_QUESTION and room.all_answered():
                self._advance_locked(room, room.current_question_index)
        return True

    # Game ----------------------------------------------------------------
    def start_game(self, code, quiz_id, connection_id) -> Room:
        code = normalize_room_code(code)
        room = self._require_room(code)
        with room.lock:
            if not self._is_live(room):
                raise RoomNotFound(f'Room {code} not found')
            caller = room.player_by_connection(connection_id)
            if caller is None or caller.username != room.host:
                raise NotHost()
            if room.phase == PHASE_STARTING:
                raise InvalidCommand('Game start is already in progress')
            if room.phase != PHASE_LOBBY:
                raise InvalidCommand('Game has already started')
            if quiz_id is not None and quiz_id != '':
                room.quiz_id = quiz_id
            room.phase = PHASE_STARTING
            quiz_id = room.quiz_id

        # The lookup may block on storage; the room stays reachable meanwhile.
        snapshot = self._resolve_quiz(quiz_id)

        with room.lock:
            if not self._is_live(room):
                logger.info(f"[start-abort] room={code} deleted while loading quiz")
                return room
            if snapshot is None:
                room.phase = PHASE_LOBBY
                raise QuizUnavailable(f'Quiz {quiz_id} is unavailable')
            title, questions = snapshot
            room.quiz_title = title
            room.quiz_data = questions
            room.current_question_index = 0
            room.phase = PHASE_COUNTDOWN
            start_ts = self.clock() + self.countdown_ms
            self.broadcaster.to_room(code, 'startCountdown', {
                'quizTitle': title,
                'startTimestamp': start_ts,
                'quizData': copy.deepcopy(questions),
            })
            room.phase_timer = self.scheduler.call_later(
                self.countdown_ms, self.open_question, code, 0,
                label=f'room={code} stage=countdown',
            )
        logger.info(f"[game-start] room={code} quiz={quiz_id} questions={len(questions)} start_at={start_ts}")
        return room

    def _resolve_quiz(self, quiz_id) -> Optional[QuizSnapshot]:
        try:
            found = self.quiz_lookup(quiz_id)
        except Exception:
            logger.exception(f"[quiz-lookup] quiz={quiz_id} failed")
            return None
        if found is None:
            return None
        title, raw = found
        questions = normalize_questions(raw)
        if questions is None:
            return None
        return QuizSnapshot(title or '', questions)

    def open_question(self, code, index) -> bool:
        room = self.get_room(code)
        if room is None:
            logger.info(f"[timer-abort] room={code} q={index} room gone")
            return False
        with room.lock:
            if (not self._is_live(room) or room.current_question_index != index
                    or room.phase not in (PHASE_COUNTDOWN, PHASE_REVEAL)):
                logger.info(f"[timer-abort] room={code} q={index} phase={room.phase} "
                            f"current={room.current_question_index}")
                return False
            room.phase_timer = None
            now = self.clock()
            room.question_started_at = now
            room.question_deadline = now + self.question_time_ms
            room.phase = PHASE_QUESTION
            room.question_deadline_timer = self.scheduler.call_later(
                self.question_time_ms, self.advance, code, index,
                label=f'room={code} stage=question q={index}',
            )
            question = room.quiz_data[index]
            self.broadcaster.to_room(code, 'nextQuestion', {
                'qIndex': index,
                'question': {'question': question['question'], 'options': copy.deepcopy(question['options'])},
                'players': [p.to_dict() for p in room.players],
                'qStartTime': now,
                'qDeadline': room.question_deadline,
            })
        logger.info(f"[question-open] room={code} q={index} deadline={room.question_deadline}")
        return True

    def submit_answer(self, code, connection_id, selected, elapsed_ms=None) -> bool:
        """Record an answer. Anything that cannot be recorded is ignored."""
        try:
            code = normalize_room_code(code)
        except InvalidCommand:
            return False
        room = self.get_room(code)
        if room is None:
            return False
        with room.lock:
            if not self._is_live(room) or room.question_deadline_timer is None:
                return False
            player = room.player_by_connection(connection_id)
            if player is None:
                return False
            index = room.current_question_index
            if index in player.answers:
                return False
            if elapsed_ms is None or not math.isfinite(elapsed_ms):
                elapsed_ms = self.clock() - room.question_started_at
            elapsed_ms = min(max(elapsed_ms, 0), self.question_time_ms)
            player.answers[index] = {'selected': selected, 'timeElapsedMs': elapsed_ms}
            self.broadcaster.to_room(code, 'playerAnswered',
                                     {'username': player.username, 'qIndex': index},
                                     skip_sid=connection_id)
            if room.all_answered():
                self._advance_locked(room, index)
        return True

    def advance(self, code, index) -> bool:
        """Close question ``index``: score, reveal, then finish or schedule the next one.

        Safe to call more than once for the same index; only the first call
        while that question is open has any effect.
        """
        room = self.get_room(code)
        if room is None:
            logger.info(f"[timer-abort] room={code} q={index} room gone")
            return False
        with room.lock:
            return self._advance_locked(room, index)

    def _advance_locked(self, room: Room, index) -> bool:
        code = room.code
        if not self._is_live(room) or room.phase != PHASE_QUESTION or room.current_question_index != index:
            logger.info(f"[advance-skip] room={code} q={index} phase={room.phase} "
                        f"current={room.current_question_index}")
            return False
        question = room.quiz_data[index]
        deltas = score_question(
            question,
            {p.username: p.answers.get(index) for p in room.players},
            self.question_time_ms,
        )
        if room.question_deadline_timer is not None:
            room.question_deadline_timer.cancel()
            room.question_deadline_timer = None
        for p in room.players:
            p.last_score = deltas[p.username]
            p.score += p.last_score

        is_last = index >= len(room.quiz_data) - 1
        room.phase = PHASE_REVEAL
        self.broadcaster.to_room(code, 'showAnswer', {
            'correctAnswer': question['answer'],
            'correctExplanation': question['explanation'],
            'players': room.ranked_players(),
            'qIndex': index,
            'isLastQuestion': is_last,
        })
        logger.info(f"[reveal] room={code} q={index} last={is_last}")

        if is_last:
            room.phase = PHASE_FINISHED
            ranking = room.ranked_players()
            self.broadcaster.to_room(code, 'showResults', {'finalRanking': ranking})
            logger.info(f"[results] room={code} winner={ranking[0]['username'] if ranking else None}")
            self._delete_room(room)
            return True

        room.current_question_index += 1
        room.phase_timer = self.scheduler.call_later(
            self.reveal_delay_ms, self.open_question, code, room.current_question_index,
            label=f'room={code} stage=reveal q={index}',
        )
        return True
