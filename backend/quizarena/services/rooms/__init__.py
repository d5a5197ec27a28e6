"""Multiplayer room engine: registry, state machine, scoring and timers.

Transport-free; the Socket.IO gateway and the quiz store are plugged in
through ``RoomManager.init_app``.
"""

from .errors import (  # noqa: F401
    DuplicateUsername,
    InvalidCommand,
    NotHost,
    QuizUnavailable,
    RoomError,
    RoomNotFound,
)
from .manager import QuizSnapshot, RoomManager  # noqa: F401
