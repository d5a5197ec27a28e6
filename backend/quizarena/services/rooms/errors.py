"""Errors raised by room commands.

Each one is reported back to the originating connection only, as a
``roomError`` event carrying ``str(exc)``. None of them change room state.
"""


class RoomError(Exception):
    default_message = 'Room command failed'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class RoomNotFound(RoomError):
    default_message = 'Room not found'


class DuplicateUsername(RoomError):
    default_message = 'Username is already taken in this room'


class NotHost(RoomError):
    default_message = 'Only the host can start the game'


class QuizUnavailable(RoomError):
    default_message = 'Quiz could not be loaded'


class InvalidCommand(RoomError):
    default_message = 'Invalid command'
