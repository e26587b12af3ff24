# mafianight/domain/errors.py
from __future__ import annotations

from typing import Optional

from redis.exceptions import AuthenticationError, NoPermissionError, RedisError


class GameError(Exception):
    """Base for every rule violation surfaced to the caller."""
    code: str = "GAME_ERROR"
    message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---- Authorization ----

class AuthRequired(GameError):
    code = "AUTH_REQUIRED"
    message = "You must be signed in to do that"


class NotHost(GameError):
    code = "NOT_HOST"
    message = "Only the host can do that"


class PermissionDenied(GameError):
    code = "PERMISSION_DENIED"
    message = "You do not have permission to do that"


class InvalidToken(GameError):
    code = "INVALID_TOKEN"
    message = "Sign-in could not be verified"


# ---- State conflicts ----

class AlreadyStarted(GameError):
    code = "ALREADY_STARTED"
    message = "Game has already started"


class AlreadyJoined(GameError):
    code = "ALREADY_JOINED"
    message = "You are already in this game"


class SessionFull(GameError):
    code = "SESSION_FULL"
    message = "Game is full"


class InsufficientPlayers(GameError):
    code = "NOT_ENOUGH_PLAYERS"
    message = "Not enough players to start the game"


class CannotJoinOwnSession(GameError):
    code = "CANNOT_JOIN_OWN"
    message = "You cannot join your own game as a player"


class SessionEnded(GameError):
    code = "SESSION_ENDED"
    message = "Game has ended"


class NotStarted(GameError):
    code = "NOT_STARTED"
    message = "Game has not started yet"


class WrongPhase(GameError):
    code = "BAD_PHASE"
    message = "That action is not allowed in this phase"


class WrongRole(GameError):
    code = "WRONG_ROLE"
    message = "Your role cannot do that"


class PlayerEliminated(GameError):
    code = "ELIMINATED"
    message = "Eliminated players cannot act"


class InvalidSettings(GameError):
    code = "INVALID_SETTINGS"
    message = "Invalid game settings"


# ---- Not found ----

class SessionNotFound(GameError):
    code = "SESSION_NOT_FOUND"
    message = "Game not found"


class PlayerNotFound(GameError):
    code = "PLAYER_NOT_FOUND"
    message = "Player not found in the game"


class NotInSession(GameError):
    code = "NOT_IN_GAME"
    message = "You are not in this game"


# ---- Resource exhaustion ----

class CodeGenerationExhausted(GameError):
    code = "CODE_EXHAUSTED"
    message = "Unable to generate unique game code. Please try again."


def translate_backend_error(exc: RedisError) -> Optional[GameError]:
    """
    Map known backend failures onto the game taxonomy.
    None means the error is transient/unknown and should be passed through.
    """
    if isinstance(exc, (NoPermissionError, AuthenticationError)):
        return PermissionDenied()
    if "NOPERM" in str(exc):
        return PermissionDenied()
    return None
