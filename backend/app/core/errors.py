"""
Error taxonomy for the game core and the online backend.

Expected gameplay conditions (full column, wrong turn, finished game) are
`InvalidMove`; callers turn them into rejected results instead of failures.
"""


class GameError(Exception):
    """Base class for all game errors."""


class InvalidMove(GameError, ValueError):
    COLUMN_FULL = "column_full"
    COLUMN_OUT_OF_RANGE = "column_out_of_range"
    GAME_OVER = "game_over"
    NOT_YOUR_TURN = "not_your_turn"
    NOT_A_PLAYER = "not_a_player"
    NOT_STARTED = "not_started"

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        super().__init__(message or reason)


class GameNotFound(GameError, ValueError):
    def __init__(self, game_id):
        self.game_id = game_id
        super().__init__(f"Game {game_id} not found")


class MatchmakingFailure(GameError):
    pass


class StorageFailure(GameError):
    pass
