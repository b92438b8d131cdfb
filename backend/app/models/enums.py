from enum import StrEnum

class OnlineGameStatus(StrEnum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"

class QueueStatus(StrEnum):
    WAITING = "waiting"
    MATCHED = "matched"

class SessionStatus(StrEnum):
    """Client-side view of an online session."""
    IDLE = "idle"
    SEARCHING = "searching"
    MATCHED = "matched"
    PLAYING = "playing"
    FINISHED = "finished"

class GameMode(StrEnum):
    AI = "ai"
    LOCAL = "local"

class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
