from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from backend.app.models.enums import Difficulty, GameMode


class MoveResult(BaseModel):
    """Outcome of a move attempt. Expected refusals are `accepted=False` with a reason."""
    accepted: bool
    reason: Optional[str] = None
    row: Optional[int] = None
    column: Optional[int] = None


# --- Local (single-device) sessions ---

class AIStats(BaseModel):
    wins: int = 0
    losses: int = 0
    draws: int = 0

class LocalStats(BaseModel):
    player1_wins: int = 0
    player2_wins: int = 0
    draws: int = 0

class LocalSessionCreate(BaseModel):
    mode: GameMode = GameMode.AI
    difficulty: Difficulty = Difficulty.MEDIUM

class LocalSessionUpdate(BaseModel):
    mode: Optional[GameMode] = None
    difficulty: Optional[Difficulty] = None

class ColumnPayload(BaseModel):
    column: int

class LocalGameResponse(BaseModel):
    session_id: str
    mode: GameMode
    difficulty: Difficulty
    board: List[List[int]]
    current_turn: int
    winner: Optional[int] = None
    winning_cells: Optional[List[Tuple[int, int]]] = None
    is_game_over: bool
    last_move: Optional[Dict[str, int]] = None
    is_ai_thinking: bool = False
    stats: Dict[str, int]

class LocalMoveResponse(BaseModel):
    result: MoveResult
    ai_move: Optional[MoveResult] = None
    state: LocalGameResponse


# --- Online games ---

class OnlineGameResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player1_id: str
    player2_id: Optional[str] = None
    board: List[List[int]]
    current_player: int
    winner: Optional[int] = None
    is_game_over: bool
    winning_cells: Optional[List[Tuple[int, int]]] = None
    last_move: Optional[Dict[str, int]] = None
    player1_theme: Optional[Any] = None
    player2_theme: Optional[Any] = None
    status: str
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class QueueEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: str
    status: str
    game_id: Optional[int] = None

class MatchRequest(BaseModel):
    player_id: str
    theme: Optional[Any] = None

class MatchResponse(BaseModel):
    """Either a game (matched immediately) or a queue entry to wait on."""
    game: Optional[OnlineGameResponse] = None
    queue_entry: Optional[QueueEntryResponse] = None
    player_number: Optional[int] = None

class ChallengeCreate(BaseModel):
    challenger_id: str
    invitee_id: str
    theme: Optional[Any] = None

class JoinRequest(BaseModel):
    player_id: str
    theme: Optional[Any] = None

class OnlineMoveRequest(BaseModel):
    player_id: str
    column: int = Field(description="Column index (0-6).")

class OnlineMoveResponse(BaseModel):
    result: MoveResult
    game: Optional[OnlineGameResponse] = None
