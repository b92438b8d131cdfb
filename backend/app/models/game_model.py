from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from backend.app.core.database import Base
from backend.app.engine.board import PLAYER_1, create_empty_board

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in dev/tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def empty_board_rows():
    return create_empty_board().to_rows()


class OnlineGame(Base):
    __tablename__ = "online_games"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Seats
    player1_id = Column(String, nullable=False, index=True)
    player2_id = Column(String, nullable=True, index=True)

    # Game State
    board = Column(JSONType, default=empty_board_rows, nullable=False)
    current_player = Column(Integer, default=PLAYER_1, nullable=False)
    winner = Column(Integer, nullable=True)
    is_game_over = Column(Boolean, default=False, nullable=False)
    winning_cells = Column(JSONType, nullable=True)
    last_move = Column(JSONType, nullable=True)
    status = Column(String, default="waiting", nullable=False)  # waiting, playing, finished

    # Compare-and-swap token, bumped on every accepted transition
    version = Column(Integer, default=0, nullable=False)

    # Cosmetics, opaque to the game logic
    player1_theme = Column(JSONType, nullable=True)
    player2_theme = Column(JSONType, nullable=True)

    def player_number(self, player_id: str):
        if player_id == self.player1_id:
            return 1
        if self.player2_id is not None and player_id == self.player2_id:
            return 2
        return None

    def to_payload(self) -> dict:
        """Full authoritative row, as pushed to subscribers."""
        return {
            "id": self.id,
            "player1_id": self.player1_id,
            "player2_id": self.player2_id,
            "board": self.board,
            "current_player": self.current_player,
            "winner": self.winner,
            "is_game_over": self.is_game_over,
            "winning_cells": self.winning_cells,
            "last_move": self.last_move,
            "player1_theme": self.player1_theme,
            "player2_theme": self.player2_theme,
            "status": self.status,
            "version": self.version,
        }
