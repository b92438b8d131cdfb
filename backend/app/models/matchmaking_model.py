from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.core.database import Base

class MatchmakingEntry(Base):
    __tablename__ = "matchmaking_queue"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    player_id = Column(String, nullable=False, index=True)
    status = Column(String, default="waiting", nullable=False, index=True)  # waiting, matched
    game_id = Column(Integer, ForeignKey("online_games.id"), nullable=True)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "status": self.status,
            "game_id": self.game_id,
        }
