"""
Adaptive learning store.

Remembers the move sequences with which human players beat the AI, per
difficulty, and turns them into per-column penalties and counter-move
suggestions for later games. Patterns sharing the same opening prefix are
merged; the store is capped and keeps the most damaging patterns.
"""

import logging
import random
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from backend.app.core.errors import StorageFailure
from backend.app.engine.board import COLS

logger = logging.getLogger(__name__)

STORAGE_KEY = "connect4_ai_learning"
MAX_PATTERNS = 100
PREFIX_LENGTH = 5
PENALTY_PER_LOSS = 10


class LearningPattern(BaseModel):
    player_moves: List[int]
    loss_count: int = Field(default=1, ge=1)
    difficulty: str


class LearningData(BaseModel):
    patterns: List[LearningPattern] = Field(default_factory=list)
    total_games_learned: int = 0


def is_prefix_match(current: Sequence[int], recorded: Sequence[int]) -> bool:
    """Equality over the shared leading length."""
    length = min(len(current), len(recorded))
    return list(current[:length]) == list(recorded[:length])


class LearningStore:
    def __init__(
        self,
        storage=None,
        max_patterns: int = MAX_PATTERNS,
        prefix_length: int = PREFIX_LENGTH,
        penalty_per_loss: int = PENALTY_PER_LOSS,
        counter_block_rate: float = 0.7,
        counter_adjacent_rate: float = 0.5,
        rng: Optional[random.Random] = None,
    ):
        self.storage = storage
        self.max_patterns = max_patterns
        self.prefix_length = prefix_length
        self.penalty_per_loss = penalty_per_loss
        self.counter_block_rate = counter_block_rate
        self.counter_adjacent_rate = counter_adjacent_rate
        self.rng = rng or random.Random()
        self.data = LearningData()

    @classmethod
    def from_settings(cls, learning_settings, storage=None, rng: Optional[random.Random] = None) -> "LearningStore":
        return cls(
            storage=storage,
            max_patterns=learning_settings.max_patterns,
            prefix_length=learning_settings.prefix_length,
            penalty_per_loss=learning_settings.penalty_per_loss,
            counter_block_rate=learning_settings.counter_block_rate,
            counter_adjacent_rate=learning_settings.counter_adjacent_rate,
            rng=rng,
        )

    @property
    def patterns(self) -> List[LearningPattern]:
        return self.data.patterns

    # --- Persistence ---

    def load(self) -> "LearningStore":
        """Loads persisted patterns; unreadable data leaves the store empty."""
        if self.storage is None:
            return self
        try:
            raw = self.storage.get(STORAGE_KEY)
            self.data = LearningData.model_validate(raw) if raw else LearningData()
        except (StorageFailure, ValidationError) as e:
            logger.warning("Failed to load AI learning data: %s", e)
            self.data = LearningData()
        return self

    def save(self) -> bool:
        if self.storage is None:
            return False
        try:
            self.storage.set(STORAGE_KEY, self.data.model_dump())
            return True
        except StorageFailure as e:
            logger.warning("Failed to save AI learning data: %s", e)
            return False

    def clear(self) -> None:
        self.data = LearningData()
        if self.storage is not None:
            try:
                self.storage.delete(STORAGE_KEY)
            except StorageFailure as e:
                logger.warning("Failed to clear AI learning data: %s", e)

    def stats(self) -> Dict[str, int]:
        return {
            "total_games": self.data.total_games_learned,
            "patterns_learned": len(self.data.patterns),
        }

    # --- Learning ---

    def _key(self, moves: Sequence[int]) -> List[int]:
        return list(moves[: min(self.prefix_length, len(moves))])

    def record_loss(self, player_moves: Sequence[int], difficulty: str) -> LearningPattern:
        """Called once per game the AI lost, with the winner's full move list."""
        moves = list(player_moves)
        key = self._key(moves)

        pattern = next(
            (p for p in self.data.patterns if p.difficulty == difficulty and self._key(p.player_moves) == key),
            None,
        )
        if pattern is not None:
            pattern.loss_count += 1
            pattern.player_moves = moves
        else:
            pattern = LearningPattern(player_moves=moves, loss_count=1, difficulty=difficulty)
            self.data.patterns.append(pattern)

        self.data.total_games_learned += 1

        if len(self.data.patterns) > self.max_patterns:
            # Keep patterns with highest loss counts
            self.data.patterns.sort(key=lambda p: p.loss_count, reverse=True)
            del self.data.patterns[self.max_patterns:]

        logger.info(
            "Recorded AI loss (%s): prefix=%s losses=%d", difficulty, key, pattern.loss_count
        )
        self.save()
        return pattern

    def _matching(self, current_moves: Sequence[int], difficulty: str) -> List[LearningPattern]:
        """Patterns at this difficulty that agree so far and still have a next move."""
        return [
            p for p in self.data.patterns
            if p.difficulty == difficulty
            and len(p.player_moves) > len(current_moves)
            and is_prefix_match(current_moves, p.player_moves)
        ]

    def penalties_for(self, current_moves: Sequence[int], difficulty: str) -> Dict[int, int]:
        penalties = {col: 0 for col in range(COLS)}
        for pattern in self._matching(current_moves, difficulty):
            dangerous = pattern.player_moves[len(current_moves)]
            penalties[dangerous] = penalties.get(dangerous, 0) + pattern.loss_count * self.penalty_per_loss
        return penalties

    def suggest_counter_move(
        self,
        current_moves: Sequence[int],
        legal_columns: Sequence[int],
        difficulty: str,
    ) -> Optional[int]:
        """
        Column to occupy before the player's historically winning next move.
        Randomized so the counter-play cannot be read and exploited.
        """
        matching = self._matching(current_moves, difficulty)
        if not matching:
            return None

        most_dangerous = max(matching, key=lambda p: p.loss_count)
        expected = most_dangerous.player_moves[len(current_moves)]

        if expected in legal_columns and self.rng.random() < self.counter_block_rate:
            return expected

        adjacent = [c for c in (expected - 1, expected + 1) if c in legal_columns]
        if adjacent and self.rng.random() < self.counter_adjacent_rate:
            return self.rng.choice(adjacent)
        return None
