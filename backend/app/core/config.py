import os
import yaml
from pathlib import Path
from pydantic import BaseModel, Field
from typing import Dict, Optional
from dotenv import load_dotenv

load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "game.yaml"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./connect4.db"


class AISettings(BaseModel):
    depths: Dict[str, int] = Field(default_factory=lambda: {"easy": 1, "medium": 3, "hard": 5})
    easy_random_rate: float = 0.3
    counter_move_rates: Dict[str, float] = Field(default_factory=lambda: {"medium": 0.25, "hard": 0.4})
    thinking_delay_seconds: float = 0.5


class LearningSettings(BaseModel):
    max_patterns: int = 100
    prefix_length: int = 5
    penalty_per_loss: int = 10
    counter_block_rate: float = 0.7
    counter_adjacent_rate: float = 0.5


class StorageSettings(BaseModel):
    directory: str = "data"


class OnlineSettings(BaseModel):
    abandon_after_minutes: int = 60
    janitor_interval_seconds: float = 60.0


class GameSettings(BaseModel):
    ai: AISettings = Field(default_factory=AISettings)
    learning: LearningSettings = Field(default_factory=LearningSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    online: OnlineSettings = Field(default_factory=OnlineSettings)
    database_url: str = DEFAULT_DATABASE_URL


def load_settings(config_path: Optional[str] = None) -> GameSettings:
    """
    Reads the YAML tuning file and overlays environment variables.
    A missing file yields the built-in defaults.
    """
    path = Path(config_path or os.getenv("CONNECT4_CONFIG") or DEFAULT_CONFIG_PATH)
    data = {}
    if path.exists():
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

    settings = GameSettings(**data)
    settings.database_url = os.getenv("DATABASE_URL", settings.database_url)
    return settings


# Singleton instance
settings = load_settings()
