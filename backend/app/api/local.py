from fastapi import APIRouter, HTTPException
from functools import lru_cache
from typing import Dict

from backend.app.core.config import settings
from backend.app.core.storage import JsonFileStore
from backend.app.engine.learning import LearningStore
from backend.app.schemas.game_schema import (
    ColumnPayload,
    LocalGameResponse,
    LocalMoveResponse,
    LocalSessionCreate,
    LocalSessionUpdate,
)
from backend.app.services.local_game_service import LocalGameSession, local_sessions

router = APIRouter()


@lru_cache(maxsize=1)
def get_storage() -> JsonFileStore:
    return JsonFileStore(settings.storage.directory)


@lru_cache(maxsize=1)
def get_learning_store() -> LearningStore:
    """One learning store per process, shared by every local session."""
    return LearningStore.from_settings(settings.learning, get_storage()).load()


def _get_session(session_id: str) -> LocalGameSession:
    session = local_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("/sessions", response_model=LocalGameResponse)
async def create_session(payload: LocalSessionCreate):
    session = local_sessions.create(
        payload.mode,
        payload.difficulty,
        storage=get_storage(),
        learning_store=get_learning_store(),
    )
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=LocalGameResponse)
async def get_session(session_id: str):
    return _get_session(session_id).snapshot()


@router.post("/sessions/{session_id}/moves", response_model=LocalMoveResponse)
async def submit_move(session_id: str, payload: ColumnPayload):
    """
    Plays the human move and, in AI mode, waits for the AI reply.
    Refused moves come back with `accepted=False`, not as an HTTP error.
    """
    session = _get_session(session_id)
    outcome = await session.submit_move(payload.column)
    return LocalMoveResponse(result=outcome["result"], ai_move=outcome["ai_move"], state=session.snapshot())


@router.post("/sessions/{session_id}/reset", response_model=LocalGameResponse)
async def reset_game(session_id: str):
    session = _get_session(session_id)
    session.reset_game()
    return session.snapshot()


@router.post("/sessions/{session_id}/reset-stats", response_model=LocalGameResponse)
async def reset_stats(session_id: str):
    session = _get_session(session_id)
    session.reset_stats()
    return session.snapshot()


@router.patch("/sessions/{session_id}", response_model=LocalGameResponse)
async def update_session(session_id: str, payload: LocalSessionUpdate):
    """Switching mode or difficulty starts a fresh game."""
    session = _get_session(session_id)
    if payload.mode is not None:
        session.set_mode(payload.mode)
    if payload.difficulty is not None:
        session.set_difficulty(payload.difficulty)
    return session.snapshot()


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    _get_session(session_id)
    local_sessions.remove(session_id)
    return {"message": "Session closed"}


@router.get("/learning", response_model=Dict[str, int])
async def learning_stats():
    return get_learning_store().stats()


@router.delete("/learning", response_model=Dict[str, int])
async def clear_learning():
    store = get_learning_store()
    store.clear()
    return store.stats()
