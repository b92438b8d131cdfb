from fastapi import APIRouter, Depends, HTTPException, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.database import get_db
from backend.app.core.errors import GameNotFound, InvalidMove, MatchmakingFailure
from backend.app.api.websocket_manager import manager
from backend.app.schemas.game_schema import (
    ChallengeCreate,
    JoinRequest,
    MatchRequest,
    MatchResponse,
    OnlineGameResponse,
    OnlineMoveRequest,
    OnlineMoveResponse,
    QueueEntryResponse,
)
from backend.app.services.game_service import game_service
from backend.app.services.matchmaking_service import matchmaking_service

router = APIRouter()


# --- Matchmaking ---

@router.post("/matchmaking", response_model=MatchResponse)
async def find_match(payload: MatchRequest, db: AsyncSession = Depends(get_db)):
    """
    Pairs the caller with the oldest waiting player, or queues them.
    A queued caller should listen on /queue/{entry_id}/ws for the pairing.
    """
    try:
        outcome = await matchmaking_service.find_match(db, payload.player_id, payload.theme)
    except MatchmakingFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    if outcome.matched:
        return MatchResponse(
            game=OnlineGameResponse.model_validate(outcome.game),
            player_number=outcome.player_number,
        )
    return MatchResponse(queue_entry=QueueEntryResponse.model_validate(outcome.entry))


@router.get("/matchmaking/{entry_id}", response_model=QueueEntryResponse)
async def get_queue_entry(entry_id: int, db: AsyncSession = Depends(get_db)):
    entry = await matchmaking_service.get_entry(db, entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Queue entry not found")
    return entry


@router.delete("/matchmaking/{entry_id}")
async def cancel_search(entry_id: int, db: AsyncSession = Depends(get_db)):
    cancelled = await matchmaking_service.cancel_search(db, entry_id)
    return {"cancelled": cancelled}


# --- Friend challenges ---

@router.post("/challenges", response_model=OnlineGameResponse)
async def create_challenge(payload: ChallengeCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await game_service.create_challenge(db, payload.challenger_id, payload.invitee_id, payload.theme)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/games/{game_id}/accept", response_model=OnlineGameResponse)
async def accept_challenge(game_id: int, payload: JoinRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await game_service.accept_challenge(db, game_id, payload.player_id, payload.theme)
    except GameNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    except InvalidMove as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/games/{game_id}/theme", response_model=OnlineGameResponse)
async def set_theme(game_id: int, payload: JoinRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await game_service.set_theme(db, game_id, payload.player_id, payload.theme)
    except GameNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    except InvalidMove as e:
        raise HTTPException(status_code=403, detail=str(e))


# --- Games ---

@router.get("/games/{game_id}", response_model=OnlineGameResponse)
async def get_game(game_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await game_service.get_game(db, game_id)
    except GameNotFound:
        raise HTTPException(status_code=404, detail="Game not found")


@router.post("/games/{game_id}/moves", response_model=OnlineMoveResponse)
async def submit_move(game_id: int, payload: OnlineMoveRequest, db: AsyncSession = Depends(get_db)):
    """
    The only way a move reaches an online game. Rejections are part of the
    response body; the returned game is always the latest authoritative row.
    """
    try:
        result, game = await game_service.apply_move(db, game_id, payload.player_id, payload.column)
    except GameNotFound:
        raise HTTPException(status_code=404, detail="Game not found")
    return OnlineMoveResponse(result=result, game=OnlineGameResponse.model_validate(game))


# --- Realtime ---

@router.websocket("/games/{game_id}/ws")
async def game_websocket(websocket: WebSocket, game_id: int):
    await manager.handle_game_session(websocket, game_id)


@router.websocket("/queue/{entry_id}/ws")
async def queue_websocket(websocket: WebSocket, entry_id: int):
    await manager.handle_queue_session(websocket, entry_id)
