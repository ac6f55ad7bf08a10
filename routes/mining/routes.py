# routes/mining/routes.py
import math
import secrets
import string
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi_cache.decorator import cache

from dependencies import get_settings, get_store
from services.accrual import update_mining_session
from services.errors import SessionClosedError, SessionNotFoundError
from utils.cache import LEADERBOARD_CACHE
from utils.logging import logger
from ..utils import handle_error, pagination
from .models import (
    MiningHistory, MiningLeaderboard, StartRequest, StartResponse, StopResponse,
    UpdateRequest, UpdateResponse
)

router = APIRouter()

DEFAULT_ALGORITHM = "NEXA"
DEFAULT_DIFFICULTY = "medium"
LEADERBOARD_SIZE = 100

_SESSION_ALPHABET = string.ascii_lowercase + string.digits

def new_session_id() -> str:
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(9))
    return f"mining_{int(time.time() * 1000)}_{suffix}"

@router.post("/start", response_model=StartResponse)
async def start_session(body: StartRequest, store=Depends(get_store)):
    try:
        if await store.get_user(body.user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")

        session_id = new_session_id()
        record = await store.create_session(
            body.user_id,
            session_id,
            body.algorithm or DEFAULT_ALGORITHM,
            body.difficulty or DEFAULT_DIFFICULTY,
            body.gpu_info,
        )
        logger.info(f"Mining session {session_id} started for {body.user_id}")
        return {"session_id": session_id, "record_id": record["id"]}
    except Exception as e:
        handle_error("start mining session", e)

@router.put("/update/{session_id}", response_model=UpdateResponse)
async def update_session(session_id: str, body: UpdateRequest,
                         store=Depends(get_store), settings=Depends(get_settings)):
    """Report cumulative hash rate and duration; only the new part of the reward is credited"""
    try:
        result = await update_mining_session(store, session_id, body.hash_rate, body.duration, settings)
        return {"success": True, **result}
    except Exception as e:
        handle_error("update mining session", e)

@router.post("/stop/{session_id}", response_model=StopResponse)
async def stop_session(session_id: str, store=Depends(get_store)):
    try:
        record = await store.get_session(session_id)
        if record is None:
            raise SessionNotFoundError()

        end_time = datetime.now(timezone.utc)
        duration = math.floor((end_time - record["start_time"]).total_seconds())

        updated = await store.close_session(session_id, end_time, duration)
        if updated is None:
            raise SessionClosedError()

        logger.info(f"Mining session {session_id} stopped after {duration}s")
        return {"success": True, "duration": duration, "final_reward": float(updated["tokens_earned"])}
    except Exception as e:
        handle_error("stop mining session", e)

@router.get("/history/{user_id}", response_model=MiningHistory)
async def get_history(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store=Depends(get_store),
):
    try:
        records, total = await store.mining_history(user_id, limit, (page - 1) * limit)
        return {"records": records, "pagination": pagination(page, limit, total)}
    except Exception as e:
        handle_error("fetch mining history", e)

@router.get("/leaderboard", response_model=MiningLeaderboard)
@cache(expire=60, key_builder=LEADERBOARD_CACHE)
async def get_leaderboard(store=Depends(get_store)):
    try:
        return {"leaderboard": await store.mining_leaderboard(LEADERBOARD_SIZE)}
    except Exception as e:
        handle_error("fetch mining leaderboard", e)
