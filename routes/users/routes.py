# routes/users/routes.py
from fastapi import APIRouter, Depends, HTTPException

from config import settings
from dependencies import create_access_token, get_store, throttle
from utils.logging import logger
from ..utils import handle_error
from .models import AuthRequest, AuthResponse, Profile, ProfileUpdate, User

router = APIRouter()

RECENT_ACTIVITY_LIMIT = 10

@router.post("/auth", response_model=AuthResponse,
             dependencies=[Depends(throttle(times=settings.THROTTLE_RATE, seconds=60))])
async def authenticate(body: AuthRequest, store=Depends(get_store)):
    """Register a wallet on first sight, then issue a session token"""
    try:
        user = await store.get_user_by_wallet(body.wallet_address)
        if user is None:
            username = body.username or f"user_{body.wallet_address[-8:]}"
            user = await store.create_user(body.wallet_address, username)
            logger.info(f"Registered user {user['id']} for wallet {body.wallet_address}")

        return {"user": user, "token": create_access_token(user)}
    except Exception as e:
        handle_error("authenticate", e)

@router.get("/profile/{wallet_address}", response_model=Profile)
async def get_profile(wallet_address: str, store=Depends(get_store)):
    try:
        user = await store.get_user_by_wallet(wallet_address)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")

        mining, _ = await store.mining_history(user["id"], RECENT_ACTIVITY_LIMIT, 0)
        benchmarks, _ = await store.benchmark_history(user["id"], RECENT_ACTIVITY_LIMIT, 0)
        return {"user": user, "recent_mining": mining, "recent_benchmarks": benchmarks}
    except Exception as e:
        handle_error("fetch profile", e)

@router.put("/profile", response_model=User)
async def update_profile(body: ProfileUpdate, store=Depends(get_store)):
    try:
        user = await store.update_username(body.user_id, body.username)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return user
    except Exception as e:
        handle_error("update profile", e)
