# dependencies.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from config import settings

def get_store(request: Request):
    """Ledger store attached to the application at startup"""
    return request.app.state.store

def get_withdrawals(request: Request):
    return request.app.state.withdrawals

def get_settings(request: Request):
    return request.app.state.settings

def throttle(times: int, seconds: int):
    """
    Rate-limit a route per client. The limiter needs Redis; until
    FastAPILimiter.init has run the dependency lets requests through.
    """
    limiter = RateLimiter(times=times, seconds=seconds)

    async def dependency(request: Request, response: Response):
        if FastAPILimiter.redis is None:
            return
        await limiter(request, response)

    return dependency

def create_access_token(user: Dict[str, Any]) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "user_id": user["id"],
        "wallet_address": user["wallet_address"],
        "iat": now,
        "exp": now + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
