# routes/benchmark/routes.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi_cache.decorator import cache

from config import settings as app_settings
from dependencies import get_settings, get_store, throttle
from services.settlement import apply_delta
from utils.cache import LEADERBOARD_CACHE, STATS_CACHE
from utils.calculate import calculate_benchmark_reward
from utils.logging import logger
from ..utils import handle_error, pagination
from .models import (
    BenchmarkHistory, BenchmarkLeaderboard, BenchmarkStats, BenchmarkSubmission, SubmissionResponse
)
from .utils import get_time_filter, validate_submission

router = APIRouter()

LEADERBOARD_SIZE = 100

@router.post("/submit", response_model=SubmissionResponse,
             dependencies=[Depends(throttle(times=app_settings.THROTTLE_RATE, seconds=60))])
async def submit_benchmark(body: BenchmarkSubmission, store=Depends(get_store), settings=Depends(get_settings)):
    try:
        validate_submission(body)
        if await store.get_user(body.user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")

        algorithm = body.algorithm.lower()
        difficulty = body.difficulty.lower()
        tokens_earned = calculate_benchmark_reward(
            body.score, body.duration, difficulty, settings.BENCHMARK_REWARD_RATE
        )

        # Two separate writes; a crash between them leaves an unpaid result
        result = await store.create_benchmark(
            body.user_id, body.score, body.hash_rate, body.duration,
            algorithm, difficulty, tokens_earned, body.gpu_info,
        )
        await apply_delta(store, body.user_id, 0.0, tokens_earned)

        logger.info(f"Benchmark {result['id']} by {body.user_id}: score={body.score} tokens={tokens_earned}")
        return {
            "success": True,
            "benchmark_id": result["id"],
            "tokens_earned": tokens_earned,
            "score": body.score,
        }
    except Exception as e:
        handle_error("submit benchmark result", e)

@router.get("/leaderboard", response_model=BenchmarkLeaderboard)
@cache(expire=60, key_builder=LEADERBOARD_CACHE)
async def get_leaderboard(
    algorithm: Optional[str] = None,
    difficulty: Optional[str] = None,
    period: str = "24h",
    store=Depends(get_store),
):
    try:
        rows = await store.benchmark_leaderboard(
            algorithm.lower() if algorithm else None,
            difficulty.lower() if difficulty else None,
            get_time_filter(period),
            LEADERBOARD_SIZE,
        )
        return {"leaderboard": [{"rank": i + 1, **row} for i, row in enumerate(rows)]}
    except Exception as e:
        handle_error("fetch benchmark leaderboard", e)

@router.get("/history/{user_id}", response_model=BenchmarkHistory)
async def get_history(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store=Depends(get_store),
):
    try:
        results, total = await store.benchmark_history(user_id, limit, (page - 1) * limit)
        return {"results": results, "pagination": pagination(page, limit, total)}
    except Exception as e:
        handle_error("fetch benchmark history", e)

@router.get("/stats", response_model=BenchmarkStats)
@cache(expire=300, key_builder=STATS_CACHE)
async def get_stats(store=Depends(get_store)):
    try:
        return await store.benchmark_stats()
    except Exception as e:
        handle_error("fetch benchmark statistics", e)
