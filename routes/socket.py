# routes/socket.py
import json
import math
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from utils.logging import logger

router = APIRouter()

LEADERBOARD_PUSH_SIZE = 10
SOCKET_PATH = "/ws"

def _message(kind: str, payload: Any) -> Dict[str, Any]:
    return {"type": kind, "payload": payload}

async def handle_mining_stats(websocket: WebSocket, store, stats: Dict[str, Any]):
    """Overwrite the open session's live hash rate; rewards only move through the update route"""
    hash_rate = stats.get("hash_rate") if isinstance(stats, dict) else None
    # bool is an int subclass
    if hash_rate is None or not stats.get("session_id") or isinstance(hash_rate, bool) \
            or not isinstance(hash_rate, (int, float)) or not math.isfinite(hash_rate) or hash_rate < 0:
        await websocket.send_json(_message("error", {"message": "Invalid mining stats"}))
        return
    try:
        await store.set_session_hash_rate(stats["session_id"], float(hash_rate))
        await websocket.send_json(_message("mining_stats_updated", stats))
    except Exception as e:
        logger.error(f"Mining stats update error: {str(e)}")

async def handle_leaderboard_subscription(websocket: WebSocket, store):
    try:
        rows = await store.benchmark_leaderboard(None, None, None, LEADERBOARD_PUSH_SIZE)
        leaderboard = [
            {
                "rank": i + 1,
                "id": row["id"],
                "wallet_address": row["wallet_address"],
                "username": row["username"],
                "score": float(row["score"]),
                "algorithm": row["algorithm"],
                "difficulty": row["difficulty"],
                "tokens_earned": float(row["tokens_earned"]),
                "timestamp": row["timestamp"].isoformat(),
            }
            for i, row in enumerate(rows)
        ]
        await websocket.send_json(_message("leaderboard_update", {"leaderboard": leaderboard}))
    except Exception as e:
        logger.error(f"Leaderboard subscription error: {str(e)}")

async def handle_message(websocket: WebSocket, store, message: Dict[str, Any]):
    kind = message.get("type")
    payload = message.get("payload") or {}

    if kind == "mining_stats":
        await handle_mining_stats(websocket, store, payload)
    elif kind == "benchmark_progress":
        await websocket.send_json(_message("benchmark_progress", payload))
    elif kind == "subscribe_leaderboard":
        await handle_leaderboard_subscription(websocket, store)
    else:
        await websocket.send_json(_message("error", {"message": "Unknown message type"}))

@router.websocket(SOCKET_PATH)
async def mining_socket(websocket: WebSocket):
    await websocket.accept()
    logger.info("New WebSocket connection")
    store = websocket.app.state.store
    await websocket.send_json(_message("connected", {"message": "Connected to mining server"}))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
                if not isinstance(message, dict):
                    raise ValueError("message must be an object")
            except ValueError:
                await websocket.send_json(_message("error", {"message": "Invalid message format"}))
                continue
            await handle_message(websocket, store, message)
    except WebSocketDisconnect:
        logger.info("WebSocket connection closed")
