# routes/general.py
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from database import DatabasePool
from dependencies import get_store
from .socket import SOCKET_PATH
from utils.logging import logger

router = APIRouter()

API_VERSION = "1.0.0"

@router.get("/")
async def root():
    return {
        "app": "BMT Rewards API",
        "version": API_VERSION,
        "status": "operational"
    }

@router.get("/health")
async def health_check(request: Request, store=Depends(get_store)) -> Dict[str, Any]:
    """Database reachability, pool usage and scheduled job status"""
    try:
        await store.ping()
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        raise HTTPException(status_code=503, detail=f"Health check failed: {str(e)}")

    monitor = getattr(request.app.state, "monitor", None)
    return {
        "status": "healthy",
        "database_pool": await DatabasePool.get_pool_stats(),
        "scheduler": monitor.snapshot() if monitor else None,
        "version": API_VERSION
    }

@router.get("/routes")
async def list_routes(request: Request):
    """HTTP routes from the OpenAPI schema, plus the WebSocket endpoint"""
    routes = [
        {"path": path, "method": method.upper(), "name": operation.get("operationId")}
        for path, operations in request.app.openapi()["paths"].items()
        for method, operation in operations.items()
    ]
    routes.append({"path": SOCKET_PATH, "method": "WEBSOCKET", "name": "mining_socket"})
    return sorted(routes, key=lambda x: (x["path"], x["method"]))
