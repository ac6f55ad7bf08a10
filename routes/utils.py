# routes/utils.py
import math
from typing import Any, Dict, NoReturn

from fastapi import HTTPException

from services.errors import RewardsError
from utils.logging import logger

def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }

def handle_error(operation: str, error: Exception) -> NoReturn:
    """Translate an exception from a route body into an HTTPException"""
    if isinstance(error, HTTPException):
        raise error
    if isinstance(error, RewardsError):
        raise HTTPException(status_code=error.status_code, detail=error.detail)
    logger.error(f"Error during {operation}: {str(error)}")
    raise HTTPException(status_code=500, detail=f"Failed to {operation}")
