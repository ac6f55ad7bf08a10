# routes/benchmark/utils.py
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from services.errors import ValidationError
from utils.calculate import DIFFICULTY_MULTIPLIERS

VALID_ALGORITHMS = ("sha256", "scrypt", "x11")
VALID_DIFFICULTIES = tuple(DIFFICULTY_MULTIPLIERS)

PERIODS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

def get_time_filter(period: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Start of the leaderboard window; None (all time) for unknown periods"""
    window = PERIODS.get(period or "")
    if window is None:
        return None
    return (now or datetime.now(timezone.utc)) - window

def validate_submission(submission) -> None:
    """Reject a benchmark before anything is written"""
    numbers = (submission.duration, submission.hash_rate, submission.score)
    if not all(math.isfinite(n) for n in numbers):
        raise ValidationError("Invalid numeric values")
    if submission.duration <= 0 or submission.hash_rate <= 0 or submission.score < 0:
        raise ValidationError("Invalid numeric values")
    if submission.algorithm.lower() not in VALID_ALGORITHMS:
        raise ValidationError("Invalid algorithm")
    if submission.difficulty.lower() not in VALID_DIFFICULTIES:
        raise ValidationError("Invalid difficulty")
