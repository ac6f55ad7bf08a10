# routes/mining/models.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

class StartRequest(BaseModel):
    user_id: str
    algorithm: Optional[str] = None
    difficulty: Optional[str] = None
    gpu_info: Optional[Any] = None

class StartResponse(BaseModel):
    session_id: str
    record_id: str

class UpdateRequest(BaseModel):
    hash_rate: float
    duration: float

class UpdateResponse(BaseModel):
    success: bool
    coins_earned: float
    tokens_earned: float
    coins_credited: float
    tokens_credited: float

class StopResponse(BaseModel):
    success: bool
    duration: float
    final_reward: float

class MiningRecord(BaseModel):
    id: str
    session_id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime]
    hash_rate: float
    duration: float
    coins_earned: float
    tokens_earned: float
    algorithm: str
    difficulty: str
    gpu_info: Optional[Any] = None
    wallet_address: Optional[str] = None
    username: Optional[str] = None

class MiningHistory(BaseModel):
    records: List[MiningRecord]
    pagination: Dict[str, int]

class LeaderboardEntry(BaseModel):
    id: str
    wallet_address: str
    username: Optional[str]
    total_mined: float
    total_hash_rate: float
    last_active: Optional[datetime]

class MiningLeaderboard(BaseModel):
    leaderboard: List[LeaderboardEntry]
