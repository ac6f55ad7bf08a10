# routes/users/models.py
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

class AuthRequest(BaseModel):
    wallet_address: str = Field(min_length=1)
    username: Optional[str] = None

class ProfileUpdate(BaseModel):
    user_id: str
    username: str = Field(min_length=1, max_length=64)

class User(BaseModel):
    id: str
    wallet_address: str
    username: Optional[str]
    virtual_balance: float
    total_mined: float
    total_hash_rate: float
    last_active: Optional[datetime] = None

class AuthResponse(BaseModel):
    user: User
    token: str

class MiningSummary(BaseModel):
    id: str
    session_id: str
    start_time: datetime
    end_time: Optional[datetime]
    hash_rate: float
    duration: float
    coins_earned: float
    tokens_earned: float
    algorithm: str
    difficulty: str

class BenchmarkSummary(BaseModel):
    id: str
    score: float
    hash_rate: float
    duration: float
    algorithm: str
    difficulty: str
    tokens_earned: float
    gpu_info: Optional[Any] = None
    timestamp: datetime

class Profile(BaseModel):
    user: User
    recent_mining: List[MiningSummary]
    recent_benchmarks: List[BenchmarkSummary]
