# routes/benchmark/models.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

class BenchmarkSubmission(BaseModel):
    user_id: str
    duration: float
    hash_rate: float
    difficulty: str
    algorithm: str
    score: float
    gpu_info: Optional[Any] = None

class SubmissionResponse(BaseModel):
    success: bool
    benchmark_id: str
    tokens_earned: float
    score: float

class BenchmarkResult(BaseModel):
    id: str
    user_id: str
    score: float
    hash_rate: float
    duration: float
    algorithm: str
    difficulty: str
    tokens_earned: float
    gpu_info: Optional[Any] = None
    timestamp: datetime

class LeaderboardEntry(BaseModel):
    rank: int
    id: str
    wallet_address: str
    username: Optional[str]
    score: float
    hash_rate: float
    duration: float
    algorithm: str
    difficulty: str
    tokens_earned: float
    timestamp: datetime
    gpu_info: Optional[Any] = None

class BenchmarkLeaderboard(BaseModel):
    leaderboard: List[LeaderboardEntry]

class BenchmarkHistory(BaseModel):
    results: List[BenchmarkResult]
    pagination: Dict[str, int]

class GroupStats(BaseModel):
    count: int
    avg_score: Optional[float]

class AlgorithmStats(GroupStats):
    algorithm: str

class DifficultyStats(GroupStats):
    difficulty: str

class BenchmarkStats(BaseModel):
    total_benchmarks: int
    average_score: Optional[float]
    top_score: Optional[float]
    algorithm_stats: List[AlgorithmStats]
    difficulty_stats: List[DifficultyStats]
