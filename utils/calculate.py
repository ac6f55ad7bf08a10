# utils/calculate.py
from typing import Dict

DIFFICULTY_MULTIPLIERS: Dict[str, float] = {
    "easy": 1.0,
    "medium": 1.5,
    "hard": 2.0,
}

MIN_BENCHMARK_REWARD = 0.1
MIN_MINING_REWARD = 0.001
HASHES_PER_COIN = 1_000_000

def get_difficulty_multiplier(difficulty: str) -> float:
    """Reward multiplier for a difficulty tag; unknown tags count as easy"""
    return DIFFICULTY_MULTIPLIERS.get((difficulty or "").lower(), 1.0)

def calculate_benchmark_reward(score: float, duration: float, difficulty: str, base_rate: float) -> float:
    """
    Tokens awarded for a single benchmark run.

    Args:
        score: Benchmark score reported by the client
        duration: Run duration in seconds (not part of the formula)
        difficulty: easy, medium or hard
        base_rate: BENCHMARK_REWARD_RATE

    Returns:
        score * base_rate * multiplier / 1000, floored at MIN_BENCHMARK_REWARD
    """
    reward = (score * base_rate * get_difficulty_multiplier(difficulty)) / 1000
    return max(reward, MIN_BENCHMARK_REWARD)

def calculate_mining_reward(hash_rate: float, duration: float) -> float:
    """
    Coins for a mining session from its current hash rate and cumulative duration.

    Args:
        hash_rate: Hashes per second
        duration: Cumulative session duration in seconds

    Returns:
        hash_rate * duration / 1e6, floored at MIN_MINING_REWARD
    """
    coins = (hash_rate * duration) / HASHES_PER_COIN
    return max(coins, MIN_MINING_REWARD)

def calculate_mining_tokens(coins: float, mining_rate: float) -> float:
    return coins * mining_rate
