# services/accrual.py
import math
from dataclasses import dataclass
from typing import Any, Dict

from utils.calculate import calculate_mining_reward, calculate_mining_tokens
from utils.logging import logger
from .errors import SessionClosedError, SessionNotFoundError, ValidationError
from .settlement import apply_delta

@dataclass(frozen=True)
class Accrual:
    coins_delta: float
    tokens_delta: float
    regressed: bool = False

def _clamped_delta(previous: float, current: float) -> float:
    if current < previous:
        return 0.0
    return current - previous

def compute_accrual(previous_coins: float, previous_tokens: float,
                    coins: float, tokens: float) -> Accrual:
    """
    Incremental reward between two cumulative readings of one session.

    A cumulative value below the stored one (stale or replayed telemetry)
    yields a zero delta for that component instead of a negative one.
    """
    regressed = coins < previous_coins or tokens < previous_tokens
    return Accrual(
        coins_delta=_clamped_delta(previous_coins, coins),
        tokens_delta=_clamped_delta(previous_tokens, tokens),
        regressed=regressed,
    )

async def update_mining_session(store, session_id: str, hash_rate: float, duration: float,
                                settings) -> Dict[str, Any]:
    """
    Record cumulative telemetry for an open session and credit its owner
    with only the reward accrued since the previous update.
    """
    if not (math.isfinite(hash_rate) and math.isfinite(duration)) or hash_rate < 0 or duration < 0:
        raise ValidationError("hash_rate and duration must be non-negative numbers")

    session = await store.get_session(session_id)
    if session is None:
        raise SessionNotFoundError()
    if session["end_time"] is not None:
        raise SessionClosedError()

    coins = calculate_mining_reward(hash_rate, duration)
    tokens = calculate_mining_tokens(coins, settings.MINING_REWARD_RATE)

    progress = await store.record_session_progress(session_id, hash_rate, duration, coins, tokens)
    if progress is None:
        # stopped between the lookup and the write
        raise SessionClosedError()

    accrual = compute_accrual(
        float(progress["previous_coins"]), float(progress["previous_tokens"]), coins, tokens
    )
    if accrual.regressed:
        logger.warning(
            f"Session {session_id} reported a lower cumulative reward "
            f"(coins {progress['previous_coins']} -> {coins}); crediting nothing for it"
        )

    await apply_delta(
        store, progress["user_id"], accrual.coins_delta, accrual.tokens_delta, hash_rate=hash_rate
    )

    return {
        "coins_earned": coins,
        "tokens_earned": tokens,
        "coins_credited": accrual.coins_delta,
        "tokens_credited": accrual.tokens_delta,
    }
