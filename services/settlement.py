# services/settlement.py
from typing import Optional

from utils.logging import logger
from .errors import UserNotFoundError, ValidationError

async def apply_delta(store, user_id: str, coins_delta: float, tokens_delta: float,
                      hash_rate: Optional[float] = None) -> bool:
    """
    Credit a user with a reward delta.

    When either delta is positive, total_mined and virtual_balance are
    incremented in one atomic statement together with the liveness fields.
    When both are zero only total_hash_rate (if given) and last_active are
    refreshed.

    Returns True when money moved.
    """
    if coins_delta < 0 or tokens_delta < 0:
        raise ValidationError("Reward deltas must not be negative")

    if coins_delta > 0 or tokens_delta > 0:
        updated = await store.credit_user(user_id, coins_delta, tokens_delta, hash_rate)
        credited = True
    else:
        updated = await store.touch_user(user_id, hash_rate)
        credited = False

    if not updated:
        raise UserNotFoundError()

    if credited:
        logger.debug(f"Credited user {user_id}: coins={coins_delta} tokens={tokens_delta}")
    return credited
