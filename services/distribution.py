# services/distribution.py
import asyncio
from typing import Awaitable, Callable, List

from utils.calculate import calculate_mining_reward, calculate_mining_tokens
from utils.logging import logger
from .settlement import apply_delta

async def distribute_rewards(store, settings) -> int:
    """
    Settle ended mining sessions that never received a reward.

    At most DISTRIBUTION_BATCH_SIZE records per run. A record is claimed by a
    conditional update on tokens_earned = 0, and the reward floor keeps the
    settled value above zero, so overlapping runs cannot pay a session twice.
    Returns the number of sessions settled by this run.
    """
    records = await store.find_unsettled_sessions(settings.DISTRIBUTION_BATCH_SIZE)
    settled = 0

    for record in records:
        try:
            coins = calculate_mining_reward(float(record["hash_rate"]), float(record["duration"] or 0))
            tokens = calculate_mining_tokens(coins, settings.MINING_REWARD_RATE)

            user_id = await store.settle_session(record["id"], coins, tokens)
            if user_id is None:
                continue

            await apply_delta(store, user_id, coins, tokens)
            settled += 1
        except Exception as e:
            logger.error(f"Error settling mining record {record['id']}: {str(e)}")

    logger.info(f"Processed {settled} of {len(records)} mining rewards")
    return settled

async def update_token_pool_stats(store, settings):
    """Recompute the token pool summary row from the ledger"""
    totals = await store.ledger_totals()
    circulating = float(totals["circulating_supply"])

    pool = await store.upsert_token_pool(
        total_supply=settings.TOKEN_TOTAL_SUPPLY,
        circulating_supply=circulating,
        reserve_balance=settings.TOKEN_TOTAL_SUPPLY - circulating,
        total_mining_rewards=float(totals["total_mining_rewards"]),
        total_benchmark_rewards=float(totals["total_benchmark_rewards"]),
        mining_reward_rate=settings.MINING_REWARD_RATE,
        benchmark_reward_rate=settings.BENCHMARK_REWARD_RATE,
        minimum_withdrawal=settings.MINIMUM_WITHDRAWAL,
    )
    logger.info(f"Token pool stats updated: circulating={circulating}")
    return pool

async def run_periodic(name: str, interval: float, job: Callable[[], Awaitable], monitor=None):
    """Run job every interval seconds until cancelled; errors are logged and the loop goes on"""
    while True:
        try:
            result = await job()
            if monitor:
                monitor.record_success(name, result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Scheduled job {name} failed: {str(e)}")
            if monitor:
                monitor.record_failure(name, e)
        await asyncio.sleep(interval)

def start_reward_distribution(store, withdrawals, settings, monitor=None) -> List[asyncio.Task]:
    """Start the distribution, token-pool and withdrawal-recovery jobs"""
    logger.info("Starting reward distribution service...")
    jobs = [
        ("distribute_rewards", settings.DISTRIBUTION_INTERVAL,
         lambda: distribute_rewards(store, settings)),
        ("update_token_pool_stats", settings.POOL_STATS_INTERVAL,
         lambda: update_token_pool_stats(store, settings)),
        ("recover_withdrawals", settings.WITHDRAWAL_RECOVERY_INTERVAL,
         lambda: withdrawals.recover(settings.DISTRIBUTION_BATCH_SIZE)),
    ]
    return [
        asyncio.create_task(run_periodic(name, interval, job, monitor), name=name)
        for name, interval, job in jobs
    ]
