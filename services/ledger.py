# services/ledger.py
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from database import DatabasePool
from utils.blockchain import FailureReason
from . import queries
from .errors import BalanceConflictError

Row = Dict[str, Any]

def _new_id() -> str:
    return str(uuid.uuid4())

def _row(record) -> Optional[Row]:
    return dict(record) if record else None

class LedgerStore:
    """
    PostgreSQL-backed ledger of users, mining sessions, benchmark results,
    wallet transactions and the token pool summary row.

    Every balance mutation is a single UPDATE using in-place arithmetic so
    concurrent writers never lose an increment; status transitions are
    conditional updates that only one caller can win.
    """

    def __init__(self, pool: DatabasePool = DatabasePool):
        self.pool = pool

    async def ping(self) -> bool:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    async def _fetchrow(self, query: str, *args) -> Optional[Row]:
        async with self.pool.acquire() as conn:
            return _row(await conn.fetchrow(query, *args))

    async def _fetch(self, query: str, *args) -> List[Row]:
        async with self.pool.acquire() as conn:
            return [dict(r) for r in await conn.fetch(query, *args)]

    async def _fetchval(self, query: str, *args):
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def _execute(self, query: str, *args) -> int:
        """Run a write statement and return the number of affected rows"""
        async with self.pool.acquire() as conn:
            status = await conn.execute(query, *args)
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        return int(status.split()[-1])

    # users

    async def get_user(self, user_id: str) -> Optional[Row]:
        return await self._fetchrow(queries.GET_USER, user_id)

    async def get_user_by_wallet(self, wallet_address: str) -> Optional[Row]:
        return await self._fetchrow(queries.GET_USER_BY_WALLET, wallet_address)

    async def create_user(self, wallet_address: str, username: str) -> Row:
        return await self._fetchrow(queries.CREATE_USER, _new_id(), wallet_address, username)

    async def update_username(self, user_id: str, username: str) -> Optional[Row]:
        return await self._fetchrow(queries.UPDATE_USERNAME, user_id, username)

    async def credit_user(self, user_id: str, coins: float, tokens: float,
                          hash_rate: Optional[float] = None) -> bool:
        return await self._execute(queries.CREDIT_USER, user_id, coins, tokens, hash_rate) == 1

    async def touch_user(self, user_id: str, hash_rate: Optional[float] = None) -> bool:
        return await self._execute(queries.TOUCH_USER, user_id, hash_rate) == 1

    async def mining_leaderboard(self, limit: int) -> List[Row]:
        return await self._fetch(queries.MINING_LEADERBOARD_QUERY, limit)

    # mining sessions

    async def create_session(self, user_id: str, session_id: str, algorithm: str,
                             difficulty: str, gpu_info: Optional[Any] = None) -> Row:
        return await self._fetchrow(
            queries.CREATE_SESSION, _new_id(), session_id, user_id, algorithm, difficulty, gpu_info
        )

    async def get_session(self, session_id: str) -> Optional[Row]:
        return await self._fetchrow(queries.GET_SESSION, session_id)

    async def record_session_progress(self, session_id: str, hash_rate: float, duration: float,
                                      coins: float, tokens: float) -> Optional[Row]:
        """
        Store a session's latest cumulative telemetry.

        Returns user_id, previous_coins and previous_tokens, or None when the
        session does not exist or is already closed.
        """
        return await self._fetchrow(
            queries.RECORD_SESSION_PROGRESS, session_id, hash_rate, duration, coins, tokens
        )

    async def set_session_hash_rate(self, session_id: str, hash_rate: float) -> bool:
        return await self._execute(queries.SET_SESSION_HASH_RATE, session_id, hash_rate) == 1

    async def close_session(self, session_id: str, end_time: datetime, duration: float) -> Optional[Row]:
        return await self._fetchrow(queries.CLOSE_SESSION, session_id, end_time, duration)

    async def mining_history(self, user_id: str, limit: int, offset: int) -> Tuple[List[Row], int]:
        rows = await self._fetch(queries.MINING_HISTORY_QUERY, user_id, limit, offset)
        total = await self._fetchval(queries.MINING_HISTORY_COUNT, user_id)
        return rows, total

    async def find_unsettled_sessions(self, limit: int) -> List[Row]:
        return await self._fetch(queries.UNSETTLED_SESSIONS_QUERY, limit)

    async def settle_session(self, record_id: str, coins: float, tokens: float) -> Optional[str]:
        """Claim an unsettled record; returns its user_id, or None if another run got it first"""
        return await self._fetchval(queries.SETTLE_SESSION, record_id, coins, tokens)

    # benchmarks

    async def create_benchmark(self, user_id: str, score: float, hash_rate: float, duration: float,
                               algorithm: str, difficulty: str, tokens_earned: float,
                               gpu_info: Optional[Any] = None) -> Row:
        return await self._fetchrow(
            queries.CREATE_BENCHMARK, _new_id(), user_id, score, hash_rate, duration,
            algorithm, difficulty, tokens_earned, gpu_info
        )

    async def benchmark_leaderboard(self, algorithm: Optional[str], difficulty: Optional[str],
                                    since: Optional[datetime], limit: int) -> List[Row]:
        return await self._fetch(queries.BENCHMARK_LEADERBOARD_QUERY, algorithm, difficulty, since, limit)

    async def benchmark_history(self, user_id: str, limit: int, offset: int) -> Tuple[List[Row], int]:
        rows = await self._fetch(queries.BENCHMARK_HISTORY_QUERY, user_id, limit, offset)
        total = await self._fetchval(queries.BENCHMARK_HISTORY_COUNT, user_id)
        return rows, total

    async def benchmark_stats(self) -> Row:
        async with self.pool.acquire() as conn:
            totals = dict(await conn.fetchrow(queries.BENCHMARK_TOTALS_QUERY))
            totals["algorithm_stats"] = [dict(r) for r in await conn.fetch(queries.BENCHMARK_BY_ALGORITHM_QUERY)]
            totals["difficulty_stats"] = [dict(r) for r in await conn.fetch(queries.BENCHMARK_BY_DIFFICULTY_QUERY)]
        return totals

    # wallet

    async def create_withdrawal(self, user_id: str, amount: float, to_address: str) -> Optional[Row]:
        """
        Insert a PENDING withdrawal if amount fits in the user's balance minus
        their open withdrawals. The user row stays locked from the check to
        the insert. Returns None when it does not fit or the user is gone.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                balance = await conn.fetchval(queries.LOCK_USER_BALANCE, user_id)
                if balance is None:
                    return None
                pending = await conn.fetchval(queries.PENDING_WITHDRAWAL_TOTAL, user_id)
                if amount > float(balance) - float(pending):
                    return None
                return _row(await conn.fetchrow(
                    queries.CREATE_WITHDRAWAL, _new_id(), user_id, amount, to_address
                ))

    async def get_transaction(self, transaction_id: str) -> Optional[Row]:
        return await self._fetchrow(queries.GET_TRANSACTION, transaction_id)

    async def pending_withdrawal_total(self, user_id: str) -> float:
        return float(await self._fetchval(queries.PENDING_WITHDRAWAL_TOTAL, user_id))

    async def list_transactions(self, user_id: str, tx_type: Optional[str],
                                limit: int, offset: int) -> Tuple[List[Row], int]:
        rows = await self._fetch(queries.TRANSACTIONS_QUERY, user_id, tx_type, limit, offset)
        total = await self._fetchval(queries.TRANSACTIONS_COUNT, user_id, tx_type)
        return rows, total

    async def _lock_owner(self, conn, transaction_id: str) -> Optional[Tuple[str, float]]:
        user_id = await conn.fetchval(queries.GET_WITHDRAWAL_OWNER, transaction_id)
        if user_id is None:
            return None
        balance = await conn.fetchval(queries.LOCK_USER_BALANCE, user_id)
        if balance is None:
            return None
        return user_id, float(balance)

    async def claim_withdrawal(self, transaction_id: str) -> Optional[Row]:
        """
        PENDING -> PROCESSING when the balance covers this withdrawal on top
        of the owner's other PROCESSING ones; otherwise PENDING -> FAILED
        with insufficient_balance. Returns the row in its new state, or None
        when it was not PENDING.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                owner = await self._lock_owner(conn, transaction_id)
                if owner is None:
                    return None
                user_id, balance = owner

                row = await conn.fetchrow(queries.CLAIM_WITHDRAWAL, transaction_id)
                if row is None:
                    return None

                in_flight = await conn.fetchval(queries.OTHER_PROCESSING_TOTAL, user_id, transaction_id)
                if float(row["amount"]) > balance - float(in_flight):
                    row = await conn.fetchrow(
                        queries.FAIL_WITHDRAWAL, transaction_id, FailureReason.INSUFFICIENT_BALANCE
                    )
                return _row(row)

    async def complete_withdrawal(self, transaction_id: str, reference: str) -> bool:
        """PROCESSING -> COMPLETED and the balance debit, together or not at all"""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                if await self._lock_owner(conn, transaction_id) is None:
                    return False
                row = await conn.fetchrow(queries.COMPLETE_WITHDRAWAL, transaction_id, reference)
                if row is None:
                    return False
                debited = await conn.execute(queries.DEBIT_USER, row["user_id"], row["amount"])
                if debited.split()[-1] != "1":
                    raise BalanceConflictError(
                        f"Balance of {row['user_id']} no longer covers withdrawal {transaction_id}"
                    )
        return True

    async def fail_withdrawal(self, transaction_id: str, reason: str) -> bool:
        return await self._execute(queries.FAIL_WITHDRAWAL, transaction_id, reason) == 1

    async def find_withdrawals(self, status: str, updated_before: datetime, limit: int) -> List[Row]:
        return await self._fetch(queries.WITHDRAWALS_BY_STATUS_QUERY, status, updated_before, limit)

    # token pool

    async def ledger_totals(self) -> Row:
        return await self._fetchrow(queries.LEDGER_TOTALS_QUERY)

    async def upsert_token_pool(self, total_supply: float, circulating_supply: float,
                                reserve_balance: float, total_mining_rewards: float,
                                total_benchmark_rewards: float, mining_reward_rate: float,
                                benchmark_reward_rate: float, minimum_withdrawal: float) -> Row:
        return await self._fetchrow(
            queries.UPSERT_TOKEN_POOL, total_supply, circulating_supply, reserve_balance,
            total_mining_rewards, total_benchmark_rewards, mining_reward_rate,
            benchmark_reward_rate, minimum_withdrawal
        )

    async def get_token_pool(self) -> Optional[Row]:
        return await self._fetchrow(queries.GET_TOKEN_POOL)
