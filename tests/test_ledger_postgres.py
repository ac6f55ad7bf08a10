import asyncio
import os
import uuid
from datetime import datetime, timezone

import asyncpg
import pytest
import pytest_asyncio

from database import SCHEMA, DatabasePool
from services.errors import BalanceConflictError
from services.ledger import LedgerStore
from tests.conftest import VALID_ADDRESS

DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="TEST_DATABASE_URL not set")

@pytest_asyncio.fixture
async def pg_store():
    """LedgerStore on a throwaway schema, dropped afterwards"""
    schema = f"bmt_test_{uuid.uuid4().hex[:10]}"
    admin = await asyncpg.connect(DATABASE_URL)
    await admin.execute(f"CREATE SCHEMA {schema}")
    pool = await asyncpg.create_pool(
        DATABASE_URL,
        min_size=1,
        max_size=4,
        server_settings={"search_path": schema},
        init=DatabasePool._init_connection,
    )
    try:
        async with pool.acquire() as conn:
            for statement in SCHEMA:
                await conn.execute(statement)
        yield LedgerStore(pool)
    finally:
        await pool.close()
        await admin.execute(f"DROP SCHEMA {schema} CASCADE")
        await admin.close()

async def _user(store, balance=0.0):
    user = await store.create_user(f"wallet_{uuid.uuid4().hex}", "miner")
    if balance:
        await store.credit_user(user["id"], 0.0, balance)
    return user

async def _balance(store, user_id):
    return (await store.get_user(user_id))["virtual_balance"]

@pytest.mark.asyncio
async def test_session_progress_returns_previous_and_never_decreases(pg_store):
    user = await _user(pg_store)
    await pg_store.create_session(user["id"], "s1", "NEXA", "medium", {"name": "RTX 4090"})

    first = await pg_store.record_session_progress("s1", 500000, 10, 5.0, 5.0)
    second = await pg_store.record_session_progress("s1", 500000, 20, 10.0, 10.0)
    stale = await pg_store.record_session_progress("s1", 500000, 5, 2.5, 2.5)

    assert (first["previous_coins"], first["previous_tokens"]) == (0.0, 0.0)
    assert second["previous_coins"] == 5.0
    assert stale["previous_coins"] == 10.0
    assert stale["user_id"] == user["id"]

    session = await pg_store.get_session("s1")
    assert session["coins_earned"] == 10.0
    assert session["gpu_info"] == {"name": "RTX 4090"}

    await pg_store.close_session("s1", datetime.now(timezone.utc), 20)
    assert await pg_store.record_session_progress("s1", 500000, 30, 15.0, 15.0) is None
    assert await pg_store.close_session("s1", datetime.now(timezone.utc), 30) is None

@pytest.mark.asyncio
async def test_concurrent_credits_are_not_lost(pg_store):
    user = await _user(pg_store)

    await asyncio.gather(*[pg_store.credit_user(user["id"], 1.0, 0.5) for _ in range(20)])

    row = await pg_store.get_user(user["id"])
    assert row["total_mined"] == 20.0
    assert row["virtual_balance"] == 10.0

@pytest.mark.asyncio
async def test_settle_session_claims_once(pg_store):
    user = await _user(pg_store)
    await pg_store.create_session(user["id"], "s1", "NEXA", "medium")
    await pg_store.close_session("s1", datetime.now(timezone.utc), 10)
    record = (await pg_store.find_unsettled_sessions(10))[0]

    results = await asyncio.gather(
        pg_store.settle_session(record["id"], 0.01, 0.01),
        pg_store.settle_session(record["id"], 0.01, 0.01),
    )

    assert sorted(results, key=str) == sorted([user["id"], None], key=str)
    assert await pg_store.find_unsettled_sessions(10) == []

@pytest.mark.asyncio
async def test_concurrent_withdrawal_requests_fit_the_balance(pg_store):
    user = await _user(pg_store, balance=250.0)

    results = await asyncio.gather(
        pg_store.create_withdrawal(user["id"], 200.0, VALID_ADDRESS),
        pg_store.create_withdrawal(user["id"], 200.0, VALID_ADDRESS),
    )

    assert len([r for r in results if r is not None]) == 1
    assert await pg_store.pending_withdrawal_total(user["id"]) == 200.0

@pytest.mark.asyncio
async def test_concurrent_claims_and_single_debit(pg_store):
    user = await _user(pg_store, balance=400.0)
    first = await pg_store.create_withdrawal(user["id"], 200.0, VALID_ADDRESS)
    second = await pg_store.create_withdrawal(user["id"], 200.0, VALID_ADDRESS)
    await pg_store.pool.execute("UPDATE users SET virtual_balance = 250 WHERE id = $1", user["id"])

    claimed = await asyncio.gather(
        pg_store.claim_withdrawal(first["id"]),
        pg_store.claim_withdrawal(second["id"]),
    )

    statuses = sorted(row["status"] for row in claimed)
    assert statuses == ["FAILED", "PROCESSING"]
    failed = next(row for row in claimed if row["status"] == "FAILED")
    assert failed["failure_reason"] == "insufficient_balance"

    processing = next(row for row in claimed if row["status"] == "PROCESSING")
    completions = await asyncio.gather(
        pg_store.complete_withdrawal(processing["id"], "ref_1"),
        pg_store.complete_withdrawal(processing["id"], "ref_2"),
    )
    assert sorted(completions) == [False, True]
    assert await _balance(pg_store, user["id"]) == 50.0
    assert await pg_store.claim_withdrawal(processing["id"]) is None

@pytest.mark.asyncio
async def test_debit_below_zero_rolls_back_completion(pg_store):
    user = await _user(pg_store, balance=150.0)
    transaction = await pg_store.create_withdrawal(user["id"], 120.0, VALID_ADDRESS)
    await pg_store.claim_withdrawal(transaction["id"])
    await pg_store.pool.execute("UPDATE users SET virtual_balance = 100 WHERE id = $1", user["id"])

    with pytest.raises(BalanceConflictError):
        await pg_store.complete_withdrawal(transaction["id"], "ref_1")

    assert await _balance(pg_store, user["id"]) == 100.0
    assert (await pg_store.get_transaction(transaction["id"]))["status"] == "PROCESSING"

@pytest.mark.asyncio
async def test_token_pool_is_a_single_row(pg_store):
    user = await _user(pg_store, balance=5.0)
    await pg_store.create_benchmark(user["id"], 800, 100, 60, "sha256", "hard", 0.8)
    totals = await pg_store.ledger_totals()
    assert totals["circulating_supply"] == 5.0
    assert totals["total_benchmark_rewards"] == 0.8

    fields = dict(
        total_supply=1e6, circulating_supply=5.0, reserve_balance=1e6 - 5.0,
        total_mining_rewards=0.0, total_benchmark_rewards=0.8, mining_reward_rate=1.0,
        benchmark_reward_rate=0.5, minimum_withdrawal=100.0,
    )
    await pg_store.upsert_token_pool(**fields)
    pool = await pg_store.upsert_token_pool(**{**fields, "circulating_supply": 6.0})

    assert pool["id"] == 1
    assert (await pg_store.get_token_pool())["circulating_supply"] == 6.0
    assert await pg_store.pool.fetchval("SELECT COUNT(*) FROM token_pool") == 1

@pytest.mark.asyncio
async def test_benchmark_queries(pg_store):
    user = await _user(pg_store)
    await pg_store.create_benchmark(user["id"], 500, 100, 60, "sha256", "hard", 0.5)
    await pg_store.create_benchmark(user["id"], 900, 100, 60, "x11", "easy", 0.45)

    leaderboard = await pg_store.benchmark_leaderboard("sha256", None, None, 10)
    assert [row["score"] for row in leaderboard] == [500.0]
    assert leaderboard[0]["wallet_address"] == user["wallet_address"]

    stats = await pg_store.benchmark_stats()
    assert stats["total_benchmarks"] == 2
    assert stats["top_score"] == 900.0
    assert [s["algorithm"] for s in stats["algorithm_stats"]] == ["sha256", "x11"]
