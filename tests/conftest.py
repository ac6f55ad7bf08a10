import copy
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from fastapi_cache import FastAPICache
from fastapi_cache.backends.inmemory import InMemoryBackend

from api import create_application
from services.errors import BalanceConflictError
from services.withdrawal import WithdrawalService

VALID_ADDRESS = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

def _now():
    return datetime.now(timezone.utc)

class FakeLedgerStore:
    """In-memory stand-in for LedgerStore with the same atomicity contract"""

    def __init__(self):
        self.users = {}
        self.sessions = {}
        self.benchmarks = []
        self.transactions = {}
        self.token_pool = None
        self.fail_on = set()

    def _maybe_fail(self, name):
        if name in self.fail_on:
            raise RuntimeError(f"store unavailable: {name}")

    async def ping(self):
        self._maybe_fail("ping")
        return True

    # users

    def add_user(self, wallet_address="wallet_0001", username=None, balance=0.0):
        user = {
            "id": str(uuid.uuid4()),
            "wallet_address": wallet_address,
            "username": username or f"user_{wallet_address[-8:]}",
            "virtual_balance": balance,
            "total_mined": 0.0,
            "total_hash_rate": 0.0,
            "last_active": _now(),
            "created_at": _now(),
        }
        self.users[user["id"]] = user
        return user

    async def get_user(self, user_id):
        self._maybe_fail("get_user")
        user = self.users.get(user_id)
        return dict(user) if user else None

    async def get_user_by_wallet(self, wallet_address):
        for user in self.users.values():
            if user["wallet_address"] == wallet_address:
                return dict(user)
        return None

    async def create_user(self, wallet_address, username):
        existing = await self.get_user_by_wallet(wallet_address)
        if existing:
            return existing
        return dict(self.add_user(wallet_address, username))

    async def update_username(self, user_id, username):
        user = self.users.get(user_id)
        if user is None:
            return None
        user["username"] = username
        return dict(user)

    async def credit_user(self, user_id, coins, tokens, hash_rate=None):
        self._maybe_fail("credit_user")
        user = self.users.get(user_id)
        if user is None:
            return False
        user["total_mined"] += coins
        user["virtual_balance"] += tokens
        if hash_rate is not None:
            user["total_hash_rate"] = hash_rate
        user["last_active"] = _now()
        return True

    async def touch_user(self, user_id, hash_rate=None):
        user = self.users.get(user_id)
        if user is None:
            return False
        if hash_rate is not None:
            user["total_hash_rate"] = hash_rate
        user["last_active"] = _now()
        return True

    async def mining_leaderboard(self, limit):
        users = sorted(self.users.values(), key=lambda u: u["total_mined"], reverse=True)
        return [dict(u) for u in users[:limit]]

    # sessions

    async def create_session(self, user_id, session_id, algorithm, difficulty, gpu_info=None):
        record = {
            "id": str(uuid.uuid4()),
            "session_id": session_id,
            "user_id": user_id,
            "start_time": _now(),
            "end_time": None,
            "hash_rate": 0.0,
            "duration": 0.0,
            "coins_earned": 0.0,
            "tokens_earned": 0.0,
            "algorithm": algorithm,
            "difficulty": difficulty,
            "gpu_info": gpu_info,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.sessions[session_id] = record
        return dict(record)

    async def get_session(self, session_id):
        record = self.sessions.get(session_id)
        return dict(record) if record else None

    async def record_session_progress(self, session_id, hash_rate, duration, coins, tokens):
        record = self.sessions.get(session_id)
        if record is None or record["end_time"] is not None:
            return None
        previous = {
            "user_id": record["user_id"],
            "previous_coins": record["coins_earned"],
            "previous_tokens": record["tokens_earned"],
        }
        record["hash_rate"] = hash_rate
        record["duration"] = duration
        record["coins_earned"] = max(record["coins_earned"], coins)
        record["tokens_earned"] = max(record["tokens_earned"], tokens)
        return previous

    async def set_session_hash_rate(self, session_id, hash_rate):
        record = self.sessions.get(session_id)
        if record is None or record["end_time"] is not None:
            return False
        record["hash_rate"] = hash_rate
        return True

    async def close_session(self, session_id, end_time, duration):
        record = self.sessions.get(session_id)
        if record is None or record["end_time"] is not None:
            return None
        record["end_time"] = end_time
        record["duration"] = duration
        return dict(record)

    async def mining_history(self, user_id, limit, offset):
        rows = [r for r in self.sessions.values() if r["user_id"] == user_id]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        user = self.users[user_id] if user_id in self.users else {}
        page = [
            {**r, "wallet_address": user.get("wallet_address"), "username": user.get("username")}
            for r in rows[offset:offset + limit]
        ]
        return page, len(rows)

    async def find_unsettled_sessions(self, limit):
        self._maybe_fail("find_unsettled_sessions")
        rows = [
            r for r in self.sessions.values()
            if r["tokens_earned"] == 0 and r["end_time"] is not None
        ]
        rows.sort(key=lambda r: r["end_time"])
        return [dict(r) for r in rows[:limit]]

    async def settle_session(self, record_id, coins, tokens):
        for record in self.sessions.values():
            if record["id"] == record_id:
                if record["tokens_earned"] != 0:
                    return None
                record["coins_earned"] = coins
                record["tokens_earned"] = tokens
                return record["user_id"]
        return None

    # benchmarks

    async def create_benchmark(self, user_id, score, hash_rate, duration, algorithm, difficulty,
                               tokens_earned, gpu_info=None):
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "score": score,
            "hash_rate": hash_rate,
            "duration": duration,
            "algorithm": algorithm,
            "difficulty": difficulty,
            "tokens_earned": tokens_earned,
            "gpu_info": gpu_info,
            "timestamp": _now(),
        }
        self.benchmarks.append(row)
        return dict(row)

    async def benchmark_leaderboard(self, algorithm, difficulty, since, limit):
        rows = [
            b for b in self.benchmarks
            if (algorithm is None or b["algorithm"] == algorithm)
            and (difficulty is None or b["difficulty"] == difficulty)
            and (since is None or b["timestamp"] >= since)
        ]
        rows.sort(key=lambda b: b["score"], reverse=True)
        return [
            {**b, "wallet_address": self.users[b["user_id"]]["wallet_address"],
             "username": self.users[b["user_id"]]["username"]}
            for b in rows[:limit]
        ]

    async def benchmark_history(self, user_id, limit, offset):
        rows = [b for b in self.benchmarks if b["user_id"] == user_id]
        rows.sort(key=lambda b: b["timestamp"], reverse=True)
        return [dict(b) for b in rows[offset:offset + limit]], len(rows)

    async def benchmark_stats(self):
        scores = [b["score"] for b in self.benchmarks]

        def grouped(field):
            groups = {}
            for b in self.benchmarks:
                groups.setdefault(b[field], []).append(b["score"])
            return [
                {field: key, "count": len(values), "avg_score": sum(values) / len(values)}
                for key, values in sorted(groups.items())
            ]

        return {
            "total_benchmarks": len(scores),
            "average_score": sum(scores) / len(scores) if scores else None,
            "top_score": max(scores) if scores else None,
            "algorithm_stats": grouped("algorithm"),
            "difficulty_stats": grouped("difficulty"),
        }

    # wallet

    def add_withdrawal(self, user_id, amount, to_address, status="PENDING"):
        """Insert a withdrawal without the balance guard"""
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "type": "WITHDRAWAL",
            "amount": amount,
            "to_address": to_address,
            "status": status,
            "tx_hash": None,
            "failure_reason": None,
            "created_at": _now(),
            "updated_at": _now(),
            "processed_at": None,
        }
        self.transactions[row["id"]] = row
        return dict(row)

    async def create_withdrawal(self, user_id, amount, to_address):
        user = self.users.get(user_id)
        if user is None:
            return None
        if amount > user["virtual_balance"] - await self.pending_withdrawal_total(user_id):
            return None
        return self.add_withdrawal(user_id, amount, to_address)

    async def get_transaction(self, transaction_id):
        row = self.transactions.get(transaction_id)
        if row is None:
            return None
        user = self.users.get(row["user_id"], {})
        return {**row, "wallet_address": user.get("wallet_address"), "username": user.get("username")}

    async def pending_withdrawal_total(self, user_id):
        return float(sum(
            t["amount"] for t in self.transactions.values()
            if t["user_id"] == user_id and t["status"] in ("PENDING", "PROCESSING")
        ))

    async def list_transactions(self, user_id, tx_type, limit, offset):
        rows = [
            t for t in self.transactions.values()
            if t["user_id"] == user_id and (tx_type is None or t["type"] == tx_type)
        ]
        rows.sort(key=lambda t: t["created_at"], reverse=True)
        return [dict(t) for t in rows[offset:offset + limit]], len(rows)

    def _transition(self, transaction_id, expected, **changes):
        row = self.transactions.get(transaction_id)
        if row is None or row["status"] != expected:
            return None
        row.update(changes, updated_at=_now())
        return row

    async def claim_withdrawal(self, transaction_id):
        row = self._transition(transaction_id, "PENDING", status="PROCESSING")
        if row is None:
            return None
        in_flight = sum(
            t["amount"] for t in self.transactions.values()
            if t["user_id"] == row["user_id"] and t["status"] == "PROCESSING" and t["id"] != row["id"]
        )
        if row["amount"] > self.users[row["user_id"]]["virtual_balance"] - in_flight:
            self._transition(
                transaction_id, "PROCESSING", status="FAILED",
                failure_reason="insufficient_balance", processed_at=_now()
            )
        return dict(row)

    async def complete_withdrawal(self, transaction_id, reference):
        self._maybe_fail("complete_withdrawal")
        row = self.transactions.get(transaction_id)
        if row is None or row["status"] != "PROCESSING":
            return False
        user = self.users[row["user_id"]]
        if user["virtual_balance"] < row["amount"]:
            raise BalanceConflictError(f"Balance no longer covers withdrawal {transaction_id}")
        self._transition(
            transaction_id, "PROCESSING", status="COMPLETED", tx_hash=reference, processed_at=_now()
        )
        user["virtual_balance"] -= row["amount"]
        return True

    async def fail_withdrawal(self, transaction_id, reason):
        row = self._transition(
            transaction_id, "PROCESSING", status="FAILED", failure_reason=reason, processed_at=_now()
        )
        return row is not None

    async def find_withdrawals(self, status, updated_before, limit):
        rows = [
            t for t in self.transactions.values()
            if t["status"] == status and t["updated_at"] < updated_before
        ]
        rows.sort(key=lambda t: t["updated_at"])
        return [dict(t) for t in rows[:limit]]

    # token pool

    async def ledger_totals(self):
        return {
            "circulating_supply": sum(u["virtual_balance"] for u in self.users.values()),
            "total_mining_rewards": sum(r["tokens_earned"] for r in self.sessions.values()),
            "total_benchmark_rewards": sum(b["tokens_earned"] for b in self.benchmarks),
        }

    async def upsert_token_pool(self, **fields):
        self.token_pool = {"id": 1, **fields, "updated_at": _now()}
        return copy.deepcopy(self.token_pool)

    async def get_token_pool(self):
        return copy.deepcopy(self.token_pool)

class InstantTransferExecutor:
    """Transfer double: records calls, returns a fixed reference or raises the given error"""

    def __init__(self, reference="ref_0001", error=None):
        self.reference = reference
        self.error = error
        self.calls = []

    async def transfer(self, transaction_id, to_address, amount):
        self.calls.append((transaction_id, to_address, amount))
        if self.error is not None:
            raise self.error
        return self.reference

@pytest.fixture
def settings():
    return SimpleNamespace(
        BENCHMARK_REWARD_RATE=0.5,
        MINING_REWARD_RATE=1.0,
        MINIMUM_WITHDRAWAL=100.0,
        TOKEN_TOTAL_SUPPLY=1_000_000.0,
        DISTRIBUTION_BATCH_SIZE=100,
        TRANSFER_TIMEOUT=1.0,
        STALE_PROCESSING_AFTER=600,
        WITHDRAWAL_RECOVERY_INTERVAL=60,
    )

@pytest.fixture
def store():
    return FakeLedgerStore()

@pytest.fixture
def executor():
    return InstantTransferExecutor()

@pytest.fixture
def withdrawals(store, executor, settings):
    return WithdrawalService(store, executor, settings)

@pytest.fixture
def app(store, withdrawals, settings):
    FastAPICache.init(InMemoryBackend(), prefix="test-cache", enable=False)
    application = create_application()
    application.state.settings = settings
    application.state.store = store
    application.state.withdrawals = withdrawals
    return application

@pytest.fixture
def client(app):
    return TestClient(app)
