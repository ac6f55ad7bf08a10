# services/queries.py

# --- users ---

GET_USER = "SELECT * FROM users WHERE id = $1"

GET_USER_BY_WALLET = "SELECT * FROM users WHERE wallet_address = $1"

CREATE_USER = """
    INSERT INTO users (id, wallet_address, username)
    VALUES ($1, $2, $3)
    ON CONFLICT (wallet_address) DO UPDATE SET wallet_address = EXCLUDED.wallet_address
    RETURNING *
"""

UPDATE_USERNAME = "UPDATE users SET username = $2 WHERE id = $1 RETURNING *"

# Atomic credit: monetary columns are incremented in place, hash rate overwritten
CREDIT_USER = """
    UPDATE users
    SET total_mined = total_mined + $2,
        virtual_balance = virtual_balance + $3,
        total_hash_rate = COALESCE($4, total_hash_rate),
        last_active = NOW()
    WHERE id = $1
"""

TOUCH_USER = """
    UPDATE users
    SET total_hash_rate = COALESCE($2, total_hash_rate),
        last_active = NOW()
    WHERE id = $1
"""

# Never takes a balance below zero; a miss rolls the completion back
DEBIT_USER = """
    UPDATE users
    SET virtual_balance = virtual_balance - $2
    WHERE id = $1 AND virtual_balance >= $2
"""

# Serialises balance checks and debits for one user
LOCK_USER_BALANCE = "SELECT virtual_balance FROM users WHERE id = $1 FOR UPDATE"

MINING_LEADERBOARD_QUERY = """
    SELECT id, wallet_address, username, total_mined, total_hash_rate, last_active
    FROM users
    ORDER BY total_mined DESC
    LIMIT $1
"""

# --- mining sessions ---

CREATE_SESSION = """
    INSERT INTO mining_records (id, session_id, user_id, algorithm, difficulty, gpu_info)
    VALUES ($1, $2, $3, $4, $5, $6)
    RETURNING *
"""

GET_SESSION = "SELECT * FROM mining_records WHERE session_id = $1"

# Locks the open session row, returns the cumulative pair stored before this
# write, and never lets the stored cumulative totals move backwards.
RECORD_SESSION_PROGRESS = """
    WITH previous AS (
        SELECT id, coins_earned, tokens_earned
        FROM mining_records
        WHERE session_id = $1 AND end_time IS NULL
        FOR UPDATE
    )
    UPDATE mining_records m
    SET hash_rate = $2,
        duration = $3,
        coins_earned = GREATEST(m.coins_earned, $4),
        tokens_earned = GREATEST(m.tokens_earned, $5),
        updated_at = NOW()
    FROM previous
    WHERE m.id = previous.id
    RETURNING m.user_id,
              previous.coins_earned AS previous_coins,
              previous.tokens_earned AS previous_tokens
"""

SET_SESSION_HASH_RATE = """
    UPDATE mining_records
    SET hash_rate = $2, updated_at = NOW()
    WHERE session_id = $1 AND end_time IS NULL
"""

CLOSE_SESSION = """
    UPDATE mining_records
    SET end_time = $2, duration = $3, updated_at = NOW()
    WHERE session_id = $1 AND end_time IS NULL
    RETURNING *
"""

MINING_HISTORY_QUERY = """
    SELECT m.*, u.wallet_address, u.username
    FROM mining_records m
    JOIN users u ON u.id = m.user_id
    WHERE m.user_id = $1
    ORDER BY m.created_at DESC
    LIMIT $2 OFFSET $3
"""

MINING_HISTORY_COUNT = "SELECT COUNT(*) FROM mining_records WHERE user_id = $1"

UNSETTLED_SESSIONS_QUERY = """
    SELECT id, user_id, session_id, hash_rate, duration
    FROM mining_records
    WHERE tokens_earned = 0 AND end_time IS NOT NULL
    ORDER BY end_time
    LIMIT $1
"""

# The tokens_earned = 0 guard makes settlement a single claim per record
SETTLE_SESSION = """
    UPDATE mining_records
    SET coins_earned = $2, tokens_earned = $3, updated_at = NOW()
    WHERE id = $1 AND tokens_earned = 0
    RETURNING user_id
"""

# --- benchmarks ---

CREATE_BENCHMARK = """
    INSERT INTO benchmark_results
        (id, user_id, score, hash_rate, duration, algorithm, difficulty, tokens_earned, gpu_info)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
    RETURNING *
"""

BENCHMARK_LEADERBOARD_QUERY = """
    SELECT b.*, u.wallet_address, u.username
    FROM benchmark_results b
    JOIN users u ON u.id = b.user_id
    WHERE ($1::text IS NULL OR b.algorithm = $1)
      AND ($2::text IS NULL OR b.difficulty = $2)
      AND ($3::timestamptz IS NULL OR b.timestamp >= $3)
    ORDER BY b.score DESC
    LIMIT $4
"""

BENCHMARK_HISTORY_QUERY = """
    SELECT *
    FROM benchmark_results
    WHERE user_id = $1
    ORDER BY timestamp DESC
    LIMIT $2 OFFSET $3
"""

BENCHMARK_HISTORY_COUNT = "SELECT COUNT(*) FROM benchmark_results WHERE user_id = $1"

BENCHMARK_TOTALS_QUERY = """
    SELECT COUNT(*) AS total_benchmarks,
           AVG(score) AS average_score,
           MAX(score) AS top_score
    FROM benchmark_results
"""

BENCHMARK_BY_ALGORITHM_QUERY = """
    SELECT algorithm, COUNT(*) AS count, AVG(score) AS avg_score
    FROM benchmark_results
    GROUP BY algorithm
    ORDER BY algorithm
"""

BENCHMARK_BY_DIFFICULTY_QUERY = """
    SELECT difficulty, COUNT(*) AS count, AVG(score) AS avg_score
    FROM benchmark_results
    GROUP BY difficulty
    ORDER BY difficulty
"""

# --- wallet ---

CREATE_WITHDRAWAL = """
    INSERT INTO wallet_transactions (id, user_id, type, amount, to_address, status)
    VALUES ($1, $2, 'WITHDRAWAL', $3, $4, 'PENDING')
    RETURNING *
"""

GET_TRANSACTION = """
    SELECT t.*, u.wallet_address, u.username
    FROM wallet_transactions t
    JOIN users u ON u.id = t.user_id
    WHERE t.id = $1
"""

PENDING_WITHDRAWAL_TOTAL = """
    SELECT COALESCE(SUM(amount), 0)
    FROM wallet_transactions
    WHERE user_id = $1 AND type = 'WITHDRAWAL' AND status IN ('PENDING', 'PROCESSING')
"""

GET_WITHDRAWAL_OWNER = "SELECT user_id FROM wallet_transactions WHERE id = $1"

OTHER_PROCESSING_TOTAL = """
    SELECT COALESCE(SUM(amount), 0)
    FROM wallet_transactions
    WHERE user_id = $1 AND type = 'WITHDRAWAL' AND status = 'PROCESSING' AND id <> $2
"""

TRANSACTIONS_QUERY = """
    SELECT *
    FROM wallet_transactions
    WHERE user_id = $1 AND ($2::text IS NULL OR type = $2)
    ORDER BY created_at DESC
    LIMIT $3 OFFSET $4
"""

TRANSACTIONS_COUNT = """
    SELECT COUNT(*)
    FROM wallet_transactions
    WHERE user_id = $1 AND ($2::text IS NULL OR type = $2)
"""

CLAIM_WITHDRAWAL = """
    UPDATE wallet_transactions
    SET status = 'PROCESSING', updated_at = NOW()
    WHERE id = $1 AND status = 'PENDING'
    RETURNING *
"""

COMPLETE_WITHDRAWAL = """
    UPDATE wallet_transactions
    SET status = 'COMPLETED', tx_hash = $2, processed_at = NOW(), updated_at = NOW()
    WHERE id = $1 AND status = 'PROCESSING'
    RETURNING user_id, amount
"""

FAIL_WITHDRAWAL = """
    UPDATE wallet_transactions
    SET status = 'FAILED', failure_reason = $2, processed_at = NOW(), updated_at = NOW()
    WHERE id = $1 AND status = 'PROCESSING'
    RETURNING *
"""

WITHDRAWALS_BY_STATUS_QUERY = """
    SELECT *
    FROM wallet_transactions
    WHERE type = 'WITHDRAWAL' AND status = $1 AND updated_at < $2
    ORDER BY updated_at
    LIMIT $3
"""

# --- token pool ---

LEDGER_TOTALS_QUERY = """
    SELECT
        (SELECT COALESCE(SUM(virtual_balance), 0) FROM users) AS circulating_supply,
        (SELECT COALESCE(SUM(tokens_earned), 0) FROM mining_records) AS total_mining_rewards,
        (SELECT COALESCE(SUM(tokens_earned), 0) FROM benchmark_results) AS total_benchmark_rewards
"""

UPSERT_TOKEN_POOL = """
    INSERT INTO token_pool (
        id, total_supply, circulating_supply, reserve_balance,
        total_mining_rewards, total_benchmark_rewards,
        mining_reward_rate, benchmark_reward_rate, minimum_withdrawal, updated_at
    )
    VALUES (1, $1, $2, $3, $4, $5, $6, $7, $8, NOW())
    ON CONFLICT (id) DO UPDATE SET
        total_supply = EXCLUDED.total_supply,
        circulating_supply = EXCLUDED.circulating_supply,
        reserve_balance = EXCLUDED.reserve_balance,
        total_mining_rewards = EXCLUDED.total_mining_rewards,
        total_benchmark_rewards = EXCLUDED.total_benchmark_rewards,
        mining_reward_rate = EXCLUDED.mining_reward_rate,
        benchmark_reward_rate = EXCLUDED.benchmark_reward_rate,
        minimum_withdrawal = EXCLUDED.minimum_withdrawal,
        updated_at = NOW()
    RETURNING *
"""

GET_TOKEN_POOL = "SELECT * FROM token_pool WHERE id = 1"
