from datetime import datetime, timedelta, timezone

import pytest

from routes.benchmark.utils import get_time_filter
from routes.utils import pagination
from utils.cache import CustomCoder, LEADERBOARD_CACHE

async def get_leaderboard():
    pass

def test_cache_key_ignores_store_handle():
    first = LEADERBOARD_CACHE(get_leaderboard, kwargs={"period": "24h", "store": object()})
    second = LEADERBOARD_CACHE(get_leaderboard, kwargs={"period": "24h", "store": object()})
    other = LEADERBOARD_CACHE(get_leaderboard, kwargs={"period": "7d", "store": object()})

    assert first == second
    assert first != other
    assert first.startswith("leaderboard:")

def test_coder_handles_timestamps():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    encoded = CustomCoder.encode({"timestamp": now})
    assert CustomCoder.decode(encoded.encode()) == {"timestamp": now.isoformat()}
    assert CustomCoder.decode(None) is None

@pytest.mark.parametrize("period,window", [
    ("1h", timedelta(hours=1)), ("24h", timedelta(hours=24)),
    ("7d", timedelta(days=7)), ("30d", timedelta(days=30)),
])
def test_time_filter(period, window):
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert get_time_filter(period, now) == now - window

@pytest.mark.parametrize("period", [None, "", "all", "1y"])
def test_unknown_period_means_all_time(period):
    assert get_time_filter(period) is None

def test_pagination():
    assert pagination(1, 20, 0) == {"page": 1, "limit": 20, "total": 0, "pages": 0}
    assert pagination(3, 20, 41) == {"page": 3, "limit": 20, "total": 41, "pages": 3}
