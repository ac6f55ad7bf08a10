import pytest
from pydantic import ValidationError

from config import Settings

@pytest.mark.parametrize("field", ["MINING_REWARD_RATE", "BENCHMARK_REWARD_RATE"])
@pytest.mark.parametrize("rate", [0.0, -1.0])
def test_reward_rates_must_be_positive(field, rate):
    with pytest.raises(ValidationError):
        Settings(**{field: rate})

def test_reward_rate_from_environment(monkeypatch):
    monkeypatch.setenv("MINING_REWARD_RATE", "0")
    with pytest.raises(ValidationError):
        Settings()
