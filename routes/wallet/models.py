# routes/wallet/models.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

class WithdrawalRequest(BaseModel):
    user_id: str
    amount: float
    to_address: str

class WithdrawalResponse(BaseModel):
    success: bool
    transaction_id: str
    message: str

class WalletTransaction(BaseModel):
    id: str
    user_id: str
    type: str
    amount: float
    to_address: Optional[str]
    status: str
    tx_hash: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

class TransactionDetail(WalletTransaction):
    wallet_address: Optional[str] = None
    username: Optional[str] = None

class TransactionStatus(BaseModel):
    transaction: TransactionDetail

class Balance(BaseModel):
    virtual_balance: float
    available_balance: float
    total_mined: float
    pending_withdrawals: float
    recent_transactions: List[WalletTransaction]

class TransactionHistory(BaseModel):
    transactions: List[WalletTransaction]
    pagination: Dict[str, int]

class TokenPool(BaseModel):
    total_supply: float
    circulating_supply: float
    reserve_balance: float
    total_mining_rewards: float
    total_benchmark_rewards: float
    mining_reward_rate: float
    benchmark_reward_rate: float
    minimum_withdrawal: float
    updated_at: datetime
