# routes/wallet/routes.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from config import settings as app_settings
from dependencies import get_store, get_withdrawals, throttle
from utils.logging import logger
from ..utils import handle_error, pagination
from .models import (
    Balance, TokenPool, TransactionHistory, TransactionStatus, WithdrawalRequest, WithdrawalResponse
)

router = APIRouter()

RECENT_TRANSACTIONS = 10

async def process_in_background(withdrawals, transaction_id: str):
    try:
        await withdrawals.process_withdrawal(transaction_id)
    except Exception as e:
        # left for the recovery job
        logger.error(f"Withdrawal processing error for {transaction_id}: {str(e)}")

@router.get("/balance/{user_id}", response_model=Balance)
async def get_balance(user_id: str, store=Depends(get_store)):
    try:
        user = await store.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")

        pending = await store.pending_withdrawal_total(user_id)
        recent, _ = await store.list_transactions(user_id, None, RECENT_TRANSACTIONS, 0)
        return {
            "virtual_balance": float(user["virtual_balance"]),
            "available_balance": float(user["virtual_balance"]) - pending,
            "total_mined": float(user["total_mined"]),
            "pending_withdrawals": pending,
            "recent_transactions": recent,
        }
    except Exception as e:
        handle_error("fetch balance", e)

@router.post("/withdraw", response_model=WithdrawalResponse,
             dependencies=[Depends(throttle(times=app_settings.THROTTLE_RATE, seconds=60))])
async def request_withdrawal(body: WithdrawalRequest, background_tasks: BackgroundTasks,
                             withdrawals=Depends(get_withdrawals)):
    try:
        transaction = await withdrawals.request_withdrawal(body.user_id, body.amount, body.to_address)
        background_tasks.add_task(process_in_background, withdrawals, transaction["id"])
        return {
            "success": True,
            "transaction_id": transaction["id"],
            "message": "Withdrawal request submitted successfully",
        }
    except Exception as e:
        handle_error("process withdrawal request", e)

@router.get("/transactions/{user_id}", response_model=TransactionHistory)
async def get_transactions(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = None,
    store=Depends(get_store),
):
    try:
        transactions, total = await store.list_transactions(user_id, type, limit, (page - 1) * limit)
        return {"transactions": transactions, "pagination": pagination(page, limit, total)}
    except Exception as e:
        handle_error("fetch transaction history", e)

@router.get("/withdrawal/{transaction_id}", response_model=TransactionStatus)
async def get_withdrawal(transaction_id: str, withdrawals=Depends(get_withdrawals)):
    try:
        return {"transaction": await withdrawals.get_transaction(transaction_id)}
    except Exception as e:
        handle_error("fetch withdrawal status", e)

@router.get("/token-pool", response_model=TokenPool)
async def get_token_pool(store=Depends(get_store)):
    try:
        pool = await store.get_token_pool()
        if pool is None:
            raise HTTPException(status_code=404, detail="Token pool not computed yet")
        return pool
    except Exception as e:
        handle_error("fetch token pool", e)
