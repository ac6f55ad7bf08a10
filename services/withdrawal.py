# services/withdrawal.py
import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from utils.blockchain import FailureReason, TransferError, is_valid_address
from utils.logging import logger
from .errors import TransactionNotFoundError, UserNotFoundError, ValidationError

PENDING = "PENDING"
PROCESSING = "PROCESSING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"

TERMINAL_STATES = (COMPLETED, FAILED)

class WithdrawalService:
    """
    Withdrawal state machine: PENDING -> PROCESSING -> COMPLETED | FAILED.

    Each transition is a conditional update in the store, so a transaction
    is claimed by one processor only and the balance is debited once, on
    confirmed success. Requests and claims are checked against the balance
    under the user's row lock, so in-flight withdrawals never add up to more
    than the balance. Failed records stay FAILED; users file a new request.
    """

    def __init__(self, store, executor, settings,
                 address_validator: Callable[[Any], bool] = is_valid_address):
        self.store = store
        self.executor = executor
        self.settings = settings
        self.address_validator = address_validator

    async def available_balance(self, user: Dict[str, Any]) -> float:
        pending = await self.store.pending_withdrawal_total(user["id"])
        return float(user["virtual_balance"]) - pending

    async def request_withdrawal(self, user_id: str, amount: float, to_address: str) -> Dict[str, Any]:
        """Validate a withdrawal request and create its PENDING record"""
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError()

        minimum = self.settings.MINIMUM_WITHDRAWAL
        if not math.isfinite(amount) or amount < minimum:
            raise ValidationError(f"Minimum withdrawal amount is {minimum} BMT")

        if amount > await self.available_balance(user):
            raise ValidationError("Insufficient balance")

        if not self.address_validator(to_address):
            raise ValidationError("Invalid destination address")

        # rechecked under the user's row lock; a concurrent request may have won
        transaction = await self.store.create_withdrawal(user_id, amount, to_address)
        if transaction is None:
            raise ValidationError("Insufficient balance")
        logger.info(f"Withdrawal {transaction['id']} requested by {user_id}: {amount} BMT")
        return transaction

    async def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        transaction = await self.store.get_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError()
        return transaction

    async def process_withdrawal(self, transaction_id: str) -> Optional[str]:
        """
        Drive a PENDING withdrawal to a terminal state.

        Returns the final status, or None when the record was not PENDING
        (already claimed by another processor, or unknown).
        """
        transaction = await self.store.claim_withdrawal(transaction_id)
        if transaction is None:
            return None

        if transaction["status"] == FAILED:
            logger.warning(f"Withdrawal {transaction_id} marked FAILED: {transaction['failure_reason']}")
            return FAILED

        try:
            reference = await asyncio.wait_for(
                self.executor.transfer(transaction_id, transaction["to_address"], float(transaction["amount"])),
                timeout=self.settings.TRANSFER_TIMEOUT,
            )
        except asyncio.TimeoutError:
            logger.error(f"Withdrawal {transaction_id} timed out after {self.settings.TRANSFER_TIMEOUT}s")
            await self.fail(transaction_id, FailureReason.CONFIRMATION_TIMEOUT)
            return FAILED
        except TransferError as e:
            logger.error(f"Withdrawal {transaction_id} failed ({e.reason}): {str(e)}")
            await self.fail(transaction_id, e.reason)
            return FAILED
        except Exception as e:
            logger.exception(f"Unexpected error processing withdrawal {transaction_id}: {str(e)}")
            await self.fail(transaction_id, FailureReason.UNKNOWN_ERROR)
            return FAILED

        await self.complete(transaction_id, reference)
        return COMPLETED

    async def complete(self, transaction_id: str, reference: str) -> bool:
        """PROCESSING -> COMPLETED with the balance debit; False if already terminal"""
        completed = await self.store.complete_withdrawal(transaction_id, reference)
        if completed:
            logger.info(f"Withdrawal processed: {transaction_id} ({reference})")
        else:
            logger.warning(f"Ignoring completion of withdrawal {transaction_id}: not PROCESSING")
        return completed

    async def fail(self, transaction_id: str, reason: str) -> bool:
        failed = await self.store.fail_withdrawal(transaction_id, reason)
        if failed:
            logger.warning(f"Withdrawal {transaction_id} marked FAILED: {reason}")
        return failed

    async def recover(self, batch_size: int = 100) -> Dict[str, int]:
        """
        Finish withdrawals a crashed or restarted process left behind.

        PENDING records are processed; PROCESSING records older than
        STALE_PROCESSING_AFTER are failed, since their transfer outcome is
        unknown and they must not stay PROCESSING indefinitely.
        """
        now = datetime.now(timezone.utc)
        stale_cutoff = now - timedelta(seconds=self.settings.STALE_PROCESSING_AFTER)
        pending_cutoff = now - timedelta(seconds=self.settings.WITHDRAWAL_RECOVERY_INTERVAL)

        stale: List[Dict[str, Any]] = await self.store.find_withdrawals(PROCESSING, stale_cutoff, batch_size)
        failed = 0
        for transaction in stale:
            if await self.fail(transaction["id"], FailureReason.STALE_PROCESSING):
                failed += 1

        pending = await self.store.find_withdrawals(PENDING, pending_cutoff, batch_size)
        processed = 0
        for transaction in pending:
            try:
                if await self.process_withdrawal(transaction["id"]) is not None:
                    processed += 1
            except Exception as e:
                logger.error(f"Error recovering withdrawal {transaction['id']}: {str(e)}")

        return {"stale_failed": failed, "pending_processed": processed}
