# utils/blockchain.py
import aiohttp
import asyncio
import secrets
import time
from typing import Any, Dict, Optional

import base58

from utils.logging import logger

# Settlement-network public keys are 32 bytes, base58 encoded (32 to 44 chars)
ADDRESS_BYTES = 32

class FailureReason:
    NETWORK_ERROR = "network_error"
    INSUFFICIENT_RELAY_FUNDS = "insufficient_relay_funds"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    TRANSFER_REJECTED = "transfer_rejected"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    STALE_PROCESSING = "stale_processing"
    UNKNOWN_ERROR = "unknown_error"

class TransferError(Exception):
    """A transfer that did not settle; reason is stored on the FAILED record"""
    reason = FailureReason.UNKNOWN_ERROR

class RelayNetworkError(TransferError):
    reason = FailureReason.NETWORK_ERROR

class InsufficientRelayFunds(TransferError):
    reason = FailureReason.INSUFFICIENT_RELAY_FUNDS

class ConfirmationTimeout(TransferError):
    reason = FailureReason.CONFIRMATION_TIMEOUT

class TransferRejected(TransferError):
    reason = FailureReason.TRANSFER_REJECTED

def is_valid_address(address: Any) -> bool:
    """True if address is a base58 string decoding to a 32-byte public key"""
    if not isinstance(address, str) or not 32 <= len(address) <= 44:
        return False
    try:
        return len(base58.b58decode(address)) == ADDRESS_BYTES
    except ValueError:
        return False

class SimulatedTransferExecutor:
    """Stand-in executor: waits, then reports success with a fabricated reference"""

    def __init__(self, delay: float = 5.0):
        self.delay = delay

    async def transfer(self, transaction_id: str, to_address: str, amount: float) -> str:
        await asyncio.sleep(self.delay)
        reference = f"sim_tx_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"
        logger.info(f"Simulated transfer of {amount} BMT to {to_address} for {transaction_id}: {reference}")
        return reference

class RelayTransferExecutor:
    """
    Submits transfers to an HTTP settlement relay.

    The relay receives POST {base_url}/transfers with the transaction id as an
    idempotency key and answers with {"signature": ...} once the transfer is
    confirmed. Every failure is raised as a TransferError subclass.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, api_key: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key

    def _headers(self, transaction_id: str) -> Dict[str, str]:
        headers = {"Idempotency-Key": transaction_id}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def transfer(self, transaction_id: str, to_address: str, amount: float) -> str:
        url = f"{self.base_url}/transfers"
        payload = {"reference": transaction_id, "to": to_address, "amount": amount}
        headers = self._headers(transaction_id)

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    if response.status == 200:
                        data = await response.json()
                        signature = data.get("signature")
                        if not signature:
                            raise TransferRejected("Relay response carried no signature")
                        return signature
                    body = await response.text()
                    logger.warning(f"Relay refused transfer {transaction_id}: {response.status} {body[:200]}")
                    raise self._error_for_status(response.status, body)
        except TransferError:
            raise
        except asyncio.TimeoutError as e:
            raise ConfirmationTimeout(f"Relay did not confirm within {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise RelayNetworkError(f"Relay unreachable: {str(e)}") from e

    @staticmethod
    def _error_for_status(status: int, body: str) -> TransferError:
        if status == 402:
            return InsufficientRelayFunds(body or "Relay has insufficient funds")
        if status in (408, 504):
            return ConfirmationTimeout(body or "Relay confirmation timed out")
        if 400 <= status < 500:
            return TransferRejected(body or f"Relay rejected transfer ({status})")
        return RelayNetworkError(body or f"Relay error ({status})")

def create_transfer_executor(settings):
    if settings.TRANSFER_RELAY_URL:
        return RelayTransferExecutor(
            settings.TRANSFER_RELAY_URL,
            timeout=settings.TRANSFER_TIMEOUT,
            api_key=settings.TRANSFER_RELAY_API_KEY or None,
        )
    return SimulatedTransferExecutor(delay=settings.SIMULATED_TRANSFER_DELAY)
