# services/errors.py

class RewardsError(Exception):
    """Base class for errors the HTTP layer reports back to the caller"""
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

class ValidationError(RewardsError):
    status_code = 400

class NotFoundError(RewardsError):
    status_code = 404

class UserNotFoundError(NotFoundError):
    def __init__(self, detail: str = "User not found"):
        super().__init__(detail)

class SessionNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Mining session not found"):
        super().__init__(detail)

class TransactionNotFoundError(NotFoundError):
    def __init__(self, detail: str = "Transaction not found"):
        super().__init__(detail)

class SessionClosedError(RewardsError):
    status_code = 409

    def __init__(self, detail: str = "Mining session already stopped"):
        super().__init__(detail)

class BalanceConflictError(RewardsError):
    status_code = 409
