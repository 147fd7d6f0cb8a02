"""Domain-specific exceptions

Business rejections (limits, night window, purpose mismatch) are returned as
verdicts, not raised. These exceptions cover the storage boundary and
programming errors only.
"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class AccountNotFoundError(DomainException):
    """No snapshot stored for the requested account id"""

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class ConcurrentModificationError(DomainException):
    """Snapshot was mutated by another writer since it was loaded"""

    pass


class InvalidAmountError(DomainException):
    """Amount is not a positive decimal"""

    pass


class InvalidStatusTransitionError(DomainException):
    """Transaction status may only move from pending to a terminal state"""

    pass
