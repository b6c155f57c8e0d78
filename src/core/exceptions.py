class ScheduleValidationError(ValueError):
    """Rejected input; nothing is persisted."""


class ScheduleNotFoundError(Exception):
    """Schedule missing or owned by someone else."""


class ScheduleStateError(Exception):
    """Operation not allowed in the schedule's current status."""


class WalletError(ValueError):
    pass


class InsufficientBalanceError(Exception):
    def __init__(self, amount, available):
        self.amount = amount
        self.available = available
        super().__init__(
            f"Insufficient wallet balance. Required: {amount}, available: {available}"
        )


class ProviderError(Exception):
    """VTU provider rejected the purchase, errored or timed out."""

    def __init__(self, message: str, transaction_id: int | None = None):
        self.transaction_id = transaction_id
        super().__init__(message)
