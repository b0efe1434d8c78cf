"""Error kinds raised by the vault, the strategy and the deployment layer.

Every error aborts the whole operation. The entry point transaction in
:py:mod:`crypt_harvest.guard` restores the state of all contracts before the
exception reaches the caller.
"""


class CryptError(Exception):
    """Base class for all engine errors."""


class ZeroAmount(CryptError):
    """Deposit or withdrawal of zero."""


class InsufficientShares(CryptError):
    """Holder tried to burn or move more shares than they own."""


class InsufficientBalance(CryptError):
    """Token transfer exceeds the sender's balance."""


class InsufficientCapacity(CryptError):
    """Deposit would push total managed assets over the TVL cap."""


class VaultInsolvent(CryptError):
    """Shares are outstanding but the vault manages no assets, so new shares cannot be priced."""


class StrategyPaused(CryptError):
    """Strategy is paused or panicked."""


class StrategyRetired(CryptError):
    """Strategy has been retired and is inert."""


class InvalidTransition(CryptError):
    """State machine transition not allowed from the current state."""


class Unauthorized(CryptError):
    """Caller lacks the role required for the operation."""

    def __init__(self, caller: str, operation: str):
        super().__init__(f"{caller} is not allowed to call {operation}()")
        self.caller = caller
        self.operation = operation


class AlreadyInitialized(CryptError):
    """Vault already has an active strategy."""


class StrategyMismatch(CryptError):
    """Strategy is bound to another vault or another want token."""


class InsufficientHistory(CryptError):
    """APR was requested but the harvest log is empty."""


class ReentrancyDetected(CryptError):
    """An entry point was re-entered while it was still executing."""


class MissingConfiguration(CryptError):
    """A required deployment parameter is empty."""


class InvalidConfiguration(CryptError, ValueError):
    """A parameter is present but out of range or malformed."""
