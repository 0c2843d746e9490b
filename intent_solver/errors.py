"""Error classes for the intent solver.

Admission denials are not errors: rules return a RuleResult instead.
"""


class SolverError(Exception):
    """Base error for solver operations."""

    pass


class ConfigurationError(SolverError):
    """Missing key material, unknown rule, malformed policy document."""

    pass


class ChainError(SolverError):
    """An RPC read or subscription failed."""

    pass


class TransactionFailed(SolverError):
    """A submitted transaction reverted or never confirmed."""

    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class NonceError(TransactionFailed):
    """The chain rejected a transaction because of its nonce.

    Never retried: the local nonce ledger disagrees with the chain and
    an operator has to look at it.
    """

    pass


class SettlementTimeout(SolverError):
    """The proof event did not arrive within the configured timeout."""

    pass
