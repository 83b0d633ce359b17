"""Error taxonomy for the block unlocker.

Every collaborator failure surfaces as an UnlockerError. The ``transient``
flag separates conditions that may clear on their own (node temporarily
unreachable, slow replies) from ones that need an operator (corrupt share
ledger, rejected writes, malformed node replies).
"""


class UnlockerError(Exception):
    """Base exception for block unlocking and reward settlement."""

    transient: bool = False

    def __init__(self, message: str, transient: bool | None = None):
        super().__init__(message)
        if transient is not None:
            self.transient = transient


class ChainQueryError(UnlockerError):
    """Chain node query failed or returned a malformed reply."""

    pass


class ChainUnavailableError(ChainQueryError):
    """Chain node could not be reached."""

    transient = True


class CollaboratorTimeout(UnlockerError):
    """A chain or storage call did not finish before its deadline."""

    transient = True


class StorageError(UnlockerError):
    """Block store unavailable or write rejected."""

    pass


class ShareLedgerError(UnlockerError):
    """Round share data missing or corrupt."""

    pass
