# Overview: Domain error types raised by the local store services.

"""
Error kinds surfaced to callers of the mutation API.

- SessionInvalidError:   no active tenant scope; raised before touching storage
- EntityNotFoundError:   a referenced id does not exist (in scope) at transaction time
- InvalidStateError:     the operation would violate an invariant (negative stock, overpayment)
- InvalidOperationError: the operation is not permitted for the entity's variant
- SyncFailureError:      network/server failure during a flush; swallowed by the sync engine

Mutation errors abort the enclosing local transaction, so local state is left
exactly as it was before the attempt.
"""


class PosError(Exception):
    """Base class for domain errors. Carries optional structured details."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SessionInvalidError(PosError):
    pass


class EntityNotFoundError(PosError):
    pass


class InvalidStateError(PosError):
    pass


class InvalidOperationError(PosError):
    pass


class SyncFailureError(PosError):
    pass
