"""
Exceptions raised by the recovery pipeline.

Only AddressNotFoundError is absorbed (per legacy channel record); every
other error aborts the operation it was raised in.
"""

from __future__ import annotations


class RecoveryError(Exception):
    """Base class for all lnsweep errors."""


class InvalidPathError(RecoveryError):
    """Derivation path text is empty or malformed."""


class DerivationError(RecoveryError):
    """An elliptic-curve derivation step produced an unusable key."""


class AddressError(RecoveryError):
    """Address is malformed or not valid for the active network."""


class AddressNotFoundError(RecoveryError):
    """A legacy channel record did not match any key in the scan window."""


class InsufficientFundsError(RecoveryError):
    """Discovered value minus fee is below the dust limit."""


class SigningError(RecoveryError):
    """A sweep input could not be signed."""


class ChainLookupError(RecoveryError):
    """The chain backend failed to answer a query."""
