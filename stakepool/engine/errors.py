from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the dividend ledger raises."""


class InvalidAmount(LedgerError):
    pass


class InvalidRange(LedgerError):
    pass


class NoSeat(LedgerError):
    pass


class InsufficientShares(LedgerError):
    pass


class Unauthorized(LedgerError):
    pass


class EmptyPool(LedgerError):
    pass


class ReentrancyViolation(LedgerError):
    pass


class LedgerHalted(LedgerError):
    pass


class InvariantViolation(LedgerError):
    """Bookkeeping is corrupt. Halts the ledger when raised by a mutating call."""


class InvalidSnapshot(LedgerError):
    """A snapshot with zero total shares but a nonzero reward reached an earnings sum."""


DivisionByZero = InvalidSnapshot

# Errors after which no further mutating operation may run.
FATAL_ERRORS = (InvariantViolation, InvalidSnapshot)
