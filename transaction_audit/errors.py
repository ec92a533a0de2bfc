"""Typed errors raised by the transaction audit analyzers.

Every error derives from :class:`TransactionAuditError`, itself a
``ValueError``, so callers that only care about "bad input" can keep
catching ``ValueError`` while report runners can distinguish the cases.
"""

from __future__ import annotations

from typing import Any


class TransactionAuditError(ValueError):
    """Base class for all analyzer failures."""


class InvalidGroupKey(TransactionAuditError):
    """A grouping or slicing dimension does not exist on the record type."""

    def __init__(self, key: Any, allowed: Any = None) -> None:
        self.key = key
        self.allowed = tuple(allowed) if allowed is not None else ()
        message = f"Unknown grouping dimension: {key!r}"
        if self.allowed:
            message += f" (expected one of {', '.join(self.allowed)})"
        super().__init__(message)


class EmptyDataset(TransactionAuditError):
    """The operation has no meaning on zero rows."""


class InvalidWindowSize(TransactionAuditError):
    """A rolling or moving window was given a non-positive size."""

    def __init__(self, window: int) -> None:
        self.window = window
        super().__init__(f"Window size must be positive, got {window}")


class ReferentialMismatch(TransactionAuditError):
    """A transaction references a dimension row that does not exist.

    Attributes
    ----------
    transaction_id:
        Identifier of the offending transaction.
    relation:
        Name of the dimension that is missing the key
        (``customers``, ``merchants``, ``categories`` or ``date_table``).
    key:
        The dangling key value.
    """

    def __init__(self, transaction_id: Any, relation: str, key: Any) -> None:
        self.transaction_id = transaction_id
        self.relation = relation
        self.key = key
        super().__init__(
            f"Transaction {transaction_id} references missing {relation} key {key!r}"
        )


class ReportCancelled(TransactionAuditError):
    """A report run was cancelled between analyzer invocations."""
