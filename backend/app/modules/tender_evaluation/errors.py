"""Exceptions raised by the tender evaluation engine.

All of them are recoverable at the call site. Tree mutations validate before
touching any node, so a raised error means the evaluation is unchanged.
"""

from __future__ import annotations


class TenderEvaluationError(Exception):
    """Base class for tender evaluation failures."""


class NotFoundError(TenderEvaluationError):
    """Raised when a table, line item or category reference cannot be resolved."""


class InvalidStateError(TenderEvaluationError):
    """Raised for structurally illegal mutations, e.g. demoting a non-empty category."""


class InvalidOperationError(TenderEvaluationError):
    """Raised when an operation does not apply to the target, e.g. pricing a category."""


class ValidationError(TenderEvaluationError):
    """Raised for out-of-range or malformed input such as a negative price."""


class PersistenceError(TenderEvaluationError):
    """Raised when a storage round-trip fails; the underlying error is chained."""


class CollaboratorError(TenderEvaluationError):
    """Raised when the firm registry, fee structure or submission service fails."""
