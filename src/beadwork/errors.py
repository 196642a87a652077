"""Exception taxonomy for graph composition and readiness.

Missing items keep raising ``KeyError`` like every other lookup in the
package. Creating an edge that already exists is never an error.
"""

from __future__ import annotations

from collections.abc import Iterable


class BeadworkError(Exception):
    """Base class for all beadwork errors."""


class ValidationError(BeadworkError, ValueError):
    """Caller supplied arguments the operation cannot accept.

    Raised before any graph mutation. Not retried.
    """


class InvalidPolicyForOperands(ValidationError):
    """``require`` used where both sides are formulas or both are protos."""


class UnclassifiedDependencyType(ValidationError):
    """A dependency type that has no readiness classification."""

    def __init__(self, dep_type: str) -> None:
        super().__init__(f"Unclassified dependency type: {dep_type!r}")
        self.dep_type = dep_type


class NoActionableSteps(BeadworkError):
    """A subgraph has no qualifying entry or exit steps."""


class IntegrityError(BeadworkError):
    """A cycle (or other structural fault) was found in the graph."""

    def __init__(self, message: str, item_ids: Iterable[str] = ()) -> None:
        self.item_ids: tuple[str, ...] = tuple(item_ids)
        if self.item_ids:
            message = f"{message}: {' -> '.join(self.item_ids)}"
        super().__init__(message)


class StorageError(BeadworkError):
    """A transactional mutation failed and was rolled back."""


def error_code(exc: BaseException) -> str:
    """Stable machine-readable code for *exc*, shared by the MCP and HTTP surfaces."""
    if isinstance(exc, KeyError):
        return "not_found"
    if isinstance(exc, InvalidPolicyForOperands):
        return "invalid_policy"
    if isinstance(exc, UnclassifiedDependencyType):
        return "unclassified_dep_type"
    if isinstance(exc, NoActionableSteps):
        return "no_actionable_steps"
    if isinstance(exc, IntegrityError):
        return "integrity_error"
    if isinstance(exc, StorageError):
        return "storage_error"
    if isinstance(exc, ValueError):
        return "validation_error"
    return "internal_error"


def error_message(exc: BaseException) -> str:
    # str(KeyError) wraps the message in quotes.
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc)
