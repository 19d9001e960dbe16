"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Defines persistence exceptions for proper error handling and
propagation. All database errors must be caught and wrapped
in these exceptions.

============================================================
USAGE
============================================================
Repositories catch SQLAlchemy/database exceptions and re-raise
as PersistenceError subclasses with context.

The durable aggregator treats DuplicateRecordError as "already
ingested"; everything else propagates to the caller.

============================================================
"""

from typing import Any, Optional

from core.exceptions import IndexerError, Severity


class PersistenceError(IndexerError):
    """
    Base exception for all persistence operations.

    Business layers can catch this for generic error handling.
    """

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        context = dict(self.details)
        context.update({"repository": repository_name, "operation": operation})
        super().__init__(message, context=context)

    def __str__(self) -> str:
        return f"[{self.repository_name}] {self.operation}: {self.message}"


class StoreUnavailableError(PersistenceError):
    """
    Raised when the database cannot be reached.

    Connection refused, pool exhaustion, engine not open.
    """

    def __init__(
        self,
        operation: str,
        original_error: str,
        repository_name: str = "database"
    ) -> None:
        super().__init__(
            message=f"Database unavailable: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class RecordNotFoundError(PersistenceError):
    """Raised when a record expected to exist cannot be found."""

    default_severity = Severity.MEDIUM

    def __init__(
        self,
        repository_name: str,
        record_id: Any,
        id_field: str = "id"
    ) -> None:
        super().__init__(
            message=f"Record with {id_field}={record_id} not found",
            repository_name=repository_name,
            operation="get",
            details={id_field: str(record_id)}
        )
        self.record_id = record_id
        self.id_field = id_field


class DuplicateRecordError(PersistenceError):
    """
    Raised when an insert violates a unique constraint.

    For events this means the (transaction, log, participant) row
    was already ingested.
    """

    default_severity = Severity.LOW

    def __init__(
        self,
        repository_name: str,
        constraint_field: str,
        value: Any
    ) -> None:
        super().__init__(
            message=f"Duplicate record: {constraint_field}={value} already exists",
            repository_name=repository_name,
            operation="create",
            details={"field": constraint_field, "value": str(value)}
        )
        self.constraint_field = constraint_field
        self.value = value


class IntegrityError(PersistenceError):
    """Raised when other integrity constraints are violated."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        constraint_name: str,
        message: str
    ) -> None:
        super().__init__(
            message=f"Integrity constraint violated ({constraint_name}): {message}",
            repository_name=repository_name,
            operation=operation,
            details={"constraint": constraint_name}
        )
        self.constraint_name = constraint_name


class QueryError(PersistenceError):
    """Raised when a query execution fails."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        query_description: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed ({query_description}): {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={
                "query_description": query_description,
                "original_error": original_error
            }
        )


class TransactionError(PersistenceError):
    """Raised when commit or rollback fails."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        phase: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Transaction {phase} failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"phase": phase, "original_error": original_error}
        )
        self.phase = phase
