"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Provides common functionality for all repositories including:
- Session management patterns
- Error handling wrappers
- Pagination
- Logging setup

============================================================
USAGE
============================================================
All domain repositories inherit from BaseRepository.
Session is injected via constructor.

============================================================
"""

import logging
from abc import ABC
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    StoreUnavailableError,
)


# Type variable for ORM model
T = TypeVar("T", bound=Base)


DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 1000


@dataclass(frozen=True)
class Page:
    """
    Limit/offset window over an ordered query.

    limit > 0 and offset >= 0, otherwise ValueError.
    """
    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.limit, int) or isinstance(self.limit, bool) or self.limit <= 0:
            raise ValueError(f"limit must be a positive integer, got {self.limit!r}")
        if not isinstance(self.offset, int) or isinstance(self.offset, bool) or self.offset < 0:
            raise ValueError(f"offset must be a non-negative integer, got {self.offset!r}")

    @classmethod
    def from_page(cls, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> "Page":
        """Build from 1-based page/limit query parameters."""
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if limit > MAX_PAGE_LIMIT:
            raise ValueError(f"limit must be <= {MAX_PAGE_LIMIT}, got {limit}")
        return cls(limit=limit, offset=(page - 1) * limit)

    @property
    def page_number(self) -> int:
        return self.offset // self.limit + 1


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Wraps database errors in PersistenceError subclasses
    - Manages logging for all operations
    - Enforces session handling patterns (callers commit)

    ============================================================
    USAGE
    ============================================================
    class MyRepository(BaseRepository[MyModel]):
        def __init__(self, session: Session):
            super().__init__(session, MyModel, "MyRepository")

    ============================================================
    """

    def __init__(
        self,
        session: Session,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    @property
    def model_class(self) -> Type[T]:
        return self._model_class

    @property
    def repository_name(self) -> str:
        return self._repository_name

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(
        self,
        error: Exception,
        operation: str,
        context: Optional[dict] = None
    ) -> None:
        """
        Wrap a database error in a persistence exception.

        Raises:
            PersistenceError: Always raises appropriate exception
        """
        context = context or {}

        if isinstance(error, OperationalError):
            self._logger.error(f"Database unavailable in {operation}: {error}")
            raise StoreUnavailableError(
                operation=operation,
                original_error=str(error),
                repository_name=self._repository_name,
            ) from error

        if isinstance(error, SQLAlchemyIntegrityError):
            error_str = str(error).lower()
            if "duplicate" in error_str or "unique" in error_str:
                field, value = next(iter(context.items()), ("unknown", "unknown"))
                raise DuplicateRecordError(
                    repository_name=self._repository_name,
                    constraint_field=field,
                    value=value
                ) from error

            self._logger.error(f"Integrity error in {operation}: {error}")
            raise IntegrityError(
                repository_name=self._repository_name,
                operation=operation,
                constraint_name="unknown",
                message=str(error)
            ) from error

        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": context},
            exc_info=True
        )
        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            query_description=operation,
            original_error=str(error)
        ) from error

    def _add(self, entity: T, context: Optional[dict] = None) -> T:
        """Add an entity and flush so constraint violations surface here."""
        try:
            self._session.add(entity)
            self._session.flush()
            self._logger.debug(f"Added entity: {entity}")
            return entity
        except SQLAlchemyError as e:
            self._handle_db_error(e, "add", context or {"entity": str(entity)})
            raise  # Never reached, but satisfies type checker

    def _count(self, *criteria: Any) -> int:
        try:
            stmt = select(func.count()).select_from(self._model_class)
            if criteria:
                stmt = stmt.where(*criteria)
            return self._session.execute(stmt).scalar() or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count")
            raise

    def _execute_query(self, stmt: Any) -> List[T]:
        try:
            result = self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query")
            raise

    def _execute_rows(self, stmt: Any, operation: str) -> List[Any]:
        """Execute a non-entity select and return its rows."""
        try:
            return list(self._session.execute(stmt).all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
            raise

    def _execute_scalar(self, stmt: Any) -> Optional[T]:
        try:
            result = self._session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_scalar")
            raise
