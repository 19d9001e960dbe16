"""
Chain Reader Exceptions.

Transport-level failures (node unreachable, timeouts, 5xx) are
ChainUnavailable; the node answering with an error, or without the
requested object, is a FetchError. Neither is retried by the reader.
"""

from typing import Any, Dict, Optional

from core.exceptions import IndexerError, Severity


class ChainReaderError(IndexerError):
    """Base exception for all chain reader errors."""

    def __init__(
        self,
        message: str,
        reader_name: Optional[str] = None,
        method: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if reader_name:
            context["reader"] = reader_name
        if method:
            context["method"] = method
        super().__init__(message, context=context, cause=cause)
        self.reader_name = reader_name
        self.method = method

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.reader_name:
            parts.append(f"[reader={self.reader_name}]")
        if self.method:
            parts.append(f"[method={self.method}]")
        if self.cause:
            parts.append(f"(caused by: {self.cause})")
        return " ".join(parts)


class ChainUnavailable(ChainReaderError):
    """
    The chain node cannot be reached.

    Fatal to a whole scan when it persists; surfaced without retry.
    """

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        reader_name: Optional[str] = None,
        method: Optional[str] = None,
        endpoint: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, reader_name, method, cause, context)
        self.endpoint = endpoint

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["endpoint"] = self.endpoint
        return data


class FetchError(ChainReaderError):
    """The node answered, but not with the requested data."""

    def __init__(
        self,
        message: str,
        reader_name: Optional[str] = None,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        rpc_code: Optional[int] = None,
        response_body: Optional[str] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, reader_name, method, cause, context)
        self.status_code = status_code
        self.rpc_code = rpc_code
        self.response_body = response_body

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "rpc_code": self.rpc_code,
            "response_body": self.response_body[:500] if self.response_body else None,
        })
        return data
