"""
Exception hierarchy and error handling utilities for dynclient.

Provides:
- Custom exception classes with error codes
- Error categorization (validation, not found, retryable, fatal)
- Safe error message formatting (no credential leak in logs)
- Helpers for reporting a fatal error exactly once at its origin
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Sequence

from loguru import logger


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


class DynClientError(Exception):
    """Base exception for all dynclient errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ArgumentError(DynClientError, ValueError):
    """Bad caller input. Never retried."""

    def __init__(self, message: str, param: str | None = None, *, code: str = "INVALID_ARGUMENT"):
        details = {"param": param} if param else {}
        super().__init__(message, code=code, category=ErrorCategory.VALIDATION, details=details)
        self.param = param


class ArgumentMismatchError(ArgumentError):
    """Parameter type list and argument list differ in length."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Parameter types and values mismatch: {expected} types, {actual} values",
            param="param_types",
            code="ARGUMENT_MISMATCH",
        )
        self.details.update({"expected": expected, "actual": actual})


class UriFormatError(ArgumentError):
    """Address is not a well-formed absolute URI."""

    def __init__(self, uri: str):
        super().__init__(f"Invalid URI: {uri!r} is not a well-formed absolute URI", param="address", code="URI_FORMAT")
        self.uri = uri


class OutOfRangeError(ArgumentError):
    """Numeric argument outside its allowed range."""

    def __init__(self, param: str, value: Any, low: int, high: int):
        super().__init__(f"{param} must be between {low} and {high}, got {value!r}", param=param, code="OUT_OF_RANGE")
        self.details.update({"value": value, "low": low, "high": high})


class MethodNotFoundError(DynClientError, AttributeError):
    """Requested member does not exist on the synthesized client."""

    def __init__(self, name: str, signature: Sequence[str] | None = None):
        suffix = f"({', '.join(signature)})" if signature is not None else ""
        super().__init__(
            f"Method not found: {name}{suffix}",
            code="METHOD_NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            details={"name": name, "signature": list(signature) if signature is not None else None},
        )
        self.name = name


class ResolutionError(DynClientError):
    """Contract or endpoint could not be resolved."""

    def __init__(self, message: str, code: str = "RESOLUTION_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, category=ErrorCategory.NOT_FOUND, details=details)


class MetadataResolutionError(ResolutionError):
    """Fatal metadata import problem; carries every diagnostic collected so far."""

    def __init__(self, message: str, diagnostics: Sequence[Any] = ()):
        super().__init__(message, code="METADATA_ERROR", details={"diagnostics": [str(d) for d in diagnostics]})
        self.category = ErrorCategory.FATAL
        self.diagnostics = list(diagnostics)


class UnknownContractError(ResolutionError):
    def __init__(self, name: str, namespace: str | None):
        super().__init__(
            f"Unknown contract: {namespace or ''} {name}".strip(),
            code="UNKNOWN_CONTRACT",
            details={"name": name, "namespace": namespace},
        )


class EndpointNotFoundError(ResolutionError):
    def __init__(self, name: str, namespace: str | None):
        super().__init__(
            f"Endpoint not found: {namespace or ''} {name}".strip(),
            code="ENDPOINT_NOT_FOUND",
            details={"name": name, "namespace": namespace},
        )


class CodeGenerationError(DynClientError):
    """Client source could not be generated."""

    def __init__(self, diagnostics: Sequence[Any]):
        diagnostics = list(diagnostics)
        summary = "; ".join(str(d) for d in diagnostics[:3])
        super().__init__(
            f"Code generation failed with {len(diagnostics)} diagnostic(s): {summary}",
            code="CODE_GENERATION_ERROR",
            details={"diagnostics": [str(d) for d in diagnostics]},
        )
        self.diagnostics = diagnostics


class CompilerError(DynClientError):
    """Generated source failed to compile or to execute its module body."""

    def __init__(self, diagnostics: Sequence[str], module_name: str | None = None):
        diagnostics = list(diagnostics)
        super().__init__(
            f"Compilation of {module_name or 'generated module'} failed: {'; '.join(diagnostics)}",
            code="COMPILER_ERROR",
            details={"diagnostics": diagnostics, "module_name": module_name},
        )
        self.diagnostics = diagnostics


class ProxyTypeNotFoundError(DynClientError):
    def __init__(self, contract_full_name: str):
        super().__init__(
            f"Proxy type not found for contract {contract_full_name}",
            code="PROXY_TYPE_NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            details={"contract": contract_full_name},
        )


class ChannelFaultError(DynClientError):
    """Communication failure during open, send or receive."""

    def __init__(self, message: str, address: str | None = None, *, code: str = "CHANNEL_FAULT", is_timeout: bool = False):
        category = ErrorCategory.TIMEOUT if is_timeout else ErrorCategory.RETRYABLE
        super().__init__(message, code=code, category=category, details={"address": address})
        self.address = address


class RemoteFaultError(ChannelFaultError):
    """The service replied with a fault message."""

    def __init__(self, fault_code: str, reason: str, address: str | None = None, detail: Any = None):
        super().__init__(f"Remote fault {fault_code}: {reason}", address, code="REMOTE_FAULT")
        self.category = ErrorCategory.FATAL
        self.fault_code = fault_code
        self.reason = reason
        self.detail = detail
        self.details.update({"fault_code": fault_code, "detail": detail})


class InvocationError(DynClientError):
    """Wrapper raised by late-bound dispatch; the real fault is ``inner``."""

    def __init__(self, operation: str, inner: BaseException):
        super().__init__(
            f"Invocation of '{operation}' failed: {inner}",
            code="INVOCATION_ERROR",
            details={"operation": operation},
        )
        self.operation = operation
        self.inner = inner


class ObjectDisposedError(DynClientError):
    def __init__(self, object_name: str):
        super().__init__(f"Cannot access a disposed object: {object_name}", code="OBJECT_DISPOSED")
        self.object_name = object_name


class SchemaValidationError(DynClientError):
    """Payload did not match the schema exported for its action."""

    def __init__(self, message: str, message_id: str | None = None, action: str | None = None):
        super().__init__(
            message,
            code="SCHEMA_VALIDATION",
            category=ErrorCategory.VALIDATION,
            details={"message_id": message_id, "action": action},
        )
        self.source = message_id
        self.action = action


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"basic\s+[a-zA-Z0-9+/]+=*", re.IGNORECASE),
    re.compile(r"[a-zA-Z0-9]{32,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    exc_str = str(exc).lower()

    if isinstance(exc, DynClientError):
        return exc.code, exc.category, exc.category in (ErrorCategory.RETRYABLE, ErrorCategory.TIMEOUT)

    if isinstance(exc, TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, ValueError):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    if isinstance(exc, KeyError):
        return "MISSING_KEY", ErrorCategory.VALIDATION, False

    if isinstance(exc, TypeError):
        return "TYPE_ERROR", ErrorCategory.VALIDATION, False

    if "timeout" in exc_str or "timed out" in exc_str:
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if "not found" in exc_str or "404" in exc_str:
        return "NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if "connection" in exc_str or "network" in exc_str:
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def log_fatal(exc: BaseException, context: str) -> BaseException:
    """Report a fatal error at its point of origin and hand it back for raising."""
    code, _, _ = classify_exception(exc)
    logger.opt(exception=exc).error(f"{context} [{code}]: {sanitize_error_message(str(exc))}")
    return exc


def unwrap_invocation_error(exc: BaseException) -> BaseException:
    """Prefer the wrapped cause of a dispatch wrapper over the wrapper itself."""
    if isinstance(exc, InvocationError):
        return exc.inner
    return exc
