"""AppError — one exception type tagged by ``kind``, plus pure derivation rules.

Variants are not subclasses. Each error carries an :class:`ErrorKind`
discriminant and a frozen details payload; severity, user-facing message and
status code are pure functions of ``(kind, details)``::

    err = api_error("upstream exploded", status_code=503, endpoint="/users")
    err.kind        # ErrorKind.API
    err.severity    # ErrorSeverity.CRITICAL
    err.details     # ApiDetails(status_code=503, endpoint='/users')
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any, Literal

from src.errors.types import (
    DETAILS_FOR_KIND,
    ApiDetails,
    CircuitOpenDetails,
    DatabaseDetails,
    DependencyCycleDetails,
    ErrorDetails,
    ErrorKind,
    ErrorSeverity,
    ExternalServiceDetails,
    NetworkDetails,
    NetworkFailure,
    NoDetails,
    UnknownDetails,
    UserOperationDetails,
    ValidationDetails,
)

_DEFAULT_SEVERITY: dict[ErrorKind, ErrorSeverity] = {
    ErrorKind.NETWORK: ErrorSeverity.HIGH,
    ErrorKind.API: ErrorSeverity.MEDIUM,
    ErrorKind.VALIDATION: ErrorSeverity.LOW,
    ErrorKind.AUTHENTICATION: ErrorSeverity.HIGH,
    ErrorKind.AUTHORIZATION: ErrorSeverity.HIGH,
    ErrorKind.DATABASE: ErrorSeverity.HIGH,
    ErrorKind.EXTERNAL_SERVICE: ErrorSeverity.MEDIUM,
    ErrorKind.USER_OPERATION: ErrorSeverity.MEDIUM,
    ErrorKind.CIRCUIT_OPEN: ErrorSeverity.HIGH,
    ErrorKind.DEPENDENCY_CYCLE: ErrorSeverity.CRITICAL,
    ErrorKind.UNKNOWN: ErrorSeverity.MEDIUM,
}

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "We can't reach the network. Please check your internet connection.",
    ErrorKind.API: "Something unexpected went wrong.",
    ErrorKind.VALIDATION: "Some of the information you entered is not valid.",
    ErrorKind.AUTHENTICATION: "Please sign in to continue.",
    ErrorKind.AUTHORIZATION: "You don't have permission to do that.",
    ErrorKind.DATABASE: "We had trouble processing your data.",
    ErrorKind.EXTERNAL_SERVICE: "A service we depend on is not responding correctly.",
    ErrorKind.USER_OPERATION: "We couldn't complete that operation.",
    ErrorKind.CIRCUIT_OPEN: "This service is temporarily unavailable. Please try again shortly.",
    ErrorKind.DEPENDENCY_CYCLE: "Something unexpected went wrong.",
    ErrorKind.UNKNOWN: "Something unexpected went wrong.",
}

_API_USER_MESSAGES: dict[int, str] = {
    400: "There is a problem with the request. Please check what you entered.",
    401: "Please sign in to continue.",
    403: "You don't have permission to do that.",
    404: "We couldn't find what you were looking for.",
}

_API_SERVER_MESSAGE = "The server is having problems. Please try again in a little while."

_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.NETWORK: 0,
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.DATABASE: 500,
    ErrorKind.EXTERNAL_SERVICE: 502,
    ErrorKind.USER_OPERATION: 400,
    ErrorKind.CIRCUIT_OPEN: 503,
    ErrorKind.DEPENDENCY_CYCLE: 500,
    ErrorKind.UNKNOWN: 500,
}


# ── Pure rules ──────────────────────────────────────────────────


def derive_severity(kind: ErrorKind, details: ErrorDetails) -> ErrorSeverity:
    """Severity for a variant, from its kind and any status-like fields."""
    if isinstance(details, ApiDetails):
        if details.status_code >= 500:
            return ErrorSeverity.CRITICAL
        if details.status_code in (401, 403):
            return ErrorSeverity.HIGH
    elif isinstance(details, DatabaseDetails):
        if not details.can_retry:
            return ErrorSeverity.CRITICAL
    elif isinstance(details, ExternalServiceDetails):
        if details.response_status is not None and details.response_status >= 500:
            return ErrorSeverity.HIGH
    return _DEFAULT_SEVERITY[kind]


def user_message_for(kind: ErrorKind, details: ErrorDetails) -> str:
    """Pre-canned, non-technical message safe to show to end users."""
    if isinstance(details, ApiDetails):
        if details.status_code >= 500:
            return _API_SERVER_MESSAGE
        return _API_USER_MESSAGES.get(details.status_code, _USER_MESSAGES[kind])
    return _USER_MESSAGES[kind]


def status_code_for(kind: ErrorKind, details: ErrorDetails) -> int:
    if isinstance(details, ApiDetails):
        return details.status_code
    return _STATUS_CODES[kind]


# ── Error type ──────────────────────────────────────────────────


class AppError(Exception):
    """Application error tagged by kind.

    ``kind``, ``details`` and ``severity`` are fixed at construction.
    ``context`` returns a shallow copy on every read so that consumers that
    stored the error (e.g. the monitor) never observe later mutation.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: ErrorDetails | None = None,
        *,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
        timestamp: float | None = None,
    ) -> None:
        super().__init__(message)
        kind = ErrorKind(kind)
        expected = DETAILS_FOR_KIND[kind]
        if details is None:
            details = expected()
        if not isinstance(details, expected):
            raise TypeError(
                f"{kind.name} requires {expected.__name__}, got {type(details).__name__}"
            )
        self._kind = kind
        self._details = details
        self._context: dict[str, Any] = dict(context or {})
        self._severity = derive_severity(kind, details)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        self.timestamp = timestamp if timestamp is not None else time.time()

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def code(self) -> str:
        return self._kind.value

    @property
    def details(self) -> ErrorDetails:
        return self._details

    @property
    def severity(self) -> ErrorSeverity:
        return self._severity

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    @property
    def status_code(self) -> int:
        return status_code_for(self._kind, self._details)

    @property
    def user_message(self) -> str:
        return user_message_for(self._kind, self._details)

    def to_user_message(self) -> str:
        return self.user_message

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe record for logs and remote reporting."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self._severity.value,
            "status_code": self.status_code,
            "user_message": self.user_message,
            "details": self._details.model_dump(mode="json"),
            "context": {k: _json_safe(v) for k, v in self._context.items()},
            "cause": repr(self.cause) if self.cause is not None else None,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"AppError(kind={self._kind.name}, severity={self._severity.value},"
            f" message={self.message!r})"
        )


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    return repr(value)


# ── Factories ───────────────────────────────────────────────────


def network_error(
    message: str,
    *,
    reason: NetworkFailure = NetworkFailure.UNKNOWN,
    url: str = "",
    attempts: int = 1,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = NetworkDetails(reason=reason, url=url, attempts=attempts)
    return AppError(
        ErrorKind.NETWORK, message, details,
        cause=cause, context=context, timestamp=timestamp,
    )


def api_error(
    message: str,
    *,
    status_code: int,
    endpoint: str,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = ApiDetails(status_code=status_code, endpoint=endpoint)
    return AppError(
        ErrorKind.API, message, details,
        cause=cause, context=context, timestamp=timestamp,
    )


def validation_error(
    message: str,
    *,
    field: str,
    value: Any = None,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = ValidationDetails(field=field, value=value)
    return AppError(
        ErrorKind.VALIDATION, message, details,
        cause=cause, context=context, timestamp=timestamp,
    )


def authentication_error(
    message: str = "Authentication required",
    *,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    return AppError(
        ErrorKind.AUTHENTICATION, message, NoDetails(),
        cause=cause, context=context, timestamp=timestamp,
    )


def authorization_error(
    message: str = "Permission denied",
    *,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    return AppError(
        ErrorKind.AUTHORIZATION, message, NoDetails(),
        cause=cause, context=context, timestamp=timestamp,
    )


def database_error(
    message: str,
    operation: Literal["read", "write", "connect", "transaction"],
    database: str,
    table: str | None = None,
    can_retry: bool = True,
    *,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = DatabaseDetails(
        operation=operation, database=database, table=table, can_retry=can_retry,
    )
    return AppError(
        ErrorKind.DATABASE, message, details,
        cause=cause, context=context, timestamp=timestamp,
    )


def external_service_error(
    message: str,
    *,
    service_name: str,
    endpoint: str,
    response_status: int | None = None,
    response_body: Any = None,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = ExternalServiceDetails(
        service_name=service_name,
        endpoint=endpoint,
        response_status=response_status,
        response_body=response_body,
    )
    return AppError(
        ErrorKind.EXTERNAL_SERVICE, message, details,
        cause=cause, context=context, timestamp=timestamp,
    )


def user_operation_error(
    message: str,
    *,
    operation: Literal["create", "update", "delete", "view"],
    resource_type: str,
    resource_id: str | None = None,
    user_id: str | None = None,
    cause: BaseException | None = None,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = UserOperationDetails(
        operation=operation,
        resource_type=resource_type,
        resource_id=resource_id,
        user_id=user_id,
    )
    return AppError(
        ErrorKind.USER_OPERATION, message, details,
        cause=cause, context=context, timestamp=timestamp,
    )


def circuit_open_error(
    message: str = "Service is currently unavailable (circuit open)",
    *,
    state: str,
    failures: int,
    retry_after: float = 0.0,
    context: Mapping[str, Any] | None = None,
    timestamp: float | None = None,
) -> AppError:
    details = CircuitOpenDetails(state=state, failures=failures, retry_after=retry_after)
    return AppError(
        ErrorKind.CIRCUIT_OPEN, message, details,
        context=context, timestamp=timestamp,
    )


def dependency_cycle_error(
    action: str,
    cycle: list[str] | tuple[str, ...] = (),
    *,
    timestamp: float | None = None,
) -> AppError:
    path = " -> ".join(cycle) if cycle else action
    details = DependencyCycleDetails(action=action, cycle=tuple(cycle))
    return AppError(
        ErrorKind.DEPENDENCY_CYCLE,
        f"Cyclic dependency detected for action {action!r}: {path}",
        details,
        timestamp=timestamp,
    )


def from_exception(exc: BaseException, *, timestamp: float | None = None) -> AppError:
    """Normalise any exception into an AppError (AppErrors pass through)."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, TimeoutError):
        return network_error(
            str(exc) or "Operation timed out",
            reason=NetworkFailure.TIMEOUT,
            cause=exc,
            timestamp=timestamp,
        )
    if isinstance(exc, ConnectionError):
        return network_error(
            str(exc) or "Connection failed",
            reason=NetworkFailure.CONNECTION,
            cause=exc,
            timestamp=timestamp,
        )
    return AppError(
        ErrorKind.UNKNOWN,
        str(exc) or type(exc).__name__,
        UnknownDetails(exception_type=type(exc).__name__),
        cause=exc,
        timestamp=timestamp,
    )
