"""Error kinds, severities and the per-variant detail payloads."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class ErrorKind(StrEnum):
    """Closed set of error variants; the value is the stable error code."""

    NETWORK = "NETWORK_ERROR"
    API = "API_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTH_ERROR"
    AUTHORIZATION = "AUTHZ_ERROR"
    DATABASE = "DB_ERROR"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"
    USER_OPERATION = "USER_OPERATION_ERROR"
    CIRCUIT_OPEN = "CIRCUIT_OPEN_ERROR"
    DEPENDENCY_CYCLE = "DEPENDENCY_CYCLE_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


class ErrorSeverity(StrEnum):
    """Routing severity: drives log level and alert eligibility only."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[ErrorSeverity, int] = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


class NetworkFailure(StrEnum):
    """Why a network-level call did not produce a response."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


# ── Variant payloads ────────────────────────────────────────────


class _Details(BaseModel):
    model_config = ConfigDict(frozen=True)


class NoDetails(_Details):
    """Payload for variants that carry no extra fields."""


class NetworkDetails(_Details):
    reason: NetworkFailure = NetworkFailure.UNKNOWN
    url: str = ""
    attempts: int = 1


class ApiDetails(_Details):
    status_code: int
    endpoint: str


class ValidationDetails(_Details):
    field: str
    value: Any = None


class DatabaseDetails(_Details):
    operation: Literal["read", "write", "connect", "transaction"]
    database: str
    table: str | None = None
    can_retry: bool = True


class ExternalServiceDetails(_Details):
    service_name: str
    endpoint: str
    response_status: int | None = None
    response_body: Any = None


class UserOperationDetails(_Details):
    operation: Literal["create", "update", "delete", "view"]
    resource_type: str
    resource_id: str | None = None
    user_id: str | None = None


class CircuitOpenDetails(_Details):
    state: str
    failures: int
    retry_after: float = 0.0


class DependencyCycleDetails(_Details):
    action: str
    cycle: tuple[str, ...] = ()


class UnknownDetails(_Details):
    exception_type: str = ""


ErrorDetails = (
    NoDetails
    | NetworkDetails
    | ApiDetails
    | ValidationDetails
    | DatabaseDetails
    | ExternalServiceDetails
    | UserOperationDetails
    | CircuitOpenDetails
    | DependencyCycleDetails
    | UnknownDetails
)

# Which payload type each kind must carry.
DETAILS_FOR_KIND: dict[ErrorKind, type[_Details]] = {
    ErrorKind.NETWORK: NetworkDetails,
    ErrorKind.API: ApiDetails,
    ErrorKind.VALIDATION: ValidationDetails,
    ErrorKind.AUTHENTICATION: NoDetails,
    ErrorKind.AUTHORIZATION: NoDetails,
    ErrorKind.DATABASE: DatabaseDetails,
    ErrorKind.EXTERNAL_SERVICE: ExternalServiceDetails,
    ErrorKind.USER_OPERATION: UserOperationDetails,
    ErrorKind.CIRCUIT_OPEN: CircuitOpenDetails,
    ErrorKind.DEPENDENCY_CYCLE: DependencyCycleDetails,
    ErrorKind.UNKNOWN: UnknownDetails,
}
