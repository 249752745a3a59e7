"""Error taxonomy — AppError tagged by kind, severity rules, factories."""

from src.errors.taxonomy import (
    AppError,
    api_error,
    authentication_error,
    authorization_error,
    circuit_open_error,
    database_error,
    dependency_cycle_error,
    derive_severity,
    external_service_error,
    from_exception,
    network_error,
    status_code_for,
    user_message_for,
    user_operation_error,
    validation_error,
)
from src.errors.types import (
    ApiDetails,
    CircuitOpenDetails,
    DatabaseDetails,
    DependencyCycleDetails,
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

__all__ = [
    "ApiDetails",
    "AppError",
    "CircuitOpenDetails",
    "DatabaseDetails",
    "DependencyCycleDetails",
    "ErrorKind",
    "ErrorSeverity",
    "ExternalServiceDetails",
    "NetworkDetails",
    "NetworkFailure",
    "NoDetails",
    "UnknownDetails",
    "UserOperationDetails",
    "ValidationDetails",
    "api_error",
    "authentication_error",
    "authorization_error",
    "circuit_open_error",
    "database_error",
    "dependency_cycle_error",
    "derive_severity",
    "external_service_error",
    "from_exception",
    "network_error",
    "status_code_for",
    "user_message_for",
    "user_operation_error",
    "validation_error",
]
