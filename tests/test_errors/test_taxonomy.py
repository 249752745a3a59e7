"""Tests for src/errors — AppError kinds, severity rules, user messages."""

from __future__ import annotations

import json

import pytest

from src.errors import (
    ApiDetails,
    AppError,
    DatabaseDetails,
    ErrorKind,
    ErrorSeverity,
    NetworkDetails,
    NetworkFailure,
    ValidationDetails,
    api_error,
    authentication_error,
    authorization_error,
    circuit_open_error,
    database_error,
    dependency_cycle_error,
    external_service_error,
    from_exception,
    network_error,
    user_operation_error,
    validation_error,
)


# ── Severity ────────────────────────────────────────────────────


class TestSeverity:
    def test_network_is_high(self) -> None:
        assert network_error("down").severity == ErrorSeverity.HIGH

    def test_api_default_medium(self) -> None:
        err = api_error("bad", status_code=422, endpoint="/x")
        assert err.severity == ErrorSeverity.MEDIUM

    @pytest.mark.parametrize("status", [500, 502, 503, 599])
    def test_api_server_errors_critical(self, status: int) -> None:
        err = api_error("boom", status_code=status, endpoint="/x")
        assert err.severity == ErrorSeverity.CRITICAL

    @pytest.mark.parametrize("status", [401, 403])
    def test_api_auth_statuses_high(self, status: int) -> None:
        err = api_error("no", status_code=status, endpoint="/x")
        assert err.severity == ErrorSeverity.HIGH

    def test_validation_is_low(self) -> None:
        assert validation_error("bad", field="email").severity == ErrorSeverity.LOW

    def test_auth_errors_high(self) -> None:
        assert authentication_error().severity == ErrorSeverity.HIGH
        assert authorization_error().severity == ErrorSeverity.HIGH

    def test_database_retryable_high(self) -> None:
        err = database_error("timeout", "read", "main")
        assert err.severity == ErrorSeverity.HIGH

    def test_database_not_retryable_critical(self) -> None:
        err = database_error("Connection failed", "connect", "main", None, False)
        assert err.kind == ErrorKind.DATABASE
        assert err.severity == ErrorSeverity.CRITICAL
        assert isinstance(err.details, DatabaseDetails)
        assert err.details.can_retry is False

    def test_external_service_default_medium(self) -> None:
        err = external_service_error("slow", service_name="geo", endpoint="/lookup")
        assert err.severity == ErrorSeverity.MEDIUM

    def test_external_service_5xx_high(self) -> None:
        err = external_service_error(
            "down", service_name="geo", endpoint="/lookup", response_status=503,
        )
        assert err.severity == ErrorSeverity.HIGH

    def test_circuit_open_high(self) -> None:
        err = circuit_open_error(state="open", failures=5)
        assert err.severity == ErrorSeverity.HIGH

    def test_dependency_cycle_critical(self) -> None:
        assert dependency_cycle_error("a", ["a", "b", "a"]).severity == ErrorSeverity.CRITICAL

    def test_rank_orders_severities(self) -> None:
        ranks = [s.rank for s in (
            ErrorSeverity.LOW, ErrorSeverity.MEDIUM, ErrorSeverity.HIGH, ErrorSeverity.CRITICAL,
        )]
        assert ranks == sorted(ranks)


# ── AppError ────────────────────────────────────────────────────


class TestAppError:
    def test_is_exception(self) -> None:
        with pytest.raises(AppError):
            raise network_error("down")

    def test_code_matches_kind(self) -> None:
        err = api_error("x", status_code=404, endpoint="/u")
        assert err.kind == ErrorKind.API
        assert err.code == "API_ERROR"

    def test_str_includes_code(self) -> None:
        assert str(validation_error("bad email", field="email")) == "[VALIDATION_ERROR] bad email"

    def test_details_typed(self) -> None:
        err = network_error("t", reason=NetworkFailure.TIMEOUT, url="http://a", attempts=3)
        assert isinstance(err.details, NetworkDetails)
        assert err.details.reason == NetworkFailure.TIMEOUT
        assert err.details.attempts == 3

    def test_details_frozen(self) -> None:
        err = api_error("x", status_code=400, endpoint="/u")
        with pytest.raises(Exception):
            err.details.status_code = 500  # type: ignore[misc]

    def test_mismatched_details_rejected(self) -> None:
        with pytest.raises(TypeError):
            AppError(ErrorKind.API, "x", ValidationDetails(field="f"))

    def test_context_is_copied_on_read(self) -> None:
        err = network_error("down", context={"host": "a"})
        ctx = err.context
        ctx["host"] = "b"
        assert err.context == {"host": "a"}

    def test_context_is_copied_on_write(self) -> None:
        original = {"host": "a"}
        err = network_error("down", context=original)
        original["host"] = "b"
        assert err.context["host"] == "a"

    def test_cause_chained(self) -> None:
        cause = OSError("reset")
        err = network_error("down", cause=cause)
        assert err.cause is cause
        assert err.__cause__ is cause

    def test_explicit_timestamp(self) -> None:
        assert network_error("down", timestamp=123.0).timestamp == 123.0

    def test_to_dict_is_json_safe(self) -> None:
        err = user_operation_error(
            "cannot delete",
            operation="delete",
            resource_type="post",
            resource_id="p1",
            context={"obj": object(), "ids": (1, 2)},
        )
        record = err.to_dict()
        json.dumps(record)
        assert record["code"] == "USER_OPERATION_ERROR"
        assert record["details"]["resource_id"] == "p1"
        assert record["context"]["ids"] == [1, 2]

    def test_status_codes(self) -> None:
        assert api_error("x", status_code=418, endpoint="/t").status_code == 418
        assert validation_error("x", field="f").status_code == 400
        assert authentication_error().status_code == 401
        assert authorization_error().status_code == 403
        assert circuit_open_error(state="open", failures=1).status_code == 503

    def test_dependency_cycle_message(self) -> None:
        err = dependency_cycle_error("a", ["a", "b", "a"])
        assert "a -> b -> a" in err.message
        assert err.details.cycle == ("a", "b", "a")


# ── User messages ───────────────────────────────────────────────


class TestUserMessages:
    @pytest.mark.parametrize(
        ("status", "fragment"),
        [
            (400, "problem with the request"),
            (401, "sign in"),
            (403, "permission"),
            (404, "couldn't find"),
            (500, "server is having problems"),
            (503, "server is having problems"),
            (418, "unexpected"),
        ],
    )
    def test_api_messages_by_status(self, status: int, fragment: str) -> None:
        err = api_error("internal detail", status_code=status, endpoint="/x")
        assert fragment in err.to_user_message()

    def test_user_message_hides_technical_detail(self) -> None:
        err = database_error("SELECT * FROM users failed: deadlock", "read", "main")
        assert "SELECT" not in err.to_user_message()

    def test_every_kind_has_message(self) -> None:
        errors = [
            network_error("x"),
            validation_error("x", field="f"),
            authentication_error(),
            authorization_error(),
            database_error("x", "write", "db"),
            external_service_error("x", service_name="s", endpoint="/e"),
            user_operation_error("x", operation="view", resource_type="r"),
            circuit_open_error(state="open", failures=1),
            dependency_cycle_error("a"),
            from_exception(RuntimeError("x")),
        ]
        for err in errors:
            assert err.to_user_message()


# ── from_exception ──────────────────────────────────────────────


class TestFromException:
    def test_app_error_passes_through(self) -> None:
        err = validation_error("x", field="f")
        assert from_exception(err) is err

    def test_timeout_becomes_network_timeout(self) -> None:
        err = from_exception(TimeoutError())
        assert err.kind == ErrorKind.NETWORK
        assert isinstance(err.details, NetworkDetails)
        assert err.details.reason == NetworkFailure.TIMEOUT

    def test_connection_error_becomes_network_connection(self) -> None:
        err = from_exception(ConnectionRefusedError("refused"))
        assert err.kind == ErrorKind.NETWORK
        assert err.details.reason == NetworkFailure.CONNECTION  # type: ignore[union-attr]

    def test_other_becomes_unknown(self) -> None:
        cause = KeyError("k")
        err = from_exception(cause, timestamp=5.0)
        assert err.kind == ErrorKind.UNKNOWN
        assert err.cause is cause
        assert err.timestamp == 5.0
        assert err.details.exception_type == "KeyError"  # type: ignore[union-attr]
        assert err.severity == ErrorSeverity.MEDIUM

    def test_api_details_round_trip_through_kind(self) -> None:
        err = api_error("x", status_code=404, endpoint="/u")
        assert err.details == ApiDetails(status_code=404, endpoint="/u")
