"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, model_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class BackoffStrategy(StrEnum):
    """Delay schedule between retry attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class ClientConfig(BaseModel):
    """ResilientClient configuration."""

    base_url: str = "http://localhost:8000"
    timeout_ms: int = 5000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    backoff: BackoffStrategy = BackoffStrategy.LINEAR
    max_concurrent_requests: int = 5
    cache_ttl_ms: int = 5 * 60 * 1000
    cache_max_entries: int = 1000
    headers: dict[str, str] = Field(default_factory=dict)


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker thresholds."""

    failure_threshold: int = 5
    timeout_threshold_ms: int = 60_000
    # 0 disables failure-count expiry while CLOSED.
    monitoring_period_ms: int = 0
    # 0 disables the per-call timeout.
    call_timeout_ms: int = 0


class AlertRuleConfig(BaseModel):
    """Declarative alert rule, dispatched as an AlertMessage when it fires."""

    name: str = ""
    error_type: str
    threshold: int = 10
    time_window_ms: int = 5 * 60 * 1000
    # Also trigger RecoveryOrchestrator.execute_recovery when wired.
    recover: bool = False


class MonitorConfig(BaseModel):
    """Error monitor retention and trend analysis."""

    retention_ms: int = 60 * 60 * 1000
    max_samples_per_type: int = 10_000
    trend_noise_pct: float = 10.0
    trend_min_samples: int = 4
    alert_rules: list[AlertRuleConfig] = Field(default_factory=list)


class RecoveryConfig(BaseModel):
    """Recovery orchestrator configuration."""

    critical_priority: int = 8
    max_history: int = 100
    health_check_timeout_ms: int = 5000


class WebhookConfig(BaseModel):
    """Generic JSON webhook channel."""

    enabled: bool = False
    url: SecretStr = SecretStr("")
    headers: dict[str, str] = Field(default_factory=dict)


class DiscordConfig(BaseModel):
    """Discord webhook channel."""

    enabled: bool = False
    webhook_url: SecretStr = SecretStr("")


class AlertsConfig(BaseModel):
    """Alert dispatch configuration."""

    throttle_secs: float = 30.0
    log_channel: bool = True
    webhook: WebhookConfig = WebhookConfig()
    discord: DiscordConfig = DiscordConfig()


class ReportConfigSection(BaseModel):
    """Scheduled error report configuration."""

    enabled: bool = False
    interval_secs: float = 24 * 60 * 60
    format: str = "json"
    lookback_secs: float = 24 * 60 * 60


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    quiet_loggers: list[str] = Field(default_factory=lambda: ["httpx", "httpcore", "aiohttp"])


class Settings(BaseModel):
    """Root settings container."""

    client: ClientConfig = ClientConfig()
    circuit_breaker: CircuitBreakerConfig = CircuitBreakerConfig()
    monitor: MonitorConfig = MonitorConfig()
    recovery: RecoveryConfig = RecoveryConfig()
    alerts: AlertsConfig = AlertsConfig()
    report: ReportConfigSection = ReportConfigSection()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _retain_report_window(self) -> Settings:
        # The monitor must still hold everything a scheduled report looks back over.
        lookback_ms = int(self.report.lookback_secs * 1000)
        if self.report.enabled and lookback_ms > self.monitor.retention_ms:
            self.monitor.retention_ms = lookback_ms
        return self


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
