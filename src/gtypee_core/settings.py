from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gtypee_core.circuit_breaker import CircuitBreakerConfig
from gtypee_core.clients import TenantResolutionInput, normalize_domain
from gtypee_core.logging import get_log_level_value
from gtypee_core.retry import RetryPolicy

ENV_PREFIX = "GTYPEE_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class CoreSettings(BaseSettings):
    """Shared settings for the resilience and tenant-resolution layer."""

    model_config = prefixed_settings_config(ENV_PREFIX)

    log_level: str = "INFO"
    breaker_failure_threshold: int = 5
    breaker_reset_timeout_seconds: float = 30.0
    max_rate_limit_retries: int = 3
    rate_limit_base_delay_ms: int = 1000
    max_server_error_retries: int = 1
    server_error_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 900_000
    account_clients: dict[str, str] = Field(default_factory=dict)
    client_domains: dict[str, str] = Field(default_factory=dict)
    config_dir: Path | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    @field_validator("account_clients", mode="after")
    @classmethod
    def _normalize_account_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {email.strip().lower(): client for email, client in value.items()}

    @field_validator("client_domains", mode="after")
    @classmethod
    def _normalize_domain_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {normalize_domain(domain): client for domain, client in value.items()}

    @model_validator(mode="after")
    def _validate_core_settings(self) -> CoreSettings:
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_reset_timeout_seconds < 0:
            raise ValueError("breaker_reset_timeout_seconds must be >= 0")
        if self.max_rate_limit_retries < 0:
            raise ValueError("max_rate_limit_retries must be >= 0")
        if self.max_server_error_retries < 0:
            raise ValueError("max_server_error_retries must be >= 0")
        if self.rate_limit_base_delay_ms < 0:
            raise ValueError("rate_limit_base_delay_ms must be >= 0")
        if self.server_error_retry_delay_ms < 0:
            raise ValueError("server_error_retry_delay_ms must be >= 0")
        if self.max_retry_delay_ms < 0:
            raise ValueError("max_retry_delay_ms must be >= 0")
        return self

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy for remote calls."""
        return RetryPolicy(
            max_rate_limit_retries=self.max_rate_limit_retries,
            rate_limit_base_delay_ms=self.rate_limit_base_delay_ms,
            max_server_error_retries=self.max_server_error_retries,
            server_error_retry_delay_ms=self.server_error_retry_delay_ms,
            max_delay_ms=self.max_retry_delay_ms,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the circuit breaker configuration shared by endpoint groups."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            reset_timeout=self.breaker_reset_timeout_seconds,
        )

    def tenant_input(
        self,
        account_email: str,
        *,
        override: str = "",
    ) -> TenantResolutionInput:
        """Build client resolution input for one account."""
        return TenantResolutionInput(
            override=override,
            account_email=account_email,
            account_clients=self.account_clients,
            client_domains=self.client_domains,
        )
