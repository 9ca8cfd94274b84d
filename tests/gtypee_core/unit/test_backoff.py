from __future__ import annotations

from datetime import UTC, datetime

import pytest

from gtypee_core.retry import RetryPolicy, calculate_backoff_ms, parse_retry_after_ms

_NOW = datetime(2026, 1, 1, 0, 0, 0, tzinfo=UTC)


def _now() -> datetime:
    return _NOW


def test_exponential_backoff_with_jitter() -> None:
    # attempt=1 => base 2000, jitter range 1000, fixed jitter 0.5 => +500
    assert calculate_backoff_ms(1, None, 1000, lambda: 0.5) == 2500


def test_retry_after_seconds_override_exponential_backoff() -> None:
    assert calculate_backoff_ms(0, "3", 1000, lambda: 0.1) == 3000
    assert calculate_backoff_ms(6, " 3 ", 1000, lambda: 0.9) == 3000


def test_negative_retry_after_seconds_clamp_to_zero() -> None:
    assert calculate_backoff_ms(2, "-4", 1000, lambda: 0.5) == 0


def test_retry_after_http_date() -> None:
    hint = "Thu, 01 Jan 2026 00:00:05 GMT"

    assert calculate_backoff_ms(0, hint, 1000, lambda: 0.5, now=_now) == 5000


def test_retry_after_http_date_in_the_past_is_zero() -> None:
    hint = "Wed, 31 Dec 2025 23:59:00 GMT"

    assert calculate_backoff_ms(3, hint, 1000, lambda: 0.5, now=_now) == 0


@pytest.mark.parametrize("hint", [None, "", "   ", "soon", "1.5", "\uff13", "\u0663"])
def test_unusable_hints_fall_back_to_exponential(hint: str | None) -> None:
    assert calculate_backoff_ms(0, hint, 1000, lambda: 0.0, now=_now) == 1000


@pytest.mark.parametrize("base_delay_ms", [0, -100])
def test_non_positive_base_delay_is_zero(base_delay_ms: int) -> None:
    assert calculate_backoff_ms(4, None, base_delay_ms, lambda: 0.5) == 0


def test_tiny_base_has_no_jitter() -> None:
    assert calculate_backoff_ms(0, None, 1, lambda: 0.99) == 1


def test_random_source_is_clamped() -> None:
    assert calculate_backoff_ms(0, None, 1000, lambda: 7.0) == 1500
    assert calculate_backoff_ms(0, None, 1000, lambda: -3.0) == 1000


def test_overflowing_backoff_is_zero() -> None:
    assert calculate_backoff_ms(5000, None, 1000, lambda: 0.5) == 0
    assert calculate_backoff_ms(1020, None, 1e300, lambda: 0.5) == 0


def test_parse_retry_after_ms() -> None:
    assert parse_retry_after_ms("12") == 12_000
    assert parse_retry_after_ms(None) is None
    assert parse_retry_after_ms("not a date") is None
    assert parse_retry_after_ms("9" * 5000) is None
    assert parse_retry_after_ms("Thu, 01 Jan 2026 00:01:00 GMT", now=_now) == 60_000


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"max_rate_limit_retries": -1}, "max_rate_limit_retries must be >= 0"),
        ({"max_server_error_retries": -1}, "max_server_error_retries must be >= 0"),
        ({"rate_limit_base_delay_ms": -1}, "rate_limit_base_delay_ms must be >= 0"),
        (
            {"server_error_retry_delay_ms": -1},
            "server_error_retry_delay_ms must be >= 0",
        ),
        ({"max_delay_ms": -1}, "max_delay_ms must be >= 0"),
    ],
)
def test_retry_policy_validation(overrides: dict[str, int], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RetryPolicy(**overrides)


def test_retry_policy_defaults() -> None:
    policy = RetryPolicy()

    assert policy.max_rate_limit_retries == 3
    assert policy.max_server_error_retries == 1
    assert policy.rate_limit_base_delay_ms == 1000
    assert policy.server_error_retry_delay_ms == 1000
    assert policy.max_delay_ms == 900_000
    assert policy.max_attempts == 5
