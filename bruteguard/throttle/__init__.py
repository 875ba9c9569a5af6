"""Escalating-delay throttling engine."""

from bruteguard.throttle.context import ThrottleContext
from bruteguard.throttle.engine import ThrottleDecision, ThrottleEngine
from bruteguard.throttle.guard import BruteGuard, GuardConfig
from bruteguard.throttle.keys import derive_key
from bruteguard.throttle.policies import (
    StoreErrorContext,
    fail_forbidden,
    fail_mark,
    fail_too_many_requests,
    log_and_continue,
    log_and_deny,
    raise_store_error,
    retry_after_seconds,
)
from bruteguard.throttle.schedule import build_delays, delay_for_count, default_lifetime

__all__ = [
    "BruteGuard",
    "GuardConfig",
    "StoreErrorContext",
    "ThrottleContext",
    "ThrottleDecision",
    "ThrottleEngine",
    "build_delays",
    "default_lifetime",
    "delay_for_count",
    "derive_key",
    "fail_forbidden",
    "fail_mark",
    "fail_too_many_requests",
    "log_and_continue",
    "log_and_deny",
    "raise_store_error",
    "retry_after_seconds",
]
