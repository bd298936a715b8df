"""Account event audit log.

Structured key-value events for login, logout, password reset, password
update, registration, verification, and API key recovery, each with the
elapsed time of the operation.

Usage:
    with audit_timer() as timer:
        ...
    log_login(username=username, elapsed_ms=timer.elapsed_ms)
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import structlog

logger = structlog.get_logger("newsgears.audit")


@dataclass
class AuditTimer:
    started: float
    elapsed_ms: float = 0.0


@contextmanager
def audit_timer() -> Iterator[AuditTimer]:
    """Measure the wall time of the enclosed block in milliseconds."""
    timer = AuditTimer(started=time.perf_counter())
    try:
        yield timer
    finally:
        timer.elapsed_ms = round((time.perf_counter() - timer.started) * 1000, 3)


def log_login(*, username: str, elapsed_ms: float) -> None:
    logger.info("account_login", username=username, elapsed_ms=elapsed_ms)


def log_logout(*, username: str, elapsed_ms: float) -> None:
    logger.info("account_logout", username=username, elapsed_ms=elapsed_ms)


def log_password_reset_init(*, username: str, elapsed_ms: float) -> None:
    logger.info("password_reset_init", username=username, elapsed_ms=elapsed_ms)


def log_password_reset_continue(*, username: str, elapsed_ms: float) -> None:
    logger.info("password_reset_continue", username=username, elapsed_ms=elapsed_ms)


def log_password_update(*, username: str, elapsed_ms: float) -> None:
    logger.info("password_update", username=username, elapsed_ms=elapsed_ms)


def log_registration(*, username: str, elapsed_ms: float) -> None:
    logger.info("account_registration", username=username, elapsed_ms=elapsed_ms)


def log_verification(*, username: str, elapsed_ms: float) -> None:
    logger.info("account_verification", username=username, elapsed_ms=elapsed_ms)


def log_deregistration(*, username: str, elapsed_ms: float) -> None:
    logger.info("account_deregistration", username=username, elapsed_ms=elapsed_ms)


def log_api_key_recovery(*, username: str, elapsed_ms: float) -> None:
    logger.info("api_key_recovery", username=username, elapsed_ms=elapsed_ms)
