"""Dependency injection for FastAPI endpoints"""

import uuid
from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from remittance_engine.domain.exceptions import InvalidIdentifierError
from remittance_engine.infrastructure.database.session import SessionLocal
from remittance_engine.services.scheduler import RemittanceScheduler
from remittance_engine.utils.clock import Clock, SystemClock


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clock() -> Clock:
    """Provide the wall clock (overridden with a FixedClock in tests)"""
    return SystemClock()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that opens its own sessions (scheduler passes)"""
    return SessionLocal


def get_scheduler(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> RemittanceScheduler:
    return RemittanceScheduler(session_factory, clock=clock)


def parse_uuid(value: str, name: str = "id") -> uuid.UUID:
    """Raises InvalidIdentifierError (HTTP 400) for malformed identifiers"""
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError) as e:
        raise InvalidIdentifierError(f"Invalid {name}: {value!r}") from e
