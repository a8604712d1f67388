from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import Select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.metrics import observe_number_conflict
from app.platform.tenancy.schemas import NumberFormat


logger = logging.getLogger("app.numbering")

T = TypeVar("T")


def next_number(session: Session, fmt: NumberFormat, count_stmt: Select[Any], offset: int = 0) -> str:
    """Count-then-format candidate: starting number plus existing documents."""
    existing = session.scalar(count_stmt) or 0
    return fmt.render(fmt.starting_number + existing + offset)


def insert_numbered(
    session: Session,
    *,
    fmt: NumberFormat,
    count_stmt: Select[Any],
    build: Callable[[str], T],
    document: str,
    max_retries: int | None = None,
    recheck: Callable[[], None] | None = None,
) -> T:
    """Insert a numbered document, retrying with the next candidate on a uniqueness conflict.

    Each attempt runs inside a SAVEPOINT so a conflicting insert leaves the
    surrounding transaction usable. `recheck` runs after a conflict and may raise
    when the conflict came from another constraint than the number.
    """
    attempts = max_retries if max_retries is not None else get_settings().invoice_number_max_retries
    existing = session.scalar(count_stmt) or 0
    last_number: str | None = None
    for offset in range(max(1, attempts)):
        number = fmt.render(fmt.starting_number + existing + offset)
        last_number = number
        row = build(number)
        try:
            with session.begin_nested():
                session.add(row)
                session.flush()
        except IntegrityError:
            observe_number_conflict(document)
            logger.warning("document_number_conflict", extra={"reason": document, "document_number": number})
            if recheck is not None:
                recheck()
            continue
        return row

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"could not allocate a unique {document} number (last tried {last_number})",
    )
