"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Conditional counter updates (increment-if-under-limit, floored decrement)
- Insert-if-absent on a unique key
- Compare-and-set status transitions
- Bounded retries for read operations
"""

import logging
import time
from typing import Callable, List, Optional, Type, TypeVar

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..config import settings
from .clock import utcnow

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'postgresql'
    except Exception:
        return False


def is_sqlite(db: Session) -> bool:
    """Check if the database is SQLite"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'sqlite'
    except Exception:
        return True  # Default to SQLite for safety


def get_pending_with_skip_locked(
    db: Session,
    model: Type[T],
    filter_condition,
    order_by=None,
    limit: int = 200
) -> list:
    """
    Get pending records with skip_locked to prevent worker race conditions.

    Overlapping sweeps on PostgreSQL skip rows another run is holding.
    SQLite has no row locks; callers still guard each transition.
    """
    query = db.query(model).filter(filter_condition)

    if order_by is not None:
        query = query.order_by(order_by)

    # Only apply skip_locked on PostgreSQL
    if is_postgres(db):
        query = query.with_for_update(skip_locked=True)

    return query.limit(limit).all()


class ConditionalCounter:
    """
    Atomic counter updates done in a single UPDATE statement.

    The WHERE clause carries the guard, so two concurrent callers racing
    for the last unit cannot both match.

    Example:
        ok = ConditionalCounter.increment_if_within(
            db, CapacityRecord, CapacityRecord.id == rid, 'consumed', 1, limit=10
        )
    """

    @staticmethod
    def increment_if_within(
        db: Session,
        model: Type[T],
        filter_condition,
        column_name: str,
        increment_by: int,
        limit: int,
        extra_values: Optional[dict] = None
    ) -> bool:
        """Increment when the result stays <= limit. Returns True if a row changed."""
        column = getattr(model, column_name)
        values = {column_name: column + increment_by}
        if extra_values:
            values.update(extra_values)

        stmt = (
            update(model)
            .where(filter_condition)
            .where(column + increment_by <= limit)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    def decrement_floor_zero(
        db: Session,
        model: Type[T],
        filter_condition,
        column_name: str,
        decrement_by: int = 1,
        extra_values: Optional[dict] = None
    ) -> int:
        """Decrement, never going below zero. Returns rows touched."""
        column = getattr(model, column_name)
        if is_postgres(db):
            new_value = func.greatest(column - decrement_by, 0)
        else:
            # SQLite: two-argument max() is the scalar form
            new_value = func.max(column - decrement_by, 0)
        values = {column_name: new_value}
        if extra_values:
            values.update(extra_values)

        stmt = (
            update(model)
            .where(filter_condition)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount


def transition_status(
    db: Session,
    model: Type[T],
    record_id: str,
    from_status: str,
    to_status: str,
    extra_values: Optional[dict] = None
) -> bool:
    """
    Compare-and-set on a `status` column.

    Only one caller can move a row out of `from_status`; the loser sees
    rowcount 0 and must not apply side effects.
    """
    values = {"status": to_status, "updated_at": utcnow()}
    if extra_values:
        values.update(extra_values)

    stmt = (
        update(model)
        .where(model.id == record_id)
        .where(model.status == from_status)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def insert_if_absent(
    db: Session,
    model: Type[T],
    values: dict,
    conflict_columns: List[str]
) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING against a unique key.

    The store enforces uniqueness, so two concurrent identical inserts
    resolve to exactly one row. Returns True if this call inserted it.
    """
    insert = pg_insert if is_postgres(db) else sqlite_insert
    stmt = (
        insert(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns)
    )
    try:
        return db.execute(stmt).rowcount == 1
    except IntegrityError:
        # Conflict on a constraint other than the target one
        logger.warning(f"insert_if_absent: {model.__name__} rejected by another constraint")
        raise


def with_read_retries(
    operation: Callable[[], T],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    label: str = "read"
) -> T:
    """
    Run a read with bounded retries on transient OperationalError.

    Delay doubles between attempts; the last error is re-raised.
    """
    attempts = attempts or settings.read_retry_attempts
    base_delay = settings.read_retry_base_delay if base_delay is None else base_delay

    last_error: Optional[OperationalError] = None
    for attempt in range(attempts):
        try:
            return operation()
        except OperationalError as e:
            last_error = e
            if attempt + 1 >= attempts:
                break
            delay = base_delay * (2 ** attempt)
            logger.warning(f"{label} failed ({e.__class__.__name__}), retry {attempt + 1}/{attempts - 1} in {delay:.2f}s")
            time.sleep(delay)

    logger.error(f"{label} failed after {attempts} attempts: {last_error}")
    raise last_error
