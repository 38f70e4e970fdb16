"""
Service layer.

Each public service function is one unit of work:
- it runs inside the request's db.session transaction,
- commits when it returns normally,
- rolls back when it raises (business error or not).

State changes guarded by a precondition use compare_and_set(): a single
UPDATE ... WHERE id = :id AND <status> IN (...) so two concurrent requests can
never both succeed from the same starting state. Order rows carry a
version_id_col; a flush against a stale version surfaces as ConcurrentUpdate.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Type, TypeVar

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentUpdate, NotFound
from ..extensions import db

F = TypeVar("F", bound=Callable[..., Any])
M = TypeVar("M")


def transactional(func: F) -> F:
    """Commit on success, roll back on any exception."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            result = func(*args, **kwargs)
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrentUpdate("record") from exc
        except Exception:
            db.session.rollback()
            raise
        return result

    return wrapper  # type: ignore[return-value]


def get_or_raise(model: Type[M], entity_id: Any, entity: Optional[str] = None, *, for_update: bool = False) -> M:
    """Load a row by primary key or raise NotFound."""
    label = entity or model.__name__
    try:
        key = int(entity_id)
    except (TypeError, ValueError):
        raise NotFound(label, entity_id) from None

    query = db.select(model).where(model.id == key)
    if for_update:
        query = query.with_for_update()
    instance = db.session.execute(query.execution_options(populate_existing=True)).scalar_one_or_none()
    if instance is None:
        raise NotFound(label, entity_id)
    return instance


def compare_and_set(
    model: Any,
    entity_id: int,
    *,
    column: str,
    expected: Iterable[str],
    values: dict,
    extra_where: Iterable[Any] = (),
) -> bool:
    """
    Atomically apply `values` if the row's `column` is one of `expected`.

    Returns True when exactly one row changed. Orders do not go through here;
    their edits are guarded by the ORM version counter instead.
    """
    stmt = (
        update(model)
        .where(model.id == entity_id, getattr(model, column).in_(list(expected)), *extra_where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def reload(model: Type[M], entity_id: int) -> M:
    """Re-read a row after a Core UPDATE so the session sees the new state."""
    return db.session.get(model, entity_id, populate_existing=True)
