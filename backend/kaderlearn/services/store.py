"""
Upsert-by-composite-key for per-user progress rows.
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kaderlearn.core.database import Base


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def upsert(
    db: Session,
    model: Type[ModelT],
    keys: Dict[str, Any],
    update: Dict[str, Any],
    create: Optional[Dict[str, Any]] = None,
) -> ModelT:
    """
    Find the row identified by ``keys`` and apply ``update``; insert it when
    missing.

    ``create`` holds the column values used only when inserting (they are
    overridden by ``update``). The insert runs in a SAVEPOINT: if a
    concurrent request inserted the same key first, the unique constraint
    fires, the savepoint is rolled back and the winner's row is updated.
    """
    row = db.query(model).filter_by(**keys).one_or_none()

    if row is None:
        values = {**(create or {}), **update, **keys}
        try:
            with db.begin_nested():
                row = model(**values)
                db.add(row)
            return row
        except IntegrityError:
            logger.info("Concurrent insert on %s %s, updating existing row", model.__tablename__, keys)
            row = db.query(model).filter_by(**keys).one()

    for field, value in update.items():
        setattr(row, field, value)
    db.flush()
    return row
