"""Serialized access to one SQLAlchemy session.

Every read and write against a ``Store`` goes through :meth:`Store.perform`,
which holds the store's lock, so concurrent callers sharing a store handle
never interleave inside the session.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Store:
    def __init__(self, session: Session) -> None:
        self.session = session
        self._lock = threading.RLock()

    @contextmanager
    def perform(self) -> Iterator[Session]:
        with self._lock:
            yield self.session

    def fetch(
        self,
        model: type[T],
        *criteria: Any,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        options: Sequence[Any] = (),
    ) -> list[T]:
        stmt = select(model).where(*criteria).order_by(*order_by)
        if options:
            stmt = stmt.options(*options)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.fetch_statement(stmt)

    def fetch_statement(self, stmt: Select) -> list[Any]:
        with self.perform() as session:
            try:
                return list(session.scalars(stmt).all())
            except SQLAlchemyError as exc:
                session.rollback()
                logger.warning(f"store_fetch_failed: error={exc}")
                raise StoreError("Could not read from the store") from exc

    def first(self, model: type[T], *criteria: Any, **kwargs: Any) -> Optional[T]:
        results = self.fetch(model, *criteria, limit=1, **kwargs)
        return results[0] if results else None

    def get(self, model: type[T], ident: Any) -> Optional[T]:
        with self.perform() as session:
            try:
                return session.get(model, ident)
            except SQLAlchemyError as exc:
                session.rollback()
                logger.warning(f"store_get_failed: model={model.__name__} error={exc}")
                raise StoreError("Could not read from the store") from exc

    def count(self, model: type, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(model).where(*criteria)
        with self.perform() as session:
            try:
                return int(session.execute(stmt).scalar_one() or 0)
            except SQLAlchemyError as exc:
                session.rollback()
                logger.warning(
                    f"store_count_failed: model={model.__name__} error={exc}"
                )
                raise StoreError("Could not count rows in the store") from exc

    def add(self, obj: Any) -> None:
        with self.perform() as session:
            session.add(obj)

    def delete(self, obj: Any) -> None:
        with self.perform() as session:
            session.delete(obj)

    def save(self) -> None:
        with self.perform() as session:
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("store_save_failed: changes rolled back")
                raise StoreError(
                    f"Could not save changes: {exc.__class__.__name__}"
                ) from exc
        logger.debug("store_save: committed")

    def rollback(self) -> None:
        with self.perform() as session:
            session.rollback()
