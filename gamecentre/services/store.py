"""Transactional record store over SQLModel.

Every write goes through a ``StoreTransaction``. Conditional updates
(``expect=`` / extra criteria) are how the session core serializes
transitions: an update whose guard no longer matches touches zero rows
and the caller loses the race.

Change notifications are published to subscribers only after a commit.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from gamecentre.services.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordChange:
    kind: str  # table name, e.g. 'sessions'
    op: str  # 'insert' | 'update'
    record_id: str


Listener = Callable[[RecordChange], None]
Changes = list[RecordChange]


def _guard(model: type[SQLModel], name: str, value: Any):
    column = getattr(model, name)
    if value is None:
        return column.is_(None)
    if isinstance(value, (list, tuple, set, frozenset)):
        return column.in_(list(value))
    return column == value


class StoreTransaction:
    """A unit of work. Commits once, when the ``transaction()`` block exits."""

    def __init__(self, session: Session):
        self.session = session
        self.changes: Changes = []

    def insert(self, record: SQLModel) -> str:
        self.session.add(record)
        self.session.flush()
        self.changes.append(RecordChange(record.__tablename__, "insert", record.id))
        return record.id

    def get(self, model: type[SQLModel], record_id: str):
        return self.session.get(model, record_id, populate_existing=True)

    def list(self, model: type[SQLModel], *where, order_by=None) -> list:
        query = select(model).where(*where)
        if order_by is not None:
            query = query.order_by(order_by)
        return list(self.session.exec(query).all())

    def update_fields(
        self,
        model: type[SQLModel],
        record_id: str,
        fields: dict,
        expect: dict | None = None,
    ) -> bool:
        """Set ``fields`` on one record if every ``expect`` guard holds.

        Returns False when a guard did not match. Raises NotFoundError if the
        record does not exist at all.
        """
        criteria = [_guard(model, k, v) for k, v in (expect or {}).items()]
        return self.update_where(model, record_id, fields, *criteria)

    def update_where(self, model: type[SQLModel], record_id: str, fields: dict, *criteria) -> bool:
        stmt = (
            update(model)
            .where(model.id == record_id, *criteria)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(stmt)
        if result.rowcount == 0:
            if self.session.get(model, record_id) is None:
                raise NotFoundError(f"{model.__tablename__}/{record_id} not found")
            return False
        self.changes.append(RecordChange(model.__tablename__, "update", record_id))
        return True


class RecordStore:
    """Record store with atomic field updates and change subscriptions."""

    def __init__(self, bind: Engine):
        self._bind = bind
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        with Session(self._bind, expire_on_commit=False) as session:
            tx = StoreTransaction(session)
            try:
                yield tx
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("Store transaction failed: %s", e)
                raise StoreError(str(e), transient=isinstance(e, OperationalError)) from e
            except Exception:
                session.rollback()
                raise
        self._publish(tx.changes)

    # --- Single-statement helpers ---

    def insert(self, record: SQLModel) -> str:
        with self.transaction() as tx:
            return tx.insert(record)

    def get(self, model: type[SQLModel], record_id: str):
        with self.transaction() as tx:
            return tx.get(model, record_id)

    def list(self, model: type[SQLModel], *where, order_by=None) -> list:
        with self.transaction() as tx:
            return tx.list(model, *where, order_by=order_by)

    def update_fields(
        self,
        model: type[SQLModel],
        record_id: str,
        fields: dict,
        expect: dict | None = None,
    ) -> bool:
        with self.transaction() as tx:
            return tx.update_fields(model, record_id, fields, expect=expect)

    # --- Change notifications ---

    def subscribe(self, model: type[SQLModel], callback: Listener) -> Callable[[], None]:
        """Call ``callback`` after every committed insert/update of ``model``."""
        kind = model.__tablename__
        with self._lock:
            self._listeners.setdefault(kind, []).append(callback)

        def unsubscribe():
            with self._lock:
                listeners = self._listeners.get(kind, [])
                if callback in listeners:
                    listeners.remove(callback)

        return unsubscribe

    def _publish(self, changes: Changes) -> None:
        for change in changes:
            with self._lock:
                listeners = list(self._listeners.get(change.kind, []))
            for listener in listeners:
                try:
                    listener(change)
                except Exception:
                    logger.exception("Change listener failed for %s", change)
