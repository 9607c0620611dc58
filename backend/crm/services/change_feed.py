# Overview: In-process change notifications for stored collections.

"""
Change Feed

ORM events on watched models are queued on the session while a transaction
is open, staged when it commits, and delivered by drain(); a rollback drops
them, so subscribers never hear about writes that did not happen. Services
drain after their own commits and the app drains after every request.

Bulk query deletes skip the mapper hooks; they are picked up in
do_orm_execute, which records the ids about to go.

Subscriptions belong to a signed-in actor and, when opened from an HTTP
session, to that session. Logging out closes the subscriptions of that
session only. close() is idempotent.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import event, select
from sqlalchemy.orm import Session, object_session

from ..models import Interaction, InteractionProduct, Product, Profile, Store, UserStore

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"

_PENDING_KEY = "crm_pending_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    operation: str
    row_id: int | None


class Subscription:
    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        callback: Callable[[ChangeEvent], None],
        owner_id: int,
        session_id: int | None = None,
    ):
        self.feed = feed
        self.table = table
        self.callback = callback
        self.owner_id = owner_id
        self.session_id = session_id
        self.active = True

    def close(self) -> None:
        if self.active:
            self.active = False
            self.feed._remove(self)


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._outbox = threading.local()

    def subscribe(
        self,
        table: str,
        callback: Callable[[ChangeEvent], None],
        *,
        owner_id: int | None,
        session_id: int | None = None,
    ) -> Subscription:
        if owner_id is None:
            raise ValueError("Subscriptions require a signed-in actor")
        subscription = Subscription(self, table, callback, owner_id, session_id)
        with self._lock:
            self._subscriptions.setdefault(table, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.table, [])
            if subscription in subs:
                subs.remove(subscription)

    def _close_matching(self, predicate) -> int:
        with self._lock:
            matched = [s for subs in self._subscriptions.values() for s in subs if predicate(s)]
        for subscription in matched:
            subscription.close()
        return len(matched)

    def close_owner(self, owner_id: int) -> int:
        """Close every subscription held by an actor (all sessions revoked or account gone)."""
        return self._close_matching(lambda s: s.owner_id == owner_id)

    def close_session(self, session_id: int) -> int:
        """Close the subscriptions opened from one session (logout)."""
        return self._close_matching(lambda s: s.session_id == session_id)

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is not None:
                return len(self._subscriptions.get(table, []))
            return sum(len(subs) for subs in self._subscriptions.values())

    def stage(self, changes: list[ChangeEvent]) -> None:
        pending = getattr(self._outbox, "changes", None)
        if pending is None:
            pending = self._outbox.changes = []
        pending.extend(changes)

    def drain(self) -> int:
        pending = getattr(self._outbox, "changes", None)
        if not pending:
            return 0
        self._outbox.changes = []
        for change in pending:
            self.publish(change)
        return len(pending)

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = list(self._subscriptions.get(change.table, []))
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(change)
            except Exception:
                # One failing listener must not stop delivery to the rest
                logger.exception("Change listener failed for %s %s", change.table, change.operation)


feed = ChangeFeed()


def subscribe(
    table: str,
    callback: Callable[[ChangeEvent], None],
    *,
    owner_id: int | None,
    session_id: int | None = None,
) -> Subscription:
    return feed.subscribe(table, callback, owner_id=owner_id, session_id=session_id)


def drain() -> int:
    """Deliver changes committed on this thread. Call after a commit, outside session hooks."""
    return feed.drain()


def _queue(operation: str):
    def _listener(mapper, connection, target):
        session = object_session(target)
        if session is None:
            return
        session.info.setdefault(_PENDING_KEY, []).append(
            ChangeEvent(target.__tablename__, operation, getattr(target, "id", None))
        )
    return _listener


WATCHED_MODELS = (Interaction, InteractionProduct, Product, Profile, Store, UserStore)
_WATCHED_TABLES = {model.__tablename__: model.__table__ for model in WATCHED_MODELS}

for _model in WATCHED_MODELS:
    event.listen(_model, "after_insert", _queue(INSERT))
    event.listen(_model, "after_update", _queue(UPDATE))
    event.listen(_model, "after_delete", _queue(DELETE))


@event.listens_for(Session, "do_orm_execute")
def _queue_bulk_delete(orm_execute_state):
    if not orm_execute_state.is_delete:
        return
    statement = orm_execute_state.statement
    table = _WATCHED_TABLES.get(getattr(statement.table, "name", None))
    if table is None:
        return

    doomed = select(table.c.id)
    if statement.whereclause is not None:
        doomed = doomed.where(statement.whereclause)
    session = orm_execute_state.session
    row_ids = session.execute(doomed).scalars().all()
    session.info.setdefault(_PENDING_KEY, []).extend(
        ChangeEvent(table.name, DELETE, row_id) for row_id in row_ids
    )


@event.listens_for(Session, "after_commit")
def _stage_committed(session):
    # No SQL may run inside after_commit, so listeners (which usually
    # re-query) are invoked later by drain()
    pending = session.info.pop(_PENDING_KEY, None)
    if pending:
        feed.stage(pending)


@event.listens_for(Session, "after_rollback")
def _drop_rolled_back(session):
    session.info.pop(_PENDING_KEY, None)
