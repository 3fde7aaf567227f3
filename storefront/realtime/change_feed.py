"""
Row-level change feed.

Stands in for the hosted database's realtime channel: subscribers register
an equality filter on one column of one table and receive insert/update
events for matching rows after the writing transaction commits. Events are
delivered synchronously, one at a time, in commit order.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "storefront_pending_changes"


class ChangeOp(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"


class ChannelStatus(str, enum.Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class ChangeEvent:
    op: ChangeOp
    table: str
    row: Dict[str, Any]


ChangeCallback = Callable[[ChangeEvent], None]
StatusCallback = Callable[[ChannelStatus, Optional[Exception]], None]


@dataclass(eq=False)
class Subscription:
    feed: "ChangeFeed"
    table: str
    column: str
    value: Any
    callback: ChangeCallback
    on_status: Optional[StatusCallback] = None
    active: bool = field(default=True)

    def matches(self, change: ChangeEvent) -> bool:
        return change.table == self.table and change.row.get(self.column) == self.value

    def report(self, status: ChannelStatus, error: Optional[Exception] = None) -> None:
        if self.on_status is not None:
            self.on_status(status, error)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self.feed._remove(self)
        self.report(ChannelStatus.CLOSED)


def row_snapshot(obj) -> Dict[str, Any]:
    """Column values currently loaded on `obj`, without triggering any loads."""
    state = inspect(obj)
    loaded = state.dict
    return {attr.key: loaded.get(attr.key) for attr in state.mapper.column_attrs}


class ChangeFeed:
    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._tables: Dict[type, str] = {}
        self._installed = False

    # -----------------------
    # Subscriber side
    # -----------------------
    def subscribe(self, table: str, column: str, value: Any, callback: ChangeCallback,
                  on_status: Optional[StatusCallback] = None) -> Subscription:
        sub = Subscription(self, table, column, value, callback, on_status)
        self._subscriptions.append(sub)
        logger.debug("Subscribed to %s where %s=%s", table, column, value)
        sub.report(ChannelStatus.SUBSCRIBED)
        return sub

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # -----------------------
    # Publisher side
    # -----------------------
    def publish(self, change: ChangeEvent) -> None:
        for sub in list(self._subscriptions):
            if not sub.active or not sub.matches(change):
                continue
            try:
                sub.callback(change)
            except Exception as e:
                logger.exception("Subscriber to %s failed on %s event", change.table, change.op.value)
                sub.report(ChannelStatus.CHANNEL_ERROR, e)

    def watch(self, model: type) -> None:
        """Publish committed inserts and updates of `model` rows."""
        self._tables[model] = model.__tablename__
        if not self._installed:
            event.listen(Session, "after_flush", self._collect)
            event.listen(Session, "after_commit", self._flush_pending)
            event.listen(Session, "after_soft_rollback", self._discard)
            self._installed = True

    def _collect(self, session: Session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.new:
            table = self._tables.get(type(obj))
            if table:
                pending.append(ChangeEvent(ChangeOp.INSERT, table, row_snapshot(obj)))
        for obj in session.dirty:
            table = self._tables.get(type(obj))
            if table and session.is_modified(obj, include_collections=False):
                pending.append(ChangeEvent(ChangeOp.UPDATE, table, row_snapshot(obj)))

    def _flush_pending(self, session: Session) -> None:
        pending = session.info.pop(_PENDING_KEY, [])
        for change in pending:
            self.publish(change)

    def _discard(self, session: Session, previous_transaction) -> None:
        session.info.pop(_PENDING_KEY, None)
