from decimal import Decimal

import pytest

from storefront.models import OrderStatus, User
from storefront.realtime import change_feed
from storefront.realtime.change_feed import ChangeEvent, ChangeFeed, ChangeOp, ChannelStatus
from storefront.schemas.order_schemas import CheckoutCustomer, OrderCreate
from storefront.schemas.pricing_schemas import QuoteLine
from storefront.services.notifications import (
    BusinessChannel, CustomerChannel, NotificationRouter, NotificationSession, NotificationStore, resolve_channel,
)
from storefront.services.order_service import submit_order, update_order_status

from tests.conftest import NOW


def row(order_id, **kwargs):
    data = {"id": order_id, "business_id": 1, "customer_id": 7, "customer_name": "Ana",
            "total_amount": Decimal("62.00"), "status": OrderStatus.PENDING, "order_code": f"code{order_id}"}
    data.update(kwargs)
    return data


class Recorder:
    def __init__(self):
        self.effects = []
        self.snapshots = []

    def emit(self, effect):
        self.effects.append(effect)

    def listener(self, snapshot):
        self.snapshots.append(snapshot)

    @property
    def kinds(self):
        return [e.kind for e in self.effects]


# -----------------------
# Store
# -----------------------
def test_store_keeps_newest_first_without_duplicates():
    store = NotificationStore()
    store.add(row(1))
    store.add(row(2))
    store.add(row(1, status=OrderStatus.PREPARING))

    notifications = store.get_notifications()
    assert [n.id for n in notifications] == [2, 1]
    assert notifications[1].status == "preparing"
    assert notifications[1].customer_name == "Ana"


def test_store_update_merges_partial_rows():
    store = NotificationStore()
    store.add(row(1))
    store.update({"id": 1, "status": "ready"})

    (n,) = store.get_notifications()
    assert n.status == "ready"
    assert n.total_amount == Decimal("62.00")
    assert n.order_code == "code1"


def test_store_update_of_unknown_order_adds_it():
    store = NotificationStore()
    store.update(row(5, status=OrderStatus.READY))

    assert [n.id for n in store.get_notifications()] == [5]


def test_store_remove_and_clear():
    store = NotificationStore()
    for i in range(3):
        store.add(row(i))

    store.remove(1)
    store.remove(99)
    assert [n.id for n in store.get_notifications()] == [2, 0]
    assert store.has_unread()

    store.clear_all()
    assert store.get_notifications() == []
    assert not store.has_unread()


def test_store_caps_entries():
    store = NotificationStore(limit=3)
    for i in range(5):
        store.add(row(i))

    assert [n.id for n in store.get_notifications()] == [4, 3, 2]


def test_store_listeners_get_snapshots():
    store = NotificationStore()
    rec = Recorder()
    unsubscribe = store.subscribe(rec.listener)

    store.add(row(1))
    rec.snapshots[-1].clear()
    assert len(store.get_notifications()) == 1

    unsubscribe()
    store.add(row(2))
    assert len(rec.snapshots) == 1


def test_store_failing_listener_does_not_block_others():
    store = NotificationStore()
    rec = Recorder()

    def broken(_):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(rec.listener)
    store.add(row(1))

    assert len(rec.snapshots) == 1


# -----------------------
# Router
# -----------------------
def test_business_channel_new_order_effects():
    feed = ChangeFeed()
    rec = Recorder()
    store = NotificationStore()
    router = NotificationRouter(store, rec.emit, feed)
    router.open(BusinessChannel(1))

    feed.publish(ChangeEvent(ChangeOp.INSERT, "orders", row(10)))

    assert rec.kinds == ["play_sound", "toast", "modal"]
    toast, modal = rec.effects[1], rec.effects[2]
    assert toast.title == "🎉 New order!"
    assert toast.description == "Ana placed an order of R$ 62,00"
    assert toast.duration_ms == 5000
    assert modal.modal == "new_order"
    assert modal.order.id == 10
    assert [n.id for n in store.get_notifications()] == [10]


def test_business_channel_update_only_refreshes_store():
    feed = ChangeFeed()
    rec = Recorder()
    store = NotificationStore()
    NotificationRouter(store, rec.emit, feed).open(BusinessChannel(1))

    feed.publish(ChangeEvent(ChangeOp.INSERT, "orders", row(10)))
    rec.effects.clear()
    feed.publish(ChangeEvent(ChangeOp.UPDATE, "orders", row(10, status=OrderStatus.READY)))

    assert rec.effects == []
    assert store.get_notifications()[0].status == "ready"


def test_business_channel_ignores_other_businesses():
    feed = ChangeFeed()
    rec = Recorder()
    store = NotificationStore()
    NotificationRouter(store, rec.emit, feed).open(BusinessChannel(1))

    feed.publish(ChangeEvent(ChangeOp.INSERT, "orders", row(10, business_id=2)))
    feed.publish(ChangeEvent(ChangeOp.INSERT, "coupons", row(11)))

    assert rec.effects == []
    assert not store.has_unread()


@pytest.mark.parametrize("status, title", [
    (OrderStatus.PREPARING, "👨‍🍳 Preparing"),
    (OrderStatus.OUT_FOR_DELIVERY, "🛵 Out for delivery"),
    (OrderStatus.CANCELLED, "❌ Cancelled"),
    ("rejected", "🚫 Rejected"),
])
def test_customer_channel_status_effects(status, title):
    feed = ChangeFeed()
    rec = Recorder()
    store = NotificationStore()
    NotificationRouter(store, rec.emit, feed).open(CustomerChannel(7))

    feed.publish(ChangeEvent(ChangeOp.UPDATE, "orders", row(10, status=status)))

    assert rec.kinds == ["toast", "modal"]
    assert rec.effects[0].title == title
    assert rec.effects[0].duration_ms == 4000
    assert rec.effects[1].modal == "status_change"
    assert not store.has_unread()


def test_customer_channel_quiet_cases():
    feed = ChangeFeed()
    rec = Recorder()
    NotificationRouter(NotificationStore(), rec.emit, feed).open(CustomerChannel(7))

    feed.publish(ChangeEvent(ChangeOp.INSERT, "orders", row(10)))
    feed.publish(ChangeEvent(ChangeOp.UPDATE, "orders", row(10, status=OrderStatus.PENDING)))
    feed.publish(ChangeEvent(ChangeOp.UPDATE, "orders", row(11, customer_id=8, status=OrderStatus.READY)))

    assert rec.effects == []


def test_router_keeps_a_single_subscription():
    feed = ChangeFeed()
    statuses = []
    router = NotificationRouter(NotificationStore(), Recorder().emit, feed)

    router.open(BusinessChannel(1))
    router.open(BusinessChannel(2))
    assert feed.subscriber_count == 1
    assert router.channel == BusinessChannel(2)

    router.close()
    router.close()
    assert feed.subscriber_count == 0
    assert not router.is_open

    sub = feed.subscribe("orders", "id", 1, lambda change: None, lambda s, e: statuses.append(s))
    sub.unsubscribe()
    sub.unsubscribe()
    assert statuses == [ChannelStatus.SUBSCRIBED, ChannelStatus.CLOSED]


def test_failing_subscriber_reports_channel_error():
    feed = ChangeFeed()
    statuses = []
    received = []

    def broken(change):
        raise RuntimeError("boom")

    feed.subscribe("orders", "business_id", 1, broken, lambda s, e: statuses.append(s))
    feed.subscribe("orders", "business_id", 1, received.append)
    feed.publish(ChangeEvent(ChangeOp.INSERT, "orders", row(1)))

    assert statuses[-1] == ChannelStatus.CHANNEL_ERROR
    assert len(received) == 1


# -----------------------
# Sessions over committed orders
# -----------------------
async def test_resolve_channel_from_role(db, seed):
    assert await resolve_channel(db, seed.owner) == BusinessChannel(seed.business.id)
    assert await resolve_channel(db, seed.customer_user) == CustomerChannel(seed.profile.id)

    stranger = User(email="nobody@test", role="customer")
    db.add(stranger)
    await db.commit()
    assert await resolve_channel(db, stranger) is None


async def test_sessions_follow_committed_orders(db, seed):
    owner_rec, customer_rec, other_rec = Recorder(), Recorder(), Recorder()
    owner = NotificationSession(seed.owner, change_feed, owner_rec.emit)
    customer = NotificationSession(seed.customer_user, change_feed, customer_rec.emit)
    other = NotificationSession(seed.other_owner, change_feed, other_rec.emit)
    baseline = change_feed.subscriber_count

    try:
        await owner.start(db)
        await customer.start(db)
        await other.start(db)
        assert owner.is_business and not customer.is_business

        payload = OrderCreate(
            business_id=seed.business.id,
            items=[QuoteLine(menu_item_id=seed.burger.id, quantity=2)],
            customer=CheckoutCustomer(name="Ana", phone="11999990000", address="Rua A, 10"),
        )
        order = await submit_order(db, payload, seed.profile.id, NOW)

        assert owner_rec.kinds == ["play_sound", "toast", "modal"]
        assert owner_rec.effects[1].description == "Ana placed an order of R$ 68,00"
        assert [n.id for n in owner.notifications()] == [order.id]
        assert customer_rec.effects == []

        await update_order_status(db, order.id, "preparing", seed.business.id, seed.owner)

        assert customer_rec.kinds == ["toast", "modal"]
        assert customer_rec.effects[0].title == "👨‍🍳 Preparing"
        assert owner.notifications()[0].status == "preparing"
        assert len(owner_rec.effects) == 3
        assert other_rec.effects == []

        owner.mark_as_read(order.id)
        assert not owner.store.has_unread()
    finally:
        owner.stop()
        customer.stop()
        other.stop()

    assert change_feed.subscriber_count == baseline


async def test_rolled_back_changes_are_not_published(db, seed):
    rec = Recorder()
    session = NotificationSession(seed.owner, change_feed, rec.emit)
    await session.start(db)
    try:
        payload = OrderCreate(
            business_id=seed.business.id,
            items=[QuoteLine(menu_item_id=seed.burger.id, quantity=1)],
            customer=CheckoutCustomer(name="Ana", phone="1"),
        )
        order = await submit_order(db, payload, None, NOW)
        rec.effects.clear()

        order.status = OrderStatus.READY
        await db.flush()
        await db.rollback()

        assert rec.effects == []
        assert session.notifications()[0].status == "pending"
    finally:
        session.stop()
