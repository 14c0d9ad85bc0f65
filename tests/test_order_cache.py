"""
Order snapshot cache: read-through, bucket index, expiry and invalidation.
"""
from models.order_management import OrderStatus, OrderType
from services import order_lifecycle
from services.order_cache import OrderBucket, OrderSnapshotCache, bucket_for_status


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_order(db_session, location, staff, tables, items):
    order = order_lifecycle.create_temporary_order(
        db_session, location, staff, OrderType.DINE_IN, [tables[0].id], items
    )
    db_session.commit()
    return order


class TestBuckets:
    def test_status_buckets(self):
        assert bucket_for_status(OrderStatus.TEMPORARY) == OrderBucket.TEMPORARY
        assert bucket_for_status("ongoing") == OrderBucket.TEMPORARY
        assert bucket_for_status(OrderStatus.TRANSFERRED) == OrderBucket.MANAGER_PENDING
        assert bucket_for_status(OrderStatus.SETTLED) == OrderBucket.COMPLETED
        assert bucket_for_status(OrderStatus.COMPLETED) == OrderBucket.COMPLETED
        assert bucket_for_status(OrderStatus.CANCELLED) is None


class TestSnapshotCache:
    def test_read_through_and_hit(self, db_session, location, staff, tables, items):
        cache = OrderSnapshotCache(ttl_seconds=60, clock=FakeClock())
        order = make_order(db_session, location, staff, tables, items)

        snapshot = cache.get(db_session, order.id)
        assert snapshot["order_number"] == order.order_number
        assert snapshot["status"] == "ongoing"
        assert order.id in cache
        assert cache.ids(OrderBucket.TEMPORARY) == [order.id]

    def test_snapshot_is_a_copy(self, db_session, location, staff, tables, items):
        cache = OrderSnapshotCache(ttl_seconds=60, clock=FakeClock())
        order = make_order(db_session, location, staff, tables, items)

        cache.get(db_session, order.id)["status"] = "tampered"
        assert cache.get(db_session, order.id)["status"] == "ongoing"

    def test_invalidate_then_reload_moves_bucket(self, db_session, location, staff, tables, items):
        cache = OrderSnapshotCache(ttl_seconds=60, clock=FakeClock())
        order = make_order(db_session, location, staff, tables, items)
        cache.get(db_session, order.id)

        order_lifecycle.transfer_order(db_session, order, staff)
        db_session.commit()
        assert cache.get(db_session, order.id)["status"] == "ongoing"

        cache.invalidate(order.id)
        assert order.id not in cache
        assert cache.get(db_session, order.id)["status"] == "transferred"
        assert cache.ids(OrderBucket.TEMPORARY) == []
        assert cache.ids(OrderBucket.MANAGER_PENDING) == [order.id]

    def test_expired_entries_reload(self, db_session, location, staff, tables, items):
        clock = FakeClock()
        cache = OrderSnapshotCache(ttl_seconds=60, clock=clock)
        order = make_order(db_session, location, staff, tables, items)
        cache.get(db_session, order.id)

        order.notes = "no onions"
        db_session.commit()
        clock.now += 61

        assert cache.ids(OrderBucket.TEMPORARY) == []
        assert cache.get(db_session, order.id)["notes"] == "no onions"

    def test_cancelled_order_not_indexed(self, db_session, location, staff, tables, items):
        cache = OrderSnapshotCache(ttl_seconds=60, clock=FakeClock())
        order = make_order(db_session, location, staff, tables, items)
        order_lifecycle.cancel_order(db_session, order, staff)
        db_session.commit()

        assert cache.get(db_session, order.id)["status"] == "cancelled"
        assert all(cache.ids(bucket) == [] for bucket in OrderBucket)

    def test_missing_order(self, db_session):
        cache = OrderSnapshotCache(ttl_seconds=60, clock=FakeClock())
        assert cache.get(db_session, 12345) is None

    def test_clear(self, db_session, location, staff, tables, items):
        cache = OrderSnapshotCache(ttl_seconds=60, clock=FakeClock())
        order = make_order(db_session, location, staff, tables, items)
        cache.get(db_session, order.id)

        cache.clear()
        assert order.id not in cache
        assert cache.ids(OrderBucket.TEMPORARY) == []

    def test_expired_entries_are_evicted(self, db_session, location, staff, tables, items):
        clock = FakeClock()
        cache = OrderSnapshotCache(ttl_seconds=60, clock=clock)
        order = make_order(db_session, location, staff, tables, items)
        cache.get(db_session, order.id)

        clock.now += 61
        assert cache.ids(OrderBucket.TEMPORARY) == []
        assert order.id not in cache
        assert len(cache) == 0

    def test_oldest_entry_dropped_when_full(self, db_session, location, staff, tables, items):
        clock = FakeClock()
        cache = OrderSnapshotCache(ttl_seconds=60, clock=clock, max_entries=2)
        orders = []
        for table in tables[:3]:
            orders.append(make_order(db_session, location, staff, [table], items))
            cache.get(db_session, orders[-1].id)
            clock.now += 1

        assert len(cache) == 2
        assert orders[0].id not in cache
        assert cache.ids(OrderBucket.TEMPORARY) == sorted(o.id for o in orders[1:])
