"""
Read-only order snapshots for the floor and manager views.

The database is the only writable store. This cache keeps JSON snapshots
of orders it has read, indexed by lifecycle bucket, and drops an entry
whenever a route commits a change to that order. Snapshots are built from
committed rows only, never from request payloads.
"""
import copy
import enum
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from models.order_management import Order, OrderStatus
from schemas.order_management import OrderResponse
from utils.config import ORDER_CACHE_MAX_ENTRIES, ORDER_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class OrderBucket(str, enum.Enum):
    TEMPORARY = "temporary"
    MANAGER_PENDING = "manager_pending"
    COMPLETED = "completed"


BUCKET_BY_STATUS = {
    OrderStatus.TEMPORARY: OrderBucket.TEMPORARY,
    OrderStatus.ONGOING: OrderBucket.TEMPORARY,
    OrderStatus.TRANSFERRED: OrderBucket.MANAGER_PENDING,
    OrderStatus.SETTLED: OrderBucket.COMPLETED,
    OrderStatus.COMPLETED: OrderBucket.COMPLETED,
}


def bucket_for_status(status) -> Optional[OrderBucket]:
    return BUCKET_BY_STATUS.get(OrderStatus(status))


def order_snapshot(order: Order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


class OrderSnapshotCache:
    """Snapshots expire after ``ttl_seconds``; past ``max_entries`` the oldest are dropped."""

    def __init__(self, ttl_seconds: float = ORDER_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic,
                 max_entries: int = ORDER_CACHE_MAX_ENTRIES):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[int, Tuple[float, dict]] = {}
        self._index: Dict[OrderBucket, Set[int]] = {bucket: set() for bucket in OrderBucket}
        self._lock = threading.Lock()

    def __contains__(self, order_id) -> bool:
        return order_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _unindex(self, order_id: int):
        for ids in self._index.values():
            ids.discard(order_id)

    def _drop(self, order_id: int):
        self._entries.pop(order_id, None)
        self._unindex(order_id)

    def _evict_expired(self, now: float):
        # caller holds the lock
        expired = [order_id for order_id, (stored_at, _) in self._entries.items()
                   if now - stored_at >= self.ttl_seconds]
        for order_id in expired:
            self._drop(order_id)
        if expired:
            logger.debug(f"Order cache evicted {len(expired)} expired snapshot(s)")

    def store(self, order: Order) -> dict:
        """Snapshot a committed order row."""
        snapshot = order_snapshot(order)
        bucket = bucket_for_status(order.status)
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            self._drop(order.id)
            # dicts keep insertion order, so the first keys are the oldest snapshots
            while self._entries and len(self._entries) >= self.max_entries:
                self._drop(next(iter(self._entries)))
            self._entries[order.id] = (now, snapshot)
            if bucket is not None:
                self._index[bucket].add(order.id)
        return copy.deepcopy(snapshot)

    def get(self, db: Session, order_id: int) -> Optional[dict]:
        """Return a snapshot, reading through to the database on a miss or expiry."""
        with self._lock:
            entry = self._entries.get(order_id)
            if entry is not None:
                if self._clock() - entry[0] < self.ttl_seconds:
                    return copy.deepcopy(entry[1])
                self._drop(order_id)

        order = db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            self.invalidate(order_id)
            return None
        logger.debug(f"Order cache miss for order {order_id}")
        return self.store(order)

    def invalidate(self, order_id: int):
        with self._lock:
            self._drop(order_id)

    def ids(self, bucket: OrderBucket) -> List[int]:
        """Ids of fresh snapshots in ``bucket``."""
        with self._lock:
            self._evict_expired(self._clock())
            return sorted(self._index[OrderBucket(bucket)])

    def clear(self):
        with self._lock:
            self._entries.clear()
            for ids in self._index.values():
                ids.clear()


order_cache = OrderSnapshotCache()
