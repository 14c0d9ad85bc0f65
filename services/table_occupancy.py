"""
Table occupancy tracking.

Couples order lifecycle to table status: tables are occupied by an order,
held by a reservation, grouped by a merge, and released when the order
that held them ends. Functions mutate ORM rows and flush; committing is the
caller's job so an HTTP action stays one transaction.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from models.table_management import Table, TableStatus
from services.errors import TableStateError
from utils.config import RESERVATION_HOLD_MINUTES

logger = logging.getLogger(__name__)

STATUS_SORT_ORDER = {
    TableStatus.AVAILABLE: 0,
    TableStatus.RESERVED: 1,
    TableStatus.OCCUPIED: 2,
    TableStatus.MAINTENANCE: 3,
}


@dataclass
class BatchResult:
    """Outcome of an operation touching several tables."""
    succeeded: List[int] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)  # {"table_id": ..., "reason": ...}

    def fail(self, table_id, reason: str):
        self.failed.append({"table_id": table_id, "reason": reason})

    @property
    def ok(self) -> bool:
        return not self.failed


def sort_tables(tables: Iterable[Table]) -> List[Table]:
    return sorted(tables, key=lambda t: (STATUS_SORT_ORDER.get(TableStatus(t.status), 99), t.name))


def _clear_reservation(table: Table):
    table.reserved_by_id = None
    table.reserved_at = None
    table.reservation_expiry_at = None
    table.reservation_customer_name = None
    table.reservation_customer_phone = None
    table.reservation_notes = None


def reserve_table(table: Table, reserved_by_id: int, customer_name: Optional[str] = None,
                  customer_phone: Optional[str] = None, notes: Optional[str] = None,
                  now: Optional[datetime] = None) -> Table:
    if table.status != TableStatus.AVAILABLE:
        raise TableStateError(f"Table {table.name} is {TableStatus(table.status).value} and cannot be reserved")
    if table.merge_group and not table.is_primary:
        raise TableStateError(f"Table {table.name} is merged; reserve the primary table instead")

    now = now or datetime.utcnow()
    table.status = TableStatus.RESERVED
    table.reserved_by_id = reserved_by_id
    table.reserved_at = now
    table.reservation_expiry_at = now + timedelta(minutes=RESERVATION_HOLD_MINUTES)
    table.reservation_customer_name = customer_name
    table.reservation_customer_phone = customer_phone
    table.reservation_notes = notes
    logger.info(f"Table {table.id} reserved until {table.reservation_expiry_at.isoformat()}")
    return table


def occupy_table(table: Table, order_id: int, now: Optional[datetime] = None) -> Table:
    """Seat an order at a table. Reserved tables are seated by the reserving party."""
    if table.status == TableStatus.OCCUPIED and table.current_order_id == order_id:
        return table
    if table.status not in (TableStatus.AVAILABLE, TableStatus.RESERVED):
        raise TableStateError(f"Table {table.name} is {TableStatus(table.status).value}")

    table.status = TableStatus.OCCUPIED
    table.current_order_id = order_id
    table.occupied_at = now or datetime.utcnow()
    _clear_reservation(table)
    return table


def release_table(table: Table) -> Table:
    """Return a table to the floor: no order, no reservation, no merge."""
    table.status = TableStatus.AVAILABLE
    table.current_order_id = None
    table.occupied_at = None
    table.merge_group = None
    table.merged_into_id = None
    _clear_reservation(table)
    return table


def release_tables(db: Session, table_ids: Iterable[int], order_id: Optional[int] = None) -> BatchResult:
    """Release several tables, reporting every member that could not be released.

    When ``order_id`` is given, a table now held by a different order is left
    untouched and reported.
    """
    result = BatchResult()
    for table_id in table_ids:
        try:
            table = db.query(Table).filter(Table.id == table_id).first()
            if table is None:
                result.fail(table_id, "Table not found")
                logger.warning(f"Table {table_id} not found while releasing order {order_id}")
                continue
            if order_id is not None and table.current_order_id not in (None, order_id):
                result.fail(table_id, f"Table is held by order {table.current_order_id}")
                logger.warning(f"Skipped releasing table {table_id}: held by order {table.current_order_id}, not {order_id}")
                continue
            if table.status == TableStatus.MAINTENANCE:
                result.fail(table_id, "Table is under maintenance")
                logger.warning(f"Skipped releasing table {table_id}: under maintenance")
                continue
            release_table(table)
            result.succeeded.append(table_id)
        except Exception as e:
            result.fail(table_id, str(e))
            logger.warning(f"Failed to release table {table_id} for order {order_id}: {str(e)}")
    db.flush()
    return result


def release_expired_reservations(db: Session, now: Optional[datetime] = None,
                                 location_id: Optional[int] = None) -> List[Table]:
    now = now or datetime.utcnow()
    query = db.query(Table).filter(
        Table.status == TableStatus.RESERVED,
        Table.reservation_expiry_at.isnot(None),
        Table.reservation_expiry_at < now,
    )
    if location_id is not None:
        query = query.filter(Table.location_id == location_id)

    expired = query.all()
    for table in expired:
        release_table(table)
        logger.info(f"Reservation on table {table.id} expired, table released")
    db.flush()
    return expired


def merge_group_members(db: Session, table: Table) -> List[Table]:
    if not table.merge_group:
        return [table]
    return db.query(Table).filter(Table.merge_group == table.merge_group).order_by(Table.id).all()


def switch_table(db: Session, from_table: Table, to_table: Table, order=None) -> Table:
    """Move the order seated at ``from_table`` to ``to_table``."""
    if from_table.id == to_table.id:
        raise TableStateError("Source and target tables are the same")
    if from_table.location_id != to_table.location_id:
        raise TableStateError("Tables belong to different locations")
    if from_table.status != TableStatus.OCCUPIED or from_table.current_order_id is None:
        raise TableStateError(f"Table {from_table.name} has no order to move")
    if to_table.status != TableStatus.AVAILABLE:
        raise TableStateError(f"Target table {to_table.name} is not available")
    if to_table.merge_group:
        raise TableStateError(f"Target table {to_table.name} is part of a merged group")

    order_id = from_table.current_order_id
    occupied_at = from_table.occupied_at

    to_table.status = TableStatus.OCCUPIED
    to_table.current_order_id = order_id
    to_table.occupied_at = occupied_at or datetime.utcnow()
    _clear_reservation(to_table)
    release_table(from_table)

    if order is not None:
        order.tables = [to_table if t.id == from_table.id else t for t in order.tables]

    db.flush()
    logger.info(f"Order {order_id} moved from table {from_table.id} to table {to_table.id}")
    return to_table


def merge_tables(db: Session, tables: List[Table]) -> List[Table]:
    """Link two or more available tables; the first one becomes the primary."""
    if len(tables) < 2:
        raise TableStateError("At least 2 tables required for merging")
    if len({table.id for table in tables}) != len(tables):
        raise TableStateError("A table cannot be merged with itself")
    if len({table.location_id for table in tables}) != 1:
        raise TableStateError("Tables belong to different locations")
    for table in tables:
        if table.status != TableStatus.AVAILABLE:
            raise TableStateError(f"Table {table.name} is not available")
        if table.merge_group:
            raise TableStateError(f"Table {table.name} is already merged")

    primary = tables[0]
    group = f"MG-{primary.id}-{uuid.uuid4().hex[:6]}"
    for table in tables:
        table.merge_group = group
        table.merged_into_id = None if table.id == primary.id else primary.id
    db.flush()
    logger.info(f"Merged tables {[t.id for t in tables]} into group {group} with primary {primary.id}")
    return tables


def split_tables(db: Session, tables: List[Table]) -> BatchResult:
    """Undo a merge, restoring each table to independent status."""
    result = BatchResult()
    for table in tables:
        if not table.merge_group:
            result.fail(table.id, "Table is not merged")
            logger.warning(f"Cannot split table {table.id}: not merged")
            continue
        if table.status == TableStatus.OCCUPIED:
            result.fail(table.id, f"Table is occupied by order {table.current_order_id}")
            logger.warning(f"Cannot split table {table.id}: occupied by order {table.current_order_id}")
            continue
        table.merge_group = None
        table.merged_into_id = None
        result.succeeded.append(table.id)
    db.flush()
    return result
