from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
import asyncio
import logging

from utils.database import get_db, SessionLocal
from models.table_management import Table, TableStatus
from models.order_management import Order, OrderStatus
from models.user import User
from schemas.table_management import (
    TableCreate, TableUpdate, TableResponse, TableReserve, TableSwitch, TableMerge, TableIds, TableBatchResponse
)
from services import table_occupancy
from services.order_cache import order_cache
from services.order_lifecycle import TERMINAL_STATUSES, record_history
from routes.notifications import notify_table_event
from utils.auth import get_current_manager, get_current_staff, get_authorized_location_ids, ensure_location_access
from utils.config import RESERVATION_SWEEP_INTERVAL_SECONDS
from utils.validators import validate_name_uniqueness, service_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/table-management", tags=["table_management"])


def get_authorized_table(db: Session, current_user: User, table_id: int) -> Table:
    db_table = db.query(Table).filter(
        Table.id == table_id,
        Table.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not db_table:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Table not found or insufficient permissions"
        )
    return db_table


def _held_by_active_order(db: Session, table: Table) -> Optional[Order]:
    if table.current_order_id is None:
        return None
    order = db.query(Order).filter(Order.id == table.current_order_id).first()
    if order is not None and OrderStatus(order.status) not in TERMINAL_STATUSES:
        return order
    return None


# Table Management Endpoints
@router.post("/tables", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    table: TableCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    ensure_location_access(current_user, db, table.location_id)
    validate_name_uniqueness(db, Table, table.name, location_id=table.location_id)

    try:
        db_table = Table(**table.model_dump(), status=TableStatus.AVAILABLE)
        db.add(db_table)
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {db_table.id} created by user {current_user.id}")
        return db_table
    except Exception as e:
        raise service_error(db, e, "creating table")


@router.get("/tables", response_model=List[TableResponse])
async def list_tables(
    location_id: Optional[int] = None,
    table_status: Optional[TableStatus] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    location_ids = get_authorized_location_ids(current_user, db)
    if location_id is not None:
        if location_id not in location_ids:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"No permission for location ID {location_id}")
        location_ids = [location_id]

    query = db.query(Table).filter(Table.location_id.in_(location_ids))
    if table_status is not None:
        query = query.filter(Table.status == table_status)
    tables = table_occupancy.sort_tables(query.all())
    logger.info(f"Retrieved {len(tables)} tables for user {current_user.id}")
    return tables


@router.get("/tables/{table_id}", response_model=TableResponse)
async def get_table(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    return get_authorized_table(db, current_user, table_id)


@router.put("/tables/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: int,
    table_update: TableUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    db_table = get_authorized_table(db, current_user, table_id)
    try:
        update_data = table_update.model_dump(exclude_unset=True)
        if "name" in update_data and update_data["name"] != db_table.name:
            validate_name_uniqueness(db, Table, update_data["name"], exclude_id=db_table.id, location_id=db_table.location_id)

        new_status = update_data.pop("status", None)
        if new_status is not None and new_status != db_table.status:
            # Occupancy and reservations only change through orders and the reserve endpoint
            if new_status not in (TableStatus.AVAILABLE, TableStatus.MAINTENANCE):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Cannot set status to {new_status.value} directly")
            if _held_by_active_order(db, db_table):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Table {db_table.name} is held by an active order")
            table_occupancy.release_table(db_table)
            db_table.status = new_status

        for field, value in update_data.items():
            setattr(db_table, field, value)
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {table_id} updated by user {current_user.id}")
        return db_table
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        raise service_error(db, e, f"updating table {table_id}")


@router.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    db_table = get_authorized_table(db, current_user, table_id)
    if db_table.status == TableStatus.OCCUPIED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete an occupied table")

    try:
        db.delete(db_table)
        db.commit()
        logger.info(f"Table {table_id} deleted by user {current_user.id}")
    except Exception as e:
        raise service_error(db, e, f"deleting table {table_id}")


@router.post("/tables/{table_id}/reserve", response_model=TableResponse)
async def reserve_table(
    table_id: int,
    reservation: TableReserve,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    db_table = get_authorized_table(db, current_user, table_id)
    try:
        table_occupancy.reserve_table(
            db_table,
            reserved_by_id=current_user.id,
            customer_name=reservation.customer_name,
            customer_phone=reservation.customer_phone,
            notes=reservation.notes,
        )
        db.commit()
        db.refresh(db_table)
    except Exception as e:
        raise service_error(db, e, f"reserving table {table_id}")

    await notify_table_event("reserved", db_table.location_id, [db_table.id],
                             expires_at=db_table.reservation_expiry_at.isoformat())
    return db_table


@router.post("/tables/{table_id}/release", response_model=TableResponse)
async def release_table(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    """Free a reserved table, or an occupied one whose order has already ended."""
    db_table = get_authorized_table(db, current_user, table_id)
    order = _held_by_active_order(db, db_table)
    if order is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Table {db_table.name} is held by active order {order.order_number}"
        )
    if db_table.status == TableStatus.MAINTENANCE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Table is under maintenance")

    try:
        table_occupancy.release_table(db_table)
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {table_id} released by user {current_user.id}")
    except Exception as e:
        raise service_error(db, e, f"releasing table {table_id}")

    await notify_table_event("released", db_table.location_id, [db_table.id])
    return db_table


@router.post("/tables/release", response_model=TableBatchResponse)
async def release_many_tables(
    request: TableIds,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    tables = [get_authorized_table(db, current_user, table_id) for table_id in request.table_ids]
    busy = [table for table in tables if _held_by_active_order(db, table)]
    try:
        result = table_occupancy.release_tables(db, [t.id for t in tables if t not in busy])
        for table in busy:
            result.fail(table.id, f"Table is held by active order {table.current_order_id}")
            logger.warning(f"Skipped releasing table {table.id}: held by active order {table.current_order_id}")
        db.commit()
    except Exception as e:
        raise service_error(db, e, "releasing tables")

    if result.succeeded:
        await notify_table_event("released", tables[0].location_id, result.succeeded)
    return {"succeeded": result.succeeded, "failed": result.failed}


@router.post("/tables/switch", response_model=TableResponse)
async def switch_table(
    switch: TableSwitch,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    from_table = get_authorized_table(db, current_user, switch.from_table_id)
    to_table = get_authorized_table(db, current_user, switch.to_table_id)
    order = from_table.current_order

    try:
        table_occupancy.switch_table(db, from_table, to_table, order=order)
        if order is not None:
            record_history(db, order, "table_switched", current_user.id, {
                "from_table_id": from_table.id,
                "to_table_id": to_table.id,
            })
        db.commit()
        db.refresh(to_table)
    except Exception as e:
        raise service_error(db, e, f"switching table {switch.from_table_id} to {switch.to_table_id}")

    if order is not None:
        order_cache.invalidate(order.id)
    await notify_table_event("switched", to_table.location_id, [from_table.id, to_table.id],
                             order_id=to_table.current_order_id)
    return to_table


@router.post("/tables/merge", response_model=List[TableResponse])
async def merge_tables(
    merge: TableMerge,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    tables = [get_authorized_table(db, current_user, table_id) for table_id in merge.table_ids]
    try:
        table_occupancy.merge_tables(db, tables)
        db.commit()
        for table in tables:
            db.refresh(table)
    except Exception as e:
        raise service_error(db, e, "merging tables")

    await notify_table_event("merged", tables[0].location_id, merge.table_ids, merge_group=tables[0].merge_group)
    return tables


@router.post("/tables/split", response_model=TableBatchResponse)
async def split_tables(
    request: TableIds,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    tables = [get_authorized_table(db, current_user, table_id) for table_id in request.table_ids]
    # Splitting one member of a group splits the whole group
    members = {}
    for table in tables:
        for member in table_occupancy.merge_group_members(db, table):
            members[member.id] = member

    try:
        result = table_occupancy.split_tables(db, [members[key] for key in sorted(members)])
        db.commit()
    except Exception as e:
        raise service_error(db, e, "splitting tables")

    if result.succeeded:
        await notify_table_event("split", tables[0].location_id, result.succeeded)
    return {"succeeded": result.succeeded, "failed": result.failed}


@router.post("/tables/release-expired", response_model=List[TableResponse])
async def release_expired_reservations(
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    location_ids = get_authorized_location_ids(current_user, db)
    if location_id is not None and location_id not in location_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"No permission for location ID {location_id}")

    try:
        released = []
        for target in ([location_id] if location_id is not None else location_ids):
            released.extend(table_occupancy.release_expired_reservations(db, location_id=target))
        db.commit()
    except Exception as e:
        raise service_error(db, e, "releasing expired reservations")

    for table in released:
        await notify_table_event("expired", table.location_id, [table.id])
    return released


def sweep_expired_reservations(now: Optional[datetime] = None) -> List[tuple]:
    """One pass of the background sweep in its own session, returns (table_id, location_id) pairs."""
    db = SessionLocal()
    try:
        released = [
            (table.id, table.location_id)
            for table in table_occupancy.release_expired_reservations(db, now=now)
        ]
        db.commit()
        return released
    except Exception as e:
        db.rollback()
        logger.error(f"Reservation sweep failed: {str(e)}")
        return []
    finally:
        db.close()


async def reservation_sweeper(interval_seconds: int = RESERVATION_SWEEP_INTERVAL_SECONDS):
    logger.info(f"Reservation sweeper started, interval {interval_seconds}s")
    while True:
        await asyncio.sleep(interval_seconds)
        released = await asyncio.to_thread(sweep_expired_reservations)
        for table_id, location_id in released:
            await notify_table_event("expired", location_id, [table_id])
        if released:
            logger.info(f"Reservation sweep released {len(released)} table(s)")
