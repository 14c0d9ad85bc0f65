from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime, time
import logging

from utils.database import get_db
from models.customer_data import CollectionSource, CustomerData
from models.order_management import Order
from models.user import User
from schemas.customer_data import CustomerDataResponse, CustomerDataUpsert
from services.customer_data import list_customer_data, upsert_customer_data
from utils.auth import get_current_manager, get_current_staff, get_authorized_location_ids
from utils.csv_export import build_userbase_csv, userbase_filename
from utils.validators import service_error

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/customer-data", tags=["customer-data"])


def _scope(db: Session, current_user: User, location_id: Optional[int]) -> List[int]:
    location_ids = get_authorized_location_ids(current_user, db)
    if location_id is None:
        return location_ids
    if location_id not in location_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"No permission for location ID {location_id}")
    return [location_id]


def _day_bounds(start: Optional[date], end: Optional[date]):
    return (
        datetime.combine(start, time.min) if start else None,
        datetime.combine(end, time.max) if end else None,
    )


@router.get("", response_model=List[CustomerDataResponse])
async def list_records(
    location_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    source: Optional[CollectionSource] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    start, end = _day_bounds(start_date, end_date)
    return list_customer_data(db, _scope(db, current_user, location_id), start, end, source)


@router.get("/export")
async def export_userbase(
    location_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    start, end = _day_bounds(start_date, end_date)
    records = list_customer_data(db, _scope(db, current_user, location_id), start, end)
    content = build_userbase_csv(records)
    if content is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No customer records with phone numbers in this range")

    filename = userbase_filename(start_date, end_date)
    logger.info(f"User {current_user.id} exported userbase {filename}")
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/order/{order_id}", response_model=CustomerDataResponse)
async def get_record(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    record = db.query(CustomerData).filter(
        CustomerData.order_id == order_id,
        CustomerData.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer data not found")
    return record


@router.put("/order/{order_id}", response_model=CustomerDataResponse)
async def upsert_record(
    order_id: int,
    data: CustomerDataUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff)
):
    order = db.query(Order).filter(
        Order.id == order_id,
        Order.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found or unauthorized")

    try:
        record = upsert_customer_data(
            db, order,
            name=data.name,
            phone=data.phone,
            city=data.city,
            payment_method=data.payment_method,
            source=CollectionSource.MANAGER if current_user.is_manager else CollectionSource.STAFF,
        )
        db.commit()
        db.refresh(record)
        return record
    except Exception as e:
        raise service_error(db, e, f"saving customer data for order {order_id}")


@router.delete("/order/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    record = db.query(CustomerData).filter(
        CustomerData.order_id == order_id,
        CustomerData.location_id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer data not found")
    try:
        db.delete(record)
        db.commit()
        logger.info(f"Customer data for order {order_id} deleted by user {current_user.id}")
    except Exception as e:
        raise service_error(db, e, f"deleting customer data for order {order_id}")
