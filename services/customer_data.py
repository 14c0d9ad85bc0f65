"""Customer details collected at transfer or settlement, one record per order."""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from models.customer_data import CollectionSource, CustomerData
from models.order_management import PaymentMethod

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def upsert_customer_data(db: Session, order, name: Optional[str] = None, phone: Optional[str] = None,
                         city: Optional[str] = None, payment_method: Optional[PaymentMethod] = None,
                         source: CollectionSource = CollectionSource.STAFF, create: bool = True) -> Optional[CustomerData]:
    """Create or update the record for ``order``.

    Empty values never overwrite stored ones, and the source of the first
    collector is kept, so staff-collected data stays marked as staff after
    a manager settles the bill. With ``create=False`` only an existing
    record is touched.
    """
    record = db.query(CustomerData).filter(CustomerData.order_id == order.id).first()
    name, phone, city = _clean(name), _clean(phone), _clean(city)

    if record is None:
        if not create:
            return None
        record = CustomerData(
            order_id=order.id,
            location_id=order.location_id,
            name=name,
            phone=phone,
            city=city,
            payment_method=PaymentMethod(payment_method) if payment_method else None,
            source=CollectionSource(source),
            timestamp=datetime.utcnow(),
        )
        db.add(record)
        logger.info(f"Customer data recorded for order {order.id} by {CollectionSource(source).value}")
    else:
        if name:
            record.name = name
        if phone:
            record.phone = phone
        if city:
            record.city = city
        if payment_method:
            record.payment_method = PaymentMethod(payment_method)
        record.updated_at = datetime.utcnow()

    db.flush()
    return record


def list_customer_data(db: Session, location_ids: List[int], start: Optional[datetime] = None,
                       end: Optional[datetime] = None, source: Optional[CollectionSource] = None) -> List[CustomerData]:
    query = db.query(CustomerData).filter(CustomerData.location_id.in_(location_ids))
    if start is not None:
        query = query.filter(CustomerData.timestamp >= start)
    if end is not None:
        query = query.filter(CustomerData.timestamp <= end)
    if source is not None:
        query = query.filter(CustomerData.source == CollectionSource(source))
    return query.order_by(CustomerData.timestamp.desc()).all()
