from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import logging

from utils.database import get_db
from models.location import Franchise, Location
from models.user import User, UserRole
from schemas.location import (
    FranchiseCreate, FranchiseResponse, LocationCreate, LocationResponse, LocationSettingsUpdate
)
from utils.auth import get_current_active_user, get_current_manager, get_current_owner, get_authorized_location_ids
from utils.config import DEFAULT_CGST_RATE, DEFAULT_SGST_RATE
from utils.validators import validate_name_uniqueness

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["locations"])


@router.post("/franchises", response_model=FranchiseResponse, status_code=status.HTTP_201_CREATED)
async def create_franchise(
    franchise: FranchiseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_owner)
):
    owner_id = franchise.owner_id if current_user.role == UserRole.SUPERADMIN and franchise.owner_id else current_user.id
    owner = db.query(User).filter(User.id == owner_id).first()
    if not owner:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User with ID {owner_id} not found")

    validate_name_uniqueness(db, Franchise, franchise.name, owner_id=owner_id)

    db_franchise = Franchise(name=franchise.name, owner_id=owner_id, status=franchise.status)
    db.add(db_franchise)
    db.commit()
    db.refresh(db_franchise)
    logger.info(f"Franchise {db_franchise.id} created for owner {owner_id}")
    return db_franchise


@router.get("/franchises", response_model=List[FranchiseResponse])
async def list_franchises(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_owner)
):
    query = db.query(Franchise)
    if current_user.role != UserRole.SUPERADMIN:
        query = query.filter(Franchise.owner_id == current_user.id)
    return query.order_by(Franchise.id).all()


@router.post("/locations", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
async def create_location(
    location: LocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_owner)
):
    if location.franchise_id is not None:
        franchise = db.query(Franchise).filter(Franchise.id == location.franchise_id).first()
        if not franchise:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Franchise not found")
        if current_user.role != UserRole.SUPERADMIN and franchise.owner_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Franchise belongs to another owner")
    elif current_user.role != UserRole.SUPERADMIN:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Owners must create locations inside a franchise")

    db_location = Location(
        franchise_id=location.franchise_id,
        name=location.name,
        address=location.address,
        city=location.city,
        phone=location.phone,
        cgst_rate=location.cgst_rate if location.cgst_rate is not None else DEFAULT_CGST_RATE,
        sgst_rate=location.sgst_rate if location.sgst_rate is not None else DEFAULT_SGST_RATE,
        service_charge_rate=location.service_charge_rate,
    )
    db.add(db_location)
    db.commit()
    db.refresh(db_location)
    logger.info(f"Location {db_location.id} created by user {current_user.id}")
    return db_location


@router.get("/locations", response_model=List[LocationResponse])
async def list_locations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    location_ids = get_authorized_location_ids(current_user, db)
    return db.query(Location).filter(Location.id.in_(location_ids)).order_by(Location.id).all()


@router.get("/locations/{location_id}", response_model=LocationResponse)
async def get_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    location = db.query(Location).filter(
        Location.id == location_id,
        Location.id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found or unauthorized")
    return location


@router.put("/locations/{location_id}/settings", response_model=LocationResponse)
async def update_location_settings(
    location_id: int,
    settings: LocationSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_manager)
):
    """Tax and service charge rates apply to totals computed after the change."""
    location = db.query(Location).filter(
        Location.id == location_id,
        Location.id.in_(get_authorized_location_ids(current_user, db))
    ).first()
    if not location:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found or unauthorized")

    for field, value in settings.model_dump(exclude_unset=True).items():
        setattr(location, field, value)

    db.commit()
    db.refresh(location)
    logger.info(f"Location {location.id} settings updated by user {current_user.id}")
    return location
