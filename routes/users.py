from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from models.user import User, UserRole
from models.location import Location
from utils.auth import (
    get_current_active_user,
    get_current_owner,
    get_authorized_location_ids,
    verify_password,
    get_password_hash,
    create_access_token,
    generate_unique_pin,
)
from utils.config import SECRET_KEY
from utils.database import get_db
from schemas.user import AdminSetup, UserCreate, UserResponse, UserUpdate, Token, LoginRequest
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/setup-admin", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def setup_super_admin(
    user: AdminSetup,
    admin_secret: str,
    db: Session = Depends(get_db)
):
    """
    Initial Super Admin setup - only available when no Super Admin exists
    """
    try:
        logger.info(f"Attempting to setup Super Admin with email: {user.email}")

        if db.query(User).filter(User.role == UserRole.SUPERADMIN).first():
            logger.warning("Attempt to setup Super Admin when one already exists")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Super Admin already exists. Use the regular registration endpoint."
            )

        if admin_secret != SECRET_KEY:
            logger.warning("Invalid secret key provided for Super Admin setup")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid secret key for Super Admin setup"
            )

        db_user = User(
            email=user.email,
            username=user.username,
            hashed_password=get_password_hash(user.password),
            pin=generate_unique_pin(db),
            role=UserRole.SUPERADMIN,
            is_active=True,
        )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"Super Admin setup successfully: {db_user.email} (ID: {db_user.id})")
        return db_user

    except HTTPException as e:
        db.rollback()
        logger.warning(f"Super Admin setup failed for {user.email}: {e.detail}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error setting up Super Admin {user.email}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to setup Super Admin"
        )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_owner)
):
    """Owners register managers and staff for their own locations; the super admin registers anyone."""
    try:
        logger.info(f"User {current_user.id} registering {user.role.value} {user.email}")

        if user.role == UserRole.SUPERADMIN:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Use setup-admin to create a Super Admin")
        if current_user.role != UserRole.SUPERADMIN and user.role == UserRole.OWNER:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only a Super Admin can register owners")

        if user.location_id is not None:
            if not db.query(Location).filter(Location.id == user.location_id).first():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Location ID {user.location_id} not found"
                )
            if user.location_id not in get_authorized_location_ids(current_user, db):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"No permission to add users to location ID {user.location_id}"
                )

        if db.query(User).filter(User.email == user.email).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        if db.query(User).filter(User.username == user.username).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already taken")

        db_user = User(
            email=user.email,
            username=user.username,
            name=user.name,
            hashed_password=get_password_hash(user.password),
            pin=generate_unique_pin(db),
            role=user.role,
            is_active=True,
            location_id=user.location_id,
        )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"User registered successfully: {db_user.email} (ID: {db_user.id}, Role: {db_user.role}, Location ID: {db_user.location_id})")
        return db_user

    except HTTPException as e:
        db.rollback()
        logger.warning(f"Registration failed for {user.email}: {e.detail}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error registering user {user.email}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register user"
        )


@router.post("/login", response_model=Token)
async def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    if login_data.pin:
        # PIN-based login
        user = db.query(User).filter(
            User.pin == login_data.pin,
            User.username == login_data.username
        ).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect username or PIN",
                headers={"WWW-Authenticate": "Bearer"},
            )
    else:
        user = db.query(User).filter(User.username == login_data.username).first()
        if not user or not verify_password(login_data.password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect username or password",
                headers={"WWW-Authenticate": "Bearer"},
            )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    access_token = create_access_token(data={"sub": user.username, "role": user.role.value})
    logger.info(f"User {user.id} logged in")
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user


@router.get("", response_model=List[UserResponse])
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_owner),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)

    if current_user.role != UserRole.SUPERADMIN:
        location_ids = get_authorized_location_ids(current_user, db)
        query = query.filter((User.location_id.in_(location_ids)) | (User.id == current_user.id))

    return query.order_by(User.id.desc()).all()


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_update: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_owner)
):
    try:
        db_user = db.query(User).filter(User.id == user_id).first()
        if not db_user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        if current_user.role != UserRole.SUPERADMIN:
            location_ids = get_authorized_location_ids(current_user, db)
            if db_user.location_id not in location_ids:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You can only modify users at your locations"
                )
            if user_update.location_id is not None and user_update.location_id not in location_ids:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"No permission for location ID {user_update.location_id}"
                )
            if user_update.role in (UserRole.SUPERADMIN, UserRole.OWNER):
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot grant this role")

        for field, value in user_update.model_dump(exclude_unset=True).items():
            setattr(db_user, field, value)
        db_user.updated_at = datetime.utcnow()

        db.commit()
        db.refresh(db_user)
        logger.info(f"User {db_user.id} updated by {current_user.id}")
        return db_user

    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating user {user_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error updating user: {str(e)}"
        )
