from datetime import datetime, timedelta
import random
from typing import List
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from utils.config import SECRET_KEY, ACCESS_TOKEN_EXPIRE_MINUTES
from utils.database import get_db
from models.user import User, UserRole
from models.location import Franchise, Location
from schemas.user import TokenData

# JWT Configuration
ALGORITHM = "HS256"

# Use HTTPBearer for simpler JWT token authentication
bearer_scheme = HTTPBearer()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def generate_unique_pin(db: Session) -> str:
    """Generate a unique 6-digit PIN that doesn't exist in the database."""
    while True:
        pin = str(random.randint(100000, 999999))
        if not db.query(User).filter(User.pin == pin).first():
            return pin

def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        token = credentials.credentials
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username)
    except JWTError as e:
        if "expired" in str(e).lower():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            )
        raise credentials_exception

    user = db.query(User).filter(User.username == token_data.username).first()
    if user is None:
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user

async def get_current_super_admin(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.role != UserRole.SUPERADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only super admin can perform this action"
        )
    return current_user

async def get_current_owner(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.role not in [UserRole.OWNER, UserRole.SUPERADMIN]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only franchise owners can perform this action"
        )
    return current_user

async def get_current_manager(current_user: User = Depends(get_current_active_user)) -> User:
    """Managers settle bills, manage coupons and rearrange tables."""
    if not current_user.is_manager:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only managers can perform this action"
        )
    if current_user.requires_location and not current_user.location_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager must be assigned to a location"
        )
    return current_user

async def get_current_staff(current_user: User = Depends(get_current_active_user)) -> User:
    """Any floor user: staff, or a manager/owner/superadmin acting on the floor."""
    if current_user.requires_location and not current_user.location_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff must be assigned to a location"
        )
    return current_user


def get_authorized_location_ids(current_user: User, db: Session) -> List[int]:
    if current_user.role == UserRole.SUPERADMIN:
        return [location.id for location in db.query(Location).all()]
    elif current_user.role == UserRole.OWNER:
        franchise_ids = [franchise.id for franchise in db.query(Franchise).filter(Franchise.owner_id == current_user.id).all()]
        return [location.id for location in db.query(Location).filter(Location.franchise_id.in_(franchise_ids)).all()]
    elif current_user.role in [UserRole.MANAGER, UserRole.STAFF]:
        if not current_user.location_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User not assigned to any location")
        return [current_user.location_id]
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid user role")


def ensure_location_access(current_user: User, db: Session, location_id: int):
    if location_id not in get_authorized_location_ids(current_user, db):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"No permission for location ID {location_id}"
        )
