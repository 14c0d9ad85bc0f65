import logging
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from services.errors import DuplicateCouponError

logger = logging.getLogger(__name__)

def validate_name_uniqueness(db: Session, model, name: str, exclude_id: int = None, **scope):
    """Validate that the name is unique within scope, e.g. location_id=3 or owner_id=1"""
    query = db.query(model).filter(model.name == name).filter_by(**scope)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)

    if query.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{model.__name__} with this name already exists"
        )

def service_error(db: Session, error: Exception, action: str) -> HTTPException:
    """Roll back and translate a failure raised while performing ``action``."""
    db.rollback()
    if isinstance(error, StaleDataError):
        logger.warning(f"Conflict while {action}: {str(error)}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The record was changed by another user, reload and try again"
        )
    if isinstance(error, DuplicateCouponError):
        logger.warning(f"Duplicate while {action}: {str(error)}")
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, ValueError):
        logger.warning(f"Rejected while {action}: {str(error)}")
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    logger.error(f"Error {action}: {str(error)}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}"
    )
