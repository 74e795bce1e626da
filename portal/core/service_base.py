"""
Base Service Class with Enhanced Error Handling
"""

import logging
from typing import Optional, Any, Dict
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from portal.core.events import EventBus, event_bus
from portal.core.exceptions import (
    ConflictError,
    DatabaseError,
    ResourceNotFoundError,
    ValidationError
)

logger = logging.getLogger(__name__)


class BaseService:
    """Base service class with common error handling patterns."""

    def __init__(self, db: Session, events: Optional[EventBus] = None):
        self.db = db
        self.events = events or event_bus

    def safe_commit(self, error_message: str = "Database operation failed", conflict_message: str = None) -> bool:
        """Commit the current transaction, rolling back on any failure."""
        try:
            self.db.commit()
            return True
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error during commit: {str(e)}")
            raise ConflictError(
                detail=conflict_message or "Conflicting write rejected",
                error_data={"original_error": str(e.orig)}
            )
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Stale version during commit: {str(e)}")
            raise ConflictError(
                detail=conflict_message or "Record was modified concurrently",
                error_data={"original_error": str(e)}
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error during commit: {str(e)}")
            raise DatabaseError(
                detail=error_message,
                error_data={"original_error": str(e)}
            )

    def safe_rollback(self):
        """Rollback, logging instead of masking the original failure."""
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Error during rollback: {str(e)}")

    def get_or_404(self, model_class, resource_id, resource_type: str = None):
        """Get resource by ID or raise 404 error."""
        try:
            resource = self.db.get(model_class, resource_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error in get_or_404: {str(e)}")
            raise DatabaseError(
                detail=f"Error retrieving {resource_type or model_class.__name__}",
                error_data={"resource_id": str(resource_id), "original_error": str(e)}
            )

        if not resource:
            raise ResourceNotFoundError(
                resource_type=resource_type or model_class.__name__,
                resource_id=str(resource_id)
            )

        return resource

    def paginate_query(self, query, skip: int = 0, limit: int = 100):
        """Apply pagination to query with validation."""
        if skip < 0:
            raise ValidationError(
                detail="Skip parameter cannot be negative",
                field="skip",
                value=skip
            )

        if limit <= 0 or limit > 1000:
            raise ValidationError(
                detail="Limit parameter must be between 1 and 1000",
                field="limit",
                value=limit
            )

        return query.offset(skip).limit(limit)

    def log_service_action(
        self,
        action: str,
        resource_type: str = None,
        resource_id: str = None,
        extra_data: Dict[str, Any] = None
    ):
        """Log service actions for auditing."""
        log_data = {
            "action": action,
            "service": self.__class__.__name__
        }

        if resource_type:
            log_data["resource_type"] = resource_type
        if resource_id:
            log_data["resource_id"] = resource_id
        if extra_data:
            log_data.update(extra_data)

        logger.info(f"Service action: {action}", extra=log_data)
