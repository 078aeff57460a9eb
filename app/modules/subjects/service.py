from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Optional
import logging

from app.common.exceptions import ConflictError, PersistenceError
from app.modules.subjects.models import Subject
from app.modules.subjects.schemas import SubjectCreate

logger = logging.getLogger(__name__)


class SubjectService:
    """Compradores y proveedores"""

    def __init__(self, db: Session):
        self.db = db

    def create_subject(self, subject_data: SubjectCreate) -> Subject:
        try:
            existing = self.db.query(Subject).filter(Subject.code == subject_data.code).first()
            if existing:
                raise ConflictError(f"A subject with code '{subject_data.code}' already exists")

            subject = Subject(**subject_data.model_dump())
            self.db.add(subject)
            self.db.commit()
            self.db.refresh(subject)
            return subject

        except ConflictError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"A subject with code '{subject_data.code}' already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating subject: {e}", exc_info=True)
            raise PersistenceError("Error creating subject") from e

    def get_subject(self, subject_id: int) -> Optional[Subject]:
        return self.db.get(Subject, subject_id)

    def get_buyer(self, buyer_id: Optional[int]) -> Optional[Subject]:
        """Sujeto activo marcado como comprador, o None"""
        if not buyer_id or buyer_id <= 0:
            return None
        return self.db.query(Subject).filter(
            Subject.id == buyer_id,
            Subject.is_buyer.is_(True),
            Subject.is_active.is_(True)
        ).first()
