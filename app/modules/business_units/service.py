from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List, Optional
import logging

from app.common.exceptions import ConflictError, PersistenceError, ValidationError
from app.modules.auth.models import User
from app.modules.business_units.models import BusinessUnit, UserBusinessUnit
from app.modules.business_units.schemas import BusinessUnitCreate, BusinessUnitUpdate

logger = logging.getLogger(__name__)


class BusinessUnitService:
    """Servicio para gestión de unidades de negocio"""

    def __init__(self, db: Session):
        self.db = db

    def create_business_unit(self, unit_data: BusinessUnitCreate) -> BusinessUnit:
        """
        Crear nueva unidad de negocio

        Raises:
            ConflictError: Si ya existe una unidad con el mismo código
        """
        try:
            existing = self.db.query(BusinessUnit).filter(BusinessUnit.code == unit_data.code).first()
            if existing:
                raise ConflictError(f"A business unit with code '{unit_data.code}' already exists")

            unit = BusinessUnit(**unit_data.model_dump())
            self.db.add(unit)
            self.db.commit()
            self.db.refresh(unit)
            logger.info(f"Business unit created: {unit.code} (id={unit.id})")
            return unit

        except ConflictError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"A business unit with code '{unit_data.code}' already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating business unit: {e}", exc_info=True)
            raise PersistenceError("Error creating business unit") from e

    def get_business_unit(self, business_unit_id: int) -> Optional[BusinessUnit]:
        return self.db.get(BusinessUnit, business_unit_id)

    def get_business_units(self, active_only: bool = True) -> List[BusinessUnit]:
        query = self.db.query(BusinessUnit)
        if active_only:
            query = query.filter(BusinessUnit.is_active.is_(True))
        return query.order_by(BusinessUnit.code).all()

    def get_user_business_units(self, user_id: str) -> List[BusinessUnit]:
        """Unidades de negocio activas asignadas al usuario"""
        return self.db.query(BusinessUnit).join(
            UserBusinessUnit, UserBusinessUnit.business_unit_id == BusinessUnit.id
        ).filter(
            UserBusinessUnit.user_id == user_id,
            UserBusinessUnit.is_active.is_(True),
            BusinessUnit.is_active.is_(True)
        ).order_by(BusinessUnit.code).all()

    def update_business_unit(self, business_unit_id: int, update: BusinessUnitUpdate) -> Optional[BusinessUnit]:
        """Solo nombre, descripción, dirección y estado activo son editables."""
        unit = self.db.get(BusinessUnit, business_unit_id)
        if not unit:
            return None

        try:
            for field, value in update.model_dump(exclude_unset=True).items():
                setattr(unit, field, value)
            self.db.commit()
            self.db.refresh(unit)
            return unit
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating business unit {business_unit_id}: {e}", exc_info=True)
            raise PersistenceError("Error updating business unit") from e

    def assign_user(self, business_unit_id: int, user_id: str, is_active: bool = True) -> Optional[UserBusinessUnit]:
        """Asignar (o reactivar/desactivar) un usuario en la unidad de negocio"""
        unit = self.db.get(BusinessUnit, business_unit_id)
        if not unit:
            return None

        try:
            if not self.db.get(User, user_id):
                raise ValidationError(f"User '{user_id}' not found")

            assignment = self.db.query(UserBusinessUnit).filter(
                UserBusinessUnit.user_id == user_id,
                UserBusinessUnit.business_unit_id == business_unit_id
            ).first()

            if assignment:
                assignment.is_active = is_active
            else:
                assignment = UserBusinessUnit(
                    user_id=user_id,
                    business_unit_id=business_unit_id,
                    is_active=is_active
                )
                self.db.add(assignment)

            self.db.commit()
            self.db.refresh(assignment)
            logger.info(f"User {user_id} assigned to business unit {unit.code} (active={is_active})")
            return assignment

        except ValidationError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error assigning user {user_id} to business unit {business_unit_id}: {e}", exc_info=True)
            raise PersistenceError("Error assigning user to business unit") from e
