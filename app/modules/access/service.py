from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List, Optional
import logging

from app.common.exceptions import ConflictError, PersistenceError, ValidationError
from app.modules.access.models import Module, Submodule, UserModuleAccess
from app.modules.auth.models import User
from app.modules.business_units.models import UserBusinessUnit

logger = logging.getLogger(__name__)

SALES_MODULE = "Sales"


class AccessService:
    """Servicio de permisos por unidad de negocio y por módulo"""

    def __init__(self, db: Session):
        self.db = db

    def has_business_unit_access(self, user_id: str, business_unit_id: int) -> bool:
        """True si el usuario tiene una asignación activa a la unidad de negocio."""
        grant = self.db.query(UserBusinessUnit).filter(
            UserBusinessUnit.user_id == user_id,
            UserBusinessUnit.business_unit_id == business_unit_id,
            UserBusinessUnit.is_active.is_(True)
        ).first()
        return grant is not None

    def has_module_access(self, user_id: str, module_name: str, submodule_name: Optional[str] = None) -> bool:
        """
        True si el usuario tiene acceso al módulo.

        Con submodule_name se exige el permiso del submódulo; un permiso a nivel
        de módulo (submodule_id NULL) cubre todos sus submódulos.
        """
        query = self.db.query(UserModuleAccess).join(Module, UserModuleAccess.module_id == Module.id).filter(
            UserModuleAccess.user_id == user_id,
            UserModuleAccess.has_access.is_(True),
            Module.name == module_name
        )

        if submodule_name is None:
            return query.first() is not None

        if query.filter(UserModuleAccess.submodule_id.is_(None)).first() is not None:
            return True

        return query.join(Submodule, UserModuleAccess.submodule_id == Submodule.id).filter(
            Submodule.name == submodule_name
        ).first() is not None

    def has_access_to_page(self, user_id: str, page_url: str) -> bool:
        """Acceso por URL de página (submódulo)."""
        submodule = self.db.query(Submodule).filter(Submodule.page_url == page_url).first()
        if not submodule:
            return False
        return self.has_module_access(user_id, submodule.module.name, submodule.name)

    def get_allowed_modules(self, user_id: str) -> List[Module]:
        return self.db.query(Module).join(UserModuleAccess, UserModuleAccess.module_id == Module.id).filter(
            UserModuleAccess.user_id == user_id,
            UserModuleAccess.has_access.is_(True)
        ).distinct().order_by(Module.sort_order, Module.name).all()

    def grant_module_access(self, user_id: str, module_name: str, submodule_name: Optional[str] = None) -> UserModuleAccess:
        """Otorgar (o reactivar) un permiso de módulo"""
        try:
            if not self.db.get(User, user_id):
                raise ValidationError(f"User '{user_id}' not found")

            module = self.db.query(Module).filter(Module.name == module_name).first()
            if not module:
                raise ValidationError(f"Module '{module_name}' not found")

            submodule_id = None
            if submodule_name:
                submodule = self.db.query(Submodule).filter(
                    Submodule.module_id == module.id,
                    Submodule.name == submodule_name
                ).first()
                if not submodule:
                    raise ValidationError(f"Submodule '{submodule_name}' not found in module '{module_name}'")
                submodule_id = submodule.id

            grant = self.db.query(UserModuleAccess).filter(
                UserModuleAccess.user_id == user_id,
                UserModuleAccess.module_id == module.id,
                UserModuleAccess.submodule_id == submodule_id if submodule_id else UserModuleAccess.submodule_id.is_(None)
            ).first()

            if grant:
                grant.has_access = True
            else:
                grant = UserModuleAccess(
                    user_id=user_id,
                    module_id=module.id,
                    submodule_id=submodule_id,
                    has_access=True
                )
                self.db.add(grant)

            self.db.commit()
            self.db.refresh(grant)
            logger.info(f"Module access granted: user={user_id} module={module_name} submodule={submodule_name}")
            return grant

        except ValidationError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("Module access already granted") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error granting module access: {e}", exc_info=True)
            raise PersistenceError("Error granting module access") from e
