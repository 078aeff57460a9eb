from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List, Optional
import logging

from app.core.config import settings
from app.common.exceptions import ConflictError, PersistenceError
from app.modules.sales_categories.models import SalesCategory
from app.modules.sales_categories.schemas import SalesCategoryCreate

logger = logging.getLogger(__name__)


class SalesCategoryService:
    def __init__(self, db: Session):
        self.db = db

    def create_category(self, category_data: SalesCategoryCreate) -> SalesCategory:
        try:
            category = SalesCategory(**category_data.model_dump())
            self.db.add(category)
            self.db.commit()
            self.db.refresh(category)
            return category
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"A sales category with code '{category_data.code}' already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating sales category: {e}", exc_info=True)
            raise PersistenceError("Error creating sales category") from e

    def get_categories(self, active_only: bool = True) -> List[SalesCategory]:
        query = self.db.query(SalesCategory)
        if active_only:
            query = query.filter(SalesCategory.is_active.is_(True))
        return query.order_by(SalesCategory.id).all()

    def get_category(self, category_id: int) -> Optional[SalesCategory]:
        return self.db.get(SalesCategory, category_id)

    def get_by_code(self, code: str) -> Optional[SalesCategory]:
        return self.db.query(SalesCategory).filter(SalesCategory.code == code).first()

    def get_default_category_id(self) -> int:
        """
        Id de la categoría doméstica (DEFAULT_SALES_CATEGORY_CODE).
        Si no existe se usa FALLBACK_SALES_CATEGORY_ID.
        """
        category = self.get_by_code(settings.DEFAULT_SALES_CATEGORY_CODE)
        if category:
            return category.id
        logger.warning(
            f"Sales category '{settings.DEFAULT_SALES_CATEGORY_CODE}' not found, "
            f"falling back to id {settings.FALLBACK_SALES_CATEGORY_ID}"
        )
        return settings.FALLBACK_SALES_CATEGORY_ID
