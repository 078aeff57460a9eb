from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Optional
import logging

from app.common.exceptions import ConflictError, PersistenceError, ValidationError
from app.modules.articles.models import Article, Unit, Currency, VATRate
from app.modules.articles.schemas import ArticleCreate

logger = logging.getLogger(__name__)


class ArticleService:
    """Service for article (inventory item) management."""

    def __init__(self, db: Session):
        self.db = db

    def create_article(self, article_data: ArticleCreate) -> Article:
        try:
            if self.db.query(Article).filter(Article.code == article_data.code).first():
                raise ConflictError(f"An article with code '{article_data.code}' already exists")

            for model, value, label in (
                (Unit, article_data.unit_id, "Unit"),
                (Currency, article_data.currency_id, "Currency"),
                (VATRate, article_data.vat_rate_id, "VAT rate"),
            ):
                if value is not None and not self.db.get(model, value):
                    raise ValidationError(f"{label} with ID {value} not found")

            article = Article(**article_data.model_dump())
            self.db.add(article)
            self.db.commit()
            self.db.refresh(article)
            logger.info(f"Article created: {article.code} (id={article.id})")
            return article

        except (ConflictError, ValidationError):
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"An article with code '{article_data.code}' already exists") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating article: {e}", exc_info=True)
            raise PersistenceError("Error creating article") from e

    def get_article(self, article_id: int) -> Optional[Article]:
        return self.db.get(Article, article_id)

    def get_article_by_code(self, code: str) -> Optional[Article]:
        return self.db.query(Article).filter(Article.code == code).first()
