from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from app.common.exceptions import ArticleNotFoundError, StockAdjustmentError
from app.modules.articles.models import Article

logger = logging.getLogger(__name__)

# (article_id, signed delta). delta > 0 removes stock, delta < 0 adds it back.
StockAdjustment = Tuple[int, Decimal]


class StockAdjuster:
    """
    Applies a batch of stock deltas to articles inside the caller's transaction.

    Never commits: the owning operation commits or rolls back the whole batch
    together with the invoice changes that produced it.
    """

    def __init__(self, db: Session):
        self.db = db

    def apply_adjustments(self, adjustments: Iterable[StockAdjustment]) -> List[Article]:
        """
        Set `stock_quantity -= delta` for every (article_id, delta).

        All referenced rows are locked up front in id order. Deltas for the same
        article are applied one after another on the same row, so they add up.
        A missing article aborts the batch before anything is touched.
        Stock is allowed to go negative.
        """
        adjustments = [(article_id, Decimal(delta)) for article_id, delta in adjustments]
        if not adjustments:
            return []

        article_ids = sorted({article_id for article_id, _ in adjustments})
        try:
            articles = self.db.execute(
                select(Article)
                .where(Article.id.in_(article_ids))
                .order_by(Article.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error locking articles {article_ids}: {e}")
            raise StockAdjustmentError("Could not lock articles for stock adjustment") from e

        by_id = {article.id: article for article in articles}
        for article_id, _ in adjustments:
            if article_id not in by_id:
                logger.warning(f"Stock adjustment aborted, article {article_id} not found")
                raise ArticleNotFoundError(article_id)

        for article_id, delta in adjustments:
            article = by_id[article_id]
            before = Decimal(article.stock_quantity or 0)
            article.stock_quantity = before - delta
            logger.debug(f"Article {article.code}: stock {before} -> {article.stock_quantity} (delta {delta})")

        try:
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error flushing stock adjustments: {e}")
            raise StockAdjustmentError("Could not persist stock adjustment") from e

        logger.info(f"Applied {len(adjustments)} stock adjustment(s) on articles {article_ids}")
        return [by_id[article_id] for article_id in article_ids]


class InventoryService:
    """Read-only stock queries."""

    def __init__(self, db: Session):
        self.db = db

    def get_article_stock(self, article_id: int) -> Optional[Article]:
        return self.db.get(Article, article_id)

    def get_negative_stock_articles(self, limit: int = 100, offset: int = 0) -> dict:
        """Articles sold beyond what was in stock (oversell tracking), most negative first."""
        query = self.db.query(Article).filter(Article.stock_quantity < 0)
        total = query.count()
        articles = query.order_by(Article.stock_quantity.asc(), Article.id).offset(offset).limit(limit).all()
        return {
            "articles": articles,
            "total": total,
            "limit": limit,
            "offset": offset
        }
