from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.dependencies.dbDependecies import get_db
from app.modules.inventory.service import InventoryService
from app.modules.inventory.schemas import ArticleStockOut, NegativeStockReport

stock_router = APIRouter(prefix="/inventory", tags=["Inventory"])


@stock_router.get("/negative-stock", response_model=NegativeStockReport)
def get_negative_stock(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    """Articles with stock below zero (sold beyond existence)."""
    service = InventoryService(db)
    return service.get_negative_stock_articles(limit, offset)


@stock_router.get("/articles/{article_id}", response_model=ArticleStockOut)
def get_article_stock(
    article_id: int,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)
):
    """Get current stock for an article."""
    service = InventoryService(db)
    article = service.get_article_stock(article_id)
    if not article:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Article not found"
        )
    return article
