from pydantic import BaseModel
from decimal import Decimal
from typing import List, Optional


class ArticleStockOut(BaseModel):
    id: int
    code: str
    description: str
    barcode: Optional[str] = None
    stock_quantity: Decimal

    class Config:
        from_attributes = True


class NegativeStockReport(BaseModel):
    articles: List[ArticleStockOut]
    total: int
    limit: int
    offset: int
