from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional
from datetime import datetime
from app.common.validators import validate_code, normalize_code


class ArticleCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    barcode: Optional[str] = Field(None, max_length=50)
    description: str = Field(..., min_length=1, max_length=300)
    unit_id: Optional[int] = None
    currency_id: Optional[int] = None
    vat_rate_id: Optional[int] = None
    price: Decimal = Field(Decimal("0"), ge=0, description="Precio sin IVA")
    stock_quantity: Decimal = Field(Decimal("0"), description="Existencia inicial")

    @field_validator('code')
    @classmethod
    def validate_article_code(cls, v):
        if not validate_code(v):
            raise ValueError('Código inválido: use letras, números y . _ - /')
        return normalize_code(v)


class ArticleOut(BaseModel):
    id: int
    code: str
    barcode: Optional[str] = None
    description: str
    unit_id: Optional[int] = None
    currency_id: Optional[int] = None
    vat_rate_id: Optional[int] = None
    price: Decimal
    stock_quantity: Decimal
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
