from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from app.common.validators import validate_code, normalize_code


class SalesCategoryCreate(BaseModel):
    code: Optional[str] = Field(None, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    is_active: bool = True

    @field_validator('code')
    @classmethod
    def validate_category_code(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_code(v, max_length=10):
            raise ValueError('Código de categoría inválido')
        return normalize_code(v)


class SalesCategoryOut(BaseModel):
    id: int
    code: Optional[str] = None
    name: str
    is_active: bool

    class Config:
        from_attributes = True


class SalesCategoryList(BaseModel):
    sales_categories: List[SalesCategoryOut]
