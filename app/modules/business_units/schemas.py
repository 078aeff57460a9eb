from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from app.common.validators import validate_code, normalize_code


class BusinessUnitCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    address: Optional[str] = Field(None, max_length=300)
    is_active: bool = True

    @field_validator('code')
    @classmethod
    def validate_unit_code(cls, v):
        if not validate_code(v):
            raise ValueError('Código inválido: use letras, números y . _ - /')
        return normalize_code(v)


class BusinessUnitUpdate(BaseModel):
    """El código no se puede modificar"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    address: Optional[str] = Field(None, max_length=300)
    is_active: Optional[bool] = None


class BusinessUnitOut(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BusinessUnitList(BaseModel):
    business_units: List[BusinessUnitOut]


class UserBusinessUnitAssign(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=450)
    is_active: bool = True


class UserBusinessUnitOut(BaseModel):
    id: int
    user_id: str
    business_unit_id: int
    is_active: bool
    assigned_at: Optional[datetime] = None

    class Config:
        from_attributes = True
