from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime
from app.common.validators import validate_code, normalize_code


class SubjectCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    subject_name: str = Field(..., min_length=1, max_length=200)
    is_buyer: bool = False
    is_furnitor: bool = False
    vat_number: Optional[str] = Field(None, max_length=30)
    fiscal_number: Optional[str] = Field(None, max_length=30)
    is_vat_payer: bool = False
    address: Optional[str] = Field(None, max_length=300)
    city: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=100)

    @field_validator('code')
    @classmethod
    def validate_subject_code(cls, v):
        if not validate_code(v):
            raise ValueError('Código inválido: use letras, números y . _ - /')
        return normalize_code(v)

    @model_validator(mode='after')
    def validate_role(self):
        if not self.is_buyer and not self.is_furnitor:
            raise ValueError('El sujeto debe ser comprador, proveedor o ambos')
        return self


class SubjectOut(BaseModel):
    id: int
    code: str
    subject_name: str
    is_buyer: bool
    is_furnitor: bool
    vat_number: Optional[str] = None
    fiscal_number: Optional[str] = None
    is_vat_payer: bool
    address: Optional[str] = None
    city: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
