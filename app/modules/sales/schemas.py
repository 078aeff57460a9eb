from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from datetime import date, datetime

from app.common.validators import round_amount


# Invoice Item Schemas
class SalesInvoiceItemBase(BaseModel):
    article_id: Optional[int] = None
    article_code: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=300)
    barcode: Optional[str] = Field(None, max_length=50)

    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_id: Optional[int] = None
    unit_code: Optional[str] = Field(None, max_length=10)

    # Valores calculados por el cliente; el servidor solo los suma
    price_without_vat: Decimal = Decimal("0")
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    discount_amount: Decimal = Decimal("0")
    price_with_vat: Decimal = Decimal("0")
    vat_percent: Decimal = Field(Decimal("0"), ge=0)
    vat_amount: Decimal = Decimal("0")
    value_without_vat: Decimal = Decimal("0")
    value_with_vat: Decimal = Decimal("0")

    currency_id: Optional[int] = None
    currency_code: Optional[str] = Field(None, max_length=3)
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)

    # Solo para devoluciones
    original_invoice_item_id: Optional[int] = None

    @field_validator(
        'quantity', 'price_without_vat', 'discount_percent', 'discount_amount', 'price_with_vat',
        'vat_percent', 'vat_amount', 'value_without_vat', 'value_with_vat'
    )
    @classmethod
    def round_to_column_scale(cls, v, info):
        # Se guardan con 4 decimales: los totales se suman sobre los valores ya redondeados
        v = round_amount(v)
        if info.field_name == 'quantity' and v <= 0:
            raise ValueError('Cantidad debe ser mayor a 0 con 4 decimales')
        return v


class SalesInvoiceItemCreate(SalesInvoiceItemBase):
    pass


class SalesInvoiceItemUpdate(SalesInvoiceItemBase):
    id: Optional[int] = Field(None, description="Id del item existente; vacío para un item nuevo")


class SalesInvoiceItemOut(SalesInvoiceItemBase):
    id: int
    original_quantity: Optional[Decimal] = None

    class Config:
        from_attributes = True


# Invoice Schemas
class SalesInvoiceCreate(BaseModel):
    invoice_date: date = Field(default_factory=date.today)
    invoice_expiry_date: Optional[date] = None
    buyer_id: int
    sales_category_id: Optional[int] = Field(None, description="Vacío o <= 0 usa la categoría doméstica")

    is_return: bool = False
    original_invoice_id: Optional[int] = None
    return_reason: Optional[str] = None

    items: List[SalesInvoiceItemCreate] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_expiry_date(self):
        if self.invoice_expiry_date and self.invoice_date and self.invoice_expiry_date < self.invoice_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de la factura')
        return self


class SalesInvoiceUpdate(BaseModel):
    invoice_date: Optional[date] = None
    invoice_expiry_date: Optional[date] = None
    buyer_id: Optional[int] = None
    return_reason: Optional[str] = None
    # Ignorado: el número asignado al crear es inmutable
    invoice_number: Optional[str] = None

    items: Optional[List[SalesInvoiceItemUpdate]] = Field(None, description="Lista final de items; omitir para no cambiar los items")

    @field_validator('items')
    @classmethod
    def validate_item_ids(cls, v):
        if v is None:
            return v
        ids = [item.id for item in v if item.id is not None]
        if len(ids) != len(set(ids)):
            raise ValueError('Un item existente no puede aparecer dos veces')
        return v


class SalesInvoiceSummary(BaseModel):
    id: int
    invoice_number: str
    sequential_number: int
    business_unit_id: int
    sales_category_id: int
    invoice_date: date
    buyer_id: int
    buyer_code: Optional[str] = None
    buyer_name: Optional[str] = None
    total_with_vat: Decimal
    is_posted: bool
    is_cancelled: bool
    is_return: bool

    class Config:
        from_attributes = True


class SalesInvoiceOut(SalesInvoiceSummary):
    invoice_expiry_date: Optional[date] = None

    total_without_vat: Decimal
    total_vat_amount: Decimal
    total_discount_amount: Decimal

    posted_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    original_invoice_id: Optional[int] = None
    original_invoice_number: Optional[str] = None
    return_reason: Optional[str] = None

    created_by_user_id: str
    created_at: Optional[datetime] = None
    last_modified_by_user_id: Optional[str] = None
    last_modified_at: Optional[datetime] = None

    items: List[SalesInvoiceItemOut] = []

    class Config:
        from_attributes = True


class SalesInvoiceList(BaseModel):
    invoices: List[SalesInvoiceSummary]


class SalesCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, description="Motivo de la anulación")


class ReturnableQuantityOut(BaseModel):
    original_invoice_item_id: int
    returnable_quantity: Decimal


# Invoice Number Format Schemas
class InvoiceNumberFormatConfigure(BaseModel):
    use_year: Optional[bool] = None
    use_sales_category_code: Optional[bool] = None
    use_business_unit_code: Optional[bool] = None
    use_sequential_number: Optional[bool] = None
    separator: Optional[str] = None
    sequential_number_length: Optional[int] = None


class InvoiceNumberFormatOut(BaseModel):
    id: int
    business_unit_id: int
    sales_category_id: int
    use_year: bool
    use_sales_category_code: bool
    use_business_unit_code: bool
    use_sequential_number: bool
    separator: str
    sequential_number_length: int
    last_used_sequential_number: int

    class Config:
        from_attributes = True


class NextInvoiceNumberOut(BaseModel):
    business_unit_id: int
    sales_category_id: int
    next_invoice_number: str
