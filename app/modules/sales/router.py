from fastapi import APIRouter, Depends, status, Query, HTTPException
from sqlalchemy.orm import Session
from typing import Optional

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.sales.service import SalesService
from app.modules.sales.numbering import InvoiceNumberFormatService
from app.modules.sales.schemas import (
    SalesInvoiceCreate, SalesInvoiceUpdate, SalesInvoiceOut, SalesInvoiceList,
    SalesCancelRequest, ReturnableQuantityOut,
    InvoiceNumberFormatConfigure, InvoiceNumberFormatOut, NextInvoiceNumberOut
)
from app.modules.sales_categories.service import SalesCategoryService

# Router principal del módulo de ventas
router = APIRouter(prefix="/sales", tags=["Sales"])

# Configuración de numeración
formats_router = APIRouter(prefix="/invoice-number-formats", tags=["Invoice Number Formats"])


def _service(db: Session, auth_context: AuthContext) -> SalesService:
    # Los administradores ven las facturas de todos los usuarios
    return SalesService(db, enforce_ownership=settings.ENFORCE_INVOICE_OWNERSHIP and not auth_context.is_admin)


def _get_or_404(service: SalesService, invoice_id: int, auth_context: AuthContext):
    invoice = service.get_sale(invoice_id, auth_context.user_id, auth_context.business_unit_id)
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")
    return invoice


@router.post("/", response_model=SalesInvoiceOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    invoice_data: SalesInvoiceCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """
    Crear una nueva factura de venta o devolución

    El número de factura se asigna automáticamente y el stock se ajusta
    en la misma transacción.
    """
    service = _service(db, auth_context)
    return service.create_sale(invoice_data, auth_context.business_unit_id, auth_context.user_id)


@router.get("/for-return", response_model=SalesInvoiceList)
def get_posted_invoices_for_return(
    buyer_name: Optional[str] = Query(None, description="Filtrar por nombre del comprador"),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """Facturas contabilizadas que se pueden devolver"""
    service = _service(db, auth_context)
    return {"invoices": service.get_posted_invoices_for_return(auth_context.business_unit_id, buyer_name)}


@router.get("/original/{invoice_number}", response_model=SalesInvoiceOut)
def get_original_invoice_by_number(
    invoice_number: str,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """Buscar la factura original para una devolución"""
    service = _service(db, auth_context)
    invoice = service.get_original_invoice_by_number(invoice_number, auth_context.business_unit_id)
    if not invoice:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Original invoice not found")
    return invoice


@router.get("/items/{original_item_id}/returnable", response_model=ReturnableQuantityOut)
def get_returnable_quantity(
    original_item_id: int,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    service = _service(db, auth_context)
    return ReturnableQuantityOut(
        original_invoice_item_id=original_item_id,
        returnable_quantity=service.get_returnable_quantity(original_item_id)
    )


@router.get("/{invoice_id}", response_model=SalesInvoiceOut)
def get_sale(
    invoice_id: int,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """Obtener detalles completos de una factura"""
    return _get_or_404(_service(db, auth_context), invoice_id, auth_context)


@router.patch("/{invoice_id}", response_model=SalesInvoiceOut)
def update_sale(
    invoice_id: int,
    invoice_update: SalesInvoiceUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """
    Actualizar una factura (solo si no está contabilizada)

    El número de factura no se modifica aunque se envíe otro.
    """
    service = _service(db, auth_context)
    if not service.update_sale(invoice_id, invoice_update, auth_context.user_id, auth_context.business_unit_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")
    return _get_or_404(service, invoice_id, auth_context)


@router.post("/{invoice_id}/post", response_model=SalesInvoiceOut)
def post_sale(
    invoice_id: int,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """
    Contabilizar una factura

    Una vez contabilizada ya no se puede modificar.
    """
    service = _service(db, auth_context)
    if not service.post_sale(invoice_id, auth_context.user_id, auth_context.business_unit_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sale not found, already posted or cancelled"
        )
    return _get_or_404(service, invoice_id, auth_context)


@router.post("/{invoice_id}/cancel", response_model=SalesInvoiceOut)
def cancel_sale(
    invoice_id: int,
    cancel_data: SalesCancelRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """
    Anular una factura

    Si estaba contabilizada se revierte el movimiento de stock.
    """
    service = _service(db, auth_context)
    if not service.cancel_sale(invoice_id, cancel_data.reason, auth_context.user_id, auth_context.business_unit_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found or already cancelled")
    return _get_or_404(service, invoice_id, auth_context)


# --- NUMERACIÓN ---

def _category_id(db: Session, sales_category_id: Optional[int]) -> int:
    if sales_category_id and sales_category_id > 0:
        return sales_category_id
    return SalesCategoryService(db).get_default_category_id()


@formats_router.get("/", response_model=InvoiceNumberFormatOut)
def get_invoice_number_format(
    sales_category_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    number_format = InvoiceNumberFormatService(db).get_format(
        auth_context.business_unit_id, _category_id(db, sales_category_id)
    )
    if not number_format:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice number format not configured")
    return number_format


@formats_router.put("/", response_model=InvoiceNumberFormatOut)
def configure_invoice_number_format(
    format_data: InvoiceNumberFormatConfigure,
    sales_category_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """Configurar el formato de numeración (el contador no es editable)"""
    return InvoiceNumberFormatService(db).configure_format(
        auth_context.business_unit_id, _category_id(db, sales_category_id), format_data
    )


@formats_router.get("/next", response_model=NextInvoiceNumberOut)
def preview_next_invoice_number(
    sales_category_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_sales_access())
):
    """Vista previa del siguiente número, sin consumirlo"""
    category_id = _category_id(db, sales_category_id)
    return NextInvoiceNumberOut(
        business_unit_id=auth_context.business_unit_id,
        sales_category_id=category_id,
        next_invoice_number=InvoiceNumberFormatService(db).preview_next_number(
            auth_context.business_unit_id, category_id
        )
    )
