"""
Typed exceptions for the sales module.

Services raise these instead of HTTPException or raw SQLAlchemy errors; the
handlers registered in app.main translate them into JSON responses:

    SalesError
    +-- ValidationError              400  VALIDATION_ERROR
    |   +-- ReturnQuantityExceededError   RETURN_QUANTITY_EXCEEDED
    |   +-- InvoiceNumberFormatError      INVOICE_NUMBER_FORMAT_INVALID
    +-- ConflictError                409  CONFLICT
    |   +-- PostedInvoiceError            INVOICE_ALREADY_POSTED
    +-- NotFoundError                404  NOT_FOUND
    +-- PersistenceError             500  PERSISTENCE_ERROR
        +-- InvoiceNumberAllocationError  INVOICE_NUMBER_ALLOCATION_FAILED
        +-- StockAdjustmentError          STOCK_ADJUSTMENT_FAILED
            +-- ArticleNotFoundError      ARTICLE_NOT_FOUND
"""
from decimal import Decimal
from typing import Any, Optional

from fastapi import status


def _plain(value) -> str:
    """Decimal sin ceros de relleno: 6.0000 -> 6, 2.50 -> 2.5"""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


class SalesError(Exception):
    """Base class. `code` is machine readable, `data` carries the context."""

    code: str = "SALES_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **data: Any):
        self.message = message
        self.data = data
        super().__init__(message)


class ValidationError(SalesError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class ReturnQuantityExceededError(ValidationError):
    code = "RETURN_QUANTITY_EXCEEDED"

    def __init__(self, description: str, requested: Decimal, returnable: Decimal,
                 original_item_id: Optional[int] = None):
        self.description = description
        self.requested = requested
        self.returnable = returnable
        self.original_item_id = original_item_id
        super().__init__(
            f"Cannot return {_plain(requested)} of '{description}'. Only {_plain(returnable)} available for return.",
            original_item_id=original_item_id,
        )


class InvoiceNumberFormatError(ValidationError):
    code = "INVOICE_NUMBER_FORMAT_INVALID"


class ConflictError(SalesError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class PostedInvoiceError(ConflictError):
    code = "INVOICE_ALREADY_POSTED"

    def __init__(self, invoice_id: int, invoice_number: Optional[str] = None):
        self.invoice_id = invoice_id
        self.invoice_number = invoice_number
        super().__init__(
            "Posted sales cannot be modified",
            invoice_id=invoice_id,
            invoice_number=invoice_number,
        )


class NotFoundError(SalesError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(SalesError):
    """Store failure. The operation's transaction has already been rolled back."""

    code = "PERSISTENCE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InvoiceNumberAllocationError(PersistenceError):
    code = "INVOICE_NUMBER_ALLOCATION_FAILED"

    def __init__(self, business_unit_id: int, sales_category_id: int, reason: str = ""):
        self.business_unit_id = business_unit_id
        self.sales_category_id = sales_category_id
        super().__init__(
            f"Could not allocate an invoice number for business unit {business_unit_id}, "
            f"sales category {sales_category_id}" + (f": {reason}" if reason else ""),
            business_unit_id=business_unit_id,
            sales_category_id=sales_category_id,
        )


class StockAdjustmentError(PersistenceError):
    code = "STOCK_ADJUSTMENT_FAILED"


class ArticleNotFoundError(StockAdjustmentError):
    code = "ARTICLE_NOT_FOUND"

    def __init__(self, article_id: int):
        self.article_id = article_id
        super().__init__(f"Article with ID {article_id} not found", article_id=article_id)
