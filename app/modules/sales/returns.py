from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.common.exceptions import ReturnQuantityExceededError
from app.modules.sales.models import SalesInvoice, SalesInvoiceItem

logger = logging.getLogger(__name__)


class ReturnValidator:
    """Límite de devolución por item original"""

    def __init__(self, db: Session):
        self.db = db

    def get_returned_quantity(self, original_item_id: int, exclude_invoice_id: Optional[int] = None) -> Decimal:
        """Cantidad ya devuelta en devoluciones contabilizadas y no anuladas."""
        query = (
            select(func.coalesce(func.sum(SalesInvoiceItem.quantity), 0))
            .join(SalesInvoice, SalesInvoiceItem.sales_invoice_id == SalesInvoice.id)
            .where(
                SalesInvoiceItem.original_invoice_item_id == original_item_id,
                SalesInvoice.is_return.is_(True),
                SalesInvoice.is_posted.is_(True),
                SalesInvoice.is_cancelled.is_(False)
            )
        )
        if exclude_invoice_id:
            query = query.where(SalesInvoice.id != exclude_invoice_id)

        return Decimal(str(self.db.execute(query).scalar() or 0))

    def get_returnable_quantity(self, original_item_id: int, exclude_invoice_id: Optional[int] = None) -> Decimal:
        """
        cantidad original - cantidad ya devuelta.
        Si el item original no existe, 0.
        """
        original = self.db.get(SalesInvoiceItem, original_item_id)
        if original is None:
            return Decimal("0")
        return Decimal(original.quantity) - self.get_returned_quantity(original_item_id, exclude_invoice_id)

    def ensure_returnable(self, items: Iterable, exclude_invoice_id: Optional[int] = None) -> None:
        """
        Verifica cada item con original_invoice_item_id; se detiene en la primera violación.
        Varias líneas contra el mismo item original comparten el mismo límite.

        Raises:
            ReturnQuantityExceededError
        """
        pending: Dict[int, Decimal] = {}
        for item in items:
            original_item_id = getattr(item, "original_invoice_item_id", None)
            if not original_item_id:
                continue

            already = pending.get(original_item_id, Decimal("0"))
            returnable = self.get_returnable_quantity(original_item_id, exclude_invoice_id) - already
            requested = Decimal(item.quantity)
            pending[original_item_id] = already + requested
            if requested > returnable:
                description = getattr(item, "description", None)
                if not description:
                    original = self.db.get(SalesInvoiceItem, original_item_id)
                    description = original.description if original else str(original_item_id)
                logger.info(
                    f"Return rejected for original item {original_item_id}: "
                    f"requested {requested}, returnable {returnable}"
                )
                raise ReturnQuantityExceededError(description, requested, returnable, original_item_id)

    def validate_return_quantities(self, items: Iterable, exclude_invoice_id: Optional[int] = None) -> Tuple[bool, str]:
        """(ok, mensaje) en lugar de excepción"""
        try:
            self.ensure_returnable(items, exclude_invoice_id)
        except ReturnQuantityExceededError as e:
            return False, e.message
        return True, ""
