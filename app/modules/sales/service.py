from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import SQLAlchemyError
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from datetime import date, datetime, timezone
import logging

from app.core.config import settings
from app.common.exceptions import (
    ConflictError, PersistenceError, PostedInvoiceError, SalesError, ValidationError
)
from app.modules.articles.models import Article
from app.modules.business_units.models import BusinessUnit
from app.modules.inventory.service import StockAdjuster
from app.modules.sales.models import SalesInvoice, SalesInvoiceItem
from app.modules.sales.numbering import InvoiceNumberAllocator
from app.modules.sales.returns import ReturnValidator
from app.modules.sales.schemas import SalesInvoiceCreate, SalesInvoiceUpdate
from app.modules.sales_categories.models import SalesCategory
from app.modules.sales_categories.service import SalesCategoryService
from app.modules.subjects.service import SubjectService

logger = logging.getLogger(__name__)

# Campos del item que vienen del cliente
ITEM_FIELDS = {
    "article_id", "article_code", "description", "barcode",
    "quantity", "unit_id", "unit_code",
    "price_without_vat", "discount_percent", "discount_amount", "price_with_vat",
    "vat_percent", "vat_amount", "value_without_vat", "value_with_vat",
    "currency_id", "currency_code", "exchange_rate",
    "original_invoice_item_id",
}

# total de cabecera -> campo del item que se suma
TOTAL_FIELDS = (
    ("total_without_vat", "value_without_vat"),
    ("total_vat_amount", "vat_amount"),
    ("total_with_vat", "value_with_vat"),
    ("total_discount_amount", "discount_amount"),
)


def compute_totals(items: Iterable) -> Dict[str, Decimal]:
    """Suma exacta de los valores de los items (0 si no hay items)"""
    totals = {total: Decimal("0") for total, _ in TOTAL_FIELDS}
    for item in items:
        for total, field in TOTAL_FIELDS:
            totals[total] += Decimal(getattr(item, field) or 0)
    return totals


def stock_sign(is_return: bool) -> int:
    """Venta: +cantidad (sale del stock). Devolución: -cantidad (vuelve al stock)."""
    return -1 if is_return else 1


def has_article(article_id: Optional[int]) -> bool:
    return bool(article_id) and article_id > 0


class SalesService:
    """
    Ciclo de vida de la factura de venta: crear, actualizar, contabilizar, anular.

    Cada operación es una sola transacción: numeración, cabecera/items y
    ajuste de stock se confirman juntos o se deshacen juntos.
    """

    def __init__(self, db: Session, enforce_ownership: Optional[bool] = None,
                 clock: Optional[Callable[[], date]] = None):
        self.db = db
        self.enforce_ownership = settings.ENFORCE_INVOICE_OWNERSHIP if enforce_ownership is None else enforce_ownership
        self.allocator = InvoiceNumberAllocator(db, clock=clock)
        self.stock = StockAdjuster(db)
        self.returns = ReturnValidator(db)

    # --- OPERACIONES ---

    def create_sale(self, invoice_data: SalesInvoiceCreate, business_unit_id: int, user_id: str) -> SalesInvoice:
        """
        Crear nueva factura (o devolución si is_return)

        Args:
            invoice_data: Cabecera e items
            business_unit_id: Unidad de negocio emisora
            user_id: Usuario que crea

        Returns:
            SalesInvoice: Factura en borrador con número asignado

        Raises:
            ValidationError: comprador inválido, unidad/categoría inexistente, cantidad de devolución excedida
            PersistenceError: error de base de datos (todo se deshace)
        """
        try:
            if not business_unit_id or business_unit_id <= 0:
                raise ValidationError("Business unit is required")
            if not self.db.get(BusinessUnit, business_unit_id):
                raise ValidationError(f"Business unit {business_unit_id} not found")

            buyer = SubjectService(self.db).get_buyer(invoice_data.buyer_id)
            if not buyer:
                raise ValidationError("Valid buyer not found")

            sales_category_id = invoice_data.sales_category_id
            if not sales_category_id or sales_category_id <= 0:
                sales_category_id = SalesCategoryService(self.db).get_default_category_id()
            if not self.db.get(SalesCategory, sales_category_id):
                raise ValidationError(f"Sales category {sales_category_id} not found")

            original_invoice = None
            if invoice_data.is_return:
                original_invoice = self._resolve_original_invoice(invoice_data.original_invoice_id, business_unit_id)
                original_invoice = self._validate_return_items(invoice_data.items, business_unit_id, original_invoice)
                self.returns.ensure_returnable(invoice_data.items)

            invoice_number, sequential_number = self.allocator.allocate(business_unit_id, sales_category_id)

            invoice = SalesInvoice(
                business_unit_id=business_unit_id,
                sales_category_id=sales_category_id,
                invoice_number=invoice_number,
                sequential_number=sequential_number,
                invoice_date=invoice_data.invoice_date,
                invoice_expiry_date=invoice_data.invoice_expiry_date,
                buyer_id=buyer.id,
                buyer_code=buyer.code,
                buyer_name=buyer.subject_name,
                is_posted=False,
                is_cancelled=False,
                is_return=invoice_data.is_return,
                original_invoice_id=original_invoice.id if original_invoice else None,
                original_invoice_number=original_invoice.invoice_number if original_invoice else None,
                return_reason=invoice_data.return_reason if invoice_data.is_return else None,
                created_by_user_id=user_id
            )
            for item_data in invoice_data.items:
                invoice.items.append(self._build_item(item_data, invoice_data.is_return))
            self._apply_totals(invoice)

            self.db.add(invoice)
            self.db.flush()

            sign = stock_sign(invoice.is_return)
            self.stock.apply_adjustments([
                (item.article_id, sign * Decimal(item.quantity))
                for item in invoice.items if has_article(item.article_id)
            ])

            self.db.commit()
            self.db.refresh(invoice)
            logger.info(
                f"{'Return' if invoice.is_return else 'Sale'} {invoice.invoice_number} created "
                f"(id={invoice.id}, business_unit={business_unit_id}, items={len(invoice.items)}, user={user_id})"
            )
            return invoice

        except SalesError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating sale for business unit {business_unit_id}: {e}", exc_info=True)
            raise PersistenceError("Error saving sale") from e

    def update_sale(self, invoice_id: int, invoice_data: SalesInvoiceUpdate, user_id: str,
                    business_unit_id: Optional[int] = None) -> bool:
        """
        Actualizar una factura en borrador

        El número de factura nunca cambia. Si se envían items, la lista es la
        final: los que faltan se eliminan, los que traen id se actualizan y los
        demás se agregan; el stock se ajusta solo por la diferencia.

        Returns:
            bool: False si la factura no existe (o no es del usuario)

        Raises:
            PostedInvoiceError: la factura ya está contabilizada
            ConflictError: la factura está anulada
        """
        try:
            invoice = self._get_for_change(invoice_id, user_id, business_unit_id)
            if invoice is None:
                self.db.rollback()
                logger.info(f"Update skipped, sale {invoice_id} not found for user {user_id}")
                return False
            if invoice.is_posted:
                raise PostedInvoiceError(invoice.id, invoice.invoice_number)
            if invoice.is_cancelled:
                raise ConflictError("Cancelled sales cannot be modified", invoice_id=invoice.id)

            fields = invoice_data.model_dump(exclude_unset=True)

            if fields.get("buyer_id") is not None and invoice_data.buyer_id != invoice.buyer_id:
                buyer = SubjectService(self.db).get_buyer(invoice_data.buyer_id)
                if not buyer:
                    raise ValidationError("Valid buyer not found")
                invoice.buyer_id = buyer.id
                invoice.buyer_code = buyer.code
                invoice.buyer_name = buyer.subject_name

            if fields.get("invoice_date") is not None:
                invoice.invoice_date = invoice_data.invoice_date
            if "invoice_expiry_date" in fields:
                invoice.invoice_expiry_date = invoice_data.invoice_expiry_date
            if invoice.invoice_expiry_date and invoice.invoice_expiry_date < invoice.invoice_date:
                raise ValidationError("Expiry date cannot be before the invoice date")
            if invoice.is_return and "return_reason" in fields:
                invoice.return_reason = invoice_data.return_reason

            adjustments = []
            if invoice_data.items is not None:
                if invoice.is_return:
                    original_invoice = self._validate_return_items(
                        invoice_data.items, invoice.business_unit_id, invoice.original_invoice
                    )
                    if original_invoice is not None and invoice.original_invoice_id is None:
                        invoice.original_invoice_id = original_invoice.id
                        invoice.original_invoice_number = original_invoice.invoice_number
                    self.returns.ensure_returnable(invoice_data.items, exclude_invoice_id=invoice.id)
                adjustments = self._sync_items(invoice, invoice_data.items)

            self._apply_totals(invoice)
            self._stamp(invoice, user_id)
            self.db.flush()

            self.stock.apply_adjustments(adjustments)

            self.db.commit()
            logger.info(
                f"Sale {invoice.invoice_number} updated (id={invoice.id}, "
                f"stock adjustments={len(adjustments)}, user={user_id})"
            )
            return True

        except SalesError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating sale {invoice_id}: {e}", exc_info=True)
            raise PersistenceError("Error saving sale") from e

    def post_sale(self, invoice_id: int, user_id: str, business_unit_id: Optional[int] = None) -> bool:
        """
        Contabilizar (borrador -> contabilizada). No toca stock ni totales.

        Returns:
            bool: False si no existe, ya estaba contabilizada o está anulada
        """
        try:
            invoice = self._get_for_change(invoice_id, user_id, business_unit_id)
            if invoice is None or invoice.is_posted or invoice.is_cancelled:
                self.db.rollback()
                logger.info(f"Post skipped for sale {invoice_id}: not found, already posted or cancelled")
                return False

            now = datetime.now(timezone.utc)
            invoice.is_posted = True
            invoice.posted_date = now
            self._stamp(invoice, user_id, now)

            self.db.commit()
            logger.info(f"Sale {invoice.invoice_number} posted (id={invoice.id}, user={user_id})")
            return True

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error posting sale {invoice_id}: {e}", exc_info=True)
            raise PersistenceError("Error posting sale") from e

    def cancel_sale(self, invoice_id: int, reason: str, user_id: str, business_unit_id: Optional[int] = None) -> bool:
        """
        Anular factura (en borrador o contabilizada)

        Si está contabilizada se revierte su efecto en el stock.

        Returns:
            bool: False si no existe o ya estaba anulada
        """
        try:
            invoice = self._get_for_change(invoice_id, user_id, business_unit_id)
            if invoice is None or invoice.is_cancelled:
                self.db.rollback()
                logger.info(f"Cancel skipped for sale {invoice_id}: not found or already cancelled")
                return False

            adjustments = []
            if invoice.is_posted and invoice.items:
                sign = stock_sign(invoice.is_return)
                adjustments = [
                    (item.article_id, -sign * Decimal(item.quantity))
                    for item in invoice.items if has_article(item.article_id)
                ]
                self.stock.apply_adjustments(adjustments)

            invoice.is_cancelled = True
            invoice.cancellation_reason = reason
            self._stamp(invoice, user_id)

            self.db.commit()
            logger.info(
                f"Sale {invoice.invoice_number} cancelled (id={invoice.id}, posted={invoice.is_posted}, "
                f"stock adjustments={len(adjustments)}, user={user_id})"
            )
            return True

        except SalesError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error cancelling sale {invoice_id}: {e}", exc_info=True)
            raise PersistenceError("Error cancelling sale") from e

    # --- CONSULTAS ---

    def get_sale(self, invoice_id: int, user_id: Optional[str] = None,
                 business_unit_id: Optional[int] = None) -> Optional[SalesInvoice]:
        query = self.db.query(SalesInvoice).options(selectinload(SalesInvoice.items)).filter(
            SalesInvoice.id == invoice_id
        )
        query = self._scoped(query, user_id, business_unit_id)
        return query.first()

    def get_original_invoice_by_number(self, invoice_number: str, business_unit_id: int) -> Optional[SalesInvoice]:
        """Factura contabilizada, no anulada y que no sea devolución, de la misma unidad de negocio"""
        return self.db.query(SalesInvoice).options(selectinload(SalesInvoice.items)).filter(
            SalesInvoice.invoice_number == invoice_number,
            SalesInvoice.business_unit_id == business_unit_id,
            SalesInvoice.is_posted.is_(True),
            SalesInvoice.is_cancelled.is_(False),
            SalesInvoice.is_return.is_(False)
        ).first()

    def get_posted_invoices_for_return(self, business_unit_id: int, buyer_name: Optional[str] = None,
                                       limit: Optional[int] = None) -> List[SalesInvoice]:
        """Facturas que pueden devolverse, las más recientes primero"""
        query = self.db.query(SalesInvoice).filter(
            SalesInvoice.business_unit_id == business_unit_id,
            SalesInvoice.is_posted.is_(True),
            SalesInvoice.is_cancelled.is_(False),
            SalesInvoice.is_return.is_(False)
        )
        if buyer_name:
            query = query.filter(SalesInvoice.buyer_name.ilike(f"%{buyer_name}%"))

        return query.order_by(
            SalesInvoice.invoice_date.desc(), SalesInvoice.id.desc()
        ).limit(limit or settings.POSTED_INVOICES_FOR_RETURN_LIMIT).all()

    def get_returnable_quantity(self, original_item_id: int) -> Decimal:
        return self.returns.get_returnable_quantity(original_item_id)

    # --- HELPERS ---

    def _scoped(self, query, user_id: Optional[str], business_unit_id: Optional[int]):
        if self.enforce_ownership and user_id:
            query = query.filter(SalesInvoice.created_by_user_id == user_id)
        if business_unit_id:
            query = query.filter(SalesInvoice.business_unit_id == business_unit_id)
        return query

    def _get_for_change(self, invoice_id: int, user_id: str, business_unit_id: Optional[int]) -> Optional[SalesInvoice]:
        query = self.db.query(SalesInvoice).filter(SalesInvoice.id == invoice_id)
        query = self._scoped(query, user_id, business_unit_id)
        return query.with_for_update().populate_existing().first()

    def _resolve_original_invoice(self, original_invoice_id: Optional[int], business_unit_id: int) -> Optional[SalesInvoice]:
        if not original_invoice_id:
            return None
        original = self.db.query(SalesInvoice).filter(
            SalesInvoice.id == original_invoice_id,
            SalesInvoice.business_unit_id == business_unit_id,
            SalesInvoice.is_posted.is_(True),
            SalesInvoice.is_cancelled.is_(False),
            SalesInvoice.is_return.is_(False)
        ).first()
        if not original:
            raise ValidationError("Original invoice not found or not available for return")
        return original

    def _validate_return_items(self, items: Iterable, business_unit_id: int,
                               original_invoice: Optional[SalesInvoice]) -> Optional[SalesInvoice]:
        """
        Cada item devuelto debe venir de una factura contabilizada, no anulada,
        que no sea devolución y de la misma unidad de negocio. Si no se indicó
        factura original, todos los items deben venir de la misma y esa se usa.

        Returns:
            SalesInvoice: factura original indicada o deducida de los items (o None)
        """
        source_invoice = original_invoice
        for item in items:
            if not item.original_invoice_item_id:
                continue
            original_item = self.db.get(SalesInvoiceItem, item.original_invoice_item_id)
            if original_item is None:
                # ensure_returnable lo rechaza con 0 disponible
                continue

            source = original_item.invoice
            if original_invoice is not None:
                if source.id != original_invoice.id:
                    raise ValidationError(
                        f"Item {item.original_invoice_item_id} does not belong to invoice {original_invoice.invoice_number}",
                        original_invoice_item_id=item.original_invoice_item_id
                    )
                continue

            if (not source.is_posted or source.is_cancelled or source.is_return
                    or source.business_unit_id != business_unit_id):
                raise ValidationError(
                    f"Item {item.original_invoice_item_id} does not belong to a posted invoice "
                    f"of business unit {business_unit_id}",
                    original_invoice_item_id=item.original_invoice_item_id
                )
            if source_invoice is None:
                source_invoice = source
            elif source_invoice.id != source.id:
                raise ValidationError("Returned items must come from a single original invoice")

        return source_invoice

    def _build_item(self, item_data, is_return: bool) -> SalesInvoiceItem:
        item = SalesInvoiceItem(**item_data.model_dump(include=ITEM_FIELDS))
        self._fill_item_references(item, is_return)
        return item

    def _fill_item_references(self, item: SalesInvoiceItem, is_return: bool):
        """Copia código/descripción/barcode del artículo y la cantidad original en devoluciones."""
        if not has_article(item.article_id):
            item.article_id = None
        else:
            article = self.db.get(Article, item.article_id)
            if article is None:
                raise ValidationError(f"Article with ID {item.article_id} not found", article_id=item.article_id)
            item.article_code = item.article_code or article.code
            item.description = item.description or article.description
            item.barcode = item.barcode or article.barcode

        if is_return and item.original_invoice_item_id:
            original_item = self.db.get(SalesInvoiceItem, item.original_invoice_item_id)
            item.original_quantity = original_item.quantity if original_item else None
        else:
            item.original_invoice_item_id = None
            item.original_quantity = None

    def _sync_items(self, invoice: SalesInvoice, items_data: List) -> List[Tuple[int, Decimal]]:
        """
        Aplica la lista final de items y devuelve los ajustes de stock netos:
        eliminados revierten su efecto, modificados aplican la diferencia,
        nuevos aplican la cantidad completa.
        """
        sign = stock_sign(invoice.is_return)
        existing = {item.id: item for item in invoice.items}
        incoming_ids = {item_data.id for item_data in items_data if item_data.id is not None}

        unknown = incoming_ids - set(existing)
        if unknown:
            raise ValidationError(f"Items {sorted(unknown)} do not belong to invoice {invoice.invoice_number}")

        adjustments = []

        for item_id, item in existing.items():
            if item_id not in incoming_ids:
                if has_article(item.article_id):
                    adjustments.append((item.article_id, -sign * Decimal(item.quantity)))
                invoice.items.remove(item)

        for item_data in items_data:
            if item_data.id is None:
                item = self._build_item(item_data, invoice.is_return)
                invoice.items.append(item)
                if has_article(item.article_id):
                    adjustments.append((item.article_id, sign * Decimal(item.quantity)))
                continue

            item = existing[item_data.id]
            old_article_id, old_quantity = item.article_id, Decimal(item.quantity)
            for field, value in item_data.model_dump(include=ITEM_FIELDS).items():
                setattr(item, field, value)
            self._fill_item_references(item, invoice.is_return)
            new_quantity = Decimal(item.quantity)

            if item.article_id != old_article_id:
                if has_article(old_article_id):
                    adjustments.append((old_article_id, -sign * old_quantity))
                if has_article(item.article_id):
                    adjustments.append((item.article_id, sign * new_quantity))
            elif has_article(item.article_id) and new_quantity != old_quantity:
                adjustments.append((item.article_id, sign * (new_quantity - old_quantity)))

        return adjustments

    def _apply_totals(self, invoice: SalesInvoice):
        for total, value in compute_totals(invoice.items).items():
            setattr(invoice, total, value)

    @staticmethod
    def _stamp(invoice: SalesInvoice, user_id: str, now: Optional[datetime] = None):
        invoice.last_modified_by_user_id = user_id
        invoice.last_modified_at = now or datetime.now(timezone.utc)
