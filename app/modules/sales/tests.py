"""
Tests para el módulo de Ventas

Cubren:
- Numeración: formato, contador por (unidad, categoría), concurrencia
- Ciclo de vida: crear, actualizar, contabilizar, anular
- Stock: simetría venta/anulación y ajustes por diferencia
- Devoluciones: límite de cantidad devolvible
- Endpoints HTTP
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

from app.core.config import settings
from app.common.exceptions import (
    InvoiceNumberFormatError, PostedInvoiceError,
    ReturnQuantityExceededError, ValidationError
)
from app.database.database import SessionLocal
from app.modules.articles.models import Article
from app.modules.sales.models import InvoiceNumberFormat, SalesInvoice
from app.modules.sales.numbering import (
    DEFAULT_FORMAT, InvoiceNumberAllocator, InvoiceNumberFormatService, format_invoice_number
)
from app.modules.sales.schemas import (
    InvoiceNumberFormatConfigure, SalesInvoiceCreate, SalesInvoiceItemCreate,
    SalesInvoiceItemUpdate, SalesInvoiceUpdate
)
from app.modules.sales.service import SalesService, compute_totals


def fixed_clock():
    return date(2025, 6, 15)


def make_item(article, quantity, price="10.00", vat_percent="20", **extra):
    """Item con valores calculados como lo haría el cliente"""
    quantity = Decimal(str(quantity))
    price = Decimal(price)
    vat_percent = Decimal(vat_percent)
    value = price * quantity
    vat = value * vat_percent / 100
    return SalesInvoiceItemCreate(
        article_id=article.id if article is not None else None,
        quantity=quantity,
        price_without_vat=price,
        price_with_vat=price + price * vat_percent / 100,
        vat_percent=vat_percent,
        vat_amount=vat,
        value_without_vat=value,
        value_with_vat=value + vat,
        **extra
    )


def as_update_item(item, **changes):
    data = {
        "id": item.id,
        "article_id": item.article_id,
        "quantity": item.quantity,
        "price_without_vat": item.price_without_vat,
        "vat_percent": item.vat_percent,
        "vat_amount": item.vat_amount,
        "value_without_vat": item.value_without_vat,
        "value_with_vat": item.value_with_vat,
        "original_invoice_item_id": item.original_invoice_item_id,
    }
    data.update(changes)
    return SalesInvoiceItemUpdate(**data)


def stock_of(db_session, article):
    db_session.expire_all()
    return db_session.get(Article, article.id).stock_quantity


# ===== FIXTURES =====

@pytest.fixture
def service(db_session):
    return SalesService(db_session, clock=fixed_clock)


@pytest.fixture
def sale_setup(sample_user, sample_business_unit, domestic_category, sample_buyer, sample_article):
    """Datos mínimos para emitir facturas"""
    return {
        "user": sample_user,
        "business_unit": sample_business_unit,
        "category": domestic_category,
        "buyer": sample_buyer,
        "article": sample_article,
    }


@pytest.fixture
def create_sale(service, sale_setup):
    def _create(items=None, **fields):
        data = SalesInvoiceCreate(
            buyer_id=fields.pop("buyer_id", sale_setup["buyer"].id),
            sales_category_id=fields.pop("sales_category_id", sale_setup["category"].id),
            items=items if items is not None else [],
            **fields
        )
        return service.create_sale(data, sale_setup["business_unit"].id, sale_setup["user"].id)
    return _create


@pytest.fixture
def posted_sale(service, create_sale, sale_setup):
    """Venta contabilizada de 10 unidades del artículo"""
    invoice = create_sale([make_item(sale_setup["article"], 10)])
    assert service.post_sale(invoice.id, sale_setup["user"].id)
    return invoice


@pytest.fixture
def create_return(service, create_sale, sale_setup):
    def _create(original, quantity, post=False):
        original_item = original.items[0]
        invoice = create_sale(
            [make_item(sale_setup["article"], quantity, original_invoice_item_id=original_item.id)],
            is_return=True,
            original_invoice_id=original.id,
            return_reason="Damaged"
        )
        if post:
            assert service.post_sale(invoice.id, sale_setup["user"].id)
        return invoice
    return _create


# ===== NUMERACIÓN =====

class TestInvoiceNumberFormatting:
    """Tests para el render del número de factura"""

    def test_default_format(self):
        number_format = InvoiceNumberFormat(**DEFAULT_FORMAT)
        assert format_invoice_number(number_format, 7, 1, "001", "DOM", today=date(2025, 1, 10)) == "25-DOM-001-0007"

    def test_empty_category_code_is_omitted(self):
        number_format = InvoiceNumberFormat(**DEFAULT_FORMAT)
        assert format_invoice_number(number_format, 7, 1, "001", "", today=date(2025, 1, 10)) == "25-001-0007"
        assert format_invoice_number(number_format, 7, 1, "001", None, today=date(2025, 1, 10)) == "25-001-0007"

    def test_missing_business_unit_code_uses_padded_id(self):
        number_format = InvoiceNumberFormat(**DEFAULT_FORMAT)
        assert format_invoice_number(number_format, 7, 7, None, "DOM", today=date(2025, 1, 10)) == "25-DOM-007-0007"
        assert format_invoice_number(number_format, 7, 1234, "", "DOM", today=date(2025, 1, 10)) == "25-DOM-1234-0007"

    def test_sequential_number_is_never_truncated(self):
        number_format = InvoiceNumberFormat(**{**DEFAULT_FORMAT, "sequential_number_length": 2})
        assert format_invoice_number(number_format, 12345, 1, "001", "DOM", today=date(2025, 1, 10)) == "25-DOM-001-12345"

    def test_disabled_components_and_custom_separator(self):
        number_format = InvoiceNumberFormat(**{
            **DEFAULT_FORMAT, "use_year": False, "use_business_unit_code": False, "separator": "/"
        })
        assert format_invoice_number(number_format, 7, 1, "001", "DOM", today=date(2025, 1, 10)) == "DOM/0007"

    def test_year_uses_two_digits(self):
        number_format = InvoiceNumberFormat(**DEFAULT_FORMAT)
        assert format_invoice_number(number_format, 1, 1, "001", "DOM", today=date(2005, 1, 10)) == "05-DOM-001-0001"


class TestInvoiceNumberAllocator:
    """Tests para la reserva de números"""

    def test_first_allocation_creates_default_format(self, db_session, sample_business_unit, domestic_category):
        allocator = InvoiceNumberAllocator(db_session, clock=fixed_clock)
        number, sequential = allocator.allocate(sample_business_unit.id, domestic_category.id)
        db_session.commit()

        assert (number, sequential) == ("25-DOM-001-0001", 1)
        number_format = allocator.get_format(sample_business_unit.id, domestic_category.id)
        assert number_format.last_used_sequential_number == 1
        assert number_format.separator == "-"
        assert number_format.sequential_number_length == 4

    def test_consecutive_allocations_increment(self, db_session, sample_business_unit, domestic_category):
        allocator = InvoiceNumberAllocator(db_session, clock=fixed_clock)
        sequence = []
        for _ in range(3):
            sequence.append(allocator.allocate(sample_business_unit.id, domestic_category.id)[1])
            db_session.commit()
        assert sequence == [1, 2, 3]

    def test_keys_are_independent(self, db_session, sample_business_unit, domestic_category, export_category):
        allocator = InvoiceNumberAllocator(db_session, clock=fixed_clock)
        allocator.allocate(sample_business_unit.id, domestic_category.id)
        allocator.allocate(sample_business_unit.id, domestic_category.id)
        number, sequential = allocator.allocate(sample_business_unit.id, export_category.id)
        db_session.commit()
        assert (number, sequential) == ("25-EXP-001-0001", 1)

    def test_rollback_does_not_consume_number(self, db_session, sample_business_unit, domestic_category):
        allocator = InvoiceNumberAllocator(db_session, clock=fixed_clock)
        allocator.allocate(sample_business_unit.id, domestic_category.id)
        db_session.rollback()

        _, sequential = allocator.allocate(sample_business_unit.id, domestic_category.id)
        db_session.commit()
        assert sequential == 1

    def test_preview_does_not_consume(self, db_session, sample_business_unit, domestic_category):
        allocator = InvoiceNumberAllocator(db_session, clock=fixed_clock)
        assert allocator.preview_next(sample_business_unit.id, domestic_category.id) == "25-DOM-001-0001"
        assert allocator.preview_next(sample_business_unit.id, domestic_category.id) == "25-DOM-001-0001"
        assert allocator.allocate(sample_business_unit.id, domestic_category.id)[1] == 1

    def test_concurrent_allocations_are_unique_and_contiguous(self, db_session, sample_business_unit, domestic_category):
        """50 reservas en paralelo, una sesión por hilo -> exactamente {1..50}"""
        business_unit_id, category_id = sample_business_unit.id, domestic_category.id
        db_session.close()

        def allocate_one(_):
            session = SessionLocal()
            try:
                _, sequential = InvoiceNumberAllocator(session, clock=fixed_clock).allocate(business_unit_id, category_id)
                session.commit()
                return sequential
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=50) as executor:
            results = list(executor.map(allocate_one, range(50)))

        assert len(results) == 50
        assert set(results) == set(range(1, 51))
        number_format = InvoiceNumberAllocator(db_session).get_format(business_unit_id, category_id)
        assert number_format.last_used_sequential_number == 50


class TestInvoiceNumberFormatService:
    """Tests para la configuración del formato"""

    def test_configure_keeps_counter(self, db_session, sample_business_unit, domestic_category):
        allocator = InvoiceNumberAllocator(db_session, clock=fixed_clock)
        allocator.allocate(sample_business_unit.id, domestic_category.id)
        allocator.allocate(sample_business_unit.id, domestic_category.id)
        db_session.commit()

        format_service = InvoiceNumberFormatService(db_session, clock=fixed_clock)
        number_format = format_service.configure_format(
            sample_business_unit.id, domestic_category.id,
            InvoiceNumberFormatConfigure(separator="/", sequential_number_length=6)
        )

        assert number_format.last_used_sequential_number == 2
        assert number_format.use_year is True
        assert format_service.preview_next_number(sample_business_unit.id, domestic_category.id) == "25/DOM/001/000003"

    def test_configure_creates_format(self, db_session, sample_business_unit, domestic_category):
        format_service = InvoiceNumberFormatService(db_session, clock=fixed_clock)
        number_format = format_service.configure_format(
            sample_business_unit.id, domestic_category.id,
            InvoiceNumberFormatConfigure(use_year=False)
        )
        assert number_format.last_used_sequential_number == 0
        assert format_service.preview_next_number(sample_business_unit.id, domestic_category.id) == "DOM-001-0001"

    def test_all_components_disabled_rejected(self, db_session, sample_business_unit, domestic_category):
        with pytest.raises(InvoiceNumberFormatError):
            InvoiceNumberFormatService(db_session).configure_format(
                sample_business_unit.id, domestic_category.id,
                InvoiceNumberFormatConfigure(
                    use_year=False, use_sales_category_code=False,
                    use_business_unit_code=False, use_sequential_number=False
                )
            )

    def test_long_separator_rejected(self, db_session, sample_business_unit, domestic_category):
        with pytest.raises(InvoiceNumberFormatError):
            InvoiceNumberFormatService(db_session).configure_format(
                sample_business_unit.id, domestic_category.id,
                InvoiceNumberFormatConfigure(separator="------")
            )

    @pytest.mark.parametrize("length", [0, 11])
    def test_length_out_of_range_rejected(self, db_session, sample_business_unit, domestic_category, length):
        with pytest.raises(InvoiceNumberFormatError):
            InvoiceNumberFormatService(db_session).configure_format(
                sample_business_unit.id, domestic_category.id,
                InvoiceNumberFormatConfigure(sequential_number_length=length)
            )

    def test_unknown_business_unit_rejected(self, db_session, domestic_category):
        with pytest.raises(ValidationError):
            InvoiceNumberFormatService(db_session).configure_format(
                999, domestic_category.id, InvoiceNumberFormatConfigure(separator="/")
            )


# ===== CREAR =====

class TestCreateSale:
    """Tests para SalesService.create_sale"""

    def test_create_assigns_number_and_buyer(self, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 2)])

        assert invoice.id is not None
        assert invoice.invoice_number == "25-DOM-001-0001"
        assert invoice.sequential_number == 1
        assert invoice.buyer_code == "B001"
        assert invoice.buyer_name == "Buyer Ltd"
        assert invoice.is_posted is False
        assert invoice.is_cancelled is False
        assert invoice.created_by_user_id == sale_setup["user"].id

    def test_totals_are_sum_of_items(self, create_sale, sale_setup, second_article):
        items = [
            make_item(sale_setup["article"], 3, price="10.00", discount_amount=Decimal("1.50")),
            make_item(second_article, "1.5", price="7.25", vat_percent="10"),
        ]
        invoice = create_sale(items)

        expected = compute_totals(items)
        assert invoice.total_without_vat == expected["total_without_vat"] == Decimal("40.875")
        assert invoice.total_vat_amount == expected["total_vat_amount"]
        assert invoice.total_with_vat == expected["total_with_vat"]
        assert invoice.total_discount_amount == Decimal("1.50")

    def test_totals_match_stored_items(self, db_session, create_sale, sale_setup):
        """Los montos se redondean a 4 decimales antes de sumar"""
        items = [
            SalesInvoiceItemCreate(article_id=sale_setup["article"].id, quantity=1,
                                   value_without_vat=Decimal("0.00005"))
            for _ in range(2)
        ]
        assert items[0].value_without_vat == Decimal("0.0001")

        invoice = create_sale(items)
        db_session.expire_all()
        stored = db_session.get(SalesInvoice, invoice.id)
        assert stored.total_without_vat == sum(item.value_without_vat for item in stored.items)
        assert stored.total_without_vat == Decimal("0.0002")

    def test_quantity_rounding_to_zero_is_rejected(self, sale_setup):
        with pytest.raises(ValueError):
            SalesInvoiceItemCreate(article_id=sale_setup["article"].id, quantity=Decimal("0.00001"))

    def test_totals_are_zero_without_items(self, create_sale):
        invoice = create_sale([])
        assert invoice.total_without_vat == 0
        assert invoice.total_vat_amount == 0
        assert invoice.total_with_vat == 0
        assert invoice.total_discount_amount == 0

    def test_sale_reduces_stock(self, db_session, create_sale, sale_setup):
        create_sale([make_item(sale_setup["article"], 7)])
        assert stock_of(db_session, sale_setup["article"]) == Decimal("93")

    def test_oversell_is_allowed(self, db_session, create_sale, sale_setup):
        create_sale([make_item(sale_setup["article"], 150)])
        assert stock_of(db_session, sale_setup["article"]) == Decimal("-50")

    def test_same_article_twice_is_additive(self, db_session, create_sale, sale_setup):
        create_sale([make_item(sale_setup["article"], 2), make_item(sale_setup["article"], 3)])
        assert stock_of(db_session, sale_setup["article"]) == Decimal("95")

    def test_item_without_article_skips_stock(self, db_session, create_sale, sale_setup):
        invoice = create_sale([make_item(None, 1, description="Transport service")])
        assert invoice.items[0].article_id is None
        assert stock_of(db_session, sale_setup["article"]) == Decimal("100")

    def test_article_snapshot_is_copied(self, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 1)])
        item = invoice.items[0]
        assert item.article_code == "A001"
        assert item.description == "Olive oil 1L"
        assert item.barcode == "3800000000001"

    def test_buyer_must_be_a_buyer(self, db_session, create_sale, sale_setup, sample_supplier):
        with pytest.raises(ValidationError, match="Valid buyer not found"):
            create_sale([make_item(sale_setup["article"], 1)], buyer_id=sample_supplier.id)

        # Ningún número consumido
        assert InvoiceNumberAllocator(db_session).get_format(
            sale_setup["business_unit"].id, sale_setup["category"].id
        ) is None

    def test_business_unit_is_required(self, service, sale_setup):
        data = SalesInvoiceCreate(buyer_id=sale_setup["buyer"].id, items=[])
        with pytest.raises(ValidationError):
            service.create_sale(data, 0, sale_setup["user"].id)

    def test_default_category_is_domestic(self, create_sale, sale_setup, export_category):
        invoice = create_sale([], sales_category_id=None)
        assert invoice.sales_category_id == sale_setup["category"].id

    def test_fallback_category_id_without_domestic(self, db_session, sample_user, sample_business_unit,
                                                    sample_buyer, export_category):
        service = SalesService(db_session, clock=fixed_clock)
        invoice = service.create_sale(
            SalesInvoiceCreate(buyer_id=sample_buyer.id, items=[]), sample_business_unit.id, sample_user.id
        )
        assert invoice.sales_category_id == settings.FALLBACK_SALES_CATEGORY_ID == export_category.id
        assert invoice.invoice_number == "25-EXP-001-0001"

    def test_missing_article_rolls_back_everything(self, db_session, create_sale, sale_setup):
        missing = Article(id=999, code="X", description="x")
        with pytest.raises(ValidationError, match="Article with ID 999 not found"):
            create_sale([make_item(sale_setup["article"], 5), make_item(missing, 1)])

        assert db_session.query(SalesInvoice).count() == 0
        assert stock_of(db_session, sale_setup["article"]) == Decimal("100")
        assert InvoiceNumberAllocator(db_session).get_format(
            sale_setup["business_unit"].id, sale_setup["category"].id
        ) is None

    def test_numbers_are_sequential_per_business_unit(self, db_session, create_sale, sale_setup):
        first = create_sale([])
        second = create_sale([])
        assert (first.sequential_number, second.sequential_number) == (1, 2)
        assert second.invoice_number == "25-DOM-001-0002"


# ===== ACTUALIZAR =====

class TestUpdateSale:
    """Tests para SalesService.update_sale"""

    def test_invoice_number_is_immutable(self, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 1)])
        original_number = invoice.invoice_number

        assert service.update_sale(
            invoice.id, SalesInvoiceUpdate(invoice_number="HACKED-0001"), sale_setup["user"].id
        ) is True
        assert service.get_sale(invoice.id).invoice_number == original_number

    def test_quantity_change_adjusts_stock_by_difference(self, db_session, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 5)])
        assert stock_of(db_session, sale_setup["article"]) == Decimal("95")

        item = invoice.items[0]
        service.update_sale(invoice.id, SalesInvoiceUpdate(items=[
            as_update_item(item, quantity=Decimal("8"), value_without_vat=Decimal("80"),
                           vat_amount=Decimal("16"), value_with_vat=Decimal("96"))
        ]), sale_setup["user"].id)

        assert stock_of(db_session, sale_setup["article"]) == Decimal("92")
        updated = service.get_sale(invoice.id)
        assert updated.total_without_vat == Decimal("80")
        assert updated.total_with_vat == Decimal("96")

    def test_new_and_removed_items(self, db_session, service, create_sale, sale_setup, second_article):
        invoice = create_sale([make_item(sale_setup["article"], 5), make_item(second_article, 4)])
        assert stock_of(db_session, second_article) == Decimal("16")

        first_item = invoice.items[0]
        new_item = make_item(second_article, 1, price="3.00")
        service.update_sale(invoice.id, SalesInvoiceUpdate(items=[
            as_update_item(first_item),
            SalesInvoiceItemUpdate(**new_item.model_dump())
        ]), sale_setup["user"].id)

        # 16 + 4 (item eliminado) - 1 (item nuevo)
        assert stock_of(db_session, second_article) == Decimal("19")
        assert stock_of(db_session, sale_setup["article"]) == Decimal("95")

        updated = service.get_sale(invoice.id)
        assert len(updated.items) == 2
        assert updated.total_without_vat == Decimal("53")

    def test_article_change_moves_stock(self, db_session, service, create_sale, sale_setup, second_article):
        invoice = create_sale([make_item(sale_setup["article"], 5)])

        service.update_sale(invoice.id, SalesInvoiceUpdate(items=[
            as_update_item(invoice.items[0], article_id=second_article.id)
        ]), sale_setup["user"].id)

        assert stock_of(db_session, sale_setup["article"]) == Decimal("100")
        assert stock_of(db_session, second_article) == Decimal("15")
        assert service.get_sale(invoice.id).items[0].article_code == "A002"

    def test_remove_all_items_zeroes_totals(self, db_session, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 5)])
        service.update_sale(invoice.id, SalesInvoiceUpdate(items=[]), sale_setup["user"].id)

        updated = service.get_sale(invoice.id)
        assert updated.items == []
        assert updated.total_with_vat == 0
        assert stock_of(db_session, sale_setup["article"]) == Decimal("100")

    def test_items_omitted_keeps_items(self, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 5)])
        service.update_sale(invoice.id, SalesInvoiceUpdate(return_reason="ignored"), sale_setup["user"].id)
        assert len(service.get_sale(invoice.id).items) == 1

    def test_posted_sale_cannot_be_updated(self, db_session, service, posted_sale, sale_setup):
        total_before = posted_sale.total_with_vat
        with pytest.raises(PostedInvoiceError, match="Posted sales cannot be modified"):
            service.update_sale(posted_sale.id, SalesInvoiceUpdate(items=[
                as_update_item(posted_sale.items[0], quantity=Decimal("1"))
            ]), sale_setup["user"].id)

        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")
        assert service.get_sale(posted_sale.id).total_with_vat == total_before

    def test_missing_or_foreign_sale_returns_false(self, service, create_sale, sale_setup, other_user):
        invoice = create_sale([])
        assert service.update_sale(999, SalesInvoiceUpdate(), sale_setup["user"].id) is False
        assert service.update_sale(invoice.id, SalesInvoiceUpdate(), other_user.id) is False

    def test_unknown_item_id_rejected(self, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 1)])
        with pytest.raises(ValidationError):
            service.update_sale(invoice.id, SalesInvoiceUpdate(items=[
                as_update_item(invoice.items[0], id=12345)
            ]), sale_setup["user"].id)

    def test_buyer_change_copies_snapshot(self, db_session, service, create_sale, sale_setup):
        from app.modules.subjects.models import Subject
        new_buyer = Subject(code="B002", subject_name="Second Buyer", is_buyer=True)
        db_session.add(new_buyer)
        db_session.commit()

        invoice = create_sale([])
        service.update_sale(invoice.id, SalesInvoiceUpdate(buyer_id=new_buyer.id), sale_setup["user"].id)
        updated = service.get_sale(invoice.id)
        assert (updated.buyer_code, updated.buyer_name) == ("B002", "Second Buyer")
        assert updated.last_modified_by_user_id == sale_setup["user"].id


# ===== CONTABILIZAR / ANULAR =====

class TestPostAndCancel:
    """Tests para post_sale y cancel_sale"""

    def test_post_sale(self, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 1)])
        assert service.post_sale(invoice.id, sale_setup["user"].id) is True

        posted = service.get_sale(invoice.id)
        assert posted.is_posted is True
        assert posted.posted_date is not None
        assert posted.last_modified_by_user_id == sale_setup["user"].id

    def test_post_twice_returns_false(self, service, posted_sale, sale_setup):
        assert service.post_sale(posted_sale.id, sale_setup["user"].id) is False

    def test_post_missing_or_foreign_returns_false(self, service, create_sale, sale_setup, other_user):
        invoice = create_sale([])
        assert service.post_sale(999, sale_setup["user"].id) is False
        assert service.post_sale(invoice.id, other_user.id) is False

    def test_post_does_not_touch_stock(self, db_session, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 4)])
        service.post_sale(invoice.id, sale_setup["user"].id)
        assert stock_of(db_session, sale_setup["article"]) == Decimal("96")

    def test_cancel_posted_sale_restores_stock(self, db_session, service, posted_sale, sale_setup):
        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")

        assert service.cancel_sale(posted_sale.id, "Customer changed mind", sale_setup["user"].id) is True

        assert stock_of(db_session, sale_setup["article"]) == Decimal("100")
        cancelled = service.get_sale(posted_sale.id)
        assert cancelled.is_cancelled is True
        assert cancelled.cancellation_reason == "Customer changed mind"

    def test_cancel_draft_keeps_stock(self, db_session, service, create_sale, sale_setup):
        invoice = create_sale([make_item(sale_setup["article"], 10)])
        assert service.cancel_sale(invoice.id, "Typo", sale_setup["user"].id) is True
        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")

    def test_cancel_twice_does_not_compensate_twice(self, db_session, service, posted_sale, sale_setup):
        service.cancel_sale(posted_sale.id, "First", sale_setup["user"].id)
        assert service.cancel_sale(posted_sale.id, "Second", sale_setup["user"].id) is False

        assert stock_of(db_session, sale_setup["article"]) == Decimal("100")
        assert service.get_sale(posted_sale.id).cancellation_reason == "First"

    def test_cancelled_sale_cannot_be_posted(self, service, create_sale, sale_setup):
        invoice = create_sale([])
        service.cancel_sale(invoice.id, "Typo", sale_setup["user"].id)
        assert service.post_sale(invoice.id, sale_setup["user"].id) is False

    def test_ownership_can_be_disabled(self, db_session, create_sale, other_user):
        invoice = create_sale([])
        shared = SalesService(db_session, enforce_ownership=False)
        assert shared.post_sale(invoice.id, other_user.id) is True


# ===== DEVOLUCIONES =====

class TestReturns:
    """Tests para devoluciones y ReturnValidator"""

    def test_return_limit(self, service, posted_sale, create_return):
        """10 vendidos, 4 devueltos: 7 más falla, 6 agota exactamente"""
        create_return(posted_sale, 4, post=True)

        with pytest.raises(ReturnQuantityExceededError) as exc_info:
            create_return(posted_sale, 7)
        assert str(exc_info.value) == "Cannot return 7 of 'Olive oil 1L'. Only 6 available for return."

        create_return(posted_sale, 6, post=True)
        assert service.get_returnable_quantity(posted_sale.items[0].id) == 0

    def test_draft_and_cancelled_returns_do_not_count(self, db_session, service, posted_sale, create_return, sale_setup):
        create_return(posted_sale, 4)
        cancelled = create_return(posted_sale, 3, post=True)
        service.cancel_sale(cancelled.id, "Wrong return", sale_setup["user"].id)

        assert service.get_returnable_quantity(posted_sale.items[0].id) == Decimal("10")

    def test_return_adds_stock_back(self, db_session, posted_sale, create_return, sale_setup):
        create_return(posted_sale, 3)
        assert stock_of(db_session, sale_setup["article"]) == Decimal("93")

    def test_cancel_posted_return_removes_stock_again(self, db_session, service, posted_sale, create_return, sale_setup):
        returned = create_return(posted_sale, 3, post=True)
        service.cancel_sale(returned.id, "Wrong return", sale_setup["user"].id)
        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")

    def test_return_copies_original_references(self, posted_sale, create_return):
        returned = create_return(posted_sale, 2)
        assert returned.is_return is True
        assert returned.original_invoice_id == posted_sale.id
        assert returned.original_invoice_number == posted_sale.invoice_number
        assert returned.return_reason == "Damaged"
        assert returned.items[0].original_quantity == Decimal("10")

    def test_unposted_original_rejected(self, create_sale, create_return, sale_setup):
        draft = create_sale([make_item(sale_setup["article"], 10)])
        with pytest.raises(ValidationError, match="Original invoice not found"):
            create_return(draft, 1)

    def test_missing_original_item_has_nothing_returnable(self, db_session, create_sale, sale_setup):
        with pytest.raises(ReturnQuantityExceededError) as exc_info:
            create_sale(
                [make_item(sale_setup["article"], 1, original_invoice_item_id=999)],
                is_return=True
            )
        assert exc_info.value.returnable == 0
        assert db_session.query(SalesInvoice).count() == 0

    def test_return_of_draft_sale_rejected_without_original(self, db_session, create_sale, sale_setup):
        draft = create_sale([make_item(sale_setup["article"], 10)])

        with pytest.raises(ValidationError, match="does not belong to a posted invoice"):
            create_sale(
                [make_item(sale_setup["article"], 5, original_invoice_item_id=draft.items[0].id)],
                is_return=True
            )
        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")
        assert db_session.query(SalesInvoice).filter(SalesInvoice.is_return.is_(True)).count() == 0

    def test_return_from_other_business_unit_rejected(self, db_session, service, posted_sale, sale_setup):
        from app.modules.business_units.models import BusinessUnit
        other_unit = BusinessUnit(code="002", name="Second Store")
        db_session.add(other_unit)
        db_session.commit()

        data = SalesInvoiceCreate(
            buyer_id=sale_setup["buyer"].id,
            sales_category_id=sale_setup["category"].id,
            is_return=True,
            items=[make_item(sale_setup["article"], 5, original_invoice_item_id=posted_sale.items[0].id)]
        )
        with pytest.raises(ValidationError, match="business unit"):
            service.create_sale(data, other_unit.id, sale_setup["user"].id)
        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")

    def test_original_invoice_taken_from_items(self, posted_sale, create_sale, sale_setup):
        returned = create_sale(
            [make_item(sale_setup["article"], 2, original_invoice_item_id=posted_sale.items[0].id)],
            is_return=True
        )
        assert returned.original_invoice_id == posted_sale.id
        assert returned.original_invoice_number == posted_sale.invoice_number

    def test_repeated_original_item_shares_limit(self, db_session, posted_sale, create_sale, sale_setup):
        """6 + 6 contra 10 vendidos: la segunda línea solo tiene 4 disponibles"""
        original_item_id = posted_sale.items[0].id
        with pytest.raises(ReturnQuantityExceededError) as exc_info:
            create_sale(
                [make_item(sale_setup["article"], 6, original_invoice_item_id=original_item_id),
                 make_item(sale_setup["article"], 6, original_invoice_item_id=original_item_id)],
                is_return=True,
                original_invoice_id=posted_sale.id
            )
        assert str(exc_info.value) == "Cannot return 6 of 'Olive oil 1L'. Only 4 available for return."
        assert stock_of(db_session, sale_setup["article"]) == Decimal("90")

    def test_validate_return_quantities_message(self, db_session, posted_sale, sale_setup):
        from app.modules.sales.returns import ReturnValidator
        item = make_item(sale_setup["article"], 11, original_invoice_item_id=posted_sale.items[0].id)

        ok, message = ReturnValidator(db_session).validate_return_quantities([item])
        assert ok is False
        assert message == "Cannot return 11 of 'Olive oil 1L'. Only 10 available for return."

        ok, message = ReturnValidator(db_session).validate_return_quantities([make_item(sale_setup["article"], 1)])
        assert (ok, message) == (True, "")

    def test_update_return_rechecks_limit(self, service, posted_sale, create_return, sale_setup):
        returned = create_return(posted_sale, 4)
        with pytest.raises(ReturnQuantityExceededError):
            service.update_sale(returned.id, SalesInvoiceUpdate(items=[
                as_update_item(returned.items[0], quantity=Decimal("11"))
            ]), sale_setup["user"].id)

    def test_update_return_quantity_adjusts_stock(self, db_session, service, posted_sale, create_return, sale_setup):
        returned = create_return(posted_sale, 4)
        assert stock_of(db_session, sale_setup["article"]) == Decimal("94")

        service.update_sale(returned.id, SalesInvoiceUpdate(items=[
            as_update_item(returned.items[0], quantity=Decimal("6"))
        ]), sale_setup["user"].id)
        assert stock_of(db_session, sale_setup["article"]) == Decimal("96")

    def test_get_original_invoice_by_number(self, db_session, service, posted_sale, create_sale, sale_setup):
        from app.modules.business_units.models import BusinessUnit
        other_unit = BusinessUnit(code="002", name="Second Store")
        db_session.add(other_unit)
        db_session.commit()

        found = service.get_original_invoice_by_number(posted_sale.invoice_number, sale_setup["business_unit"].id)
        assert found.id == posted_sale.id
        assert service.get_original_invoice_by_number(posted_sale.invoice_number, other_unit.id) is None

        draft = create_sale([])
        assert service.get_original_invoice_by_number(draft.invoice_number, sale_setup["business_unit"].id) is None

    def test_posted_invoices_for_return(self, db_session, service, create_sale, sale_setup):
        invoices = []
        for day in (1, 2, 3):
            invoice = create_sale([], invoice_date=date(2025, 6, day))
            service.post_sale(invoice.id, sale_setup["user"].id)
            invoices.append(invoice)
        create_sale([])  # borrador, no aparece

        result = service.get_posted_invoices_for_return(sale_setup["business_unit"].id, limit=2)
        assert [invoice.id for invoice in result] == [invoices[2].id, invoices[1].id]

        assert len(service.get_posted_invoices_for_return(sale_setup["business_unit"].id, buyer_name="buyer")) == 3
        assert service.get_posted_invoices_for_return(sale_setup["business_unit"].id, buyer_name="nobody") == []


# ===== ENDPOINTS =====

class TestSalesRouter:
    """Tests HTTP del módulo de ventas"""

    @pytest.fixture
    def api_setup(self, sales_user, sample_business_unit, domestic_category, sample_buyer, sample_article, make_headers):
        return {
            "headers": make_headers(sales_user, sample_business_unit),
            "buyer": sample_buyer,
            "article": sample_article,
        }

    def _payload(self, api_setup, quantity="2", **extra):
        payload = {
            "buyer_id": api_setup["buyer"].id,
            "items": [{
                "article_id": api_setup["article"].id,
                "quantity": quantity,
                "price_without_vat": "10",
                "vat_percent": "20",
                "vat_amount": "4",
                "value_without_vat": "20",
                "value_with_vat": "24",
            }],
        }
        payload.update(extra)
        return payload

    def test_create_and_get_sale(self, client, api_setup):
        response = client.post("/sales/", json=self._payload(api_setup), headers=api_setup["headers"])
        assert response.status_code == 201
        data = response.json()
        assert data["invoice_number"].endswith("-DOM-001-0001")
        assert Decimal(data["total_with_vat"]) == Decimal("24")

        response = client.get(f"/sales/{data['id']}", headers=api_setup["headers"])
        assert response.status_code == 200
        assert len(response.json()["items"]) == 1

    def test_business_unit_header_required(self, client, api_setup, sales_user, make_headers):
        response = client.post("/sales/", json=self._payload(api_setup), headers=make_headers(sales_user))
        assert response.status_code == 400

    def test_invalid_business_unit_header(self, client, api_setup):
        headers = {**api_setup["headers"], "X-Business-Unit-ID": "abc"}
        response = client.post("/sales/", json=self._payload(api_setup), headers=headers)
        assert response.status_code == 400

    def test_unauthenticated_request_rejected(self, client, api_setup):
        response = client.post("/sales/", json=self._payload(api_setup), headers={"X-Business-Unit-ID": "1"})
        assert response.status_code in (401, 403)

    def test_user_without_business_unit_access(self, client, api_setup, other_user, sample_business_unit, make_headers):
        response = client.post(
            "/sales/", json=self._payload(api_setup), headers=make_headers(other_user, sample_business_unit)
        )
        assert response.status_code == 403

    def test_user_without_sales_module(self, db_session, client, api_setup, other_user, sample_business_unit, make_headers):
        from app.modules.business_units.models import UserBusinessUnit
        db_session.add(UserBusinessUnit(user_id=other_user.id, business_unit_id=sample_business_unit.id))
        db_session.commit()

        response = client.post(
            "/sales/", json=self._payload(api_setup), headers=make_headers(other_user, sample_business_unit)
        )
        assert response.status_code == 403

    def test_update_posted_sale_conflict(self, client, api_setup):
        created = client.post("/sales/", json=self._payload(api_setup), headers=api_setup["headers"]).json()
        assert client.post(f"/sales/{created['id']}/post", headers=api_setup["headers"]).status_code == 200

        response = client.patch(f"/sales/{created['id']}", json={"return_reason": "x"}, headers=api_setup["headers"])
        assert response.status_code == 409
        assert response.json()["code"] == "INVOICE_ALREADY_POSTED"

    def test_update_keeps_invoice_number(self, client, api_setup):
        created = client.post("/sales/", json=self._payload(api_setup), headers=api_setup["headers"]).json()
        response = client.patch(
            f"/sales/{created['id']}", json={"invoice_number": "OTHER"}, headers=api_setup["headers"]
        )
        assert response.status_code == 200
        assert response.json()["invoice_number"] == created["invoice_number"]

    def test_return_error_message_is_verbatim(self, client, api_setup):
        created = client.post("/sales/", json=self._payload(api_setup, quantity="2"), headers=api_setup["headers"]).json()
        client.post(f"/sales/{created['id']}/post", headers=api_setup["headers"])

        payload = self._payload(api_setup, quantity="3", is_return=True, original_invoice_id=created["id"])
        payload["items"][0]["original_invoice_item_id"] = created["items"][0]["id"]
        response = client.post("/sales/", json=payload, headers=api_setup["headers"])

        assert response.status_code == 400
        assert response.json()["code"] == "RETURN_QUANTITY_EXCEEDED"
        assert response.json()["detail"] == "Cannot return 3 of 'Olive oil 1L'. Only 2 available for return."

    def test_unknown_article_is_bad_request(self, client, api_setup):
        payload = self._payload(api_setup)
        payload["items"][0]["article_id"] = 999
        response = client.post("/sales/", json=payload, headers=api_setup["headers"])

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["detail"] == "Article with ID 999 not found"

    def test_returnable_and_original_lookup(self, client, api_setup):
        created = client.post("/sales/", json=self._payload(api_setup), headers=api_setup["headers"]).json()
        client.post(f"/sales/{created['id']}/post", headers=api_setup["headers"])

        response = client.get(f"/sales/original/{created['invoice_number']}", headers=api_setup["headers"])
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

        item_id = created["items"][0]["id"]
        response = client.get(f"/sales/items/{item_id}/returnable", headers=api_setup["headers"])
        assert Decimal(response.json()["returnable_quantity"]) == Decimal("2")

        response = client.get("/sales/for-return", headers=api_setup["headers"])
        assert [invoice["id"] for invoice in response.json()["invoices"]] == [created["id"]]

    def test_cancel_unknown_sale(self, client, api_setup):
        response = client.post("/sales/999/cancel", json={"reason": "x"}, headers=api_setup["headers"])
        assert response.status_code == 404

    def test_next_number_preview_and_configure(self, client, api_setup):
        response = client.get("/invoice-number-formats/next", headers=api_setup["headers"])
        assert response.status_code == 200
        assert response.json()["next_invoice_number"].endswith("-DOM-001-0001")

        response = client.put("/invoice-number-formats/", json={"separator": "/"}, headers=api_setup["headers"])
        assert response.status_code == 200
        assert response.json()["last_used_sequential_number"] == 0

        response = client.put(
            "/invoice-number-formats/", json={"sequential_number_length": 20}, headers=api_setup["headers"]
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVOICE_NUMBER_FORMAT_INVALID"
