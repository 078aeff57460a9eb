from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Numeric, Date, Text
from sqlalchemy.orm import relationship
from datetime import date
from app.common.mixins import BusinessUnitMixin, TimestampMixin, AuditMixin


class InvoiceNumberFormat(Base, BusinessUnitMixin, TimestampMixin):
    """
    Formato y contador de numeración por (unidad de negocio, categoría de venta).

    last_used_sequential_number es la única fuente del "siguiente número":
    se incrementa exactamente una vez por factura emitida.
    """
    __tablename__ = "invoice_number_formats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sales_category_id = Column(Integer, ForeignKey("sales_categories.id"), nullable=False)

    use_year = Column(Boolean, nullable=False, default=True)
    use_sales_category_code = Column(Boolean, nullable=False, default=True)
    use_business_unit_code = Column(Boolean, nullable=False, default=True)
    use_sequential_number = Column(Boolean, nullable=False, default=True)
    separator = Column(String(5), nullable=False, default="-")
    sequential_number_length = Column(Integer, nullable=False, default=4)

    last_used_sequential_number = Column(Integer, nullable=False, default=0)

    # Relationships
    business_unit = relationship("BusinessUnit", back_populates="invoice_number_formats")
    sales_category = relationship("SalesCategory")

    __table_args__ = (
        UniqueConstraint("business_unit_id", "sales_category_id", name="uq_invoice_number_format_unit_category"),
    )


class SalesInvoice(Base, BusinessUnitMixin, AuditMixin):
    __tablename__ = "sales_invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Numbering (inmutable después de crear)
    invoice_number = Column(String(50), nullable=False, index=True)
    sequential_number = Column(Integer, nullable=False)
    sales_category_id = Column(Integer, ForeignKey("sales_categories.id"), nullable=False)

    # Dates
    invoice_date = Column(Date, nullable=False, default=date.today)
    invoice_expiry_date = Column(Date, nullable=True)

    # Buyer snapshot
    buyer_id = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
    buyer_code = Column(String(20), nullable=True)
    buyer_name = Column(String(200), nullable=True)

    # Totals (suma de los items)
    total_without_vat = Column(Numeric(18, 4), nullable=False, default=0)
    total_vat_amount = Column(Numeric(18, 4), nullable=False, default=0)
    total_with_vat = Column(Numeric(18, 4), nullable=False, default=0)
    total_discount_amount = Column(Numeric(18, 4), nullable=False, default=0)

    # State
    is_posted = Column(Boolean, nullable=False, default=False)
    posted_date = Column(DateTime(timezone=True), nullable=True)
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(Text, nullable=True)

    # Returns
    is_return = Column(Boolean, nullable=False, default=False)
    original_invoice_id = Column(Integer, ForeignKey("sales_invoices.id"), nullable=True, index=True)
    original_invoice_number = Column(String(50), nullable=True)
    return_reason = Column(Text, nullable=True)

    # Relationships
    business_unit = relationship("BusinessUnit")
    sales_category = relationship("SalesCategory")
    buyer = relationship("Subject")
    original_invoice = relationship("SalesInvoice", remote_side=[id])
    items = relationship(
        "SalesInvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="SalesInvoiceItem.id"
    )

    __table_args__ = (
        UniqueConstraint("business_unit_id", "sales_category_id", "sequential_number", name="uq_sales_invoice_sequence"),
    )

    @property
    def is_draft(self):
        return not self.is_posted


class SalesInvoiceItem(Base):
    __tablename__ = "sales_invoice_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sales_invoice_id = Column(Integer, ForeignKey("sales_invoices.id"), nullable=False, index=True)

    # Article snapshot
    article_id = Column(Integer, ForeignKey("articles.id"), nullable=True, index=True)
    article_code = Column(String(20), nullable=True)
    description = Column(String(300), nullable=True)
    barcode = Column(String(50), nullable=True)

    quantity = Column(Numeric(18, 4), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    unit_code = Column(String(10), nullable=True)

    # Pricing (calculado por el cliente, se suman tal cual)
    price_without_vat = Column(Numeric(18, 4), nullable=False, default=0)
    discount_percent = Column(Numeric(7, 4), nullable=False, default=0)
    discount_amount = Column(Numeric(18, 4), nullable=False, default=0)
    price_with_vat = Column(Numeric(18, 4), nullable=False, default=0)
    vat_percent = Column(Numeric(7, 4), nullable=False, default=0)
    vat_amount = Column(Numeric(18, 4), nullable=False, default=0)
    value_without_vat = Column(Numeric(18, 4), nullable=False, default=0)
    value_with_vat = Column(Numeric(18, 4), nullable=False, default=0)

    currency_id = Column(Integer, ForeignKey("currencies.id"), nullable=True)
    currency_code = Column(String(3), nullable=True)
    exchange_rate = Column(Numeric(18, 6), nullable=False, default=1)

    # Returns
    original_invoice_item_id = Column(Integer, ForeignKey("sales_invoice_items.id"), nullable=True, index=True)
    original_quantity = Column(Numeric(18, 4), nullable=True)

    # Relationships
    invoice = relationship("SalesInvoice", back_populates="items")
    article = relationship("Article")
    original_item = relationship("SalesInvoiceItem", remote_side=[id])
