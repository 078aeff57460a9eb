from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from app.database.database import Base
from app.common.mixins import TimestampMixin


class Unit(Base):
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), unique=True, nullable=False)
    name = Column(String(100), nullable=False)


class Currency(Base):
    __tablename__ = "currencies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(3), unique=True, nullable=False)  # ISO 4217
    name = Column(String(100), nullable=False)


class VATRate(Base):
    __tablename__ = "vat_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), unique=True, nullable=False)
    percent = Column(Numeric(5, 2), nullable=False, default=0)


class Article(Base, TimestampMixin):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False)
    barcode = Column(String(50), nullable=True, index=True)
    description = Column(String(300), nullable=False)

    unit_id = Column(Integer, ForeignKey("units.id"), nullable=True)
    currency_id = Column(Integer, ForeignKey("currencies.id"), nullable=True)
    vat_rate_id = Column(Integer, ForeignKey("vat_rates.id"), nullable=True)

    price = Column(Numeric(18, 4), nullable=False, default=0)  # sin IVA
    # Puede ser negativo: la sobreventa se registra, no se bloquea
    stock_quantity = Column(Numeric(18, 4), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    unit = relationship("Unit")
    currency = relationship("Currency")
    vat_rate = relationship("VATRate")
