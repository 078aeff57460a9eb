from sqlalchemy import Column, Integer, String, Boolean
from app.database.database import Base
from app.common.mixins import TimestampMixin


class Subject(Base, TimestampMixin):
    """Comprador y/o proveedor (furnitor)"""
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False)
    subject_name = Column(String(200), nullable=False)

    is_buyer = Column(Boolean, default=False, nullable=False)
    is_furnitor = Column(Boolean, default=False, nullable=False)

    # Fiscal data
    vat_number = Column(String(30), nullable=True)
    fiscal_number = Column(String(30), nullable=True)
    is_vat_payer = Column(Boolean, default=False, nullable=False)

    address = Column(String(300), nullable=True)
    city = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
