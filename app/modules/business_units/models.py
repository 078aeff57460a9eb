from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.database.database import Base
from app.common.mixins import TimestampMixin


class BusinessUnit(Base, TimestampMixin):
    __tablename__ = "business_units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False)  # inmutable una vez creado
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(300), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    user_business_units = relationship("UserBusinessUnit", back_populates="business_unit", cascade="all, delete-orphan")
    invoice_number_formats = relationship("InvoiceNumberFormat", back_populates="business_unit")


class UserBusinessUnit(Base):
    """Acceso de un usuario a una unidad de negocio"""
    __tablename__ = "user_business_units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(450), ForeignKey("users.id"), nullable=False, index=True)
    business_unit_id = Column(Integer, ForeignKey("business_units.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    assigned_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Relationships
    user = relationship("User", back_populates="user_business_units")
    business_unit = relationship("BusinessUnit", back_populates="user_business_units")

    __table_args__ = (
        UniqueConstraint("user_id", "business_unit_id", name="uq_user_business_unit"),
    )
