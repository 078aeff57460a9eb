from sqlalchemy import Column, Integer, String, Boolean
from app.database.database import Base
from app.common.mixins import TimestampMixin


class SalesCategory(Base, TimestampMixin):
    """Clasificación de ventas (DOM = doméstica, EXP = exportación...)"""
    __tablename__ = "sales_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), unique=True, nullable=True)  # usado en el número de factura
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
