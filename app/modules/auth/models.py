from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
from app.database.database import Base
from app.common.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """
    Usuario del proveedor de identidad.

    El id es opaco (el `sub` del token); no se guardan contraseñas aquí.
    """
    __tablename__ = "users"

    id = Column(String(450), primary_key=True)
    email = Column(String(256), unique=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)

    # Relationships
    user_business_units = relationship("UserBusinessUnit", back_populates="user", cascade="all, delete-orphan")
    module_access = relationship("UserModuleAccess", back_populates="user", cascade="all, delete-orphan")
