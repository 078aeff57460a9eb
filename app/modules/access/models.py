from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database.database import Base
from app.common.mixins import TimestampMixin


class Module(Base):
    """Módulo funcional de la aplicación (Sales, Articles, Subjects...)"""
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(300), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)

    submodules = relationship("Submodule", back_populates="module", cascade="all, delete-orphan")


class Submodule(Base):
    __tablename__ = "submodules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    page_url = Column(String(200), nullable=True)

    module = relationship("Module", back_populates="submodules")

    __table_args__ = (
        UniqueConstraint("module_id", "name", name="uq_submodule_module_name"),
    )


class UserModuleAccess(Base, TimestampMixin):
    """Permiso usuario x módulo (opcionalmente x submódulo)"""
    __tablename__ = "user_module_access"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(450), ForeignKey("users.id"), nullable=False, index=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=False)
    submodule_id = Column(Integer, ForeignKey("submodules.id"), nullable=True)
    has_access = Column(Boolean, default=True, nullable=False)

    # Relationships
    user = relationship("User", back_populates="module_access")
    module = relationship("Module")
    submodule = relationship("Submodule")

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", "submodule_id", name="uq_user_module_submodule"),
    )
