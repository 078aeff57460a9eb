"""
Common mixins for business-unit scoped and audited models
"""
from sqlalchemy import Column, DateTime, Integer, String, ForeignKey
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class BusinessUnitMixin:
    """Mixin for models owned by a business unit (the tenant of this system)"""

    @declared_attr
    def business_unit_id(cls):
        return Column(Integer, ForeignKey("business_units.id"), nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True)


class AuditMixin:
    """Who created / last modified the row, as opaque user ids from the identity provider"""

    @declared_attr
    def created_by_user_id(cls):
        return Column(String(450), ForeignKey("users.id"), nullable=False, index=True)

    @declared_attr
    def last_modified_by_user_id(cls):
        return Column(String(450), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_modified_at = Column(DateTime(timezone=True), nullable=True)
