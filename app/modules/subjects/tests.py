"""
Tests para compradores / proveedores
"""

import pytest

from app.common.exceptions import ConflictError
from app.modules.subjects.schemas import SubjectCreate
from app.modules.subjects.service import SubjectService


class TestSubjectService:

    def test_subject_needs_a_role(self):
        with pytest.raises(ValueError):
            SubjectCreate(code="X1", subject_name="Nobody")

    def test_create_subject(self, db_session):
        subject = SubjectService(db_session).create_subject(
            SubjectCreate(code="c10", subject_name="Client Ten", is_buyer=True, vat_number="L12345678A")
        )
        assert subject.code == "C10"
        assert subject.is_active is True

    def test_duplicate_code(self, db_session, sample_buyer):
        with pytest.raises(ConflictError):
            SubjectService(db_session).create_subject(
                SubjectCreate(code="B001", subject_name="Again", is_buyer=True)
            )

    def test_get_buyer(self, db_session, sample_buyer, sample_supplier):
        service = SubjectService(db_session)
        assert service.get_buyer(sample_buyer.id).id == sample_buyer.id
        assert service.get_buyer(sample_supplier.id) is None
        assert service.get_buyer(None) is None
        assert service.get_buyer(0) is None

        sample_buyer.is_active = False
        db_session.commit()
        assert service.get_buyer(sample_buyer.id) is None
